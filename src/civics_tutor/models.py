"""Data classes for the practice domain model."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class Category(str, Enum):
    GOVERNMENT = "government"
    HISTORY = "history"
    SYMBOLS_HOLIDAYS = "symbols_holidays"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class QuestionType(str, Enum):
    """Interrogative form of a question, assigned once when the bank is loaded."""

    WHO = "who"
    WHAT = "what"
    WHICH = "which"
    WHY = "why"
    HOW = "how"
    HOW_MANY = "how_many"
    HOW_LONG = "how_long"
    WHEN = "when"
    OTHER = "other"


class PresentationMode(str, Enum):
    TEXT = "text"
    AUDIO_CUE = "audio_cue"


@dataclass(frozen=True)
class Question:
    id: int
    prompt: dict
    answer: str
    category: Category
    difficulty: Difficulty = Difficulty.EASY
    question_type: QuestionType = QuestionType.OTHER
    required_quantity: int = 1

    def text(self, language: str = "en") -> str:
        """Prompt in the requested language, falling back to English."""
        return self.prompt.get(language) or self.prompt.get("en", "")

    def __hash__(self) -> int:
        return hash(self.id)


@dataclass
class SRSRecord:
    question_id: int
    ease_factor: float = 2.5
    interval: int = 0
    repetitions: int = 0
    last_review_date: Optional[datetime] = None
    next_review_date: Optional[datetime] = None
    last_quality: int = 0


@dataclass(frozen=True)
class SessionSlot:
    question_id: int
    mode: PresentationMode = PresentationMode.TEXT


@dataclass
class AnswerEvent:
    question_id: int
    answer: str
    is_correct: bool
    time_spent_ms: int
    timestamp: str
    mode: str
    category: Optional[str] = None
    quality: Optional[int] = None


@dataclass
class SessionProgress:
    current: int
    total: int


@dataclass
class SessionStats:
    correct: int = 0
    incorrect: int = 0
    total: int = 0
    score: float = 0.0
    answered: int = field(default=0, repr=False)
