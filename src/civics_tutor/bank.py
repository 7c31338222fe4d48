"""Load the civics question bank and classify each question once."""
import json
import re
from collections import Counter
from pathlib import Path

from loguru import logger

from civics_tutor.models import Category, Difficulty, Question, QuestionType

CONTENT_DIR = Path(__file__).parent / "content"
DEFAULT_BANK = CONTENT_DIR / "questions.json"

# "Name one/two/..." prompts that count as selection questions. Other prompts
# starting with "Name" or "Which" are filed under OTHER.
WHICH_QUESTION_IDS = frozenset({
    3, 10, 16, 20, 29, 41, 46, 58, 59, 67, 73, 77, 80, 81, 83, 91, 92, 99, 100,
    116, 117, 118, 126,
})

# Interrogatives following an introductory sentence, checked before leading words.
EMBEDDED_PATTERNS = [
    (re.compile(r"\.\s*What|What does|What is|What are|What was|What did|What do|are in what|is in what", re.I), QuestionType.WHAT),
    (re.compile(r"\.\s*Why", re.I), QuestionType.WHY),
    (re.compile(r"\.\s*Which", re.I), QuestionType.WHICH),
    (re.compile(r"\.\s*Who", re.I), QuestionType.WHO),
    (re.compile(r"\.\s*When", re.I), QuestionType.WHEN),
    (re.compile(r"\.\s*How long|How long", re.I), QuestionType.HOW_LONG),
    (re.compile(r"\.\s*How many|\.\s*How much", re.I), QuestionType.HOW_MANY),
    (re.compile(r"\.\s*How", re.I), QuestionType.HOW),
]

LEADING_PATTERNS = [
    (re.compile(r"^How long", re.I), QuestionType.HOW_LONG),
    (re.compile(r"^How many|^How much", re.I), QuestionType.HOW_MANY),
    (re.compile(r"^How(?![ \t]many|long)", re.I), QuestionType.HOW),
    (re.compile(r"^Which|^Name one|^Name two|^Name", re.I), QuestionType.WHICH),
    (re.compile(r"^Who", re.I), QuestionType.WHO),
    (re.compile(r"^What", re.I), QuestionType.WHAT),
    (re.compile(r"^Why", re.I), QuestionType.WHY),
    (re.compile(r"^When", re.I), QuestionType.WHEN),
]

QUANTITY_PHRASES = [
    (3, ("name three", "three words")),
    (2, ("name two", "two rights", "two parts", "two cabinet", "two major", "two national")),
    (5, ("name five",)),
]


def classify_question(question_id: int, text: str) -> QuestionType:
    if question_id in WHICH_QUESTION_IDS:
        return QuestionType.WHICH
    for pattern, question_type in EMBEDDED_PATTERNS:
        if pattern.search(text):
            return question_type
    for pattern, question_type in LEADING_PATTERNS:
        if pattern.search(text):
            if question_type is QuestionType.WHICH:
                return QuestionType.OTHER
            return question_type
    return QuestionType.OTHER


def detect_required_quantity(text: str) -> int:
    """How many items a prompt asks for ("Name two ..." -> 2)."""
    lowered = text.lower()
    for quantity, phrases in QUANTITY_PHRASES:
        if any(phrase in lowered for phrase in phrases):
            return quantity
    return 1


def question_from_dict(data: dict) -> Question:
    """Build a Question from a bank entry. Raises ValueError/KeyError on bad data."""
    prompt = data.get("prompt", data.get("question"))
    if isinstance(prompt, str):
        prompt = {"en": prompt}
    if not prompt or not isinstance(prompt, dict) or not prompt.get("en"):
        raise ValueError(f"question {data.get('id')!r} has no English prompt")
    answer = data["answer"]
    if isinstance(answer, (list, tuple)):
        answer = "\n".join(str(a) for a in answer)
    if not str(answer).strip():
        raise ValueError(f"question {data.get('id')!r} has no accepted answer")
    question_id = int(data["id"])
    return Question(
        id=question_id,
        prompt=dict(prompt),
        answer=str(answer),
        category=Category(data["category"]),
        difficulty=Difficulty(data.get("difficulty") or Difficulty.EASY.value),
        question_type=classify_question(question_id, prompt["en"]),
        required_quantity=int(data.get("required_quantity") or detect_required_quantity(prompt["en"])),
    )


def load_questions(path: str | Path | None = None) -> list[Question]:
    """Load a bank file in the bundled JSON shape: {"questions": [...]}."""
    path = Path(path) if path else DEFAULT_BANK
    data = json.loads(path.read_text(encoding="utf-8"))
    entries = data["questions"] if isinstance(data, dict) else data
    questions = [question_from_dict(entry) for entry in entries]
    logger.info(f"Loaded {len(questions)} questions from {path.name}")
    return questions


def questions_by_type(questions: list[Question], question_type: QuestionType) -> list[Question]:
    return [q for q in questions if q.question_type is question_type]


def question_type_counts(questions: list[Question]) -> dict[QuestionType, int]:
    """Questions per type, in declaration order, omitting empty types."""
    counts = Counter(q.question_type for q in questions)
    return {t: counts[t] for t in QuestionType if counts[t]}
