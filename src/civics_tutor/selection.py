"""Question pool selection, ordering and presentation-mode balancing."""
import random
from datetime import datetime
from enum import Enum
from typing import Iterable

from loguru import logger

from civics_tutor.bank import questions_by_type
from civics_tutor.models import (
    Category, Difficulty, PresentationMode, Question, QuestionType, SessionSlot, SRSRecord,
)
from civics_tutor.sm2 import is_due, utcnow

DIFFICULTY_WEIGHTS = {
    Difficulty.HARD: 3,
    Difficulty.MEDIUM: 2,
    Difficulty.EASY: 1,
}

class SessionMode(str, Enum):
    CATEGORY = "category"
    RANDOM = "random"
    INCORRECT = "incorrect"
    MARKED = "marked"
    SPACED_REPETITION = "spaced_repetition"
    QUESTION_TYPE = "question_type"


def fisher_yates(items: Iterable, rng=None) -> list:
    """Return a uniformly shuffled copy. rng needs randrange(); defaults to `random`."""
    rng = rng or random
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randrange(i + 1)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def difficulty_weight(difficulty: Difficulty) -> int:
    return DIFFICULTY_WEIGHTS.get(difficulty, 1)


def apply_difficulty_weight(questions: list[Question]) -> list[Question]:
    """Repeat each question once per weight point (hard x3, medium x2, easy x1)."""
    weighted = []
    for q in questions:
        weighted.extend([q] * difficulty_weight(q.difficulty))
    return weighted


def weighted_shuffle(questions: list[Question], rng=None) -> list[Question]:
    """Shuffle the weighted multiset and keep each question's first occurrence.

    Harder questions hold more tickets in the shuffle, so they tend to land
    earlier, while each question still appears once.
    """
    seen = set()
    ordered = []
    for q in fisher_yates(apply_difficulty_weight(questions), rng):
        if q.id not in seen:
            seen.add(q.id)
            ordered.append(q)
    return ordered


def assign_presentation_modes(n: int, rng=None) -> list[PresentationMode]:
    """n // 2 text slots, the rest audio cue, in shuffled order."""
    text_count = n // 2
    modes = [PresentationMode.TEXT] * text_count + [PresentationMode.AUDIO_CUE] * (n - text_count)
    return fisher_yates(modes, rng)


def spaced_repetition_tiers(
    questions: list[Question],
    srs_map: dict[int, SRSRecord],
    now: datetime | None = None,
) -> tuple[list[Question], list[Question], list[Question]]:
    """Split into (scheduled and due, never reviewed, not yet due).

    The last tier is sorted by soonest review so backfill takes the questions
    closest to coming due.
    """
    now = now or utcnow()
    due, new, waiting = [], [], []
    for q in questions:
        record = srs_map.get(q.id)
        if record is None or record.next_review_date is None:
            new.append(q)
        elif is_due(record, now):
            due.append(q)
        else:
            waiting.append(q)
    waiting.sort(key=lambda q: srs_map[q.id].next_review_date)
    return due, new, waiting


def build_pool(
    mode: SessionMode,
    questions: list[Question],
    incorrect_ids: set[int] | None = None,
    marked_ids: set[int] | None = None,
    category: Category | None = None,
    question_type: QuestionType | None = None,
) -> list[Question]:
    """Questions eligible for a session, before ordering.

    Spaced repetition uses the whole bank here; its priority order comes from
    spaced_repetition_tiers.
    """
    mode = SessionMode(mode)
    if mode is SessionMode.CATEGORY:
        if category is None:
            raise ValueError("category mode needs a category")
        category = Category(category)
        return [q for q in questions if q.category is category]
    if mode is SessionMode.QUESTION_TYPE:
        if question_type is None:
            raise ValueError("question_type mode needs a question type")
        return questions_by_type(questions, QuestionType(question_type))
    if mode is SessionMode.INCORRECT:
        ids = incorrect_ids or set()
        return [q for q in questions if q.id in ids]
    if mode is SessionMode.MARKED:
        ids = marked_ids or set()
        return [q for q in questions if q.id in ids]
    return list(questions)


def build_session(
    mode: SessionMode,
    questions: list[Question],
    srs_map: dict[int, SRSRecord] | None = None,
    incorrect_ids: set[int] | None = None,
    marked_ids: set[int] | None = None,
    count: int | None = None,
    category: Category | None = None,
    question_type: QuestionType | None = None,
    rng=None,
    now: datetime | None = None,
) -> list[SessionSlot]:
    """Ordered (question id, presentation mode) slots for a new session.

    An empty list means there is nothing to practice in this mode.
    """
    mode = SessionMode(mode)
    rng = rng or random.Random()
    pool = build_pool(mode, questions, incorrect_ids, marked_ids, category, question_type)

    if mode is SessionMode.SPACED_REPETITION:
        due, new, waiting = spaced_repetition_tiers(pool, srs_map or {}, now)
        logger.debug(f"Review tiers: {len(due)} due, {len(new)} new, {len(waiting)} waiting")
        ordered = weighted_shuffle(due, rng) + weighted_shuffle(new, rng) + waiting
    else:
        ordered = weighted_shuffle(pool, rng)

    if count is not None:
        ordered = ordered[:max(0, count)]
    modes = assign_presentation_modes(len(ordered), rng)
    logger.debug(f"Built {mode.value} session with {len(ordered)} of {len(pool)} questions")
    return [SessionSlot(question_id=q.id, mode=m) for q, m in zip(ordered, modes)]
