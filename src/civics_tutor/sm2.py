"""SM-2 spaced repetition algorithm."""
import math
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from civics_tutor.models import SRSRecord

INITIAL_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
FAILED_EASE_PENALTY = 0.2
FIRST_INTERVAL = 1
SECOND_INTERVAL = 6

# Upper bounds (seconds, exclusive) for deriving quality from a correct answer.
LATENCY_QUALITY = ((5, 5), (10, 4), (20, 3))
SLOW_CORRECT_QUALITY = 2


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_record(question_id: int) -> SRSRecord:
    return SRSRecord(question_id=question_id, ease_factor=INITIAL_EASE_FACTOR)


def next_review(record: SRSRecord, quality: int, now: datetime | None = None) -> SRSRecord:
    """Calculate the next review state using SM-2.

    Args:
        record: Current recall state (left untouched).
        quality: Rating 0-5 (0=complete blackout, 5=perfect)
        now: Review instant, defaults to the current UTC time.

    Returns:
        A new SRSRecord with updated interval, repetitions, ease factor and dates.
    """
    now = now or utcnow()
    quality = min(5, max(0, int(quality)))
    ease_factor = record.ease_factor

    if quality < 3:
        # Forgotten: start over
        repetitions = 0
        interval = FIRST_INTERVAL
        ease_factor = max(MIN_EASE_FACTOR, ease_factor - FAILED_EASE_PENALTY)
    else:
        if record.repetitions == 0:
            interval = FIRST_INTERVAL
        elif record.repetitions == 1:
            interval = SECOND_INTERVAL
        else:
            interval = round(record.interval * ease_factor)
        repetitions = record.repetitions + 1
        ease_factor = ease_factor + (0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02))
        ease_factor = max(MIN_EASE_FACTOR, ease_factor)

    return replace(
        record,
        ease_factor=ease_factor,
        interval=interval,
        repetitions=repetitions,
        last_quality=quality,
        last_review_date=now,
        next_review_date=now + timedelta(days=interval),
    )


def quality_from_response(is_correct: bool, elapsed_seconds: float) -> int:
    """Map a right/wrong result and its response time onto the 0-5 scale."""
    if not is_correct:
        return 0
    for limit, quality in LATENCY_QUALITY:
        if elapsed_seconds < limit:
            return quality
    return SLOW_CORRECT_QUALITY


def is_due(record: SRSRecord | None, now: datetime | None = None) -> bool:
    """A question is due when it was never scheduled or its review instant has passed."""
    if record is None or record.next_review_date is None:
        return True
    return (now or utcnow()) >= record.next_review_date


def days_until_review(record: SRSRecord | None, now: datetime | None = None) -> int:
    if record is None or record.next_review_date is None:
        return 0
    remaining = record.next_review_date - (now or utcnow())
    return math.ceil(remaining / timedelta(days=1))


def review_status_message(record: SRSRecord | None, now: datetime | None = None) -> str:
    if record is None or record.next_review_date is None:
        return "new"
    days = days_until_review(record, now)
    if days <= 0:
        return "due now"
    if days == 1:
        return "review tomorrow"
    if days <= 7:
        return f"review in {days} days"
    if days <= 30:
        weeks = math.ceil(days / 7)
        return f"review in {weeks} week{'s' if weeks > 1 else ''}"
    months = math.ceil(days / 30)
    return f"review in {months} month{'s' if months > 1 else ''}"


def _format_date(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_date(value) -> datetime | None:
    if not value:
        return None
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def record_to_dict(record: SRSRecord) -> dict:
    """Persisted JSON shape of a record (camelCase keys, ISO-8601 dates)."""
    return {
        "questionId": record.question_id,
        "easeFactor": record.ease_factor,
        "interval": record.interval,
        "repetitions": record.repetitions,
        "lastReviewDate": _format_date(record.last_review_date),
        "nextReviewDate": _format_date(record.next_review_date),
        "lastQuality": record.last_quality,
    }


def record_from_dict(data: dict, question_id: int | None = None) -> SRSRecord:
    """Rebuild a record from its persisted shape.

    Raises KeyError, TypeError or ValueError on malformed input; the store decides
    what to do with a bad entry.
    """
    qid = data.get("questionId", question_id)
    if qid is None:
        raise KeyError("questionId")
    return SRSRecord(
        question_id=int(qid),
        ease_factor=max(MIN_EASE_FACTOR, float(data.get("easeFactor", INITIAL_EASE_FACTOR))),
        interval=max(0, int(data.get("interval", 0))),
        repetitions=max(0, int(data.get("repetitions", 0))),
        last_review_date=_parse_date(data.get("lastReviewDate")),
        next_review_date=_parse_date(data.get("nextReviewDate")),
        last_quality=int(data.get("lastQuality", data.get("quality")) or 0),
    )
