"""Readiness dashboard scoring and statistics."""
from collections import defaultdict
from datetime import datetime

from civics_tutor.models import Question, SRSRecord
from civics_tutor.sm2 import is_due, utcnow

# Review interval (days) from which a question counts as learned.
MATURE_INTERVAL_DAYS = 14


def get_readiness_label(score: float) -> str:
    if score >= 80:
        return "READY"
    elif score >= 60:
        return "LIKELY"
    elif score >= 40:
        return "NEEDS WORK"
    return "NOT READY"


def get_readiness_color(score: float) -> str:
    if score >= 80:
        return "green"
    elif score >= 60:
        return "yellow"
    elif score >= 40:
        return "dark_orange"
    return "red"


def overall_accuracy(answer_log: list[dict]) -> float:
    if not answer_log:
        return 0.0
    correct = sum(1 for event in answer_log if event.get("isCorrect"))
    return round(correct / len(answer_log) * 100, 1)


def category_accuracy(answer_log: list[dict]) -> dict[str, float]:
    """Percentage of correct answers per question category."""
    totals = defaultdict(int)
    correct = defaultdict(int)
    for event in answer_log:
        category = event.get("category")
        if not category:
            continue
        totals[category] += 1
        if event.get("isCorrect"):
            correct[category] += 1
    return {c: round(correct[c] / totals[c] * 100, 1) for c in sorted(totals)}


def progress_summary(
    questions: list[Question],
    srs_map: dict[int, SRSRecord],
    incorrect_ids: set[int],
    marked_ids: set[int],
    now: datetime | None = None,
) -> dict:
    now = now or utcnow()
    ids = {q.id for q in questions}
    tracked = [srs_map[qid] for qid in ids if qid in srs_map]
    scheduled = [r for r in tracked if r.next_review_date is not None]
    return {
        "total": len(ids),
        "tracked": len(tracked),
        "new": len(ids) - len(scheduled),
        "due": sum(1 for r in scheduled if is_due(r, now)),
        "mastered": sum(1 for r in tracked if r.interval >= MATURE_INTERVAL_DAYS),
        "incorrect": len(ids & incorrect_ids),
        "marked": len(ids & marked_ids),
    }


def calc_readiness_score(answer_log: list[dict], summary: dict) -> float:
    accuracy = overall_accuracy(answer_log)
    mastery = (summary["mastered"] / summary["total"] * 100) if summary["total"] else 0.0
    # Weighted: answer accuracy 60%, long-term mastery 40%
    return round(accuracy * 0.6 + mastery * 0.4, 1)
