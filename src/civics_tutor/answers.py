"""Free-text answer checking against accepted-answer lists."""
import re

_GLYPHS = re.compile(r"[•·\-*]")
_BRACKETED = re.compile(r"\[.*?\]")
_PARENTHESIZED = re.compile(r"\(.*?\)")
_INLINE_SPACE = re.compile(r"[^\S\n]+")
_WHITESPACE = re.compile(r"\s+")
_SEPARATORS = re.compile(r"[,•\n]")


def _strip_markup(text: str) -> str:
    text = text.lower().strip()
    # Bullets double as separators, so split on them before the glyphs go.
    text = text.replace("•", "\n")
    text = _GLYPHS.sub("", text)
    text = _BRACKETED.sub("", text)
    text = _PARENTHESIZED.sub("", text)
    return _INLINE_SPACE.sub(" ", text)


def normalize(text: str) -> str:
    """Lowercase, drop bullets/dashes/asterisks and bracketed asides, collapse spaces."""
    return _WHITESPACE.sub(" ", _strip_markup(text)).strip()


def candidate_answers(accepted_answer: str) -> list[str]:
    """Split an accepted answer into its normalized, non-empty phrasings."""
    candidates = []
    for part in _SEPARATORS.split(_strip_markup(accepted_answer)):
        part = normalize(part)
        if part:
            candidates.append(part)
    return candidates


def is_correct(user_answer: str, accepted_answer: str) -> bool:
    """True when the user's answer matches, or overlaps, any accepted phrasing.

    Matching is two-way substring so "Republic" satisfies "Republic, Representative
    democracy" and "it is a republic" does too.
    """
    if not isinstance(user_answer, str) or not isinstance(accepted_answer, str):
        return False
    answer = normalize(user_answer)
    if not answer:
        return False
    return any(
        answer == candidate or answer in candidate or candidate in answer
        for candidate in candidate_answers(accepted_answer)
    )
