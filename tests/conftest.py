from datetime import datetime, timezone

import pytest

from civics_tutor.models import Category, Difficulty, Question, QuestionType

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_tutor.db")
    return db_path


@pytest.fixture
def now():
    return NOW


def make_question(id, answer="Republic", category=Category.GOVERNMENT, difficulty=Difficulty.EASY,
                  text=None, question_type=QuestionType.WHAT):
    return Question(
        id=id,
        prompt={"en": text or f"Question {id}?"},
        answer=answer,
        category=category,
        difficulty=difficulty,
        question_type=question_type,
    )


@pytest.fixture
def questions():
    """Six questions: two per category, mixed difficulty."""
    return [
        make_question(1, "Republic, Constitution-based federal republic", Category.GOVERNMENT, Difficulty.EASY),
        make_question(2, "U.S. Constitution", Category.GOVERNMENT, Difficulty.HARD, question_type=QuestionType.WHICH),
        make_question(3, "1776, July 4, 1776", Category.HISTORY, Difficulty.MEDIUM, question_type=QuestionType.WHEN),
        make_question(4, "George Washington", Category.HISTORY, Difficulty.HARD, question_type=QuestionType.WHO),
        make_question(5, "Freedom", Category.SYMBOLS_HOLIDAYS, Difficulty.EASY),
        make_question(6, "Independence Day, Thanksgiving", Category.SYMBOLS_HOLIDAYS, Difficulty.MEDIUM),
    ]
