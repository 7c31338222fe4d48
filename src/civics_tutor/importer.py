"""Import custom question banks from JSON, YAML or CSV files."""
import csv
import json
from pathlib import Path

import yaml
from loguru import logger

from civics_tutor.bank import question_from_dict
from civics_tutor.models import Question

CSV_FIELDS = ("id", "question", "answer", "category", "difficulty")


class QuestionImportError(ValueError):
    """Raised when a bank file cannot be read or contains an invalid entry."""


def _entries(data) -> list:
    if isinstance(data, dict):
        data = data.get("questions")
    if not isinstance(data, list):
        raise QuestionImportError("expected a list of questions or a 'questions' key")
    return data


def read_bank_file(file_path: str) -> list[dict]:
    path = Path(file_path)
    suffix = path.suffix.lower()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise QuestionImportError(f"cannot read {path}: {e}") from e

    try:
        if suffix == ".json":
            return _entries(json.loads(text))
        elif suffix in (".yaml", ".yml"):
            return _entries(yaml.safe_load(text))
        elif suffix == ".csv":
            reader = csv.DictReader(text.splitlines())
            missing = [f for f in CSV_FIELDS[:4] if f not in (reader.fieldnames or [])]
            if missing:
                raise QuestionImportError(f"CSV header is missing: {', '.join(missing)}")
            return [dict(row) for row in reader]
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise QuestionImportError(f"cannot parse {path.name}: {e}") from e
    raise QuestionImportError(f"unsupported file type: {suffix or path.name}")


def import_questions(file_path: str) -> list[Question]:
    """Read and validate a bank file. Every row must be valid and ids unique."""
    questions = []
    seen = set()
    for row_number, entry in enumerate(read_bank_file(file_path), 1):
        if not isinstance(entry, dict):
            raise QuestionImportError(f"row {row_number}: expected a mapping")
        try:
            question = question_from_dict(entry)
        except (KeyError, TypeError, ValueError) as e:
            raise QuestionImportError(f"row {row_number}: {e}") from e
        if question.id in seen:
            raise QuestionImportError(f"row {row_number}: duplicate id {question.id}")
        seen.add(question.id)
        questions.append(question)
    logger.info(f"Imported {len(questions)} questions from {Path(file_path).name}")
    return questions
