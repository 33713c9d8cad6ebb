from __future__ import annotations
from typing import Dict, Sequence
import math

from .config import NUMERIC_TOLERANCE
from .errors import InvalidAnswer
from .types import AnswerRecord, ChosenAnswer, Question, ScoreSummary


def _as_index(value: ChosenAnswer) -> int:
    if isinstance(value, bool):
        raise InvalidAnswer("option answers must be an integer index")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise InvalidAnswer(f"option answers must be an integer index, got {value!r}")


def _as_number(value: ChosenAnswer) -> float:
    if isinstance(value, bool):
        raise InvalidAnswer("numeric answers must be a number")
    try:
        num = float(value)
    except (TypeError, ValueError):
        raise InvalidAnswer(f"numeric answers must be a number, got {value!r}") from None
    if math.isnan(num) or math.isinf(num):
        raise InvalidAnswer("numeric answers must be finite")
    return num


def _score_option(q: Question, value: ChosenAnswer) -> bool:
    idx = _as_index(value)
    opts = q.options or []
    if not 0 <= idx < len(opts):
        raise InvalidAnswer(f"option index {idx} out of range for question {q.id}")
    return bool(opts[idx].is_correct)


def _score_numeric(q: Question, value: ChosenAnswer) -> bool:
    key = q.numeric_answer
    num = _as_number(value)
    tol = key.tolerance if key.tolerance is not None else NUMERIC_TOLERANCE
    return math.isclose(num, float(key.value), rel_tol=0.0, abs_tol=max(float(tol), 0.0))


def score_answer(question: Question, chosen: ChosenAnswer) -> bool:
    """
    Option questions: ``chosen`` is the option index, correct when that option
    is flagged correct. Numeric questions: correct within the key's tolerance.
    """
    if question.numeric_answer is not None:
        return _score_numeric(question, chosen)
    if question.options:
        return _score_option(question, chosen)
    raise InvalidAnswer(f"question {question.id} has no answer key")


def percentage(correct: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(correct / total * 100.0, 2)


def summarize(answers: Sequence[AnswerRecord], questions: Sequence[Question]) -> ScoreSummary:
    """Final tally; unanswered questions count against the total."""
    by_id: Dict[str, Question] = {q.id: q for q in questions}
    correct = sum(1 for a in answers if a.is_correct and a.question_id in by_id)
    total = len(questions)
    return ScoreSummary(correct_count=correct, total_count=total, percentage=percentage(correct, total))


def running_score(answers: Sequence[AnswerRecord]) -> float:
    correct = sum(1 for a in answers if a.is_correct)
    return percentage(correct, len(answers))
