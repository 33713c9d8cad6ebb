"""Export a session's answers and adaptive decisions as JSON or CSV rows."""
from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional
import csv
import io

from .types import Session


def _as_int(val: Any) -> int:
    try:
        return int(val)
    except (TypeError, ValueError):
        return 0


def _as_float(val: Any) -> float:
    try:
        return float(val)
    except (TypeError, ValueError):
        return 0.0


def _as_text(val: Any) -> str:
    return "" if val is None else str(val)


# column -> coercion; order is the CSV header order
_COLUMNS: Dict[str, Callable[[Any], Any]] = {
    "index": _as_int,
    "question_id": _as_text,
    "difficulty": _as_text,
    "provenance": _as_text,
    "is_correct": bool,
    "time_spent_sec": _as_float,
    "answered_at": _as_text,
    "next_difficulty": _as_text,
    "reason": _as_text,
}


def session_events(session: Session) -> List[Dict[str, Any]]:
    """One row per answered question, joined with the decision taken after it."""

    by_id = {q.id: q for q in session.questions}
    decisions = {d.after_question_index: d for d in session.difficulty_log}
    events: List[Dict[str, Any]] = []
    for idx, ans in enumerate(session.answers):
        q = by_id.get(ans.question_id)
        dec = decisions.get(idx)
        events.append(
            {
                "index": idx,
                "question_id": ans.question_id,
                "difficulty": q.difficulty if q else "",
                "provenance": q.provenance if q else "",
                "is_correct": ans.is_correct,
                "time_spent_sec": ans.time_spent_sec,
                "answered_at": ans.answered_at,
                "next_difficulty": dec.next_difficulty if dec else None,
                "reason": dec.reason if dec else None,
            }
        )
    return events


def _rows(events: Iterable[Optional[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    return [{col: cast((evt or {}).get(col)) for col, cast in _COLUMNS.items()} for evt in events]


def to_json(events: Iterable[Optional[Dict[str, Any]]]) -> Dict[str, Any]:
    return {"events": _rows(events)}


def to_csv(events: Iterable[Optional[Dict[str, Any]]]) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=list(_COLUMNS))
    writer.writeheader()
    writer.writerows(_rows(events))
    return buf.getvalue()


__all__ = ["session_events", "to_json", "to_csv"]
