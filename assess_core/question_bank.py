from __future__ import annotations
import json, logging
import importlib.resources as ir
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from .types import Criteria, Question

log = logging.getLogger(__name__)


class QuestionRepository(Protocol):
    def find(self, criteria: Criteria, difficulty: Optional[str] = None, limit: Optional[int] = None) -> Sequence[Question]: ...


def _normalize_raw(raw: Dict[str, Any]) -> Dict[str, Any]:
    # accept the compact bank form: options as strings plus a "correct" index
    data = dict(raw)
    correct = data.pop("correct", None)
    opts = data.get("options")
    if isinstance(opts, list) and opts and all(isinstance(o, str) for o in opts):
        data["options"] = [{"text": o, "is_correct": i == correct} for i, o in enumerate(opts)]
    if "numeric_answer" in data and isinstance(data["numeric_answer"], (int, float)):
        data["numeric_answer"] = {"value": float(data["numeric_answer"])}
    return data


def parse_bank(raw: Iterable[Dict[str, Any]]) -> List[Question]:
    return [Question.from_dict(_normalize_raw(r)) for r in raw]


class InMemoryQuestionRepository:
    """Read-only store over a fixed list; safe to share between sessions."""

    def __init__(self, questions: Iterable[Question] = ()):
        self._questions: List[Question] = list(questions)

    def __len__(self) -> int:
        return len(self._questions)

    def all(self) -> List[Question]:
        return list(self._questions)

    def find(self, criteria: Criteria, difficulty: Optional[str] = None, limit: Optional[int] = None) -> List[Question]:
        out: List[Question] = []
        for q in self._questions:
            if not criteria.matches(q):
                continue
            if difficulty is not None and q.difficulty != difficulty:
                continue
            out.append(q)
            if limit is not None and len(out) >= limit:
                break
        return out


def load_bank(path: Optional[str | Path] = None) -> InMemoryQuestionRepository:
    """Load a bank file, or the sample bank shipped in the package when no path is given."""
    if path is None:
        raw = json.loads(ir.files(__package__).joinpath("data/bank.json").read_text(encoding="utf-8"))
        return InMemoryQuestionRepository(parse_bank(raw))
    p = Path(path)
    if not p.exists():
        log.warning("question bank %s not found; starting with an empty pool", p)
        return InMemoryQuestionRepository()
    raw = json.loads(p.read_text(encoding="utf-8"))
    questions = parse_bank(raw)
    log.info("loaded %d questions from %s", len(questions), p)
    return InMemoryQuestionRepository(questions)
