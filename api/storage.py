"""On-disk layout under ``DATA_DIR`` and the archive of finished results.

Results live one file per session in ``reports/`` with a small index keyed by
session id, so the learner listing never has to open every report. A database
can replace this later behind the same ``save`` method.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from assess_core.store import write_json_atomic
from assess_core.types import AssessmentResult

log = logging.getLogger(__name__)

DATA_ROOT = Path(os.getenv("DATA_DIR", "data")).resolve()
REPORTS_DIR = DATA_ROOT / "reports"
REPORT_INDEX_PATH = DATA_ROOT / "reports_index.json"
SESSIONS_DIR = DATA_ROOT / "sessions"


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _read(path: Path) -> Optional[Any]:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as exc:
        log.warning("unreadable json at %s: %s", path, exc)
        return None


class FileResultArchive:
    """Persists each AssessmentResult once; re-archiving a session overwrites it."""

    def __init__(self, reports_dir: Path = REPORTS_DIR, index_path: Path = REPORT_INDEX_PATH):
        self.reports_dir = reports_dir
        self.index_path = index_path
        self._lock = threading.Lock()

    def _index(self) -> Dict[str, Dict[str, Any]]:
        return _read(self.index_path) or {}

    def save(self, result: AssessmentResult) -> None:
        entry = {
            "sessionId": result.session_id,
            "learnerId": result.learner_id,
            "createdAt": result.completed_at or utcnow_iso(),
            "score": result.score,
            "totalQuestions": result.total_questions,
        }
        write_json_atomic(self.reports_dir / f"{result.session_id}.json", result.to_dict())
        with self._lock:
            index = self._index()
            index[result.session_id] = entry
            write_json_atomic(self.index_path, index)
        log.debug("archived result sid=%s", result.session_id)

    def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        return _read(self.reports_dir / f"{session_id}.json")

    def for_learner(self, learner_id: str) -> List[Dict[str, Any]]:
        rows = [dict(meta) for meta in self._index().values() if meta.get("learnerId") == learner_id]
        rows.sort(key=lambda r: r.get("createdAt", ""), reverse=True)
        return rows


ARCHIVE = FileResultArchive()


def load_report(session_id: str) -> Optional[Dict[str, Any]]:
    return ARCHIVE.load(session_id)


def list_reports_for_user(learner_id: str) -> List[Dict[str, Any]]:
    return ARCHIVE.for_learner(learner_id)
