"""Authoritative state for in-flight sessions.

Every mutation goes through :meth:`SessionStore.apply`, which holds the
session's own lock for the whole read-modify-write and commits only when the
transition function returns normally. Sessions with different ids never
contend. When a directory is given, each committed session is also written to
``<dir>/<session_id>.json`` and reloaded on start.
"""
from __future__ import annotations

import copy
import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from .errors import SessionNotFound
from .types import Session

log = logging.getLogger(__name__)

T = TypeVar("T")


def write_json_atomic(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    tmp.replace(path)


class SessionStore:
    def __init__(self, path: Optional[str | Path] = None):
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry = threading.Lock()
        self.path = Path(path) if path else None
        if self.path is not None:
            self._load_all()

    def _load_all(self) -> None:
        assert self.path is not None
        if not self.path.exists():
            return
        for p in sorted(self.path.glob("*.json")):
            try:
                s = Session.from_dict(json.loads(p.read_text(encoding="utf-8")))
            except (OSError, ValueError, TypeError, KeyError) as exc:
                log.warning("skipping unreadable session file %s: %s", p, exc)
                continue
            self._sessions[s.session_id] = s
            self._locks[s.session_id] = threading.Lock()
        log.info("restored %d sessions from %s", len(self._sessions), self.path)

    def _persist(self, session: Session) -> None:
        if self.path is None:
            return
        write_json_atomic(self.path / f"{session.session_id}.json", session.to_dict())

    def _lock_for(self, session_id: str) -> threading.Lock:
        with self._registry:
            lock = self._locks.get(session_id)
        if lock is None:
            raise SessionNotFound(f"session {session_id} not found")
        return lock

    def __contains__(self, session_id: str) -> bool:
        with self._registry:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._registry:
            return len(self._sessions)

    def ids(self) -> List[str]:
        with self._registry:
            return list(self._sessions)

    def insert(self, session: Session) -> Session:
        snap = copy.deepcopy(session)
        with self._registry:
            if snap.session_id in self._sessions:
                raise ValueError(f"duplicate session id {snap.session_id}")
            self._persist(snap)
            self._sessions[snap.session_id] = snap
            self._locks[snap.session_id] = threading.Lock()
        return copy.deepcopy(snap)

    def get(self, session_id: str) -> Session:
        """Consistent snapshot; waits for any in-progress transition to finish."""
        with self._lock_for(session_id):
            return copy.deepcopy(self._sessions[session_id])

    def apply(self, session_id: str, transition: Callable[[Session], T]) -> Tuple[Session, T]:
        """Run ``transition`` on a working copy under the session lock.

        If ``transition`` raises, the stored session is left untouched and the
        error propagates. Returns (committed snapshot, transition's value).
        """
        with self._lock_for(session_id):
            work = copy.deepcopy(self._sessions[session_id])
            value = transition(work)
            self._persist(work)
            self._sessions[session_id] = work
            return copy.deepcopy(work), value
