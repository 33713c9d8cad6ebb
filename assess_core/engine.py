# assess_core/engine.py
from __future__ import annotations

import logging
import math
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol

from .config import DEFAULT_TIME_LIMIT_SEC
from .errors import (
    InvalidConfig,
    InvalidDifficulty,
    InvalidTimeSpent,
    InvalidTransition,
    QuestionMismatch,
    SessionNotActive,
    SessionNotCompleted,
    SessionTerminated,
)
from .insights import ResultAnalyzer
from .policy import DifficultyPolicy
from .pool import QuestionPoolProvider
from .scoring import running_score, score_answer
from .store import SessionStore
from .types import (
    DIFFICULTIES,
    AnswerRecord,
    AssessmentResult,
    ChosenAnswer,
    Criteria,
    DifficultyDecision,
    Question,
    Session,
    SessionConfig,
)

log = logging.getLogger(__name__)

_OK = "ok"
_EXPIRED = "expired"


class ResultPersistence(Protocol):
    def save(self, result: AssessmentResult) -> None: ...


def _tier_distance(a: str, b: str) -> int:
    return abs(DIFFICULTIES.index(a) - DIFFICULTIES.index(b))


def _validate_config(config: SessionConfig) -> None:
    if not config.learner_id:
        raise InvalidConfig("learner_id is required")
    if not config.subject_id:
        raise InvalidConfig("subject_id is required")
    count = config.question_count
    if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
        raise InvalidConfig("question_count must be a positive integer")
    if config.starting_difficulty not in DIFFICULTIES:
        raise InvalidDifficulty(f"unknown difficulty {config.starting_difficulty!r}")
    limit = config.time_limit_sec
    if limit is not None and (isinstance(limit, bool) or not isinstance(limit, (int, float)) or limit <= 0):
        raise InvalidConfig("time_limit_sec must be positive when given")


def _validate_time_spent(value: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidTimeSpent("time_spent_sec must be a number")
    val = float(value)
    if math.isnan(val) or math.isinf(val) or val < 0:
        raise InvalidTimeSpent(f"time_spent_sec must be a finite non-negative number, got {value!r}")
    return val


class SessionManager:
    """Lifecycle of adaptive sessions: create, answer, pause, resume, finalize.

    All mutations run as transitions inside :meth:`SessionStore.apply`, so
    operations on one session are serialized while different sessions proceed
    in parallel. A transition that raises leaves the stored session untouched.
    """

    def __init__(
        self,
        pool: QuestionPoolProvider,
        store: Optional[SessionStore] = None,
        policy: Optional[DifficultyPolicy] = None,
        analyzer: Optional[ResultAnalyzer] = None,
        persistence: Optional[ResultPersistence] = None,
        *,
        default_time_limit: int = DEFAULT_TIME_LIMIT_SEC,
        clock: Callable[[], float] = time.time,
    ):
        self.pool = pool
        self.store = store if store is not None else SessionStore()
        self.policy = policy or DifficultyPolicy()
        self.analyzer = analyzer or ResultAnalyzer()
        self.persistence = persistence
        self.default_time_limit = default_time_limit
        self.clock = clock

    def _now_iso(self) -> str:
        return datetime.fromtimestamp(self.clock(), tz=timezone.utc).isoformat()

    def _expired(self, s: Session) -> bool:
        if s.status != "ACTIVE":
            return False
        if s.time_remaining_sec <= 0:
            return True
        return self.clock() - s.last_activity_at >= s.time_remaining_sec

    def _charge(self, s: Session, spent: float = 0.0) -> None:
        """Take active time off the budget: the larger of wall time and ``spent``."""
        now = self.clock()
        elapsed = max(0.0, now - s.last_activity_at)
        s.time_remaining_sec = max(0.0, s.time_remaining_sec - max(spent, elapsed))
        s.last_activity_at = now

    # ---- create ----
    def create_session(self, config: SessionConfig) -> Session:
        _validate_config(config)
        questions, reserve = self.pool.build_session_pool(
            config.criteria(),
            config.starting_difficulty,
            config.question_count,
            config.adaptive,
        )
        limit = config.time_limit_sec if config.time_limit_sec is not None else self.default_time_limit
        session = Session(
            session_id=str(uuid.uuid4()),
            learner_id=config.learner_id,
            config=config,
            questions=questions,
            reserve=reserve,
            time_remaining_sec=float(limit),
            started_at=self._now_iso(),
            last_activity_at=self.clock(),
            current_difficulty=config.starting_difficulty,
        )
        stored = self.store.insert(session)
        log.info(
            "session created sid=%s learner=%s subject=%s count=%d start=%s adaptive=%s",
            stored.session_id,
            stored.learner_id,
            config.subject_id,
            config.question_count,
            config.starting_difficulty,
            config.adaptive,
        )
        return stored

    def get_session(self, session_id: str) -> Session:
        return self.store.get(session_id)

    # ---- answer ----
    def submit_answer(
        self,
        session_id: str,
        question_id: str,
        chosen_answer: ChosenAnswer,
        time_spent_sec: float,
    ) -> Session:
        spent = _validate_time_spent(time_spent_sec)

        def transition(s: Session) -> str:
            if s.status == "COMPLETED":
                raise SessionTerminated(f"session {s.session_id} is completed")
            if s.status == "PAUSED":
                raise SessionNotActive(f"session {s.session_id} is paused")
            if self._expired(s):
                self._complete(s, "time limit reached")
                return _EXPIRED
            current = s.current_question
            if current is None or question_id != current.id:
                expected = current.id if current else None
                raise QuestionMismatch(f"expected answer for question {expected}, got {question_id}")

            is_correct = score_answer(current, chosen_answer)
            s.answers.append(
                AnswerRecord(
                    question_id=question_id,
                    chosen_answer=chosen_answer,
                    time_spent_sec=spent,
                    is_correct=is_correct,
                    answered_at=self._now_iso(),
                )
            )
            self._charge(s, spent)
            s.current_index += 1
            s.estimated_score = running_score(s.answers)

            if s.config.adaptive and s.current_index < len(s.questions):
                self._adapt(s)

            if s.current_index >= len(s.questions):
                self._complete(s, "all questions answered")
            elif s.time_remaining_sec <= 0:
                self._complete(s, "time limit reached")
            return _OK

        snap, outcome = self.store.apply(session_id, transition)
        if outcome == _EXPIRED:
            raise SessionTerminated(f"session {session_id} ran out of time and was finalized")
        return snap

    def _adapt(self, s: Session) -> None:
        window = self.policy.answer_window(s.answers)
        nxt, reason = self.policy.next_difficulty(window, s.current_difficulty)
        s.difficulty_log.append(DifficultyDecision(s.current_index - 1, nxt, reason))
        s.current_difficulty = nxt

        upcoming = s.questions[s.current_index]
        if upcoming.difficulty == nxt:
            return
        replacement = self._pick_replacement(s, upcoming, nxt)
        if replacement is None:
            log.debug("sid=%s no %s candidate for index %d; keeping %s", s.session_id, nxt, s.current_index, upcoming.id)
            return
        s.questions[s.current_index] = replacement
        s.reserve.append(upcoming)
        log.debug(
            "sid=%s index=%d swapped %s(%s) -> %s(%s)",
            s.session_id,
            s.current_index,
            upcoming.id,
            upcoming.difficulty,
            replacement.id,
            replacement.difficulty,
        )

    def _pick_replacement(self, s: Session, upcoming: Question, target: str) -> Optional[Question]:
        """Closest-tier candidate that fits ``target`` better than ``upcoming``."""
        current_gap = _tier_distance(upcoming.difficulty, target)
        best_idx: Optional[int] = None
        best_gap = current_gap
        for i, q in enumerate(s.reserve):
            gap = _tier_distance(q.difficulty, target)
            if gap < best_gap:
                best_idx, best_gap = i, gap
        if best_idx is not None and best_gap == 0:
            return s.reserve.pop(best_idx)

        used = {q.id for q in s.questions} | {q.id for q in s.reserve}
        fresh = self.pool.find_replacement(s.config.criteria(), target, used)
        if fresh is not None:
            return fresh
        if best_idx is not None:
            return s.reserve.pop(best_idx)
        return None

    # ---- pause / resume ----
    def pause(self, session_id: str) -> None:
        def transition(s: Session) -> str:
            if s.status == "COMPLETED":
                raise SessionTerminated(f"session {s.session_id} is completed")
            if s.status == "PAUSED":
                raise InvalidTransition(f"session {s.session_id} is already paused")
            if self._expired(s):
                self._complete(s, "time limit reached")
                return _EXPIRED
            self._charge(s)
            s.status = "PAUSED"
            return _OK

        _, outcome = self.store.apply(session_id, transition)
        if outcome == _EXPIRED:
            raise SessionTerminated(f"session {session_id} ran out of time and was finalized")
        log.info("session paused sid=%s", session_id)

    def resume(self, session_id: str) -> Session:
        def transition(s: Session) -> None:
            if s.status == "COMPLETED":
                raise SessionTerminated(f"session {s.session_id} is completed")
            if s.status == "ACTIVE":
                raise InvalidTransition(f"session {s.session_id} is not paused")
            s.status = "ACTIVE"
            # budget was charged at pause; the paused interval is free
            s.last_activity_at = self.clock()

        snap, _ = self.store.apply(session_id, transition)
        log.info("session resumed sid=%s remaining=%.0fs", session_id, snap.time_remaining_sec)
        return snap

    # ---- completion ----
    def _complete(self, s: Session, reason: str) -> None:
        s.status = "COMPLETED"
        s.completed_at = self._now_iso()
        s.result = self.analyzer.analyze(s)
        log.info(
            "session completed sid=%s reason=%s score=%.2f answered=%d/%d",
            s.session_id,
            reason,
            s.result.score,
            len(s.answers),
            len(s.questions),
        )
        if self.persistence is not None:
            try:
                self.persistence.save(s.result)
            except Exception as exc:
                log.warning("result archive failed sid=%s: %s", s.session_id, exc)

    def finalize(self, session_id: str) -> AssessmentResult:
        snap = self.store.get(session_id)
        if snap.status == "COMPLETED" and snap.result is not None:
            return snap.result

        def transition(s: Session) -> None:
            if s.status != "COMPLETED":
                self._complete(s, "finalized")

        done, _ = self.store.apply(session_id, transition)
        if done.result is None:
            raise SessionNotCompleted(f"session {session_id} has no result")
        return done.result

    def get_result(self, session_id: str) -> AssessmentResult:
        snap = self.store.get(session_id)
        if snap.status != "COMPLETED" or snap.result is None:
            raise SessionNotCompleted(f"session {session_id} is {snap.status}")
        return snap.result

    def sweep_expired(self) -> List[str]:
        """Finalize ACTIVE sessions whose time budget has run out."""
        finalized: List[str] = []
        for sid in self.store.ids():
            if not self._expired(self.store.get(sid)):
                continue

            def transition(s: Session) -> bool:
                if self._expired(s):
                    self._complete(s, "time limit reached (sweep)")
                    return True
                return False

            _, expired = self.store.apply(sid, transition)
            if expired:
                finalized.append(sid)
        return finalized

    # ---- content tooling ----
    def generate_questions(self, criteria: Criteria, difficulty: str, count: int) -> List[Question]:
        if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
            raise InvalidConfig("count must be a positive integer")
        return self.pool.generate(criteria, difficulty, count)
