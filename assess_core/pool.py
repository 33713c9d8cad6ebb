# assess_core/pool.py
from __future__ import annotations

import copy
import logging
import random
from typing import Iterable, List, Optional, Set, Tuple

from . import llm_bridge
from .config import (
    FALLBACK_CONTENT_ENABLED,
    GENERATOR_TIMEOUT_SEC,
    RESERVE_PER_TIER,
)
from .errors import InvalidDifficulty, PoolExhausted
from .generator import QuestionGenerator, fallback_questions
from .question_bank import QuestionRepository
from .types import Criteria, DIFFICULTIES, Question

log = logging.getLogger(__name__)


def _fill_order(start: str) -> List[str]:
    """Tiers to borrow from when ``start`` runs dry: harder first, then easier."""
    idx = DIFFICULTIES.index(start)
    up = list(DIFFICULTIES[idx + 1:])
    down = list(reversed(DIFFICULTIES[:idx]))
    return up + down


class QuestionPoolProvider:
    """Sources candidate questions from storage, topping up via a generator.

    All randomness goes through the injected ``rng``; pass a seeded
    ``random.Random`` to pin selection in tests.
    """

    def __init__(
        self,
        repository: QuestionRepository,
        generator: Optional[QuestionGenerator] = None,
        rng: Optional[random.Random] = None,
        *,
        generator_timeout: Optional[float] = GENERATOR_TIMEOUT_SEC,
        fallback_enabled: bool = FALLBACK_CONTENT_ENABLED,
        reserve_per_tier: int = RESERVE_PER_TIER,
    ):
        self.repository = repository
        self.generator = generator
        self.rng = rng or random.Random()
        self.generator_timeout = generator_timeout
        self.fallback_enabled = fallback_enabled
        self.reserve_per_tier = reserve_per_tier

    # ---- storage ----
    def _from_storage(self, criteria: Criteria, difficulty: str, exclude: Set[str]) -> List[Question]:
        # whole tier, so sampling reaches every stored candidate
        rows = self.repository.find(criteria, difficulty)
        return [q for q in rows if q.id not in exclude]

    def _select(self, candidates: List[Question], limit: Optional[int]) -> List[Question]:
        if limit is not None and len(candidates) > limit:
            picked = self.rng.sample(candidates, limit)
        else:
            picked = list(candidates)
            self.rng.shuffle(picked)
        # snapshot so sessions never share mutable question objects
        return [copy.deepcopy(q) for q in picked]

    # ---- generation ----
    def _generate(self, criteria: Criteria, difficulty: str, deficit: int, exclude: Set[str]) -> List[Question]:
        if deficit <= 0:
            return []
        produced: List[Question] = []
        if self.generator is not None:
            gen = self.generator
            try:
                produced = list(
                    llm_bridge.run_with_timeout(
                        lambda: gen.generate(criteria, difficulty, deficit),
                        self.generator_timeout,
                    )
                    or []
                )
            except Exception as exc:
                log.warning("question generator failed (%s %s x%d): %s", criteria.subject_id, difficulty, deficit, exc)
                produced = []

        out: List[Question] = []
        seen = set(exclude)
        for q in produced:
            if q.id in seen or q.difficulty != difficulty:
                continue
            seen.add(q.id)
            if q.provenance != "FALLBACK":
                q.provenance = "GENERATED"
            out.append(q)
            if len(out) >= deficit:
                break

        if len(out) < deficit and self.fallback_enabled:
            filler = fallback_questions(criteria, difficulty, deficit - len(out))
            log.warning("serving %d FALLBACK placeholder questions for %s %s", len(filler), criteria.subject_id, difficulty)
            out.extend(filler)
        return out

    def _collect(
        self,
        criteria: Criteria,
        difficulty: str,
        exclude: Set[str],
        *,
        minimum: int = 0,
        limit: Optional[int] = None,
        allow_generation: bool = True,
    ) -> List[Question]:
        pool = self._select(self._from_storage(criteria, difficulty, exclude), limit)
        if len(pool) < minimum and allow_generation:
            taken = exclude | {q.id for q in pool}
            pool.extend(self._generate(criteria, difficulty, minimum - len(pool), taken))
        return pool

    # ---- public ----
    def fetch_pool(
        self,
        criteria: Criteria,
        difficulty: str,
        exclude_ids: Iterable[str] = (),
        minimum: int = 0,
        limit: Optional[int] = None,
    ) -> List[Question]:
        """Unused questions for one tier; raises PoolExhausted below ``minimum``."""
        if difficulty not in DIFFICULTIES:
            raise InvalidDifficulty(f"unknown difficulty {difficulty!r}")
        pool = self._collect(criteria, difficulty, set(exclude_ids), minimum=minimum, limit=limit)
        if len(pool) < minimum:
            raise PoolExhausted(requested=minimum, available=len(pool))
        return pool

    def generate(self, criteria: Criteria, difficulty: str, count: int) -> List[Question]:
        if difficulty not in DIFFICULTIES:
            raise InvalidDifficulty(f"unknown difficulty {difficulty!r}")
        produced = self._generate(criteria, difficulty, count, set())
        if not produced and count > 0:
            raise PoolExhausted("question generation produced nothing", requested=count, available=0)
        return produced

    def build_session_pool(
        self,
        criteria: Criteria,
        starting: str,
        count: int,
        adaptive: bool,
    ) -> Tuple[List[Question], List[Question]]:
        """Return (questions, reserve) for a new session.

        ``questions`` has exactly ``count`` items seeded at ``starting``; other
        tiers from storage fill any gap. ``reserve`` holds spare candidates per
        tier for adaptive swap-in and is empty for fixed sessions.
        """
        if starting not in DIFFICULTIES:
            raise InvalidDifficulty(f"unknown difficulty {starting!r}")
        questions = self._collect(criteria, starting, set(), minimum=count, limit=count)
        for tier in _fill_order(starting):
            if len(questions) >= count:
                break
            taken = {q.id for q in questions}
            questions.extend(
                self._collect(criteria, tier, taken, limit=count - len(questions), allow_generation=False)
            )
        if len(questions) < count:
            raise PoolExhausted(requested=count, available=len(questions))
        questions = questions[:count]

        reserve: List[Question] = []
        if adaptive and self.reserve_per_tier > 0:
            taken = {q.id for q in questions}
            for tier in DIFFICULTIES:
                extra = self._collect(criteria, tier, taken, limit=self.reserve_per_tier, allow_generation=False)
                taken.update(q.id for q in extra)
                reserve.extend(extra)

        log.debug(
            "pool built subject=%s start=%s count=%d reserve=%d generated=%d",
            criteria.subject_id,
            starting,
            count,
            len(reserve),
            sum(1 for q in questions if q.provenance != "CURATED"),
        )
        return questions, reserve

    def find_replacement(self, criteria: Criteria, difficulty: str, exclude_ids: Iterable[str]) -> Optional[Question]:
        """Storage-only lookup of one unused question at ``difficulty``."""
        found = self._collect(criteria, difficulty, set(exclude_ids), limit=1, allow_generation=False)
        return found[0] if found else None
