from __future__ import annotations

import random
import time

import pytest

from assess_core.engine import SessionManager
from assess_core.pool import QuestionPoolProvider
from assess_core.question_bank import InMemoryQuestionRepository
from assess_core.types import DIFFICULTIES, Criteria, Option, Question


def build_synthetic_bank(
    *,
    subject: str = "math",
    topics: tuple[str, ...] = ("algebra", "geometry"),
    per_tier: int = 4,
    tiers: tuple[str, ...] = DIFFICULTIES,
) -> list[Question]:
    """Create a deterministic synthetic bank; option 0 is always the correct one."""

    items: list[Question] = []
    for topic in topics:
        for tier in tiers:
            for idx in range(per_tier):
                items.append(
                    Question(
                        id=f"{topic}_{tier.lower()}_{idx}",
                        text=f"{topic} {tier} #{idx}",
                        difficulty=tier,
                        subject_id=subject,
                        topic_id=topic,
                        options=[Option("A", True), Option("B"), Option("C"), Option("D")],
                        explanation=f"{topic} explanation {idx}",
                        estimated_time_sec=60,
                    )
                )
    return items


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubGenerator:
    """Produces ``count`` fresh items per call and records what it was asked for."""

    def __init__(self):
        self.calls: list[tuple[Criteria, str, int]] = []

    def generate(self, criteria, difficulty, count):
        self.calls.append((criteria, difficulty, count))
        n = len(self.calls)
        return [
            Question(
                id=f"stub_{n}_{i}",
                text=f"generated {difficulty} #{i}",
                difficulty=difficulty,
                subject_id=criteria.subject_id,
                topic_id=criteria.topic_id or "",
                options=[Option("yes", True), Option("no")],
            )
            for i in range(count)
        ]


class FailingGenerator:
    def generate(self, criteria, difficulty, count):
        raise RuntimeError("model endpoint unavailable")


class SlowGenerator:
    def __init__(self, delay: float = 0.5):
        self.delay = delay

    def generate(self, criteria, difficulty, count):
        time.sleep(self.delay)
        return StubGenerator().generate(criteria, difficulty, count)


def make_manager(bank=None, *, generator=None, seed: int = 7, clock=None, **kwargs) -> SessionManager:
    repo = InMemoryQuestionRepository(build_synthetic_bank() if bank is None else bank)
    pool = QuestionPoolProvider(repo, generator, random.Random(seed), generator_timeout=1.0)
    if clock is not None:
        kwargs["clock"] = clock
    return SessionManager(pool, **kwargs)


def correct_answer(q: Question):
    if q.numeric_answer is not None:
        return q.numeric_answer.value
    return next(i for i, o in enumerate(q.options or []) if o.is_correct)


def wrong_answer(q: Question):
    if q.numeric_answer is not None:
        return q.numeric_answer.value + 100.0
    return next(i for i, o in enumerate(q.options or []) if not o.is_correct)


@pytest.fixture
def synthetic_bank() -> list[Question]:
    return build_synthetic_bank()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def manager(clock) -> SessionManager:
    return make_manager(clock=clock)
