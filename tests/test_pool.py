from __future__ import annotations

import random

import pytest

from assess_core.errors import InvalidDifficulty, PoolExhausted
from assess_core.pool import QuestionPoolProvider
from assess_core.question_bank import InMemoryQuestionRepository, load_bank, parse_bank
from assess_core.types import Criteria
from tests.conftest import FailingGenerator, SlowGenerator, StubGenerator, build_synthetic_bank

MATH = Criteria("math")


def _provider(bank=None, generator=None, seed=3, **kw) -> QuestionPoolProvider:
    repo = InMemoryQuestionRepository(build_synthetic_bank() if bank is None else bank)
    return QuestionPoolProvider(repo, generator, random.Random(seed), **kw)


def test_fetch_filters_criteria_tier_and_exclusions():
    p = _provider()
    pool = p.fetch_pool(Criteria("math", "algebra"), "EASY", exclude_ids=["algebra_easy_0"])
    ids = {q.id for q in pool}
    assert ids == {"algebra_easy_1", "algebra_easy_2", "algebra_easy_3"}
    assert all(q.provenance == "CURATED" for q in pool)


def test_selection_is_reproducible_with_seed():
    a = [q.id for q in _provider(seed=11).fetch_pool(MATH, "MEDIUM", limit=5)]
    b = [q.id for q in _provider(seed=11).fetch_pool(MATH, "MEDIUM", limit=5)]
    assert a == b


def test_selection_reaches_whole_large_tier():
    bank = build_synthetic_bank(topics=("arith",), per_tier=300, tiers=("EASY",))
    served: set[int] = set()
    for seed in range(60):
        for q in _provider(bank, seed=seed).fetch_pool(MATH, "EASY", limit=5):
            served.add(int(q.id.rsplit("_", 1)[1]))
    assert len(served) > 150
    assert max(served) >= 200


def test_exclusions_apply_before_sampling():
    bank = build_synthetic_bank(topics=("arith",), per_tier=150, tiers=("EASY",))
    exclude = [f"arith_easy_{i}" for i in range(145)]
    pool = _provider(bank).fetch_pool(MATH, "EASY", exclude_ids=exclude, minimum=5, limit=5)
    assert sorted(q.id for q in pool) == [f"arith_easy_{i}" for i in range(145, 150)]


def test_pool_returns_snapshots():
    bank = build_synthetic_bank()
    p = _provider(bank)
    pool = p.fetch_pool(MATH, "EASY")
    pool[0].text = "mutated"
    assert all(q.text != "mutated" for q in bank)


def test_generator_tops_up_deficit():
    gen = StubGenerator()
    p = _provider(build_synthetic_bank(per_tier=1), gen)
    pool = p.fetch_pool(MATH, "HARD", minimum=5)
    assert len(pool) == 5
    generated = [q for q in pool if q.provenance == "GENERATED"]
    assert len(generated) == 3
    assert gen.calls[0][1:] == ("HARD", 3)


def test_generator_failure_degrades_to_pool_exhausted():
    p = _provider(build_synthetic_bank(per_tier=1), FailingGenerator())
    with pytest.raises(PoolExhausted) as exc:
        p.fetch_pool(MATH, "EASY", minimum=4)
    assert exc.value.requested == 4
    assert exc.value.available == 2


def test_generator_timeout_is_bounded():
    p = _provider(build_synthetic_bank(per_tier=1), SlowGenerator(0.5), generator_timeout=0.05)
    with pytest.raises(PoolExhausted):
        p.fetch_pool(MATH, "EASY", minimum=4)


def test_fallback_content_is_tagged():
    p = _provider(build_synthetic_bank(per_tier=1), FailingGenerator(), fallback_enabled=True)
    pool = p.fetch_pool(MATH, "EASY", minimum=4)
    assert len(pool) == 4
    assert sum(1 for q in pool if q.provenance == "FALLBACK") == 2


def test_build_session_pool_fills_from_other_tiers():
    bank = build_synthetic_bank(per_tier=2)
    p = _provider(bank)
    questions, reserve = p.build_session_pool(MATH, "MEDIUM", 6, adaptive=True)
    tiers = [q.difficulty for q in questions]
    assert tiers.count("MEDIUM") == 4
    assert tiers.count("HARD") == 2
    assert len({q.id for q in questions}) == 6
    assert not {q.id for q in reserve} & {q.id for q in questions}


def test_build_session_pool_exhausted():
    p = _provider(build_synthetic_bank(per_tier=2))
    with pytest.raises(PoolExhausted):
        p.build_session_pool(MATH, "EASY", 13, adaptive=False)


def test_fixed_sessions_get_no_reserve():
    _, reserve = _provider().build_session_pool(MATH, "EASY", 3, adaptive=False)
    assert reserve == []


def test_generate_direct():
    p = _provider(generator=StubGenerator())
    out = p.generate(Criteria("math", "algebra"), "HARD", 2)
    assert len(out) == 2 and all(q.provenance == "GENERATED" for q in out)
    with pytest.raises(PoolExhausted):
        _provider().generate(MATH, "HARD", 2)
    with pytest.raises(InvalidDifficulty):
        p.generate(MATH, "IMPOSSIBLE", 1)


def test_compact_bank_format_and_packaged_bank():
    qs = parse_bank(
        [
            {"id": "x", "text": "t", "difficulty": "EASY", "options": ["a", "b"], "correct": 1},
            {"id": "y", "text": "t", "difficulty": "HARD", "numeric_answer": 3},
        ]
    )
    assert [o.is_correct for o in qs[0].options] == [False, True]
    assert qs[1].numeric_answer.value == 3.0

    repo = load_bank()
    assert len(repo) > 0
    assert {q.difficulty for q in repo.all()} == {"EASY", "MEDIUM", "HARD"}


def test_missing_bank_file_is_empty(tmp_path):
    assert len(load_bank(tmp_path / "nope.json")) == 0
