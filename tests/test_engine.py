from __future__ import annotations

import threading

import pytest

from assess_core.errors import (
    InvalidAnswer,
    InvalidConfig,
    InvalidDifficulty,
    InvalidTimeSpent,
    InvalidTransition,
    PoolExhausted,
    QuestionMismatch,
    SessionNotActive,
    SessionNotCompleted,
    SessionNotFound,
    SessionTerminated,
)
from assess_core.types import Criteria, SessionConfig
from tests.conftest import StubGenerator, build_synthetic_bank, correct_answer, make_manager, wrong_answer


def _cfg(count: int = 5, start: str = "MEDIUM", adaptive: bool = True, **kw) -> SessionConfig:
    return SessionConfig(learner_id="learner-1", subject_id="math", question_count=count,
                         starting_difficulty=start, adaptive=adaptive, **kw)


def _answer(mgr, sid, ok: bool = True, spent: float = 10.0):
    q = mgr.get_session(sid).current_question
    return mgr.submit_answer(sid, q.id, correct_answer(q) if ok else wrong_answer(q), spent)


def test_create_session_initial_state(manager):
    s = manager.create_session(_cfg(count=4, time_limit_sec=900))
    assert s.status == "ACTIVE"
    assert s.current_index == 0
    assert len(s.questions) == 4
    assert len({q.id for q in s.questions}) == 4
    assert all(q.difficulty == "MEDIUM" for q in s.questions)
    assert s.time_remaining_sec == 900
    assert s.answers == [] and s.difficulty_log == []
    assert s.session_id in manager.store


def test_default_time_limit(manager):
    s = manager.create_session(_cfg(count=1))
    assert s.time_remaining_sec == manager.default_time_limit


@pytest.mark.parametrize(
    "cfg, err",
    [
        (SessionConfig("", "math", 3), InvalidConfig),
        (SessionConfig("u", "math", 0), InvalidConfig),
        (SessionConfig("u", "math", 3, time_limit_sec=-5), InvalidConfig),
        (SessionConfig("u", "math", 3, starting_difficulty="EXPERT"), InvalidDifficulty),
    ],
)
def test_create_session_validation(manager, cfg, err):
    with pytest.raises(err):
        manager.create_session(cfg)
    assert len(manager.store) == 0


def test_escalates_toward_hard_on_correct_streak(manager):
    s = manager.create_session(_cfg(count=3, start="EASY"))
    for _ in range(3):
        s = _answer(manager, s.session_id, ok=True, spent=12.0)
    assert s.status == "COMPLETED"
    assert [d.next_difficulty for d in s.difficulty_log] == ["MEDIUM", "HARD"]
    assert [d.after_question_index for d in s.difficulty_log] == [0, 1]
    # adaptive swap-in served the escalated tiers
    assert [q.difficulty for q in s.questions] == ["EASY", "MEDIUM", "HARD"]
    assert s.result.score == 100.0
    assert s.result.correct_answers == 3


def test_single_wrong_answer_completes(manager):
    s = manager.create_session(_cfg(count=1))
    s = _answer(manager, s.session_id, ok=False)
    assert s.status == "COMPLETED"
    res = manager.get_result(s.session_id)
    assert res.correct_answers == 0
    assert res.score == 0.0
    assert res.total_questions == 1


def test_pause_blocks_answers_until_resume(manager):
    s = manager.create_session(_cfg(count=3))
    q = s.current_question
    manager.pause(s.session_id)
    with pytest.raises(SessionNotActive):
        manager.submit_answer(s.session_id, q.id, correct_answer(q), 5.0)
    assert manager.get_session(s.session_id).answers == []
    manager.resume(s.session_id)
    s = manager.submit_answer(s.session_id, q.id, correct_answer(q), 5.0)
    assert len(s.answers) == 1


def test_pool_exhausted_persists_nothing():
    bank = build_synthetic_bank(topics=("a",), per_tier=10) + build_synthetic_bank(topics=("b",), per_tier=10, tiers=("EASY",))
    assert len(bank) == 40
    mgr = make_manager(bank)
    with pytest.raises(PoolExhausted) as exc:
        mgr.create_session(_cfg(count=50))
    assert exc.value.available == 40
    assert len(mgr.store) == 0


def test_concurrent_submits_one_wins(manager):
    s = manager.create_session(_cfg(count=2))
    q = s.current_question
    barrier = threading.Barrier(2)
    outcomes: list = []

    def submit():
        barrier.wait()
        try:
            manager.submit_answer(s.session_id, q.id, correct_answer(q), 3.0)
            outcomes.append("ok")
        except (QuestionMismatch, SessionNotActive) as exc:
            outcomes.append(type(exc).__name__)

    threads = [threading.Thread(target=submit) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)
    assert sorted(outcomes) == ["QuestionMismatch", "ok"]
    assert len(manager.get_session(s.session_id).answers) == 1


def test_concurrent_submits_on_last_question(manager):
    s = manager.create_session(_cfg(count=1))
    q = s.current_question
    barrier = threading.Barrier(2)
    outcomes: list = []

    def submit():
        barrier.wait()
        try:
            manager.submit_answer(s.session_id, q.id, correct_answer(q), 3.0)
            outcomes.append("ok")
        except SessionNotActive:
            outcomes.append("not-active")

    threads = [threading.Thread(target=submit) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)
    assert sorted(outcomes) == ["not-active", "ok"]
    assert len(manager.get_session(s.session_id).answers) == 1


def test_answer_bookkeeping(manager):
    s = manager.create_session(_cfg(count=4, time_limit_sec=600))
    s = _answer(manager, s.session_id, ok=True, spent=100.0)
    s = _answer(manager, s.session_id, ok=False, spent=50.5)
    assert s.current_index == len(s.answers) == 2
    assert s.time_remaining_sec == pytest.approx(449.5)
    assert s.estimated_score == 50.0
    assert [a.is_correct for a in s.answers] == [True, False]


def test_mismatched_question_rejected(manager):
    s = manager.create_session(_cfg(count=3))
    other = s.questions[1]
    with pytest.raises(QuestionMismatch):
        manager.submit_answer(s.session_id, other.id, 0, 5.0)
    assert manager.get_session(s.session_id).answers == []


def test_invalid_time_and_answer_rejected(manager):
    s = manager.create_session(_cfg(count=3))
    q = s.current_question
    with pytest.raises(InvalidTimeSpent):
        manager.submit_answer(s.session_id, q.id, 0, -1)
    with pytest.raises(InvalidTimeSpent):
        manager.submit_answer(s.session_id, q.id, 0, float("inf"))
    with pytest.raises(InvalidAnswer):
        manager.submit_answer(s.session_id, q.id, 9, 5.0)
    assert manager.get_session(s.session_id).answers == []


def test_time_budget_spent_completes(manager):
    s = manager.create_session(_cfg(count=5, time_limit_sec=30))
    s = _answer(manager, s.session_id, ok=True, spent=45.0)
    assert s.status == "COMPLETED"
    assert s.time_remaining_sec == 0.0
    assert len(s.answers) == 1
    assert s.result.total_questions == 5


def test_wall_clock_expiry_finalizes(manager, clock):
    s = manager.create_session(_cfg(count=3, time_limit_sec=60))
    q = s.current_question
    clock.advance(61)
    with pytest.raises(SessionTerminated):
        manager.submit_answer(s.session_id, q.id, correct_answer(q), 1.0)
    done = manager.get_session(s.session_id)
    assert done.status == "COMPLETED"
    assert done.answers == []
    assert manager.get_result(s.session_id).score == 0.0


def test_paused_clock_is_frozen(manager, clock):
    s = manager.create_session(_cfg(count=3, time_limit_sec=60))
    manager.pause(s.session_id)
    clock.advance(3600)
    assert manager.sweep_expired() == []
    s = manager.resume(s.session_id)
    assert s.time_remaining_sec == 60
    s = _answer(manager, s.session_id, ok=True, spent=5.0)
    assert s.status == "ACTIVE"


def test_active_time_is_charged_at_pause(manager, clock):
    s = manager.create_session(_cfg(count=3, time_limit_sec=60))
    clock.advance(50)
    manager.pause(s.session_id)
    s = manager.resume(s.session_id)
    assert s.time_remaining_sec == pytest.approx(10.0)
    clock.advance(50)
    with pytest.raises(SessionTerminated):
        manager.pause(s.session_id)
    done = manager.get_session(s.session_id)
    assert done.status == "COMPLETED"
    assert done.time_remaining_sec == pytest.approx(10.0)


def test_answer_charges_wall_time_over_reported_time(manager, clock):
    s = manager.create_session(_cfg(count=5, time_limit_sec=60))
    clock.advance(25)
    s = _answer(manager, s.session_id, ok=True, spent=0.0)
    assert s.time_remaining_sec == pytest.approx(35.0)
    clock.advance(5)
    s = _answer(manager, s.session_id, ok=True, spent=20.0)
    assert s.time_remaining_sec == pytest.approx(15.0)
    clock.advance(15)
    q = manager.get_session(s.session_id).current_question
    with pytest.raises(SessionTerminated):
        manager.submit_answer(s.session_id, q.id, correct_answer(q), 0.0)
    done = manager.get_session(s.session_id)
    assert done.status == "COMPLETED"
    assert len(done.answers) == 2


def test_sweep_finalizes_only_expired(manager, clock):
    stale = manager.create_session(_cfg(count=2, time_limit_sec=30))
    clock.advance(20)
    fresh = manager.create_session(_cfg(count=2, time_limit_sec=30))
    clock.advance(15)
    assert manager.sweep_expired() == [stale.session_id]
    assert manager.get_session(stale.session_id).status == "COMPLETED"
    assert manager.get_session(fresh.session_id).status == "ACTIVE"
    assert manager.sweep_expired() == []


def test_state_machine_transitions(manager):
    s = manager.create_session(_cfg(count=1))
    with pytest.raises(InvalidTransition):
        manager.resume(s.session_id)
    manager.pause(s.session_id)
    with pytest.raises(InvalidTransition):
        manager.pause(s.session_id)
    manager.resume(s.session_id)
    _answer(manager, s.session_id)
    for op in (manager.pause, manager.resume):
        with pytest.raises(InvalidTransition):
            op(s.session_id)
    q = manager.get_session(s.session_id).questions[0]
    with pytest.raises(SessionNotActive):
        manager.submit_answer(s.session_id, q.id, 0, 1.0)


def test_finalize_is_idempotent(manager):
    s = manager.create_session(_cfg(count=4))
    _answer(manager, s.session_id)
    first = manager.finalize(s.session_id)
    second = manager.finalize(s.session_id)
    assert first == second
    assert first == manager.get_result(s.session_id)
    assert first.answered_questions == 1
    assert first.total_questions == 4
    assert first.score == 25.0
    assert manager.get_session(s.session_id).status == "COMPLETED"


def test_result_before_completion(manager):
    s = manager.create_session(_cfg(count=2))
    with pytest.raises(SessionNotCompleted):
        manager.get_result(s.session_id)
    with pytest.raises(SessionNotFound):
        manager.get_result("nope")


def test_fixed_session_never_adapts(manager):
    s = manager.create_session(_cfg(count=4, start="EASY", adaptive=False))
    for _ in range(4):
        s = _answer(manager, s.session_id, ok=True)
    assert s.difficulty_log == []
    assert {q.difficulty for q in s.questions} == {"EASY"}


def test_deescalation_swaps_upcoming_question(manager):
    s = manager.create_session(_cfg(count=4, start="HARD"))
    s = _answer(manager, s.session_id, ok=False)
    assert s.current_difficulty == "MEDIUM"
    assert s.questions[1].difficulty == "MEDIUM"
    assert s.difficulty_log[0].reason.startswith("0/1 correct")


def test_result_persistence_failure_is_logged(clock, caplog):
    class Broken:
        def save(self, result):
            raise OSError("disk full")

    mgr = make_manager(clock=clock, persistence=Broken())
    s = mgr.create_session(_cfg(count=1))
    s = _answer(mgr, s.session_id)
    assert s.status == "COMPLETED"
    assert "result archive failed" in caplog.text


def test_result_persistence_receives_result(clock):
    saved = []

    class Archive:
        def save(self, result):
            saved.append(result)

    mgr = make_manager(clock=clock, persistence=Archive())
    s = mgr.create_session(_cfg(count=2))
    mgr.finalize(s.session_id)
    mgr.finalize(s.session_id)
    assert [r.session_id for r in saved] == [s.session_id]


def test_generate_questions(clock):
    mgr = make_manager(clock=clock, generator=StubGenerator())
    out = mgr.generate_questions(Criteria("math", "algebra"), "EASY", 3)
    assert len(out) == 3
    assert {q.provenance for q in out} == {"GENERATED"}
    with pytest.raises(InvalidConfig):
        mgr.generate_questions(Criteria("math"), "EASY", 0)
