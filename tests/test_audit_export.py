from __future__ import annotations

import csv
import io

from assess_core.audit_export import session_events, to_csv, to_json
from assess_core.types import SessionConfig
from tests.conftest import correct_answer, make_manager, wrong_answer


def _session_with_answers(pattern: str = "ccw"):
    mgr = make_manager()
    s = mgr.create_session(SessionConfig("learner", "math", 4, starting_difficulty="EASY"))
    for ch in pattern:
        q = mgr.get_session(s.session_id).current_question
        mgr.submit_answer(s.session_id, q.id, correct_answer(q) if ch == "c" else wrong_answer(q), 7.5)
    return mgr.get_session(s.session_id)


def test_events_join_answers_and_decisions():
    s = _session_with_answers()
    events = session_events(s)
    assert [e["index"] for e in events] == [0, 1, 2]
    assert [e["is_correct"] for e in events] == [True, True, False]
    assert [e["next_difficulty"] for e in events] == ["MEDIUM", "HARD", "HARD"]
    assert events[0]["difficulty"] == "EASY"
    assert events[1]["difficulty"] == "MEDIUM"
    assert events[2]["reason"].startswith("2/3 correct")


def test_json_payload_is_normalized():
    payload = to_json(session_events(_session_with_answers()))
    first = payload["events"][0]
    assert isinstance(first["time_spent_sec"], float)
    assert first["provenance"] == "CURATED"

    # missing keys and odd types normalize instead of failing
    loose = to_json([{"index": "x", "is_correct": 1, "reason": None}, None])
    assert loose["events"][0]["index"] == 0
    assert loose["events"][0]["is_correct"] is True
    assert loose["events"][0]["reason"] == ""
    assert loose["events"][1]["question_id"] == ""


def test_csv_has_fixed_header():
    events = session_events(_session_with_answers("cc"))
    body = to_csv(events)
    rows = list(csv.DictReader(io.StringIO(body)))
    assert len(rows) == 2
    assert body.splitlines()[0].split(",")[0] == "index"
    assert body.splitlines()[0].split(",")[-1] == "reason"
    assert rows[0]["next_difficulty"] == "MEDIUM"
