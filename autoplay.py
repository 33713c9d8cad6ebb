# autoplay.py
from __future__ import annotations
import argparse, os, json, random, datetime
from typing import Dict, Optional
from assess_core.engine import SessionManager
from assess_core.pool import QuestionPoolProvider
from assess_core.question_bank import load_bank
from assess_core.types import ChosenAnswer, Question, SessionConfig

# per-tier solve probability for the "skilled" profile
SKILLED_ACCURACY: Dict[str, float] = {"EASY": 0.95, "MEDIUM": 0.8, "HARD": 0.55}

def _correct_answer(q: Question) -> ChosenAnswer:
    if q.numeric_answer is not None:
        return q.numeric_answer.value
    for i, o in enumerate(q.options or []):
        if o.is_correct: return i
    return 0

def _wrong_answer(q: Question) -> ChosenAnswer:
    if q.numeric_answer is not None:
        return q.numeric_answer.value + 1000.0
    opts = q.options or []
    for i, o in enumerate(opts):
        if not o.is_correct: return i
    return 0

def _hit_rate(q: Question, profile: str, accuracy: float) -> float:
    if profile == "perfect": return 1.0
    if profile == "all-wrong": return 0.0
    if profile == "skilled": return SKILLED_ACCURACY.get(q.difficulty, accuracy)
    return accuracy

def play(mgr: SessionManager, config: SessionConfig, profile: str, accuracy: float,
         rng: random.Random, pace_sec: float = 30.0) -> dict:
    """Answer every question of a new session and return the result as a dict."""
    s = mgr.create_session(config)
    while s.status != "COMPLETED":
        q = s.current_question
        if q is None: break
        ok = rng.random() < _hit_rate(q, profile, accuracy)
        spent = max(1.0, rng.gauss(pace_sec, pace_sec / 4))
        s = mgr.submit_answer(s.session_id, q.id, _correct_answer(q) if ok else _wrong_answer(q), spent)
    return mgr.finalize(s.session_id).to_dict()

def run(profile: str, count: int, accuracy: float, seed: Optional[int], subject: str, start: str):
    rng = random.Random(seed or 1234)
    mgr = SessionManager(QuestionPoolProvider(load_bank(os.getenv("QUESTION_BANK_PATH")), rng=random.Random(seed)))
    cfg = SessionConfig(learner_id=f"autoplay_{profile}", subject_id=subject,
                        question_count=count, starting_difficulty=start)
    res = play(mgr, cfg, profile, accuracy, rng)

    ts = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    os.makedirs("reports", exist_ok=True)
    path = os.path.join("reports", f"auto_{profile}_{ts}.json")
    with open(path, "w", encoding="utf-8") as f: json.dump(res, f, indent=2)
    path_taken = " -> ".join([start] + [d["next_difficulty"] for d in res["difficulty_progression"]])
    print(f"Score {res['score']:.1f}% | path {path_taken}")
    print(f"Report: {path}")

def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--profile", choices=["perfect", "all-wrong", "skilled", "random"], default="skilled")
    ap.add_argument("--accuracy", type=float, default=0.6, help="hit rate for the random profile")
    ap.add_argument("--count", type=int, default=10)
    ap.add_argument("--subject", default="math")
    ap.add_argument("--start", choices=["EASY", "MEDIUM", "HARD"], default="MEDIUM")
    ap.add_argument("--seed", type=int, default=1337)
    a = ap.parse_args()
    run(a.profile, a.count, a.accuracy, a.seed, a.subject, a.start)

if __name__ == "__main__":
    main()
