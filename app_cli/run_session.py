from __future__ import annotations
import argparse, json, logging, os, time
from assess_core.config import load_config, seed_rng
from assess_core.engine import SessionManager
from assess_core.errors import AssessmentError
from assess_core.generator import default_generator
from assess_core.insights import ResultAnalyzer, default_narrator
from assess_core.pool import QuestionPoolProvider
from assess_core.question_bank import load_bank
from assess_core.types import Question, SessionConfig
def ask(q: Question) -> str:
    print(f"\n[{q.difficulty}] {q.text}")
    if q.options:
        for i,opt in enumerate(q.options): print(f"  [{i}] {opt.text}")
        while True:
            v = input("Your choice (index, p=pause, q=finish): ").strip().lower()
            if v.isdigit() and int(v) < len(q.options) or v in ("p","q"): return v
            print("Enter a listed index.")
    while True:
        v = input("Your answer (number, p=pause, q=finish): ").strip().lower()
        if v in ("p","q"): return v
        try: float(v); return v
        except ValueError: print("Enter a number.")
def main():
    ap = argparse.ArgumentParser(description="Take an adaptive assessment in the terminal")
    ap.add_argument("--subject", default="math")
    ap.add_argument("--topic", default=None)
    ap.add_argument("--count", type=int, default=8)
    ap.add_argument("--start", choices=["EASY","MEDIUM","HARD"], default="MEDIUM")
    ap.add_argument("--fixed", action="store_true", help="disable difficulty adaptation")
    ap.add_argument("--minutes", type=float, default=None)
    a = ap.parse_args()
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "WARNING").upper())
    cfg = load_config()
    mgr = SessionManager(
        QuestionPoolProvider(load_bank(cfg.get("QUESTION_BANK_PATH")), default_generator(), seed_rng(cfg)),
        analyzer=ResultAnalyzer(default_narrator(cfg)),
    )
    limit = int(a.minutes * 60) if a.minutes else None
    try:
        s = mgr.create_session(SessionConfig(
            learner_id=os.getenv("USER", "cli"), subject_id=a.subject, topic_id=a.topic,
            question_count=a.count, starting_difficulty=a.start, adaptive=not a.fixed, time_limit_sec=limit))
    except AssessmentError as e:
        print(f"Cannot start: {e.message}"); return
    print(f"Adaptive Assessment ({len(s.questions)} questions, {s.time_remaining_sec/60:.0f} min)")
    while s.status != "COMPLETED" and s.current_question is not None:
        q = s.current_question
        t0 = time.perf_counter(); v = ask(q); rt = time.perf_counter() - t0
        if v == "q": break
        if v == "p":
            mgr.pause(s.session_id); input("Paused. Press Enter to resume...")
            s = mgr.resume(s.session_id); continue
        try:
            s = mgr.submit_answer(s.session_id, q.id, int(v) if q.options else float(v), rt)
        except AssessmentError as e:
            print(f"Session ended: {e.message}"); break
        last = s.answers[-1]
        print("Correct." if last.is_correct else f"Incorrect. {q.explanation}")
    res = mgr.finalize(s.session_id)
    print(f"\nScore: {res.score:.1f}%  ({res.correct_answers}/{res.total_questions}), confidence {res.confidence_level:.0f}")
    for title, rows in (("Strengths", res.strengths), ("Weaknesses", res.weaknesses),
                        ("Recommendations", res.recommendations), ("Next steps", res.next_steps)):
        if rows:
            print(f"{title}:")
            for r in rows: print(f"  - {r}")
    os.makedirs("reports", exist_ok=True)
    path = os.path.join("reports", f"result_{s.session_id}.json")
    with open(path, "w", encoding="utf-8") as f: json.dump(res.to_dict(), f, indent=2)
    print(f"Done. Result saved to: {path}")
if __name__ == "__main__": main()
