from __future__ import annotations
from collections import defaultdict, Counter
import os, sys
from assess_core.question_bank import load_bank
from assess_core.types import DIFFICULTIES

# Configurable targets; a 10-question adaptive session wants a few spares per tier
TARGETS = {
    "per_tier_min": int(os.getenv("TARGET_PER_TIER_MIN", 4)),
    "numeric_min": int(os.getenv("TARGET_NUMERIC_MIN", 1)),
}

def problems(questions) -> list[str]:
    out: list[str] = []
    seen: Counter = Counter(q.id for q in questions)
    out += [f"duplicate id {qid} x{n}" for qid, n in seen.items() if n > 1]
    for q in questions:
        if q.difficulty not in DIFFICULTIES:
            out.append(f"{q.id}: unknown difficulty {q.difficulty!r}")
        if q.numeric_answer is None:
            n_correct = sum(1 for o in (q.options or []) if o.is_correct)
            if len(q.options or []) < 2:
                out.append(f"{q.id}: fewer than 2 options and no numeric key")
            elif n_correct != 1:
                out.append(f"{q.id}: {n_correct} options flagged correct")
    return out

def main(path: str | None = None) -> int:
    questions = load_bank(path).all()
    by_topic = defaultdict(list)
    for q in questions:
        by_topic[(q.subject_id or "-", q.topic_id or "unassigned")].append(q)

    print(f"{len(questions)} questions. Targets per topic: >={TARGETS['per_tier_min']} per tier, "
          f">={TARGETS['numeric_min']} numeric.\n")

    short = 0
    for (subject, topic), qs in sorted(by_topic.items()):
        tiers = Counter(q.difficulty for q in qs)
        numeric = sum(1 for q in qs if q.numeric_answer is not None)
        print(f"{subject}/{topic}: " + "  ".join(f"{d} {tiers.get(d, 0):2d}" for d in DIFFICULTIES) + f"  numeric {numeric}")
        need = {d: max(0, TARGETS["per_tier_min"] - tiers.get(d, 0)) for d in DIFFICULTIES}
        need_num = max(0, TARGETS["numeric_min"] - numeric)
        if any(need.values()) or need_num:
            short += 1
            adds = ", ".join(f"{d} {n}" for d, n in need.items() if n)
            print(f"  -> Add: {adds or 'none per tier'}; numeric {need_num}\n")
        else:
            print("  ok\n")

    print(f"{short} of {len(by_topic)} topic(s) below target")
    issues = problems(questions)
    for msg in issues:
        print(f"! {msg}")
    return 1 if issues else 0

if __name__ == "__main__":
    sys.exit(main(sys.argv[1] if len(sys.argv) > 1 else os.getenv("QUESTION_BANK_PATH")))
