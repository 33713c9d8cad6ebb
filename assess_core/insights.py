# assess_core/insights.py
from __future__ import annotations

import json
import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from . import llm_bridge
from .config import (
    MIN_SAMPLE,
    NARRATIVE_TIMEOUT_SEC,
    RECOMMENDATIONS_MAX,
    RECOMMENDATIONS_MIN,
    SLOW_FACTOR,
    STRENGTH_AT,
    WEAKNESS_BELOW,
)
from .scoring import percentage, summarize
from .types import DIFFICULTIES, PROVENANCES, AssessmentResult, Question, Session

log = logging.getLogger(__name__)

Narrator = Callable[[Dict[str, Any]], Mapping[str, Any]]

_NARRATIVE_KEYS: Tuple[str, ...] = ("strengths", "weaknesses", "recommendations", "next_steps")

_GENERIC_RECOMMENDATIONS: Tuple[str, ...] = (
    "Read the explanation for every missed question before your next session.",
    "Take another adaptive session in a week to confirm progress.",
    "Keep a short error log and revisit it before each practice block.",
)


@dataclass(frozen=True)
class GroupStat:
    kind: str  # "difficulty" | "topic"
    key: str
    attempted: int
    correct: int

    @property
    def accuracy(self) -> float:
        return self.correct / self.attempted if self.attempted else 0.0

    @property
    def label(self) -> str:
        return f"{self.key} questions" if self.kind == "difficulty" else f"topic {self.key}"

    def describe(self) -> str:
        return f"{self.label}: {self.correct}/{self.attempted} correct ({self.accuracy:.0%})"


def confidence_estimate(correct: int, answered: int) -> float:
    """0-100 confidence in the observed accuracy, shrinking with sampling error."""
    if answered <= 0:
        return 0.0
    p = min(0.95, max(0.05, correct / answered))
    se = math.sqrt(p * (1.0 - p) / answered)
    return round(max(0.0, min(100.0, 100.0 * (1.0 - 2.0 * se))), 1)


class ResultAnalyzer:
    """Turns a completed session into an :class:`AssessmentResult`.

    The structured numbers and insight lists are always computed by rules.
    An optional ``narrator`` may rephrase the insight strings; its output is
    accepted only when it keeps the same shape, otherwise the rule text
    stands.
    """

    def __init__(
        self,
        narrator: Optional[Narrator] = None,
        *,
        min_sample: int = MIN_SAMPLE,
        weakness_below: float = WEAKNESS_BELOW,
        strength_at: float = STRENGTH_AT,
        recommendations_min: int = RECOMMENDATIONS_MIN,
        recommendations_max: int = RECOMMENDATIONS_MAX,
        slow_factor: float = SLOW_FACTOR,
        narrative_timeout: Optional[float] = NARRATIVE_TIMEOUT_SEC,
    ):
        self.narrator = narrator
        self.min_sample = min_sample
        self.weakness_below = weakness_below
        self.strength_at = strength_at
        self.recommendations_min = recommendations_min
        self.recommendations_max = recommendations_max
        self.slow_factor = slow_factor
        self.narrative_timeout = narrative_timeout

    # ---- grouping ----
    def _groups(self, session: Session) -> Tuple[List[GroupStat], List[GroupStat]]:
        by_id: Dict[str, Question] = {q.id: q for q in session.questions}
        diff: Dict[str, List[int]] = {d: [0, 0] for d in DIFFICULTIES}
        topics: Dict[str, List[int]] = {}
        for a in session.answers:
            q = by_id.get(a.question_id)
            if q is None:
                continue
            bucket = diff.setdefault(q.difficulty, [0, 0])
            bucket[0] += 1
            bucket[1] += int(a.is_correct)
            t = topics.setdefault(q.topic_id or "unassigned", [0, 0])
            t[0] += 1
            t[1] += int(a.is_correct)
        diff_stats = [GroupStat("difficulty", d, n, c) for d, (n, c) in diff.items()]
        topic_stats = [GroupStat("topic", k, n, c) for k, (n, c) in sorted(topics.items())]
        return diff_stats, topic_stats

    def _classify(self, groups: List[GroupStat]) -> Tuple[List[str], List[str]]:
        strengths: List[str] = []
        weaknesses: List[str] = []
        for g in groups:
            if g.attempted < self.min_sample:
                continue
            if g.accuracy >= self.strength_at:
                strengths.append(g.describe())
            elif g.accuracy < self.weakness_below:
                weaknesses.append(g.describe())
        return strengths, weaknesses

    # ---- timing ----
    def _slowest_outlier(self, session: Session, avg: float) -> Optional[Tuple[int, float]]:
        if len(session.answers) < 2 or avg <= 0:
            return None
        idx, worst = max(enumerate(session.answers), key=lambda p: (p[1].time_spent_sec, -p[0]))
        if worst.time_spent_sec > self.slow_factor * avg:
            return idx, float(worst.time_spent_sec)
        return None

    # ---- rule text ----
    def _recommendations(
        self,
        session: Session,
        groups: List[GroupStat],
        avg_time: float,
        unanswered: int,
        provenance: Dict[str, int],
    ) -> List[str]:
        recs: List[str] = []

        attempted = [g for g in groups if g.attempted > 0]
        if attempted:
            weakest = min(attempted, key=lambda g: (g.accuracy, -g.attempted, g.kind, g.key))
            if weakest.accuracy < 1.0:
                recs.append(
                    f"Review {weakest.label} first: {weakest.correct}/{weakest.attempted} correct "
                    f"({weakest.accuracy:.0%}). Revisit the core concepts before attempting more."
                )
            else:
                recs.append(f"Keep practising {weakest.label} to hold your accuracy under time pressure.")

        outlier = self._slowest_outlier(session, avg_time)
        if outlier is not None:
            idx, secs = outlier
            recs.append(
                f"Work on pacing: question {idx + 1} took {secs:.0f}s against a {avg_time:.0f}s average. "
                "Skip and return to items that stall you."
            )
        elif session.answers:
            expected = sum(q.estimated_time_sec for q in session.questions[: len(session.answers)]) / len(session.answers)
            if expected > 0 and avg_time > self.slow_factor * expected:
                recs.append(
                    f"Speed up overall: you averaged {avg_time:.0f}s per question against an expected {expected:.0f}s."
                )

        tier = session.current_difficulty
        hard = next((g for g in groups if g.kind == "difficulty" and g.key == "HARD"), None)
        if hard is not None and hard.attempted >= self.min_sample and hard.accuracy >= self.strength_at:
            recs.append("Move on to mixed HARD sets; your accuracy there is already strong.")
        else:
            recs.append(f"Consolidate at {tier} difficulty until you reach {self.strength_at:.0%} accuracy.")

        if unanswered:
            recs.append(f"Complete every question next time: {unanswered} of {len(session.questions)} were left unanswered.")

        degraded = provenance.get("GENERATED", 0) + provenance.get("FALLBACK", 0)
        if degraded:
            recs.append(
                f"{degraded} question(s) were generated rather than curated; confirm these results with a curated practice set."
            )

        for extra in _GENERIC_RECOMMENDATIONS:
            if len(recs) >= self.recommendations_min:
                break
            recs.append(extra)
        return recs[: self.recommendations_max]

    def _next_steps(self, weaknesses: List[str], score: float, tier: str) -> List[str]:
        steps: List[str] = []
        if weaknesses:
            steps.append(f"Focus your next practice block on {weaknesses[0].split(':')[0]}.")
        if score >= self.strength_at * 100:
            steps.append("Start your next adaptive session at HARD difficulty.")
        else:
            steps.append(f"Start your next adaptive session at {tier} difficulty.")
        steps.append("Take another adaptive assessment after two practice sessions.")
        return steps[:3]

    # ---- narrative ----
    def _narrate(self, payload: Dict[str, Any]) -> Optional[Dict[str, List[str]]]:
        if self.narrator is None:
            return None
        narrator = self.narrator
        try:
            raw = llm_bridge.run_with_timeout(lambda: narrator(payload), self.narrative_timeout)
        except Exception as exc:
            log.warning("narrative generation unavailable, using rule-based insights: %s", exc)
            return None
        if not isinstance(raw, Mapping):
            return None
        out: Dict[str, List[str]] = {}
        for key in _NARRATIVE_KEYS:
            vals = raw.get(key)
            if not isinstance(vals, list) or len(vals) != len(payload[key]):
                log.info("narrative output for %s did not match rule shape; keeping rule text", key)
                return None
            out[key] = [str(v) for v in vals]
        return out

    def analyze(self, session: Session) -> AssessmentResult:
        summary = summarize(session.answers, session.questions)
        answered = len(session.answers)
        diff_stats, topic_stats = self._groups(session)
        groups = diff_stats + topic_stats

        time_spent = float(sum(a.time_spent_sec for a in session.answers))
        avg_time = round(time_spent / answered, 2) if answered else 0.0

        provenance = {p: 0 for p in PROVENANCES}
        for q in session.questions[:answered]:
            provenance[q.provenance] = provenance.get(q.provenance, 0) + 1

        strengths, weaknesses = self._classify(groups)
        recommendations = self._recommendations(
            session, groups, avg_time, len(session.questions) - answered, provenance
        )
        next_steps = self._next_steps(weaknesses, summary.percentage, session.current_difficulty)

        texts: Dict[str, List[str]] = {
            "strengths": strengths,
            "weaknesses": weaknesses,
            "recommendations": recommendations,
            "next_steps": next_steps,
        }
        narrative_source = "rules"
        rephrased = self._narrate(
            {
                **texts,
                "score": summary.percentage,
                "difficulty": {g.key: {"correct": g.correct, "total": g.attempted} for g in diff_stats},
            }
        )
        if rephrased is not None:
            texts = rephrased
            narrative_source = "llm"

        return AssessmentResult(
            session_id=session.session_id,
            learner_id=session.learner_id,
            total_questions=summary.total_count,
            answered_questions=answered,
            correct_answers=summary.correct_count,
            score=summary.percentage,
            time_spent=time_spent,
            average_time_per_question=avg_time,
            difficulty_analysis={
                g.key: {"attempted": g.attempted, "correct": g.correct, "accuracy": percentage(g.correct, g.attempted)}
                for g in diff_stats
            },
            topic_performance=[
                {"topic_id": g.key, "attempted": g.attempted, "correct": g.correct, "score": percentage(g.correct, g.attempted)}
                for g in topic_stats
            ],
            strengths=texts["strengths"],
            weaknesses=texts["weaknesses"],
            recommendations=texts["recommendations"],
            next_steps=texts["next_steps"],
            confidence_level=confidence_estimate(summary.correct_count, answered),
            difficulty_progression=[asdict(d) for d in session.difficulty_log],
            provenance_breakdown=provenance,
            narrative_source=narrative_source,
            completed_at=session.completed_at,
        )


def llm_narrator(payload: Dict[str, Any]) -> Mapping[str, Any]:
    """Ask the chat backend to rephrase rule-based insights, keeping list lengths."""
    prompt = (
        "Rephrase these assessment insights for a student so they read as supportive and specific. "
        "Keep exactly the same number of entries in each list and the same facts. "
        "Return ONLY JSON with keys strengths, weaknesses, recommendations, next_steps.\n"
        f"Input: {json.dumps(payload, ensure_ascii=False)}"
    )
    raw = llm_bridge.complete(
        "You rewrite learning feedback. Respond strictly with valid JSON matching the input lists.",
        prompt,
        kind="narrative",
        temperature=0.2,
        max_tokens=800,
    )
    return llm_bridge.parse_json_payload(raw)


def default_narrator(cfg: Mapping[str, Any]) -> Optional[Narrator]:
    if not cfg.get("USE_LLM_NARRATIVE"):
        return None
    if llm_bridge.backend_in_use() == "none":
        return None
    return llm_narrator
