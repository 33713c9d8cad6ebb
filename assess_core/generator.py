"""Question synthesis collaborators.

``QuestionGenerator`` is the capability the pool provider falls back on when
storage runs thin. ``LLMQuestionGenerator`` asks the configured chat backend
for multiple-choice items; ``fallback_questions`` produces clearly tagged
placeholder content for deployments that opt into it.
"""
from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, List, Optional, Protocol

from . import llm_bridge
from .config import GENERATED_ESTIMATED_TIME_SEC
from .types import Criteria, Option, Question

log = logging.getLogger(__name__)

_SYSTEM = (
    "You are an expert exam question writer. Create high-quality, unambiguous "
    "multiple choice questions suitable for competitive exam preparation. "
    "Respond with JSON only."
)


class QuestionGenerator(Protocol):
    def generate(self, criteria: Criteria, difficulty: str, count: int) -> List[Question]: ...


def build_prompt(criteria: Criteria, difficulty: str, count: int, context: Optional[Dict[str, str]] = None) -> str:
    names = context or {}
    prompt = f"Generate {count} multiple choice questions with 4 options each."
    prompt += f" Subject: {names.get('subject', criteria.subject_id)}."
    if criteria.topic_id:
        prompt += f" Topic: {names.get('topic', criteria.topic_id)}."
    if criteria.subtopic_id:
        prompt += f" Subtopic: {names.get('subtopic', criteria.subtopic_id)}."
    prompt += f" Difficulty: {difficulty}."
    prompt += " Include a short explanation for each answer."
    prompt += (
        " Format as a JSON array of objects with fields question, options, "
        "correctAnswer (0-based index) and explanation."
    )
    return prompt


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def parse_generated(payload: Any, criteria: Criteria, difficulty: str) -> List[Question]:
    """Turn a model payload into Questions, dropping malformed entries."""
    rows = payload.get("questions") if isinstance(payload, dict) else payload
    out: List[Question] = []
    for row in rows or []:
        if not isinstance(row, dict):
            continue
        text = str(row.get("question") or "").strip()
        opts = row.get("options") or []
        try:
            correct = int(row.get("correctAnswer"))
        except (TypeError, ValueError):
            continue
        if not text or not isinstance(opts, list) or len(opts) < 2 or not 0 <= correct < len(opts):
            continue
        out.append(
            Question(
                id=_new_id("gen"),
                text=text,
                difficulty=difficulty,
                subject_id=criteria.subject_id,
                topic_id=criteria.topic_id or "",
                subtopic_id=criteria.subtopic_id,
                options=[Option(text=str(o), is_correct=(i == correct)) for i, o in enumerate(opts)],
                explanation=str(row.get("explanation") or "Explanation not available"),
                estimated_time_sec=GENERATED_ESTIMATED_TIME_SEC,
                provenance="GENERATED",
            )
        )
    return out


class LLMQuestionGenerator:
    def __init__(self, context: Optional[Dict[str, str]] = None, temperature: float = 0.7):
        self.context = context
        self.temperature = temperature

    def generate(self, criteria: Criteria, difficulty: str, count: int) -> List[Question]:
        if count <= 0:
            return []
        prompt = build_prompt(criteria, difficulty, count, self.context)
        raw = llm_bridge.complete(_SYSTEM, prompt, kind="generate", temperature=self.temperature)
        try:
            payload = llm_bridge.parse_json_payload(raw)
        except json.JSONDecodeError as exc:
            log.warning("generator returned unparseable payload: %s", exc)
            return []
        questions = parse_generated(payload, criteria, difficulty)
        log.info("generated %d/%d %s questions for %s", len(questions), count, difficulty, criteria.subject_id)
        return questions[:count]


def default_generator() -> Optional[QuestionGenerator]:
    if llm_bridge.backend_in_use() == "none":
        return None
    return LLMQuestionGenerator()


def fallback_questions(criteria: Criteria, difficulty: str, count: int) -> List[Question]:
    """Placeholder items tagged FALLBACK so analysis can tell them apart."""
    topic = criteria.topic_id or criteria.subject_id
    out: List[Question] = []
    for i in range(max(0, count)):
        out.append(
            Question(
                id=_new_id("fallback"),
                text=f"[Practice placeholder] {topic} ({difficulty.lower()}) question {i + 1}",
                difficulty=difficulty,
                subject_id=criteria.subject_id,
                topic_id=criteria.topic_id or "",
                subtopic_id=criteria.subtopic_id,
                options=[Option("Option A", True), Option("Option B"), Option("Option C"), Option("Option D")],
                explanation="Placeholder content served while the question service was unavailable.",
                estimated_time_sec=GENERATED_ESTIMATED_TIME_SEC,
                provenance="FALLBACK",
            )
        )
    return out
