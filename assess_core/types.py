from __future__ import annotations
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Literal, Union

Difficulty = Literal["EASY", "MEDIUM", "HARD"]
Provenance = Literal["CURATED", "GENERATED", "FALLBACK"]
SessionStatus = Literal["ACTIVE", "PAUSED", "COMPLETED"]
ChosenAnswer = Union[int, float, str]

DIFFICULTIES: tuple[str, ...] = ("EASY", "MEDIUM", "HARD")
PROVENANCES: tuple[str, ...] = ("CURATED", "GENERATED", "FALLBACK")


@dataclass
class Option:
    text: str
    is_correct: bool = False


@dataclass
class NumericKey:
    value: float
    tolerance: Optional[float] = None


@dataclass
class Question:
    id: str; text: str; difficulty: Difficulty
    subject_id: Optional[str] = None
    topic_id: str = ""
    subtopic_id: Optional[str] = None
    options: Optional[List[Option]] = None
    numeric_answer: Optional[NumericKey] = None
    explanation: str = ""
    estimated_time_sec: int = 120
    provenance: Provenance = "CURATED"

    def public_view(self) -> Dict[str, Any]:
        """Learner-facing payload; answer keys and explanations are withheld."""

        return {
            "id": self.id,
            "text": self.text,
            "difficulty": self.difficulty,
            "topic_id": self.topic_id,
            "subtopic_id": self.subtopic_id,
            "options": [o.text for o in self.options] if self.options else None,
            "numeric": self.numeric_answer is not None,
            "estimated_time_sec": self.estimated_time_sec,
            "provenance": self.provenance,
        }

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Question":
        data = dict(raw)
        opts = data.pop("options", None)
        key = data.pop("numeric_answer", None)
        q = cls(**data)
        if opts is not None:
            q.options = [o if isinstance(o, Option) else Option(**o) for o in opts]
        if key is not None:
            q.numeric_answer = key if isinstance(key, NumericKey) else NumericKey(**key)
        return q


@dataclass(frozen=True)
class Criteria:
    subject_id: str
    topic_id: Optional[str] = None
    subtopic_id: Optional[str] = None

    def matches(self, q: Question) -> bool:
        if q.subject_id is not None and q.subject_id != self.subject_id:
            return False
        if self.topic_id and q.topic_id != self.topic_id:
            return False
        if self.subtopic_id and q.subtopic_id != self.subtopic_id:
            return False
        return True


@dataclass
class SessionConfig:
    learner_id: str
    subject_id: str
    question_count: int
    starting_difficulty: Difficulty = "MEDIUM"
    adaptive: bool = True
    topic_id: Optional[str] = None
    subtopic_id: Optional[str] = None
    time_limit_sec: Optional[int] = None

    def criteria(self) -> Criteria:
        return Criteria(self.subject_id, self.topic_id, self.subtopic_id)


@dataclass
class AnswerRecord:
    question_id: str
    chosen_answer: ChosenAnswer
    time_spent_sec: float
    is_correct: bool
    answered_at: str


@dataclass
class DifficultyDecision:
    after_question_index: int
    next_difficulty: Difficulty
    reason: str


@dataclass
class ScoreSummary:
    correct_count: int
    total_count: int
    percentage: float


@dataclass
class AssessmentResult:
    session_id: str
    learner_id: str
    total_questions: int
    answered_questions: int
    correct_answers: int
    score: float
    time_spent: float
    average_time_per_question: float
    difficulty_analysis: Dict[str, Dict[str, float]]
    topic_performance: List[Dict[str, Any]]
    strengths: List[str]
    weaknesses: List[str]
    recommendations: List[str]
    next_steps: List[str]
    confidence_level: float
    difficulty_progression: List[Dict[str, Any]] = field(default_factory=list)
    provenance_breakdown: Dict[str, int] = field(default_factory=dict)
    narrative_source: str = "rules"
    completed_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "AssessmentResult":
        return cls(**raw)


@dataclass
class Session:
    session_id: str
    learner_id: str
    config: SessionConfig
    questions: List[Question]
    time_remaining_sec: float
    started_at: str
    last_activity_at: float
    current_difficulty: Difficulty
    status: SessionStatus = "ACTIVE"
    current_index: int = 0
    answers: List[AnswerRecord] = field(default_factory=list)
    difficulty_log: List[DifficultyDecision] = field(default_factory=list)
    reserve: List[Question] = field(default_factory=list)
    estimated_score: float = 0.0
    completed_at: Optional[str] = None
    result: Optional[AssessmentResult] = None

    @property
    def current_question(self) -> Optional[Question]:
        if self.current_index < len(self.questions):
            return self.questions[self.current_index]
        return None

    def public_view(self) -> Dict[str, Any]:
        cur = self.current_question
        return {
            "session_id": self.session_id,
            "learner_id": self.learner_id,
            "status": self.status,
            "questions": [q.public_view() for q in self.questions],
            "current_index": self.current_index,
            "current_question": cur.public_view() if cur else None,
            "answers": [asdict(a) for a in self.answers],
            "difficulty_log": [asdict(d) for d in self.difficulty_log],
            "current_difficulty": self.current_difficulty,
            "estimated_score": self.estimated_score,
            "time_remaining_sec": self.time_remaining_sec,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Session":
        data = dict(raw)
        data["config"] = SessionConfig(**data["config"])
        data["questions"] = [Question.from_dict(q) for q in data.get("questions", [])]
        data["reserve"] = [Question.from_dict(q) for q in data.get("reserve", [])]
        data["answers"] = [AnswerRecord(**a) for a in data.get("answers", [])]
        data["difficulty_log"] = [DifficultyDecision(**d) for d in data.get("difficulty_log", [])]
        res = data.get("result")
        data["result"] = AssessmentResult.from_dict(res) if res else None
        return cls(**data)
