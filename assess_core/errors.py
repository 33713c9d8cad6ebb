"""Error taxonomy for the session engine.

Every error carries a stable ``kind`` plus a human-readable message. Callers
can branch on the family (validation, state, resource) or on the concrete
class; the HTTP layer maps families to status codes.
"""
from __future__ import annotations

from typing import Any, Dict


class AssessmentError(Exception):
    kind = "ASSESSMENT_ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.kind, "message": self.message}


class ValidationError(AssessmentError):
    kind = "VALIDATION_ERROR"


class InvalidConfig(ValidationError):
    kind = "INVALID_CONFIG"


class InvalidTimeSpent(ValidationError):
    kind = "INVALID_TIME_SPENT"


class InvalidAnswer(ValidationError):
    kind = "INVALID_ANSWER"


class InvalidDifficulty(ValidationError):
    kind = "INVALID_DIFFICULTY"


class StateError(AssessmentError):
    kind = "STATE_ERROR"


class SessionNotFound(StateError):
    kind = "SESSION_NOT_FOUND"


class SessionNotActive(StateError):
    kind = "SESSION_NOT_ACTIVE"


class InvalidTransition(StateError):
    kind = "INVALID_TRANSITION"


# A completed session is both not-active (for answers) and an invalid source
# state (for pause/resume), so callers catching either still see it.
class SessionTerminated(SessionNotActive, InvalidTransition):
    kind = "SESSION_TERMINATED"


class QuestionMismatch(StateError):
    kind = "QUESTION_MISMATCH"


class SessionNotCompleted(StateError):
    kind = "SESSION_NOT_COMPLETED"


class ResourceError(AssessmentError):
    kind = "RESOURCE_ERROR"


class PoolExhausted(ResourceError):
    kind = "POOL_EXHAUSTED"

    def __init__(self, message: str = "", *, requested: int = 0, available: int = 0):
        super().__init__(message or f"needed {requested} questions, only {available} available")
        self.requested = requested
        self.available = available

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["details"] = {"requested": self.requested, "available": self.available}
        return out


__all__ = [
    "AssessmentError",
    "ValidationError",
    "InvalidConfig",
    "InvalidTimeSpent",
    "InvalidAnswer",
    "InvalidDifficulty",
    "StateError",
    "SessionNotFound",
    "SessionNotActive",
    "InvalidTransition",
    "SessionTerminated",
    "QuestionMismatch",
    "SessionNotCompleted",
    "ResourceError",
    "PoolExhausted",
]
