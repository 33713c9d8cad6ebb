# assess_core/policy.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple

from .config import WINDOW_SIZE, ESCALATE_AT, DEESCALATE_AT
from .errors import InvalidDifficulty
from .types import AnswerRecord, DIFFICULTIES, Difficulty


def _tier_index(difficulty: str) -> int:
    try:
        return DIFFICULTIES.index(difficulty)
    except ValueError:
        raise InvalidDifficulty(f"unknown difficulty {difficulty!r}") from None


@dataclass(frozen=True)
class DifficultyPolicy:
    """Rolling-window tier ladder.

    Looks at the correctness of the last ``window`` answers and moves one tier
    up when the rate reaches ``escalate_at``, one tier down when it falls to
    ``deescalate_at``, and holds otherwise. The decision depends only on its
    arguments; question selection randomness lives in the pool provider.
    """

    window: int = WINDOW_SIZE
    escalate_at: float = ESCALATE_AT
    deescalate_at: float = DEESCALATE_AT

    def answer_window(self, answers: Sequence[AnswerRecord]) -> list[AnswerRecord]:
        if self.window <= 0:
            return []
        return list(answers[-self.window:])

    def next_difficulty(
        self,
        answer_window: Sequence[AnswerRecord],
        current: Difficulty,
    ) -> Tuple[Difficulty, str]:
        idx = _tier_index(current)
        n = len(answer_window)
        if n == 0:
            return current, f"no answers in window - holding at {current}"

        correct = sum(1 for a in answer_window if a.is_correct)
        rate = correct / n
        stats = f"{correct}/{n} correct in window ({rate:.0%})"

        if rate >= self.escalate_at:
            if idx == len(DIFFICULTIES) - 1:
                return current, f"{stats} - already at {current}, holding"
            nxt = DIFFICULTIES[idx + 1]
            return nxt, f"{stats} - escalating to {nxt}"
        if rate <= self.deescalate_at:
            if idx == 0:
                return current, f"{stats} - already at {current}, holding"
            nxt = DIFFICULTIES[idx - 1]
            return nxt, f"{stats} - de-escalating to {nxt}"
        return current, f"{stats} - holding at {current}"


def next_difficulty(
    answer_window: Sequence[AnswerRecord],
    current: Difficulty,
) -> Tuple[Difficulty, str]:
    return DifficultyPolicy().next_difficulty(answer_window, current)


__all__ = ["DifficultyPolicy", "next_difficulty"]
