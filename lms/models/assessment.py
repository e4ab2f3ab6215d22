from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class ScoreKind(StrEnum):
    QUIZ = "quiz"
    ACTIVITY = "activity"


@dataclass(frozen=True, slots=True)
class AssessmentScore:
    """One graded quiz attempt or activity for an enrollment (0-100)."""

    enrollment_id: int
    kind: ScoreKind
    score: float
    recorded_at: int = 0
