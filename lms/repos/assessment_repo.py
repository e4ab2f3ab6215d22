from __future__ import annotations

from typing import Protocol

from lms.models.assessment import AssessmentScore


class AssessmentScoreRepo(Protocol):
    async def list_for_enrollment(self, enrollment_id: int) -> list[AssessmentScore]: ...


class InMemoryAssessmentScoreRepo:
    def __init__(self) -> None:
        self._scores: list[AssessmentScore] = []

    def add(self, score: AssessmentScore) -> None:
        if not 0 <= score.score <= 100:
            raise ValueError("score must be between 0 and 100")
        self._scores.append(score)

    def clear(self) -> None:
        self._scores.clear()

    async def list_for_enrollment(self, enrollment_id: int) -> list[AssessmentScore]:
        return [s for s in self._scores if s.enrollment_id == enrollment_id]
