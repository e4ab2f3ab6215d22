"""Final-score calculation for certificate eligibility.

final_score = quiz_avg * quiz_weight + activity_avg * activity_weight

Weights come from CertificatePolicy and are normalised so they sum to
100.  A student with no graded quizzes (or activities) contributes 0
for that component; the weight is not redistributed.
"""

from __future__ import annotations

from typing import Protocol

from lms.core.config import CertificatePolicy
from lms.models.assessment import ScoreKind
from lms.models.enrollment import Enrollment
from lms.repos.assessment_repo import AssessmentScoreRepo


class ScoreProvider(Protocol):
    async def final_score(self, enrollment: Enrollment) -> float: ...


def _average(values: list[float]) -> float:
    if not values:
        return 0.0
    return round(sum(values) / len(values), 2)


class WeightedScoreProvider:
    def __init__(self, scores: AssessmentScoreRepo, policy: CertificatePolicy) -> None:
        self._scores = scores
        self._policy = policy

    async def averages(self, enrollment: Enrollment) -> tuple[float, float]:
        """Return (quiz_average, activity_average), each 0-100."""
        rows = await self._scores.list_for_enrollment(enrollment.id)
        quiz = [s.score for s in rows if s.kind == ScoreKind.QUIZ]
        activity = [s.score for s in rows if s.kind == ScoreKind.ACTIVITY]
        return _average(quiz), _average(activity)

    async def final_score(self, enrollment: Enrollment) -> float:
        quiz_avg, activity_avg = await self.averages(enrollment)
        quiz_weight, activity_weight = self._policy.normalized_weights()
        score = quiz_avg * quiz_weight / 100 + activity_avg * activity_weight / 100
        return round(min(100.0, max(0.0, score)), 2)
