"""Certificate endpoints.

POST /v1/certificates/courses/{course_id} answers 201 when it issued a
new certificate and 200 when it returned one the student already held.
An ineligible student gets 422 with the numbers behind the decision
(see the CertificateNotEligible handler in lms.main).
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel

from lms.api.dependencies import (
    get_progress_engine,
    require_any_role,
    require_student_id,
    require_user,
)
from lms.models.certificate import Certificate
from lms.models.principal import Principal
from lms.services.progress_engine import ProgressEngine

router = APIRouter(prefix="/v1/certificates", tags=["certificates"])


class CertificateView(BaseModel):
    """What the certificate renderer needs, plus identifiers."""

    id: int | None
    course_id: int
    type: str
    certificate_number: str
    issued_at: int
    final_score: float
    course_progress: float
    student_name: str
    course_title: str
    issuer: str

    @classmethod
    def of(cls, cert: Certificate) -> CertificateView:
        return cls(
            id=cert.id,
            course_id=cert.course_id,
            type=cert.type.value,
            certificate_number=cert.certificate_number,
            issued_at=cert.issued_at,
            final_score=cert.final_score,
            course_progress=cert.course_progress,
            student_name=cert.student_name,
            course_title=cert.course_title,
            issuer=cert.issuer,
        )


class CertificateStatsOut(BaseModel):
    course_id: int
    total_enrollments: int
    virtual_certificates: int
    complete_certificates: int
    virtual_rate: float
    complete_rate: float


@router.post("/courses/{course_id}", response_model=CertificateView)
async def generate_certificate(
    course_id: int,
    response: Response,
    student_id: Annotated[int, Depends(require_student_id)],
    engine: Annotated[ProgressEngine, Depends(get_progress_engine)],
) -> CertificateView:
    issued = await engine.generate_certificate(student_id, course_id)
    response.status_code = (
        status.HTTP_201_CREATED if issued.newly_issued else status.HTTP_200_OK
    )
    return CertificateView.of(issued.certificate)


@router.get("", response_model=list[CertificateView])
async def list_certificates(
    student_id: Annotated[int, Depends(require_student_id)],
    engine: Annotated[ProgressEngine, Depends(get_progress_engine)],
) -> list[CertificateView]:
    return [CertificateView.of(c) for c in await engine.list_certificates(student_id)]


@router.get("/config")
async def get_certificate_config(
    _principal: Annotated[Principal, Depends(require_user)],
    engine: Annotated[ProgressEngine, Depends(get_progress_engine)],
) -> dict:
    return engine.get_certificate_config()


@router.get("/courses/{course_id}/stats", response_model=CertificateStatsOut)
async def get_course_certificate_stats(
    course_id: int,
    _principal: Annotated[Principal, Depends(require_any_role({"admin", "instructor"}))],
    engine: Annotated[ProgressEngine, Depends(get_progress_engine)],
) -> CertificateStatsOut:
    stats = await engine.get_course_certificate_stats(course_id)
    return CertificateStatsOut(
        course_id=stats.course_id,
        total_enrollments=stats.total_enrollments,
        virtual_certificates=stats.virtual_certificates,
        complete_certificates=stats.complete_certificates,
        virtual_rate=stats.virtual_rate,
        complete_rate=stats.complete_rate,
    )
