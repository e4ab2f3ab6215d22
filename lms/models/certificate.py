from __future__ import annotations

import datetime
from dataclasses import dataclass
from enum import StrEnum


class CertificateType(StrEnum):
    VIRTUAL = "virtual"  # progress completion alone
    COMPLETE = "complete"  # progress plus a qualifying assessment score


def certificate_number(*, course_id: int, student_id: int, issued_at: int) -> str:
    """Deterministic number: CERT-{course:3 digits}-{student:4 digits}-{year}."""
    year = datetime.datetime.fromtimestamp(issued_at, datetime.UTC).year
    return f"CERT-{course_id:03d}-{student_id:04d}-{year}"


@dataclass(frozen=True, slots=True)
class Certificate:
    """Issued certificate.  Immutable; unique per (enrollment_id, type).

    student_name, course_title and issuer are snapshots taken at issue
    time so a later rename never changes an issued certificate.
    """

    id: int | None
    enrollment_id: int
    student_id: int
    course_id: int
    type: CertificateType
    certificate_number: str
    issued_at: int
    final_score: float
    course_progress: float
    student_name: str = ""
    course_title: str = ""
    issuer: str = ""


@dataclass(frozen=True, slots=True)
class IssuedCertificate:
    """Result of ProgressEngine.generate_certificate.

    newly_issued is False when an existing certificate was returned.
    """

    certificate: Certificate
    newly_issued: bool


@dataclass(frozen=True, slots=True)
class CertificateStats:
    """Per-course issuance figures.  Rates are percentages of non-cancelled enrollments."""

    course_id: int
    total_enrollments: int
    virtual_certificates: int
    complete_certificates: int
    virtual_rate: float
    complete_rate: float
