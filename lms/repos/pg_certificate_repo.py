"""PostgreSQL implementation of CertificateRepo."""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lms.core.errors import CertificateConflict
from lms.db.tables import CertificateRow
from lms.models.certificate import Certificate, CertificateType


class PgCertificateRepo:
    """Relies on uq_certificates_enrollment_type for exactly-once issuance.

    The insert runs inside a SAVEPOINT: when a concurrent request wins
    the race, only the savepoint rolls back and the request's outer
    transaction can still read the winner's row.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, certificate: Certificate) -> Certificate:
        row = CertificateRow(
            enrollment_id=certificate.enrollment_id,
            student_id=certificate.student_id,
            course_id=certificate.course_id,
            type=certificate.type.value,
            certificate_number=certificate.certificate_number,
            issued_at=certificate.issued_at,
            final_score=certificate.final_score,
            course_progress=certificate.course_progress,
            student_name=certificate.student_name,
            course_title=certificate.course_title,
            issuer=certificate.issuer,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
                await self._session.flush()
        except IntegrityError:
            raise CertificateConflict(
                certificate.enrollment_id, certificate.type
            ) from None
        return _row_to_certificate(row)

    async def get(
        self, enrollment_id: int, certificate_type: CertificateType
    ) -> Certificate | None:
        stmt = select(CertificateRow).where(
            CertificateRow.enrollment_id == enrollment_id,
            CertificateRow.type == certificate_type.value,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_certificate(row)

    async def list_for_student(self, student_id: int) -> list[Certificate]:
        stmt = (
            select(CertificateRow)
            .where(CertificateRow.student_id == student_id)
            .order_by(CertificateRow.issued_at.desc(), CertificateRow.id.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_certificate(r) for r in rows]

    async def count_by_type(self, course_id: int) -> dict[CertificateType, int]:
        stmt = (
            select(CertificateRow.type, func.count(CertificateRow.id))
            .where(CertificateRow.course_id == course_id)
            .group_by(CertificateRow.type)
        )
        counts = {t: 0 for t in CertificateType}
        for type_, count in (await self._session.execute(stmt)).all():
            counts[CertificateType(type_)] = count
        return counts


def _row_to_certificate(row: CertificateRow) -> Certificate:
    return Certificate(
        id=row.id,
        enrollment_id=row.enrollment_id,
        student_id=row.student_id,
        course_id=row.course_id,
        type=CertificateType(row.type),
        certificate_number=row.certificate_number,
        issued_at=row.issued_at,
        final_score=row.final_score,
        course_progress=row.course_progress,
        student_name=row.student_name,
        course_title=row.course_title,
        issuer=row.issuer,
    )
