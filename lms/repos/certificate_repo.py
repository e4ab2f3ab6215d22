from __future__ import annotations

from dataclasses import replace
from typing import Protocol

from lms.core.errors import CertificateConflict
from lms.models.certificate import Certificate, CertificateType


class CertificateRepo(Protocol):
    async def add(self, certificate: Certificate) -> Certificate:
        """Persist a new certificate and return it with its id.

        Raises CertificateConflict when (enrollment_id, type) already exists.
        """
        ...

    async def get(
        self, enrollment_id: int, certificate_type: CertificateType
    ) -> Certificate | None: ...

    async def list_for_student(self, student_id: int) -> list[Certificate]: ...
    async def count_by_type(self, course_id: int) -> dict[CertificateType, int]: ...


class InMemoryCertificateRepo:
    def __init__(self) -> None:
        self._store: dict[tuple[int, CertificateType], Certificate] = {}
        self._next_id = 1

    def clear(self) -> None:
        self._store.clear()
        self._next_id = 1

    async def add(self, certificate: Certificate) -> Certificate:
        key = (certificate.enrollment_id, certificate.type)
        if key in self._store:
            raise CertificateConflict(certificate.enrollment_id, certificate.type)
        stored = replace(certificate, id=self._next_id)
        self._next_id += 1
        self._store[key] = stored
        return stored

    async def get(
        self, enrollment_id: int, certificate_type: CertificateType
    ) -> Certificate | None:
        return self._store.get((enrollment_id, certificate_type))

    async def list_for_student(self, student_id: int) -> list[Certificate]:
        certs = [c for c in self._store.values() if c.student_id == student_id]
        return sorted(certs, key=lambda c: (c.issued_at, c.id or 0), reverse=True)

    async def count_by_type(self, course_id: int) -> dict[CertificateType, int]:
        counts = {t: 0 for t in CertificateType}
        for c in self._store.values():
            if c.course_id == course_id:
                counts[c.type] += 1
        return counts
