"""Domain events and the notifier they are published through.

Services receive a Notifier at construction and call publish() at the
point where something worth telling the outside world happened.  The
default LoggingNotifier writes each event as a structured log line;
tests use RecordingNotifier to assert on what was published.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Protocol, Union

logger = logging.getLogger("lms.events")


@dataclass(frozen=True, slots=True)
class ProgressMilestoneReached:
    student_id: int
    course_id: int
    milestone: int
    progress: float


@dataclass(frozen=True, slots=True)
class CourseCompleted:
    student_id: int
    course_id: int
    completed_at: int


@dataclass(frozen=True, slots=True)
class CertificateIssued:
    student_id: int
    course_id: int
    certificate_number: str
    certificate_type: str


@dataclass(frozen=True, slots=True)
class SuspiciousActivityDetected:
    identity: str
    client_ip: str
    violations: int


@dataclass(frozen=True, slots=True)
class IpBlocked:
    ip: str
    reason: str
    duration_seconds: int
    actor: str


@dataclass(frozen=True, slots=True)
class IpUnblocked:
    ip: str
    reason: str
    actor: str


Event = Union[
    ProgressMilestoneReached,
    CourseCompleted,
    CertificateIssued,
    SuspiciousActivityDetected,
    IpBlocked,
    IpUnblocked,
]

# Security events are louder than learning events.
_LEVELS: dict[type, int] = {
    SuspiciousActivityDetected: logging.CRITICAL,
    IpBlocked: logging.WARNING,
}


class Notifier(Protocol):
    async def publish(self, event: Event) -> None: ...


class LoggingNotifier:
    async def publish(self, event: Event) -> None:
        level = _LEVELS.get(type(event), logging.INFO)
        logger.log(level, "event=%s", type(event).__name__, extra=asdict(event))


class RecordingNotifier:
    """Keeps every published event in memory, in order."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    async def publish(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list[Event]:
        return [e for e in self.events if isinstance(e, event_type)]

    def clear(self) -> None:
        self.events.clear()
