from __future__ import annotations

import json
from dataclasses import asdict, dataclass


@dataclass(frozen=True, slots=True)
class BlockEntry:
    """Ephemeral IP block.  Lives in the block store until expires_at."""

    ip: str
    reason: str
    blocked_at: int
    expires_at: int
    blocked_by: str = "system"

    def ttl_seconds(self, now: float) -> int:
        return max(0, int(self.expires_at - now))

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @staticmethod
    def from_json(raw: str) -> BlockEntry:
        return BlockEntry(**json.loads(raw))


@dataclass(frozen=True, slots=True)
class BlockStatus:
    """Everything the access guard knows about one IP."""

    ip: str
    entry: BlockEntry | None
    permanent: bool
    whitelisted: bool
    suspicious_count: int
    attempts: dict[str, int]

    @property
    def blocked(self) -> bool:
        return not self.whitelisted and (self.permanent or self.entry is not None)
