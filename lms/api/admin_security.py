from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from lms.api.dependencies import get_access_guard, require_role
from lms.models.principal import Principal
from lms.models.security import BlockEntry
from lms.services.access_guard import AccessGuard

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/security", tags=["admin"])


class BlockIn(BaseModel):
    ip: str
    duration_seconds: int = Field(default=3600, ge=1)
    reason: str = Field(default="Manual block", max_length=500)


class BlockOut(BaseModel):
    ip: str
    reason: str
    blocked_at: int
    expires_at: int
    blocked_by: str

    @classmethod
    def of(cls, entry: BlockEntry) -> BlockOut:
        return cls(
            ip=entry.ip,
            reason=entry.reason,
            blocked_at=entry.blocked_at,
            expires_at=entry.expires_at,
            blocked_by=entry.blocked_by,
        )


class BlockStatusOut(BaseModel):
    ip: str
    blocked: bool
    permanent: bool
    whitelisted: bool
    suspicious_count: int
    attempts: dict[str, int]
    block: BlockOut | None


@router.get("/blocks", response_model=list[BlockOut])
async def list_blocks(
    principal: Annotated[Principal, Depends(require_role("admin"))],
    guard: Annotated[AccessGuard, Depends(get_access_guard)],
) -> list[BlockOut]:
    logger.info("Blocked IP list requested by user=%s", principal.user_id)
    return [BlockOut.of(e) for e in await guard.list_blocked()]


@router.post("/blocks", response_model=BlockOut, status_code=status.HTTP_201_CREATED)
async def block_ip(
    body: BlockIn,
    principal: Annotated[Principal, Depends(require_role("admin"))],
    guard: Annotated[AccessGuard, Depends(get_access_guard)],
) -> BlockOut:
    entry = await guard.block_ip(
        body.ip, body.duration_seconds, body.reason, actor=f"user:{principal.user_id}"
    )
    return BlockOut.of(entry)


@router.get("/blocks/{ip}", response_model=BlockStatusOut)
async def get_block_status(
    ip: str,
    _principal: Annotated[Principal, Depends(require_role("admin"))],
    guard: Annotated[AccessGuard, Depends(get_access_guard)],
) -> BlockStatusOut:
    st = await guard.get_block_status(ip)
    return BlockStatusOut(
        ip=st.ip,
        blocked=st.blocked,
        permanent=st.permanent,
        whitelisted=st.whitelisted,
        suspicious_count=st.suspicious_count,
        attempts=st.attempts,
        block=BlockOut.of(st.entry) if st.entry else None,
    )


@router.delete("/blocks/{ip}", status_code=status.HTTP_204_NO_CONTENT)
async def unblock_ip(
    ip: str,
    principal: Annotated[Principal, Depends(require_role("admin"))],
    guard: Annotated[AccessGuard, Depends(get_access_guard)],
    reason: str = "Manual unblock",
) -> None:
    removed = await guard.unblock_ip(ip, reason, actor=f"user:{principal.user_id}")
    if not removed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="IP is not blocked",
        )
