"""Request admission: IP allow/deny lists, rate limits, escalation.

EVALUATION ORDER
-----------------
Every request is judged on its own, in a fixed order:

  1. whitelisted IP        -> ALLOWED, nothing else checked or counted
  2. permanent deny list   -> BLOCKED (403)
  3. ephemeral block       -> BLOCKED (403)
  4. suspicious (>= 3)     -> logged only, evaluation continues; the IP
                             and the request identity are both checked
  5. rate-limit window     -> RATE_LIMITED (429) when already full
  6. otherwise             -> ALLOWED, attempt counted

ESCALATION
-----------
Each 429 adds one violation to a 24h counter for the identity
(user:{sub} when a valid bearer token names one, else ip:{addr}):

  violations == 5   critical alert, no action
  violations >= 10  the client IP is blocked for an hour

FAILURE POLICY
---------------
The guard never raises into the request pipeline.  When Redis (or
whichever store backs the guard) fails, the affected check is skipped
and the request is allowed.  Every skipped check is logged and
counted in access_guard_store_errors_total.  A request that already
reached a deny verdict stays denied.

The administrative operations (block_ip, unblock_ip, ...) do not fail
open: StoreUnavailable propagates to the caller.
"""

from __future__ import annotations

import ipaddress
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import TypeVar

from lms.core.config import SETTINGS, AccessPolicy
from lms.core.errors import StoreUnavailable, ValidationError
from lms.core.metrics import (
    ACCESS_DENIED,
    GUARD_STORE_ERRORS,
    RATE_LIMIT_HITS,
    SUSPICIOUS_ACTIVITY,
)
from lms.db.redis import redis_pool
from lms.models.security import BlockEntry, BlockStatus
from lms.services.block_store import BlockStore, InMemoryBlockStore, RedisBlockStore
from lms.services.notifier import (
    IpBlocked,
    IpUnblocked,
    LoggingNotifier,
    Notifier,
    SuspiciousActivityDetected,
)
from lms.services.rate_limiter import (
    InMemoryRateLimiter,
    RateLimiter,
    RateLimitResult,
    RedisRateLimiter,
)
from lms.services.suspicious_activity import (
    InMemorySuspiciousActivityCounter,
    RedisSuspiciousActivityCounter,
    SuspiciousActivityCounter,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Never written to logs.
_SENSITIVE_HEADERS = frozenset(
    {"authorization", "cookie", "set-cookie", "x-csrf-token", "x-api-key"}
)


class GuardOutcome(StrEnum):
    ALLOWED = "allowed"
    RATE_LIMITED = "rate_limited"
    BLOCKED = "blocked"


@dataclass(frozen=True, slots=True)
class GuardDecision:
    """Verdict for one request.

    rate is None when no window was consulted (whitelisted, blocked,
    or the rate-limit store was unavailable).  block_type is
    "permanent" or "temporary" for BLOCKED decisions.
    """

    outcome: GuardOutcome
    limit_class: str
    rate: RateLimitResult | None = None
    block_type: str | None = None

    @property
    def allowed(self) -> bool:
        return self.outcome == GuardOutcome.ALLOWED


def safe_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {k: v for k, v in headers.items() if k.lower() not in _SENSITIVE_HEADERS}


def identity_for(client_ip: str, subject: str | None) -> str:
    return f"user:{subject}" if subject else f"ip:{client_ip}"


def normalize_ip(raw: str) -> str:
    """Canonical text form of an IPv4/IPv6 address; ValidationError if invalid."""
    try:
        return str(ipaddress.ip_address(raw.strip()))
    except ValueError:
        raise ValidationError(f"invalid IP address: {raw!r}") from None


class AccessGuard:
    def __init__(
        self,
        *,
        policy: AccessPolicy,
        limiter: RateLimiter,
        blocks: BlockStore,
        suspicious: SuspiciousActivityCounter,
        notifier: Notifier | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._policy = policy
        self._limiter = limiter
        self._blocks = blocks
        self._suspicious = suspicious
        self._notifier = notifier or LoggingNotifier()
        self._clock = clock

    @property
    def policy(self) -> AccessPolicy:
        return self._policy

    async def _fail_open(self, store: str, op: Awaitable[T], default: T) -> T:
        try:
            return await op
        except StoreUnavailable:
            GUARD_STORE_ERRORS.labels(store=store).inc()
            logger.exception("Access guard store failed, allowing request store=%s", store)
            return default

    # ------------------------------------------------------------------
    # Per-request evaluation
    # ------------------------------------------------------------------

    async def evaluate(
        self,
        client_ip: str,
        limit_class: str,
        subject: str | None = None,
        *,
        method: str = "",
        path: str = "",
        headers: Mapping[str, str] | None = None,
    ) -> GuardDecision:
        policy = self._policy
        log_ctx = {"client_ip": client_ip, "limit_class": limit_class, "path": path}

        if client_ip in policy.whitelist:
            return GuardDecision(GuardOutcome.ALLOWED, limit_class)

        if client_ip in policy.blocklist:
            return self._blocked("permanent", limit_class, method, path, headers, log_ctx)

        entry = await self._fail_open("block_store", self._blocks.get(client_ip), None)
        if entry is not None:
            return self._blocked("temporary", limit_class, method, path, headers, log_ctx)

        identity = identity_for(client_ip, subject)
        flagged = await self._fail_open(
            "suspicious_counter", self._suspicious.get(f"ip:{client_ip}"), 0
        )
        if identity != f"ip:{client_ip}":
            flagged = max(
                flagged,
                await self._fail_open(
                    "suspicious_counter", self._suspicious.get(identity), 0
                ),
            )
        if flagged >= policy.suspicious_flag_threshold:
            logger.info(
                "Suspicious IP access attempt identity=%s method=%s path=%s violations=%d",
                identity,
                method,
                path,
                flagged,
                extra={**log_ctx, "violations": flagged},
            )

        rule = policy.rule_for(limit_class)
        result = await self._fail_open(
            "rate_limiter", self._limiter.hit(f"{limit_class}:{identity}", rule), None
        )
        if result is None:
            return GuardDecision(GuardOutcome.ALLOWED, limit_class)

        if not result.allowed:
            RATE_LIMIT_HITS.labels(limit_class=limit_class).inc()
            logger.warning(
                "Rate limit exceeded identity=%s method=%s path=%s retry_after=%d",
                identity,
                method,
                path,
                result.retry_after,
                extra=log_ctx,
            )
            await self._record_violation(identity, client_ip)
            return GuardDecision(GuardOutcome.RATE_LIMITED, limit_class, rate=result)

        return GuardDecision(GuardOutcome.ALLOWED, limit_class, rate=result)

    def _blocked(
        self,
        block_type: str,
        limit_class: str,
        method: str,
        path: str,
        headers: Mapping[str, str] | None,
        log_ctx: dict[str, str],
    ) -> GuardDecision:
        ACCESS_DENIED.labels(reason=block_type).inc()
        logger.warning(
            "Blocked IP access attempt block_type=%s method=%s path=%s headers=%s",
            block_type,
            method,
            path,
            safe_headers(headers or {}),
            extra={**log_ctx, "block_type": block_type},
        )
        return GuardDecision(GuardOutcome.BLOCKED, limit_class, block_type=block_type)

    async def _record_violation(self, identity: str, client_ip: str) -> None:
        policy = self._policy
        violations = await self._fail_open(
            "suspicious_counter", self._suspicious.increment(identity), 0
        )
        if violations == 0:
            return
        SUSPICIOUS_ACTIVITY.labels(action="violation").inc()
        if identity != f"ip:{client_ip}":
            await self._fail_open(
                "suspicious_counter",
                self._suspicious.link_identity(client_ip, identity),
                None,
            )

        if violations == policy.alert_threshold:
            SUSPICIOUS_ACTIVITY.labels(action="alert").inc()
            logger.critical(
                "Suspicious activity detected identity=%s violations=%d",
                identity,
                violations,
                extra={"client_ip": client_ip, "violations": violations},
            )
            await self._notifier.publish(
                SuspiciousActivityDetected(
                    identity=identity, client_ip=client_ip, violations=violations
                )
            )

        if violations >= policy.auto_block_threshold:
            entry = self._new_entry(
                client_ip,
                policy.auto_block_seconds,
                f"Automatic block after {violations} rate-limit violations",
                "system",
            )
            stored = await self._fail_open("block_store", self._put(entry), False)
            if not stored:
                return
            SUSPICIOUS_ACTIVITY.labels(action="auto_block").inc()
            logger.critical(
                "IP address blocked due to suspicious activity blocked_for_seconds=%d",
                policy.auto_block_seconds,
                extra={"client_ip": client_ip, "violations": violations},
            )
            await self._notifier.publish(
                IpBlocked(
                    ip=client_ip,
                    reason=entry.reason,
                    duration_seconds=policy.auto_block_seconds,
                    actor="system",
                )
            )

    async def _put(self, entry: BlockEntry) -> bool:
        await self._blocks.put(entry)
        return True

    def _new_entry(self, ip: str, seconds: int, reason: str, actor: str) -> BlockEntry:
        now = int(self._clock())
        return BlockEntry(
            ip=ip,
            reason=reason,
            blocked_at=now,
            expires_at=now + seconds,
            blocked_by=actor,
        )

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    async def block_ip(
        self,
        ip: str,
        seconds: int = 3600,
        reason: str = "Manual block",
        actor: str = "system",
    ) -> BlockEntry:
        ip = normalize_ip(ip)
        if seconds < 1:
            raise ValidationError("block duration must be at least 1 second")

        entry = self._new_entry(ip, seconds, reason, actor)
        await self._blocks.put(entry)
        logger.warning(
            "IP manually blocked reason=%r duration_seconds=%d blocked_by=%s",
            reason,
            seconds,
            actor,
            extra={"client_ip": ip},
        )
        await self._notifier.publish(
            IpBlocked(ip=ip, reason=reason, duration_seconds=seconds, actor=actor)
        )
        return entry

    async def unblock_ip(
        self, ip: str, reason: str = "Manual unblock", actor: str = "system"
    ) -> bool:
        """Remove the ephemeral block and reset the related violation counts.

        Clears the IP's counter and that of every user identity whose
        violations came from this IP.  Returns False when no block entry
        existed.  The permanent deny list is configuration and is not
        touched.
        """
        ip = normalize_ip(ip)
        removed = await self._blocks.delete(ip)
        for identity in await self._suspicious.linked_identities(ip):
            await self._suspicious.clear(identity)
        await self._suspicious.forget_links(ip)
        await self._suspicious.clear(f"ip:{ip}")
        logger.info(
            "IP manually unblocked reason=%r unblocked_by=%s had_block=%s",
            reason,
            actor,
            removed,
            extra={"client_ip": ip},
        )
        await self._notifier.publish(IpUnblocked(ip=ip, reason=reason, actor=actor))
        return removed

    async def get_block_status(self, ip: str) -> BlockStatus:
        ip = normalize_ip(ip)
        identity = f"ip:{ip}"
        attempts = {}
        for limit_class in sorted(self._policy.rate_limits):
            count = await self._limiter.attempts(f"{limit_class}:{identity}")
            if count:
                attempts[limit_class] = count
        return BlockStatus(
            ip=ip,
            entry=await self._blocks.get(ip),
            permanent=ip in self._policy.blocklist,
            whitelisted=ip in self._policy.whitelist,
            suspicious_count=await self._suspicious.get(identity),
            attempts=attempts,
        )

    async def list_blocked(self) -> list[BlockEntry]:
        return await self._blocks.list_all()


# ---------------------------------------------------------------------------
# Module-level singletons, conditional on Redis availability
# ---------------------------------------------------------------------------

if redis_pool is not None:
    rate_limiter: RateLimiter = RedisRateLimiter(redis_pool)
    block_store: BlockStore = RedisBlockStore(redis_pool)
    suspicious_counter: SuspiciousActivityCounter = RedisSuspiciousActivityCounter(
        redis_pool, SETTINGS.access.suspicious_ttl_seconds
    )
else:
    rate_limiter = InMemoryRateLimiter()
    block_store = InMemoryBlockStore()
    suspicious_counter = InMemorySuspiciousActivityCounter(
        SETTINGS.access.suspicious_ttl_seconds
    )

access_guard = AccessGuard(
    policy=SETTINGS.access,
    limiter=rate_limiter,
    blocks=block_store,
    suspicious=suspicious_counter,
)
