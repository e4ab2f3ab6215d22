from __future__ import annotations

import ipaddress
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it’s easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


def _getenv_bool(name: str, default: bool) -> bool:
    raw = _getenv(name, "true" if default else "false").lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


def _getenv_float(name: str, default: float) -> float:
    raw = _getenv(name, str(default))
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number (got {raw!r})") from None


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None


def _split_csv(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def _getenv_ips(name: str, default: str) -> frozenset[str]:
    """Comma-separated IP addresses in canonical form."""
    ips = set()
    for part in _split_csv(_getenv(name, default)):
        try:
            ips.add(str(ipaddress.ip_address(part)))
        except ValueError:
            raise ValueError(
                f"{name} entries must be IP addresses (got {part!r})"
            ) from None
    return frozenset(ips)


# ---------------------------------------------------------------------------
# Certificates and grading
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CertificatePolicy:
    """Thresholds and weights that decide certificate eligibility.

    virtual_certificate_threshold is a course-progress percentage;
    complete_certificate_threshold is a final-score percentage.  Both
    comparisons are inclusive.
    """

    pass_threshold: float = 60.0
    virtual_certificate_threshold: float = 80.0
    complete_certificate_threshold: float = 70.0
    auto_generate: bool = False
    issuer_name: str = "VanguardIA"
    quiz_weight: int = 50
    activity_weight: int = 50
    milestones: tuple[int, ...] = (25, 50, 75, 90)

    def __post_init__(self) -> None:
        for name in (
            "pass_threshold",
            "virtual_certificate_threshold",
            "complete_certificate_threshold",
        ):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be between 0 and 100 (got {value})")
        if self.quiz_weight < 0 or self.activity_weight < 0:
            raise ValueError("grading weights must not be negative")

    def normalized_weights(self) -> tuple[float, float]:
        """Return (quiz, activity) weights scaled to sum to 100."""
        total = self.quiz_weight + self.activity_weight
        if total == 0:
            return 50.0, 50.0
        return (
            round(self.quiz_weight / total * 100, 2),
            round(self.activity_weight / total * 100, 2),
        )

    def thresholds(self) -> dict[str, float]:
        return {
            "pass": self.pass_threshold,
            "virtual_certificate": self.virtual_certificate_threshold,
            "complete_certificate": self.complete_certificate_threshold,
        }


# ---------------------------------------------------------------------------
# Access guard (rate limits, allow/deny lists, escalation)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RateLimitRule:
    """Fixed-window limit: max_attempts per decay_seconds."""

    max_attempts: int
    decay_seconds: int

    def __post_init__(self) -> None:
        if self.max_attempts < 1 or self.decay_seconds < 1:
            raise ValueError(
                "rate limit rules need max_attempts >= 1 and decay_seconds >= 1"
            )


DEFAULT_RATE_LIMITS: Mapping[str, RateLimitRule] = MappingProxyType(
    {
        "auth.login": RateLimitRule(50, 900),
        "auth.register": RateLimitRule(10, 3600),
        "auth.password-reset": RateLimitRule(10, 3600),
        "api.general": RateLimitRule(500, 3600),
        "api.search": RateLimitRule(50, 3600),
        "api.upload": RateLimitRule(10, 3600),
        "admin.general": RateLimitRule(500, 3600),
        "guest.general": RateLimitRule(20, 3600),
    }
)

DEFAULT_ROUTE_CLASSES: tuple[tuple[str, str], ...] = (("/admin", "admin.general"),)

DEFAULT_EXEMPT_PATHS: frozenset[str] = frozenset({"/health", "/ready", "/metrics"})


@dataclass(frozen=True, slots=True)
class AccessPolicy:
    """Immutable configuration for the AccessGuard."""

    rate_limits: Mapping[str, RateLimitRule] = field(
        default_factory=lambda: DEFAULT_RATE_LIMITS
    )
    default_limit_class: str = "api.general"
    whitelist: frozenset[str] = frozenset({"127.0.0.1", "::1"})
    blocklist: frozenset[str] = frozenset()
    route_classes: tuple[tuple[str, str], ...] = DEFAULT_ROUTE_CLASSES
    exempt_paths: frozenset[str] = DEFAULT_EXEMPT_PATHS
    suspicious_flag_threshold: int = 3
    alert_threshold: int = 5
    auto_block_threshold: int = 10
    auto_block_seconds: int = 3600
    suspicious_ttl_seconds: int = 86400

    def __post_init__(self) -> None:
        if self.default_limit_class not in self.rate_limits:
            raise ValueError(
                f"default_limit_class {self.default_limit_class!r} has no rate limit rule"
            )

    def rule_for(self, limit_class: str) -> RateLimitRule:
        """Unknown classes fall back to the default class rule."""
        rule = self.rate_limits.get(limit_class)
        if rule is None:
            return self.rate_limits[self.default_limit_class]
        return rule

    def classify(self, path: str) -> str | None:
        """Map a request path to its limit class; None means exempt."""
        if path in self.exempt_paths:
            return None
        for prefix, limit_class in self.route_classes:
            if path == prefix or path.startswith(prefix + "/"):
                return limit_class
        return self.default_limit_class


def parse_rate_limits(raw: str) -> dict[str, RateLimitRule]:
    """Parse "class=attempts/decay,class=attempts/decay" overrides."""
    rules: dict[str, RateLimitRule] = {}
    for item in _split_csv(raw):
        name, sep, rule = item.partition("=")
        attempts, slash, decay = rule.partition("/")
        if not sep or not slash or not name.strip():
            raise ValueError(
                f"RATE_LIMITS entries must look like class=attempts/decay (got {item!r})"
            )
        try:
            rules[name.strip()] = RateLimitRule(int(attempts), int(decay))
        except ValueError:
            raise ValueError(
                f"RATE_LIMITS entry {item!r} needs positive integer attempts/decay"
            ) from None
    return rules


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    certificates: CertificatePolicy = field(default_factory=CertificatePolicy)
    access: AccessPolicy = field(default_factory=AccessPolicy)
    jwt_public_key_pem: str | None = None

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_certificate_policy() -> CertificatePolicy:
    milestones_raw = _getenv("PROGRESS_MILESTONES", "25,50,75,90")
    try:
        milestones = tuple(sorted(int(m) for m in _split_csv(milestones_raw)))
    except ValueError:
        raise ValueError(
            f"PROGRESS_MILESTONES must be comma-separated integers (got {milestones_raw!r})"
        ) from None

    return CertificatePolicy(
        pass_threshold=_getenv_float("COURSE_PASS_THRESHOLD", 60),
        virtual_certificate_threshold=_getenv_float("VIRTUAL_CERTIFICATE_THRESHOLD", 80),
        complete_certificate_threshold=_getenv_float(
            "COMPLETE_CERTIFICATE_THRESHOLD", 70
        ),
        auto_generate=_getenv_bool("AUTO_GENERATE_CERTIFICATES", False),
        issuer_name=_getenv("CERTIFICATE_ISSUER_NAME", "VanguardIA"),
        quiz_weight=_getenv_int("QUIZ_WEIGHT_PERCENTAGE", 50),
        activity_weight=_getenv_int("ACTIVITY_WEIGHT_PERCENTAGE", 50),
        milestones=milestones,
    )


def load_access_policy() -> AccessPolicy:
    rate_limits = dict(DEFAULT_RATE_LIMITS)
    rate_limits.update(parse_rate_limits(_getenv("RATE_LIMITS", "")))

    return AccessPolicy(
        rate_limits=MappingProxyType(rate_limits),
        whitelist=_getenv_ips("IP_WHITELIST", "127.0.0.1,::1"),
        blocklist=_getenv_ips("IP_BLOCKLIST", ""),
    )


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    port_raw = _getenv("PORT", "8000")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    database_url = _getenv("DATABASE_URL", "") or None
    redis_url = _getenv("REDIS_URL", "") or None

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getenv_bool("LOG_JSON", False),
        port=port,
        database_url=database_url,
        redis_url=redis_url,
        certificates=load_certificate_policy(),
        access=load_access_policy(),
        jwt_public_key_pem=_getenv("JWT_PUBLIC_KEY_PEM", "") or None,
    )


# Optional: module-level singleton so imports are cheap
SETTINGS = load_settings()
