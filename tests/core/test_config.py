from __future__ import annotations

import pytest

from lms.core.config import (
    AccessPolicy,
    AppEnv,
    CertificatePolicy,
    RateLimitRule,
    Settings,
    load_access_policy,
    load_certificate_policy,
    load_settings,
    parse_rate_limits,
)

# ---- valid values ----


def test_load_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("APP_ENV", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    settings = load_settings()
    assert settings.app_env == "dev"
    assert settings.log_level == "info"


def test_load_settings_respects_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    monkeypatch.setenv("LOG_LEVEL", "error")
    settings = load_settings()
    assert settings.app_env == "prod"
    assert settings.log_level == "error"


def test_load_settings_normalizes_case(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "PROD")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    settings = load_settings()
    assert settings.app_env == "prod"
    assert settings.log_level == "debug"


def test_load_settings_treats_blank_urls_as_unset(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("DATABASE_URL", "  ")
    monkeypatch.setenv("REDIS_URL", "")
    settings = load_settings()
    assert settings.database_url is None
    assert settings.redis_url is None


# ---- invalid values ----


def test_load_settings_rejects_invalid_app_env(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("APP_ENV", "staging")
    with pytest.raises(ValueError, match="APP_ENV must be dev|test|prod"):
        load_settings()


def test_load_settings_rejects_invalid_log_level(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("LOG_LEVEL", "verbose")
    with pytest.raises(ValueError, match="LOG_LEVEL must be debug|info|warning|error"):
        load_settings()


def test_load_settings_rejects_non_numeric_port(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("PORT", "eighty")
    with pytest.raises(ValueError, match="PORT must be an integer"):
        load_settings()


# ---- certificate policy ----


def test_certificate_policy_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "COURSE_PASS_THRESHOLD",
        "VIRTUAL_CERTIFICATE_THRESHOLD",
        "COMPLETE_CERTIFICATE_THRESHOLD",
        "AUTO_GENERATE_CERTIFICATES",
        "QUIZ_WEIGHT_PERCENTAGE",
        "ACTIVITY_WEIGHT_PERCENTAGE",
        "PROGRESS_MILESTONES",
    ):
        monkeypatch.delenv(name, raising=False)
    policy = load_certificate_policy()
    assert policy.virtual_certificate_threshold == 80
    assert policy.complete_certificate_threshold == 70
    assert policy.auto_generate is False
    assert policy.milestones == (25, 50, 75, 90)


def test_certificate_policy_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VIRTUAL_CERTIFICATE_THRESHOLD", "90")
    monkeypatch.setenv("AUTO_GENERATE_CERTIFICATES", "yes")
    monkeypatch.setenv("PROGRESS_MILESTONES", "50, 10")
    policy = load_certificate_policy()
    assert policy.virtual_certificate_threshold == 90
    assert policy.auto_generate is True
    assert policy.milestones == (10, 50)


def test_certificate_policy_rejects_threshold_above_100() -> None:
    with pytest.raises(ValueError, match="virtual_certificate_threshold"):
        CertificatePolicy(virtual_certificate_threshold=120)


def test_certificate_policy_rejects_bad_boolean(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AUTO_GENERATE_CERTIFICATES", "maybe")
    with pytest.raises(ValueError, match="must be a boolean"):
        load_certificate_policy()


def test_normalized_weights_sum_to_100() -> None:
    assert CertificatePolicy(quiz_weight=30, activity_weight=10).normalized_weights() == (
        75.0,
        25.0,
    )
    assert CertificatePolicy(quiz_weight=0, activity_weight=0).normalized_weights() == (
        50.0,
        50.0,
    )


# ---- access policy ----


def test_parse_rate_limits() -> None:
    rules = parse_rate_limits("auth.login=5/900, api.search=20/60")
    assert rules == {
        "auth.login": RateLimitRule(5, 900),
        "api.search": RateLimitRule(20, 60),
    }


@pytest.mark.parametrize("raw", ["auth.login", "auth.login=5", "auth.login=x/60", "=5/60"])
def test_parse_rate_limits_rejects_malformed(raw: str) -> None:
    with pytest.raises(ValueError, match="RATE_LIMITS"):
        parse_rate_limits(raw)


def test_access_policy_overrides_keep_other_defaults(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("RATE_LIMITS", "auth.login=5/900")
    monkeypatch.setenv("IP_BLOCKLIST", "203.0.113.9")
    policy = load_access_policy()
    assert policy.rule_for("auth.login") == RateLimitRule(5, 900)
    assert policy.rule_for("api.general") == RateLimitRule(500, 3600)
    assert policy.blocklist == frozenset({"203.0.113.9"})


def test_ip_lists_are_canonicalized(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("IP_WHITELIST", "2001:DB8::1, 10.0.0.1")
    monkeypatch.setenv("IP_BLOCKLIST", "2001:0db8:0000::0007")
    policy = load_access_policy()
    assert policy.whitelist == frozenset({"2001:db8::1", "10.0.0.1"})
    assert policy.blocklist == frozenset({"2001:db8::7"})


@pytest.mark.parametrize("name", ["IP_WHITELIST", "IP_BLOCKLIST"])
def test_ip_lists_reject_invalid_entries(
    monkeypatch: pytest.MonkeyPatch, name: str
) -> None:
    monkeypatch.setenv(name, "10.0.0.1,not-an-ip")
    with pytest.raises(ValueError, match=name):
        load_access_policy()


def test_unknown_limit_class_falls_back_to_default_rule() -> None:
    policy = AccessPolicy()
    assert policy.rule_for("nope") == policy.rate_limits["api.general"]


def test_classify_paths() -> None:
    policy = AccessPolicy()
    assert policy.classify("/health") is None
    assert policy.classify("/metrics") is None
    assert policy.classify("/admin/security/blocks") == "admin.general"
    assert policy.classify("/administrator") == "api.general"
    assert policy.classify("/v1/progress") == "api.general"


def test_rate_limit_rule_rejects_zero() -> None:
    with pytest.raises(ValueError):
        RateLimitRule(0, 60)


# ---- Settings properties ----


def _make_settings(app_env: AppEnv = "dev") -> Settings:
    return Settings(  # type: ignore[arg-type]
        app_env=app_env,
        log_level="info",
        log_json=False,
        port=8000,
        database_url=None,
        redis_url=None,
    )


def test_settings_env_flags() -> None:
    assert _make_settings("dev").is_dev is True
    assert _make_settings("test").is_test is True
    assert _make_settings("prod").is_prod is True
    assert _make_settings("prod").is_dev is False


def test_settings_is_frozen() -> None:
    s = _make_settings()
    with pytest.raises(AttributeError):
        s.app_env = "prod"  # type: ignore[misc]
