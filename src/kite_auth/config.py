"""Run configuration, read once from the process environment.

``load_config`` is the only place that looks at environment variables; the
resulting ``AuthConfig`` is frozen and handed to the login flow explicitly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

DEFAULT_LOGIN_URL = "https://kite.zerodha.com/connect/login?v=3&api_key=tut3e5y01sw5fi4f"
DEFAULT_OTP_WEBHOOK = "https://n8n.sallytion.qzz.io/webhook/get-totp"
DEFAULT_RESULT_WEBHOOK = "https://n8n.sallytion.qzz.io/webhook-test/kite-auth"
DEFAULT_REDIRECT_PREFIX = "https://n8n.sallytion.qzz.io"

_TRUTHY = ("1", "true", "yes", "on")
_FALSY = ("0", "false", "no", "off")


class ConfigError(ValueError):
    """Raised when the environment cannot produce a usable configuration."""


@dataclass(frozen=True)
class FlowTimings:
    """Named waits used by the login flow.

    ``post_submit_delay_s`` is a plain sleep after the login form is submitted;
    the OTP step has no readiness signal to wait on instead.
    """

    post_submit_delay_s: float = 1.5
    otp_retry_delay_s: float = 2.0
    otp_timeout_s: float = 15.0
    destination_timeout_ms: int = 60000
    navigation_timeout_ms: int = 60000


@dataclass(frozen=True)
class AuthConfig:
    user_id: str = field(repr=False)
    password: str = field(repr=False)
    login_url: str = DEFAULT_LOGIN_URL
    otp_webhook_url: str = DEFAULT_OTP_WEBHOOK
    # Declared for the downstream consumer; the login flow never posts to it.
    result_webhook_url: str = DEFAULT_RESULT_WEBHOOK
    redirect_prefix: str = DEFAULT_REDIRECT_PREFIX
    totp_secret: Optional[str] = field(default=None, repr=False)
    headless: bool = True
    browser_name: str = "chromium"
    browser_channel: Optional[str] = None
    log_level: str = "INFO"
    timings: FlowTimings = field(default_factory=FlowTimings)


def _flag(environ: Mapping[str, str], key: str) -> Optional[bool]:
    raw = environ.get(key)
    if raw is None or not raw.strip():
        return None
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ConfigError(f"{key} must be a boolean flag, got {raw!r}")


def _seconds(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = environ.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number of seconds, got {raw!r}") from None
    if value < 0:
        raise ConfigError(f"{key} must not be negative, got {raw!r}")
    return value


def _is_ci(environ: Mapping[str, str]) -> bool:
    return environ.get("CI") == "true" or environ.get("GITHUB_ACTIONS") == "true"


def load_config(environ: Optional[Mapping[str, str]] = None) -> AuthConfig:
    """Build an ``AuthConfig`` from ``environ`` (defaults to ``os.environ``).

    Raises ConfigError if the user id or password is missing.
    """
    env = os.environ if environ is None else environ

    user_id = env.get("KITE_USER") or env.get("KITE_USER_ID")
    password = env.get("KITE_PASSWORD")
    if not user_id or not password:
        raise ConfigError(
            "Missing credentials: set KITE_USER and KITE_PASSWORD in environment or .env"
        )

    headless = _flag(env, "HEADLESS")
    if headless is None:
        headless = _is_ci(env)

    timings = FlowTimings(
        post_submit_delay_s=_seconds(env, "POST_SUBMIT_DELAY", FlowTimings.post_submit_delay_s),
    )

    return AuthConfig(
        user_id=user_id,
        password=password,
        login_url=env.get("KITE_LOGIN_URL") or DEFAULT_LOGIN_URL,
        otp_webhook_url=env.get("GET_OTP_WEBHOOK") or DEFAULT_OTP_WEBHOOK,
        result_webhook_url=env.get("POST_FINAL_WEBHOOK") or DEFAULT_RESULT_WEBHOOK,
        redirect_prefix=env.get("REDIRECT_BASE_URL") or DEFAULT_REDIRECT_PREFIX,
        totp_secret=env.get("KITE_TOTP_SECRET") or None,
        headless=headless,
        browser_name=(env.get("BROWSER") or "chromium").lower(),
        browser_channel=env.get("BROWSER_CHANNEL") or None,
        log_level=env.get("LOG_LEVEL") or "INFO",
        timings=timings,
    )
