"""One-time password acquisition.

The OTP normally comes from an HTTP webhook returning JSON such as
``{"token": "123456"}``. When a TOTP secret is configured the code is generated
locally instead.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import httpx
import pyotp

from kite_auth.log import logger

# Lower-case names win; upper-case variants are only consulted when both are absent.
TOKEN_FIELDS = ("token", "otp", "TOKEN", "OTP")


def extract_token(payload: Any) -> Optional[str]:
    """Return the first non-empty accepted token field of a JSON object."""
    if not isinstance(payload, dict):
        return None
    for name in TOKEN_FIELDS:
        value = payload.get(name)
        if isinstance(value, bool):
            continue
        # Zero is falsy in the webhook's own convention and counts as missing.
        if isinstance(value, int) and value:
            value = str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


async def _get_json(client: httpx.AsyncClient, endpoint: str, timeout: float) -> Any:
    response = await client.get(endpoint, timeout=timeout)
    response.raise_for_status()
    return response.json()


async def fetch_token(
    endpoint: str,
    timeout: float,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[str]:
    """Request a token once. Failures are logged and yield None."""
    try:
        if client is None:
            async with httpx.AsyncClient() as owned:
                payload = await _get_json(owned, endpoint, timeout)
        else:
            payload = await _get_json(client, endpoint, timeout)
    except httpx.HTTPError as exc:
        logger.error("Failed to fetch OTP from webhook: %s: %s", type(exc).__name__, exc)
        return None
    except ValueError as exc:
        logger.error("OTP webhook returned an unreadable body: %s", exc)
        return None

    token = extract_token(payload)
    if token is None:
        logger.warning("OTP webhook response had no token field")
    return token


async def fetch_token_with_retry(
    endpoint: str,
    timeout: float,
    retry_delay: float,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[str]:
    """Fetch a token, retrying exactly once after ``retry_delay`` seconds."""
    logger.info("Requesting OTP from webhook: %s", endpoint)
    token = await fetch_token(endpoint, timeout, client)
    if token:
        return token

    logger.info("No token received yet. Trying a second time after short wait...")
    await asyncio.sleep(retry_delay)
    return await fetch_token(endpoint, timeout, client)


def gen_totp(secret: str) -> str:
    """Generate a TOTP code from a base32 shared secret."""
    return pyotp.TOTP(secret).now()
