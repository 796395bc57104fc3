"""Two-factor login flow.

Drives the login form, obtains an OTP, submits it and waits for the redirect:

    INIT -> NAVIGATED_TO_LOGIN -> CREDENTIALS_FILLED -> LOGIN_SUBMITTED
         -> AWAITING_OTP -> OTP_FETCHED -> OTP_FILLED -> OTP_SUBMITTED -> COMPLETED

Any step may end the run in FAILED. The browser is released exactly once
whichever way the run ends.
"""

from __future__ import annotations

import asyncio
import enum
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from kite_auth.auth.otp import fetch_token_with_retry, gen_totp
from kite_auth.browser.controller import BrowserConfig, BrowserController
from kite_auth.browser.resolver import fill_first_match, submit
from kite_auth.config import AuthConfig
from kite_auth.log import debug_detail, logger


class LoginState(str, enum.Enum):
    INIT = "init"
    NAVIGATED_TO_LOGIN = "navigated_to_login"
    CREDENTIALS_FILLED = "credentials_filled"
    LOGIN_SUBMITTED = "login_submitted"
    AWAITING_OTP = "awaiting_otp"
    OTP_FETCHED = "otp_fetched"
    OTP_FILLED = "otp_filled"
    OTP_SUBMITTED = "otp_submitted"
    COMPLETED = "completed"
    FAILED = "failed"


class LoginAborted(RuntimeError):
    """Raised by a step that cannot let the flow continue."""


@dataclass(frozen=True)
class SessionOutcome:
    final_location: str
    success: bool
    state: LoginState
    error: Optional[str] = None


# ---------- Locator banks ----------

USER_ID_LOCATORS = (
    '#userid',
    'input#userid',
    'input[name="user_id"]',
    'input[name="username"]',
    'input[placeholder*="User"]',
    'input[type="text"]',
)

PASSWORD_LOCATORS = (
    '#password',
    'input[type="password"]',
    'input[name="password"]',
    'input[placeholder*="Password"]',
)

LOGIN_SUBMIT_LOCATORS = (
    'button[type="submit"]',
    'button:has-text("Login")',
    'button:has-text("Log in")',
    'button:has-text("Sign in")',
)

OTP_LOCATORS = (
    'input[name="otp"]',
    'input[autocomplete="one-time-code"]',
    'input[type="tel"]',
    'input[placeholder*="PIN"]',
    'input[placeholder*="OTP"]',
    'input',
)

OTP_SUBMIT_LOCATORS = (
    'button[type="submit"]',
    'button:has-text("Submit")',
    'button:has-text("Verify")',
)


async def wait_for_destination(page: Page, expected_prefix: str, timeout_ms: int) -> str:
    """Block until the page location starts with ``expected_prefix``.

    Waits for network idle after the match and returns the final URL. Both
    waits share the ``timeout_ms`` budget; playwright's TimeoutError is raised
    when it runs out.
    """
    deadline = time.monotonic() + timeout_ms / 1000
    await page.wait_for_url(lambda url: url.startswith(expected_prefix), timeout=timeout_ms)
    # A timeout of 0 disables playwright's limit, so keep at least 1 ms.
    remaining_ms = max(1, int((deadline - time.monotonic()) * 1000))
    await page.wait_for_load_state("networkidle", timeout=remaining_ms)
    return page.url


ControllerFactory = Callable[[BrowserConfig], BrowserController]


class LoginFlow:
    """Runs the login flow once against a fresh browser."""

    def __init__(
        self,
        config: AuthConfig,
        controller_factory: ControllerFactory = BrowserController,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._config = config
        self._timings = config.timings
        self._controller_factory = controller_factory
        self._http_client = http_client
        self.state = LoginState.INIT

    def _advance(self, state: LoginState) -> None:
        logger.debug("%s -> %s", self.state.value, state.value)
        self.state = state

    def _browser_config(self) -> BrowserConfig:
        return BrowserConfig(
            name=self._config.browser_name,
            channel=self._config.browser_channel,
            headed=not self._config.headless,
            timeout_ms=self._timings.navigation_timeout_ms,
        )

    async def run(self) -> SessionOutcome:
        """Execute the flow. Failures are logged and reported in the outcome.

        The outcome is settled before the browser is released, so closing the
        browser is the last thing the run does.
        """
        outcome: Optional[SessionOutcome] = None
        try:
            async with self._controller_factory(self._browser_config()) as controller:
                outcome = await self._run_with(controller)
                logger.info("Done, closing browser.")
        except Exception as exc:
            if outcome is not None:
                logger.error("Failed to close browser: %s: %s", type(exc).__name__, exc)
                return outcome
            return self._fail(f"{type(exc).__name__}: {exc}")
        return outcome

    async def _run_with(self, controller: BrowserController) -> SessionOutcome:
        try:
            page = await controller.context.new_page()
            final_location = await self._drive(page)
        except LoginAborted as exc:
            return self._fail(str(exc))
        except PlaywrightTimeoutError as exc:
            return self._fail(f"Timed out: {exc}")
        except Exception as exc:
            return self._fail(f"{type(exc).__name__}: {exc}")

        self._advance(LoginState.COMPLETED)
        logger.info("Login completed successfully.")
        return SessionOutcome(final_location=final_location, success=True, state=self.state)

    def _fail(self, reason: str) -> SessionOutcome:
        failed_in = self.state
        self._advance(LoginState.FAILED)
        logger.error("Error during flow (%s): %s", failed_in.value, reason)
        return SessionOutcome(final_location="", success=False, state=self.state, error=reason)

    async def _drive(self, page: Page) -> str:
        timings = self._timings

        logger.info("Navigating to login page...")
        await page.goto(
            self._config.login_url,
            wait_until="networkidle",
            timeout=timings.navigation_timeout_ms,
        )
        self._advance(LoginState.NAVIGATED_TO_LOGIN)

        if not await fill_first_match(page, USER_ID_LOCATORS, self._config.user_id):
            logger.warning("Could not find user-id field automatically")
        if not await fill_first_match(page, PASSWORD_LOCATORS, self._config.password):
            logger.warning("Could not find password field automatically")
        self._advance(LoginState.CREDENTIALS_FILLED)

        await submit(page, LOGIN_SUBMIT_LOCATORS)
        self._advance(LoginState.LOGIN_SUBMITTED)

        logger.info("Waiting for OTP input...")
        await asyncio.sleep(timings.post_submit_delay_s)
        self._advance(LoginState.AWAITING_OTP)

        token = await self._acquire_otp()
        if not token:
            raise LoginAborted("OTP token not retrieved from webhook. Aborting.")
        logger.info("OTP token received")
        debug_detail(f"OTP token: {token}")
        self._advance(LoginState.OTP_FETCHED)

        if not await fill_first_match(page, OTP_LOCATORS, token):
            raise LoginAborted("OTP field not found")
        self._advance(LoginState.OTP_FILLED)

        await submit(page, OTP_SUBMIT_LOCATORS)
        self._advance(LoginState.OTP_SUBMITTED)

        logger.info("Waiting for redirect to %s...", self._config.redirect_prefix)
        final_location = await wait_for_destination(
            page, self._config.redirect_prefix, timings.destination_timeout_ms
        )
        logger.info("Final URL after login/OTP: %s", final_location)
        return final_location

    async def _acquire_otp(self) -> Optional[str]:
        if self._config.totp_secret:
            logger.info("Generating OTP from configured TOTP secret")
            return gen_totp(self._config.totp_secret)
        return await fetch_token_with_retry(
            self._config.otp_webhook_url,
            timeout=self._timings.otp_timeout_s,
            retry_delay=self._timings.otp_retry_delay_s,
            client=self._http_client,
        )


async def perform_login(
    config: AuthConfig,
    controller_factory: ControllerFactory = BrowserController,
    http_client: Optional[httpx.AsyncClient] = None,
) -> SessionOutcome:
    """Run one login flow with ``config`` and return its outcome."""
    flow = LoginFlow(config, controller_factory=controller_factory, http_client=http_client)
    return await flow.run()
