"""Playwright browser lifecycle for a single login run."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from playwright.async_api import async_playwright

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Playwright
else:
    Browser = BrowserContext = Playwright = Any

from kite_auth.log import logger


@dataclass
class BrowserConfig:
    """Configuration for launching a Playwright browser session."""

    name: str = "chromium"
    channel: Optional[str] = None
    headed: bool = False
    timeout_ms: int = 60000


class BrowserLaunchError(RuntimeError):
    """Raised when Playwright cannot launch the requested browser."""


class BrowserController:
    """Async context manager that owns the Playwright lifecycle.

    Everything acquired in ``__aenter__`` is released on exit, and a launch that
    fails part-way still stops the Playwright driver before the error propagates.
    """

    def __init__(self, config: BrowserConfig):
        self._config = config
        self._playwright_cm = async_playwright()
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    async def __aenter__(self) -> "BrowserController":
        self._playwright = await self._playwright_cm.__aenter__()
        try:
            await self._launch(self._resolve_browser_type(), not self._config.headed)
            if not self._context:
                raise BrowserLaunchError("Failed to create Playwright context")
        except BaseException as exc:
            await self._release(type(exc), exc, exc.__traceback__)
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self._release(exc_type, exc, tb)

    @property
    def context(self) -> BrowserContext:
        assert self._context is not None, "BrowserContext not available"
        return self._context

    async def _release(self, exc_type, exc, tb) -> None:
        try:
            if self._context:
                await self._context.close()
            if self._browser:
                await self._browser.close()
        finally:
            self._context = None
            self._browser = None
            await self._playwright_cm.__aexit__(exc_type, exc, tb)

    def _resolve_browser_type(self):
        assert self._playwright is not None
        name = (self._config.name or "chromium").lower()
        if name == "webkit":
            return self._playwright.webkit
        if name == "firefox":
            return self._playwright.firefox
        return self._playwright.chromium

    async def _launch(self, browser_type, launch_headless: bool) -> None:
        launch_kwargs = {"headless": launch_headless, "timeout": self._config.timeout_ms}
        channel_requested = False
        if self._config.channel and self._config.name == "chromium":
            launch_kwargs["channel"] = self._config.channel
            channel_requested = True

        try:
            self._browser = await browser_type.launch(**launch_kwargs)
        except Exception as exc:
            if channel_requested:
                logger.warning(
                    "Channel '%s' failed: %s, retrying without channel.", self._config.channel, exc
                )
                launch_kwargs.pop("channel", None)
                self._browser = await browser_type.launch(**launch_kwargs)
            else:
                raise

        self._context = await self._browser.new_context()
