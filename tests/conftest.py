from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional, Set

import httpx
import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from kite_auth.config import AuthConfig, FlowTimings

DESTINATION = "https://hooks.example.com"
LOGIN_URL = "https://login.example.com/connect/login"
OTP_WEBHOOK = "https://hooks.example.com/webhook/get-totp"


class FakeElement:
    def __init__(self, visible: bool = True, error: Optional[str] = None):
        self.visible = visible
        self.error = error
        self.value: Optional[str] = None


class FakeLocator:
    def __init__(self, page: "FakePage", selector: str):
        self._page = page
        self._selector = selector

    @property
    def first(self) -> "FakeLocator":
        return self

    def _element(self) -> FakeElement:
        element = self._page.elements[self._selector]
        if element.error:
            raise PlaywrightError(element.error)
        return element

    async def is_visible(self, timeout: Optional[float] = None) -> bool:
        self._page.probed.append(self._selector)
        self._page.visibility_timeouts.append(timeout)
        element = self._page.elements.get(self._selector)
        return bool(element and element.visible)

    async def fill(self, value: str) -> None:
        self._element().value = value
        self._page.actions.append(("fill", self._selector, value))

    async def click(self) -> None:
        self._element()
        self._page.actions.append(("click", self._selector))
        self._page.on_submit()


class FakeKeyboard:
    def __init__(self, page: "FakePage"):
        self._page = page

    async def press(self, key: str) -> None:
        self._page.actions.append(("press", key))
        if key == "Enter":
            self._page.on_submit()


class FakePage:
    """In-memory stand-in for a Playwright page.

    Elements are keyed by the exact selector string. The second submission
    (login, then OTP) moves the page to ``redirect_to`` when one is set.
    """

    def __init__(
        self,
        elements: Optional[Dict[str, FakeElement]] = None,
        redirect_to: Optional[str] = None,
        invalid_selectors: Optional[Set[str]] = None,
        goto_error: Optional[Exception] = None,
        url_delay_s: float = 0,
    ):
        self.elements = elements if elements is not None else {}
        self.redirect_to = redirect_to
        self.invalid_selectors = invalid_selectors or set()
        self.goto_error = goto_error
        self.url_delay_s = url_delay_s
        self.url = "about:blank"
        self.keyboard = FakeKeyboard(self)
        self.probed: List[str] = []
        self.actions: List[tuple] = []
        self.load_states: List[str] = []
        self.load_state_timeouts: List[Optional[float]] = []
        self.visibility_timeouts: List[Optional[float]] = []
        self.submits = 0

    def locator(self, selector: str) -> FakeLocator:
        if selector in self.invalid_selectors:
            raise PlaywrightError(f"Unexpected token in selector {selector!r}")
        return FakeLocator(self, selector)

    def on_submit(self) -> None:
        self.submits += 1
        if self.redirect_to and self.submits >= 2:
            self.url = self.redirect_to

    def filled(self, selector: str) -> Optional[str]:
        element = self.elements.get(selector)
        return element.value if element else None

    async def goto(self, url: str, wait_until: Optional[str] = None, timeout: Optional[float] = None) -> None:
        self.actions.append(("goto", url, wait_until))
        if self.goto_error:
            raise self.goto_error
        self.url = url

    async def wait_for_url(self, predicate: Callable[[str], bool], timeout: float = 30000) -> None:
        await asyncio.sleep(self.url_delay_s)
        if predicate(self.url):
            return
        await asyncio.sleep(timeout / 1000)
        raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded.")

    async def wait_for_load_state(self, state: str = "load", timeout: Optional[float] = None) -> None:
        self.load_states.append(state)
        self.load_state_timeouts.append(timeout)


class FakeContext:
    def __init__(self, page: FakePage):
        self._page = page

    async def new_page(self) -> FakePage:
        return self._page


class FakeController:
    """Records how often the browser is acquired and released."""

    def __init__(
        self,
        page: FakePage,
        enter_error: Optional[Exception] = None,
        on_close: Optional[Callable[[], None]] = None,
    ):
        self.context = FakeContext(page)
        self.enter_error = enter_error
        self.on_close = on_close
        self.configs: list = []
        self.enter_count = 0
        self.close_count = 0

    def factory(self, config) -> "FakeController":
        self.configs.append(config)
        return self

    async def __aenter__(self) -> "FakeController":
        self.enter_count += 1
        if self.enter_error:
            raise self.enter_error
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close_count += 1
        if self.on_close:
            self.on_close()


def login_elements(**overrides: Optional[FakeElement]) -> Dict[str, FakeElement]:
    elements = {
        "#userid": FakeElement(),
        "#password": FakeElement(),
        'button[type="submit"]': FakeElement(),
        'input[name="otp"]': FakeElement(),
    }
    for selector, element in overrides.items():
        if element is None:
            elements.pop(selector, None)
        else:
            elements[selector] = element
    return elements


def mock_transport(*replies) -> tuple:
    """Build an httpx transport that serves ``replies`` in order.

    A dict or list is served as a 200 JSON body, an ``httpx.Response`` as is,
    and an exception class is raised with the request attached.
    """
    queue = list(replies)
    calls: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        reply = queue.pop(0)
        if isinstance(reply, type) and issubclass(reply, httpx.RequestError):
            raise reply("simulated failure", request=request)
        if isinstance(reply, httpx.Response):
            return reply
        return httpx.Response(200, json=reply)

    return httpx.MockTransport(handler), calls


FAST_TIMINGS = FlowTimings(
    post_submit_delay_s=0,
    otp_retry_delay_s=0,
    otp_timeout_s=1,
    destination_timeout_ms=50,
    navigation_timeout_ms=1000,
)


@pytest.fixture
def make_config() -> Callable[..., AuthConfig]:
    def _make(**overrides) -> AuthConfig:
        values = dict(
            user_id="AB1234",
            password="s3cret-pass",
            login_url=LOGIN_URL,
            otp_webhook_url=OTP_WEBHOOK,
            redirect_prefix=DESTINATION,
            headless=True,
            timings=FAST_TIMINGS,
        )
        values.update(overrides)
        return AuthConfig(**values)

    return _make
