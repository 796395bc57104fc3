"""Prioritized locator lookup for login form fields.

A field role (user id, password, OTP, submit button) is described by an ordered
tuple of selectors. ``resolve_and_act`` walks the tuple left to right, checks
each selector for an element that is visible right now and applies an action to
the first one that takes it. A miss is reported as ``False``; callers decide
whether that is fatal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page

from kite_auth.log import logger


@dataclass(frozen=True)
class SetValue:
    value: str = field(repr=False)

    async def apply(self, element: Locator) -> None:
        await element.fill(self.value)


@dataclass(frozen=True)
class Click:
    async def apply(self, element: Locator) -> None:
        await element.click()


Action = Union[SetValue, Click]


async def probe(page: Page, selector: str) -> Optional[Locator]:
    """Return the first currently visible element matching ``selector``, or None.

    Does not wait for the element to appear.
    """
    try:
        element = page.locator(selector).first
        if await element.is_visible():
            return element
    except PlaywrightError as exc:
        logger.debug("Probe failed for %s: %s", selector, exc)
    return None


async def _act(element: Locator, action: Action, selector: str) -> bool:
    try:
        await action.apply(element)
    except PlaywrightError as exc:
        logger.debug("Could not %s %s: %s", type(action).__name__, selector, exc)
        return False
    return True


async def resolve_and_act(page: Page, locators: Sequence[str], action: Action) -> bool:
    """Apply ``action`` to the first locator that resolves. First match wins."""
    for selector in locators:
        element = await probe(page, selector)
        if element is None:
            continue
        if await _act(element, action, selector):
            logger.debug("Resolved %s", selector)
            return True
    return False


async def fill_first_match(page: Page, locators: Sequence[str], value: str) -> bool:
    """Try to fill the first visible element matching any locator with value."""
    return await resolve_and_act(page, locators, SetValue(str(value)))


async def click_first_match(page: Page, locators: Sequence[str]) -> bool:
    """Try to click the first visible element matching any locator."""
    return await resolve_and_act(page, locators, Click())


async def submit(page: Page, locators: Sequence[str]) -> bool:
    """Click a submit button, or press Enter if none resolves.

    Returns True if a button was clicked, False if Enter was pressed instead.
    """
    if await click_first_match(page, locators):
        return True
    logger.info("Submitting by pressing Enter...")
    await page.keyboard.press("Enter")
    return False
