"""The browser capability surface used by UI step handlers.

``UIDriver`` is what the handlers depend on. ``PlaywrightUIDriver`` implements
it over a Playwright ``Page``; tests substitute an in-memory driver.
"""

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, List, Optional, Sequence

import html2text
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from storyqa_agent.utils.exceptions import ElementNotFoundError, StepTimeoutError

POLL_INTERVAL = 0.25


class UIDriver(ABC):
    """Element interaction, navigation and page inspection.

    Element methods take one concrete locator, as returned by ``find``.
    Timeouts are in milliseconds.
    """

    @abstractmethod
    async def navigate(self, url: str, timeout_ms: int) -> None: ...

    @abstractmethod
    async def wait_for_page_ready(self, timeout_ms: int) -> None: ...

    @abstractmethod
    async def find(self, candidates: Sequence[str], timeout_ms: int, state: str = "visible") -> Optional[str]:
        """Return the first candidate in ``state`` ("visible" or "attached"), or None on timeout."""

    @abstractmethod
    async def is_present(self, locator: str) -> bool: ...

    @abstractmethod
    async def is_visible(self, locator: str) -> bool: ...

    @abstractmethod
    async def is_enabled(self, locator: str) -> bool: ...

    @abstractmethod
    async def is_selected(self, locator: str) -> bool: ...

    @abstractmethod
    async def click(self, locator: str, timeout_ms: int, button: str = "left", click_count: int = 1) -> None: ...

    @abstractmethod
    async def hover(self, locator: str, timeout_ms: int) -> None: ...

    @abstractmethod
    async def fill(self, locator: str, value: str, timeout_ms: int, clear_first: bool = True) -> None: ...

    @abstractmethod
    async def clear(self, locator: str, timeout_ms: int) -> None: ...

    @abstractmethod
    async def read_value(self, locator: str) -> str: ...

    @abstractmethod
    async def read_text(self, locator: str) -> str: ...

    @abstractmethod
    async def read_attribute(self, locator: str, name: str) -> Optional[str]: ...

    @abstractmethod
    async def select_option(self, locator: str, value: Optional[str] = None, label: Optional[str] = None) -> None: ...

    @abstractmethod
    async def set_checked(self, locator: str, checked: bool) -> None: ...

    @abstractmethod
    async def upload_files(self, locator: str, files: List[str]) -> None: ...

    @abstractmethod
    async def drag_and_drop(self, source: str, destination: str, timeout_ms: int) -> None: ...

    @abstractmethod
    async def switch_frame(self, locator: Optional[str]) -> None:
        """Scope later lookups to the frame at ``locator``; None returns to the main document."""

    @abstractmethod
    async def switch_window(self, index: Optional[int] = None) -> str:
        """Activate the window at ``index`` (latest when None) and return its URL."""

    @abstractmethod
    async def scroll(self, direction: str, distance: Optional[int] = None) -> None: ...

    @abstractmethod
    async def execute_script(self, script: str) -> Any: ...

    @abstractmethod
    async def screenshot(self, file_name: Optional[str] = None, full_page: bool = False) -> str:
        """Save a screenshot and return its path."""

    @abstractmethod
    async def page_url(self) -> str: ...

    @abstractmethod
    async def page_title(self) -> str: ...

    @abstractmethod
    async def page_text(self) -> str:
        """Visible text of the current page."""


class PlaywrightUIDriver(UIDriver):
    def __init__(self, page: Page, screenshot_dir: str = "./screenshots"):
        self.page = page
        self.screenshot_dir = screenshot_dir
        self._frame = None
        self._text_converter = html2text.HTML2Text()
        self._text_converter.ignore_links = True
        self._text_converter.ignore_images = True
        self._text_converter.body_width = 0

    def _scope(self):
        return self._frame if self._frame is not None else self.page

    def _locator(self, locator: str):
        return self._scope().locator(locator).first

    async def navigate(self, url: str, timeout_ms: int) -> None:
        logging.debug(f"Navigating to: {url}")
        try:
            await self.page.goto(url, timeout=timeout_ms, wait_until="domcontentloaded")
        except PlaywrightTimeoutError as e:
            raise StepTimeoutError(f"Navigation to {url} timed out after {timeout_ms}ms") from e
        self._frame = None
        await self.wait_for_page_ready(timeout_ms)

    async def wait_for_page_ready(self, timeout_ms: int) -> None:
        try:
            await self.page.wait_for_load_state("networkidle", timeout=timeout_ms)
        except PlaywrightTimeoutError:
            # Long-polling pages never go idle; DOM readiness is enough.
            logging.debug("networkidle not reached, continuing with domcontentloaded state")
            await self.page.wait_for_load_state("domcontentloaded", timeout=timeout_ms)

    async def find(self, candidates: Sequence[str], timeout_ms: int, state: str = "visible") -> Optional[str]:
        deadline = time.monotonic() + timeout_ms / 1000
        invalid = set()
        while True:
            for candidate in candidates:
                if candidate in invalid:
                    continue
                try:
                    if state == "attached":
                        found = await self._scope().locator(candidate).count() > 0
                    else:
                        found = await self._locator(candidate).is_visible()
                except PlaywrightError as e:
                    logging.debug(f"Skipping locator '{candidate}': {e}")
                    invalid.add(candidate)
                    continue
                if found:
                    logging.debug(f"Located element with '{candidate}'")
                    return candidate
            if time.monotonic() >= deadline:
                return None
            await asyncio.sleep(POLL_INTERVAL)

    async def is_present(self, locator: str) -> bool:
        try:
            return await self._scope().locator(locator).count() > 0
        except PlaywrightError:
            return False

    async def is_visible(self, locator: str) -> bool:
        try:
            return await self._locator(locator).is_visible()
        except PlaywrightError:
            return False

    async def is_enabled(self, locator: str) -> bool:
        return await self._locator(locator).is_enabled()

    async def is_selected(self, locator: str) -> bool:
        element = self._locator(locator)
        try:
            return await element.is_checked()
        except PlaywrightError:
            return (await element.get_attribute("aria-selected")) == "true"

    async def click(self, locator: str, timeout_ms: int, button: str = "left", click_count: int = 1) -> None:
        await self._locator(locator).click(button=button, click_count=click_count, timeout=timeout_ms)

    async def hover(self, locator: str, timeout_ms: int) -> None:
        await self._locator(locator).hover(timeout=timeout_ms)

    async def fill(self, locator: str, value: str, timeout_ms: int, clear_first: bool = True) -> None:
        element = self._locator(locator)
        if clear_first:
            await element.fill(value, timeout=timeout_ms)
        else:
            await element.press_sequentially(value, timeout=timeout_ms)

    async def clear(self, locator: str, timeout_ms: int) -> None:
        await self._locator(locator).clear(timeout=timeout_ms)

    async def read_value(self, locator: str) -> str:
        return await self._locator(locator).input_value()

    async def read_text(self, locator: str) -> str:
        return (await self._locator(locator).inner_text()).strip()

    async def read_attribute(self, locator: str, name: str) -> Optional[str]:
        return await self._locator(locator).get_attribute(name)

    async def select_option(self, locator: str, value: Optional[str] = None, label: Optional[str] = None) -> None:
        element = self._locator(locator)
        if label is not None:
            await element.select_option(label=label)
        else:
            await element.select_option(value=value)

    async def set_checked(self, locator: str, checked: bool) -> None:
        await self._locator(locator).set_checked(checked)

    async def upload_files(self, locator: str, files: List[str]) -> None:
        missing = [f for f in files if not os.path.exists(f)]
        if missing:
            raise FileNotFoundError(f"Upload file(s) not found: {missing}")
        await self._locator(locator).set_input_files(files)

    async def drag_and_drop(self, source: str, destination: str, timeout_ms: int) -> None:
        await self._locator(source).drag_to(self._locator(destination), timeout=timeout_ms)

    async def switch_frame(self, locator: Optional[str]) -> None:
        if not locator or locator.lower() in ("main", "default", "parent"):
            self._frame = None
            return
        if await self.page.locator(locator).count() == 0:
            raise ElementNotFoundError(f"Frame not found: {locator}")
        self._frame = self.page.frame_locator(locator).first

    async def switch_window(self, index: Optional[int] = None) -> str:
        pages = self.page.context.pages
        logging.debug(f"page number: {len(pages)}")
        if index is None:
            index = len(pages) - 1
        if index < 0 or index >= len(pages):
            raise ElementNotFoundError(f"Window index {index} out of range ({len(pages)} open)")
        self.page = pages[index]
        self._frame = None
        await self.page.bring_to_front()
        return self.page.url

    async def scroll(self, direction: str, distance: Optional[int] = None) -> None:
        if direction == "top":
            await self.page.evaluate("window.scrollTo(0, 0)")
        elif direction == "bottom":
            await self.page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
        else:
            if not distance:
                distance = int(await self.page.evaluate("window.innerHeight") / 2)
            delta = -distance if direction == "up" else distance
            await self.page.evaluate(f"window.scrollBy(0, {delta})")

    async def execute_script(self, script: str) -> Any:
        return await self.page.evaluate(script)

    async def screenshot(self, file_name: Optional[str] = None, full_page: bool = False) -> str:
        os.makedirs(self.screenshot_dir, exist_ok=True)
        if not file_name:
            file_name = f"screenshot_{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}.png"
        if not file_name.lower().endswith(".png"):
            file_name += ".png"
        path = os.path.join(self.screenshot_dir, file_name)
        await self.page.screenshot(path=path, full_page=full_page, timeout=30000)
        return path

    async def page_url(self) -> str:
        return self.page.url

    async def page_title(self) -> str:
        return await self.page.title()

    async def page_text(self) -> str:
        return self._text_converter.handle(await self.page.content())
