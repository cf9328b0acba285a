import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

from playwright.async_api import Page

from storyqa_agent.browser.config import DEFAULT_CONFIG
from storyqa_agent.browser.driver import BrowserDriver


class BrowserSession:
    """Isolated browser for a single scenario run.

    Cookies, storage and open windows are never shared between concurrent scenarios.
    """

    def __init__(self, browser_config: Optional[Dict[str, Any]] = None, owner: str = ""):
        self.session_id = str(uuid.uuid4())
        self.owner = owner
        self.browser_config = {**DEFAULT_CONFIG, **(browser_config or {})}
        self.driver: Optional[BrowserDriver] = None

    @property
    def is_open(self) -> bool:
        return self.driver is not None and not self.driver.closed

    async def start(self) -> "BrowserSession":
        if self.driver is not None:
            raise RuntimeError(f"Browser session {self.session_id} was already started")
        self.driver = await BrowserDriver.launch(self.browser_config)
        logging.debug(f"Browser session {self.session_id} started for {self.owner or 'health check'}")
        return self

    def get_page(self) -> Page:
        if not self.is_open:
            raise RuntimeError(f"Browser session {self.session_id} is not open")
        return self.driver.page

    async def close(self):
        if self.is_open:
            await self.driver.close()
            logging.debug(f"Browser session {self.session_id} closed")

    async def __aenter__(self):
        return await self.start()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class BrowserSessionManager:
    """Tracks the sessions of in-flight scenario runs so they can be closed on shutdown."""

    def __init__(self):
        self.sessions: Dict[str, BrowserSession] = {}

    def active_count(self) -> int:
        return len(self.sessions)

    async def create_session(self, browser_config: Dict[str, Any], owner: str = "") -> BrowserSession:
        session = await BrowserSession(browser_config, owner=owner).start()
        self.sessions[session.session_id] = session
        logging.info(f"Opened browser session {session.session_id} for scenario {owner}")
        return session

    async def close_session(self, session_id: str):
        session = self.sessions.pop(session_id, None)
        if session is not None:
            await session.close()

    async def close_all_sessions(self):
        sessions, self.sessions = list(self.sessions.values()), {}
        results = await asyncio.gather(*(s.close() for s in sessions), return_exceptions=True)
        for session, outcome in zip(sessions, results):
            if isinstance(outcome, Exception):
                logging.warning(f"Failed to close browser session {session.session_id}: {outcome}")
        if sessions:
            logging.info(f"Closed {len(sessions)} browser session(s)")
