"""
Headless browser sessions and the pool that hands them out.

A :class:`Session` wraps one Chromium instance plus its default browsing
context. Pages are only ever obtained through the ``page()`` and
``isolated_page()`` context managers, which close what they opened on every
exit path, cancellation included.
"""
from __future__ import annotations

import asyncio
import itertools
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional, Set

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from ..settings import BrowserOptions

logger = logging.getLogger(__name__)


class BrowserSessionError(RuntimeError):
    """Raised when a browser session cannot be created."""


class Session:
    """One headless browser owned by a single logical task at a time."""

    def __init__(self, browser: Any, context: Any, options: BrowserOptions, number: int) -> None:
        self.browser = browser
        self.context = context
        self.options = options
        self.number = number
        self.closed = False
        self._crashed = False
        browser.on("disconnected", self._on_disconnected)

    def __repr__(self) -> str:
        return f"<Session #{self.number} healthy={self.healthy}>"

    def _on_disconnected(self, *_: Any) -> None:
        if not self.closed:
            logger.warning("[session] browser #%d disconnected", self.number)
        self._crashed = True

    @property
    def healthy(self) -> bool:
        return not self.closed and not self._crashed and self.browser.is_connected()

    async def _route_handler(self, route: Any) -> None:
        if route.request.resource_type in self.options.blocked_resource_types:
            await route.abort()
        else:
            await route.continue_()

    async def configure_context(self, context: Any) -> None:
        context.set_default_timeout(self.options.protocol_timeout * 1000)
        context.set_default_navigation_timeout(self.options.navigation_timeout * 1000)
        if self.options.blocked_resource_types:
            await context.route("**/*", self._route_handler)

    async def new_context(self) -> Any:
        context = await self.browser.new_context(
            user_agent=self.options.user_agent,
            viewport={
                "width": self.options.viewport_width,
                "height": self.options.viewport_height,
            },
            locale=self.options.locale,
        )
        await self.configure_context(context)
        return context

    @asynccontextmanager
    async def page(self) -> AsyncIterator[Any]:
        """Open a page in the session's default context."""

        page = await self.context.new_page()
        try:
            yield page
        finally:
            await _quietly(page.close(), "page")

    @asynccontextmanager
    async def isolated_page(self) -> AsyncIterator[Any]:
        """Open a page inside a fresh browsing context that is discarded afterwards."""

        context = await self.new_context()
        try:
            page = await context.new_page()
            yield page
        finally:
            await _quietly(context.close(), "context")

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await _quietly(self.context.close(), "context")
        await _quietly(self.browser.close(), "browser")


async def _quietly(closing: Any, what: str) -> None:
    try:
        await closing
    except PlaywrightError as exc:
        logger.debug("[session] closing %s failed: %s", what, exc)


class BrowserSessionPool:
    """Creates, recycles and disposes sessions under a fixed ceiling."""

    def __init__(
        self,
        options: BrowserOptions,
        max_sessions: int,
        *,
        driver_factory: Callable[[], Any] = async_playwright,
    ) -> None:
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")
        self.options = options
        self.max_sessions = max_sessions
        self._driver_factory = driver_factory
        self._driver_manager: Any = None
        self._driver: Any = None
        self._slots = asyncio.Semaphore(max_sessions)
        self._live: Set[Session] = set()
        self._counter = itertools.count(1)

    async def __aenter__(self) -> "BrowserSessionPool":
        self._driver_manager = self._driver_factory()
        self._driver = await self._driver_manager.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        for session in list(self._live):
            await self.dispose(session)
        if self._driver is not None:
            await self._driver.stop()
            self._driver = None

    @property
    def live_sessions(self) -> int:
        return len(self._live)

    async def acquire(self) -> Session:
        if self._driver is None:
            raise BrowserSessionError("Browser pool is not started")
        await self._slots.acquire()
        try:
            session = await self._launch()
        except Exception as exc:
            self._slots.release()
            raise BrowserSessionError(f"Failed to launch browser: {exc}") from exc
        self._live.add(session)
        logger.debug("[session] launched #%d (%d live)", session.number, len(self._live))
        return session

    async def _launch(self) -> Session:
        browser = await self._driver.chromium.launch(
            headless=self.options.headless,
            args=list(self.options.launch_args),
            timeout=self.options.protocol_timeout * 1000,
        )
        try:
            context = await browser.new_context(
                user_agent=self.options.user_agent,
                viewport={
                    "width": self.options.viewport_width,
                    "height": self.options.viewport_height,
                },
                locale=self.options.locale,
            )
            session = Session(browser, context, self.options, next(self._counter))
            await session.configure_context(context)
        except Exception:
            await _quietly(browser.close(), "browser")
            raise
        return session

    async def dispose(self, session: Session) -> None:
        if session not in self._live:
            return
        self._live.discard(session)
        try:
            await session.close()
        finally:
            self._slots.release()
        logger.debug("[session] disposed #%d (%d live)", session.number, len(self._live))

    async def recycle(self, session: Session) -> Optional[Session]:
        """Dispose ``session`` and launch a replacement; None when relaunching fails twice."""

        logger.info("[session] recycling browser #%d", session.number)
        await self.dispose(session)
        return await self.acquire_with_retry()

    async def acquire_with_retry(self) -> Optional[Session]:
        """Acquire a session, retrying once; None when both attempts fail."""

        for attempt in (1, 2):
            try:
                return await self.acquire()
            except BrowserSessionError as exc:
                logger.error("[session] launch attempt %d failed: %s", attempt, exc)
        return None
