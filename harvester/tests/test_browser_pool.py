from __future__ import annotations

import asyncio
from typing import Any

import pytest

from harvester.resolver.browser_pool import BrowserSessionError, BrowserSessionPool
from harvester.settings import BrowserOptions


class FakeRoute:
    def __init__(self, resource_type: str) -> None:
        self.request = type("Request", (), {"resource_type": resource_type})()
        self.result: str | None = None

    async def abort(self) -> None:
        self.result = "aborted"

    async def continue_(self) -> None:
        self.result = "continued"


class FakeContextPage:
    def __init__(self) -> None:
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class FakeContext:
    def __init__(self) -> None:
        self.closed = False
        self.pages: list[FakeContextPage] = []
        self.route_handler = None
        self.timeouts: dict[str, float] = {}

    def set_default_timeout(self, timeout: float) -> None:
        self.timeouts["default"] = timeout

    def set_default_navigation_timeout(self, timeout: float) -> None:
        self.timeouts["navigation"] = timeout

    async def route(self, pattern: str, handler) -> None:
        self.route_handler = handler

    async def new_page(self) -> FakeContextPage:
        page = FakeContextPage()
        self.pages.append(page)
        return page

    async def close(self) -> None:
        self.closed = True


class FakeBrowser:
    def __init__(self) -> None:
        self.connected = True
        self.closed = False
        self.contexts: list[FakeContext] = []
        self.handlers: dict[str, Any] = {}

    def on(self, event: str, handler) -> None:
        self.handlers[event] = handler

    def is_connected(self) -> bool:
        return self.connected

    async def new_context(self, **_: Any) -> FakeContext:
        context = FakeContext()
        self.contexts.append(context)
        return context

    async def close(self) -> None:
        self.closed = True
        self.connected = False

    def crash(self) -> None:
        self.connected = False
        self.handlers["disconnected"](self)


class FakeChromium:
    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.launched: list[FakeBrowser] = []
        self.launch_kwargs: list[dict[str, Any]] = []

    async def launch(self, **kwargs: Any) -> FakeBrowser:
        self.launch_kwargs.append(kwargs)
        if self.failures:
            self.failures -= 1
            raise RuntimeError("Failed to launch chromium")
        browser = FakeBrowser()
        self.launched.append(browser)
        return browser


class FakeDriver:
    def __init__(self, failures: int = 0) -> None:
        self.chromium = FakeChromium(failures)
        self.stopped = False

    async def start(self) -> "FakeDriver":
        return self

    async def stop(self) -> None:
        self.stopped = True


def _pool(driver: FakeDriver, max_sessions: int = 2) -> BrowserSessionPool:
    return BrowserSessionPool(BrowserOptions(), max_sessions, driver_factory=lambda: driver)


def test_pool_launches_configured_sessions_and_stops_driver() -> None:
    driver = FakeDriver()

    async def scenario():
        async with _pool(driver) as pool:
            session = await pool.acquire()
            live = pool.live_sessions
        return session, live

    session, live = asyncio.run(scenario())

    assert live == 1
    assert session.closed
    assert driver.stopped
    assert driver.chromium.launch_kwargs[0]["headless"] is True
    assert "--no-sandbox" in driver.chromium.launch_kwargs[0]["args"]
    context = driver.chromium.launched[0].contexts[0]
    assert context.timeouts == {"default": 60000.0, "navigation": 45000.0}
    assert context.closed


def test_pool_enforces_session_ceiling() -> None:
    driver = FakeDriver()

    async def scenario():
        async with _pool(driver, max_sessions=1) as pool:
            first = await pool.acquire()
            waiter = asyncio.ensure_future(pool.acquire())
            await asyncio.sleep(0.01)
            blocked = not waiter.done()
            await pool.dispose(first)
            second = await asyncio.wait_for(waiter, 1.0)
            return blocked, first, second, pool.live_sessions

    blocked, first, second, live = asyncio.run(scenario())

    assert blocked
    assert first.closed
    assert second.number == 2
    assert live == 1


def test_recycle_replaces_session() -> None:
    driver = FakeDriver()

    async def scenario():
        async with _pool(driver, max_sessions=1) as pool:
            first = await pool.acquire()
            second = await pool.recycle(first)
            return first, second, pool.live_sessions

    first, second, live = asyncio.run(scenario())

    assert first.closed
    assert driver.chromium.launched[0].closed
    assert second is not first
    assert live == 1


def test_recycle_gives_up_after_two_failed_launches() -> None:
    driver = FakeDriver()

    async def scenario():
        async with _pool(driver, max_sessions=1) as pool:
            first = await pool.acquire()
            driver.chromium.failures = 2
            replacement = await pool.recycle(first)
            live = pool.live_sessions
            retry = await asyncio.wait_for(pool.acquire(), 1.0)
            return first, replacement, live, retry

    first, replacement, live, retry = asyncio.run(scenario())

    assert first.closed
    assert replacement is None
    assert live == 0
    assert retry.number == 2
    assert len(driver.chromium.launch_kwargs) == 4


def test_launch_failure_releases_slot() -> None:
    driver = FakeDriver(failures=1)

    async def scenario():
        async with _pool(driver, max_sessions=1) as pool:
            with pytest.raises(BrowserSessionError):
                await pool.acquire()
            session = await asyncio.wait_for(pool.acquire(), 1.0)
            return session

    session = asyncio.run(scenario())

    assert session.number == 1


def test_acquire_with_retry_returns_none_after_two_failures() -> None:
    driver = FakeDriver(failures=2)

    async def scenario():
        async with _pool(driver) as pool:
            return await pool.acquire_with_retry(), pool.live_sessions

    session, live = asyncio.run(scenario())

    assert session is None
    assert live == 0
    assert len(driver.chromium.launch_kwargs) == 2


def test_acquire_before_start_fails() -> None:
    pool = _pool(FakeDriver())

    with pytest.raises(BrowserSessionError):
        asyncio.run(pool.acquire())


def test_route_handler_blocks_heavy_resources() -> None:
    driver = FakeDriver()

    async def scenario():
        async with _pool(driver) as pool:
            session = await pool.acquire()
            handler = session.context.route_handler
            image, document = FakeRoute("image"), FakeRoute("document")
            await handler(image)
            await handler(document)
            return image.result, document.result

    assert asyncio.run(scenario()) == ("aborted", "continued")


def test_disconnected_browser_is_unhealthy() -> None:
    driver = FakeDriver()

    async def scenario():
        async with _pool(driver) as pool:
            session = await pool.acquire()
            before = session.healthy
            driver.chromium.launched[0].crash()
            return before, session.healthy

    assert asyncio.run(scenario()) == (True, False)


def test_isolated_page_closes_its_context_on_error() -> None:
    driver = FakeDriver()

    async def scenario():
        async with _pool(driver) as pool:
            session = await pool.acquire()
            with pytest.raises(RuntimeError):
                async with session.isolated_page():
                    raise RuntimeError("player crashed")
            async with session.page() as page:
                pass
            return session, page

    session, page = asyncio.run(scenario())

    browser = driver.chromium.launched[0]
    assert len(browser.contexts) == 2
    assert browser.contexts[1].closed
    assert page.closed


def test_pool_rejects_zero_sessions() -> None:
    with pytest.raises(ValueError):
        BrowserSessionPool(BrowserOptions(), 0)
