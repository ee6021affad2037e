"""In-memory stand-ins for the Playwright objects the scrapers touch."""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError


class FakeRequest:
    def __init__(self, url: str) -> None:
        self.url = url


class FakeElement:
    def __init__(
        self,
        text: str = "",
        attrs: Optional[dict[str, str]] = None,
        children: Optional[dict[str, "FakeElement"]] = None,
        background: str = "",
        on_click: Optional[Callable[[], None]] = None,
        stall: bool = False,
    ) -> None:
        self.text = text
        self.attrs = attrs or {}
        self.children = children or {}
        self.background = background
        self.on_click = on_click
        self.stall = stall
        self.clicks = 0

    async def get_attribute(self, name: str) -> Optional[str]:
        if self.stall:
            await asyncio.Event().wait()
        return self.attrs.get(name)

    async def inner_text(self) -> str:
        return self.text

    async def text_content(self) -> str:
        return self.text

    async def query_selector(self, selector: str) -> Optional["FakeElement"]:
        return self.children.get(selector)

    async def click(self, **_: Any) -> None:
        self.clicks += 1
        if self.on_click is not None:
            self.on_click()


class FakeMouse:
    def __init__(self, page: "FakePage") -> None:
        self.page = page

    async def click(self, x: int, y: int) -> None:
        self.page.mouse_clicks.append((x, y))
        if self.page.on_mouse_click is not None:
            self.page.on_mouse_click(self.page)


class FakePage:
    def __init__(
        self,
        selectors: Optional[dict[str, list[FakeElement]]] = None,
        iframes: Optional[list[str]] = None,
        html: str = "",
        goto_error: Optional[str] = None,
        on_mouse_click: Optional[Callable[["FakePage"], None]] = None,
    ) -> None:
        self.selectors = selectors or {}
        self.iframes = iframes or []
        self.html = html
        self.goto_error = goto_error
        self.on_mouse_click = on_mouse_click
        self.mouse = FakeMouse(self)
        self.mouse_clicks: list[tuple[int, int]] = []
        self.visited: list[str] = []
        self.listeners: dict[str, list[Callable[[Any], None]]] = {}
        self.scrolls = 0
        self.closed = False

    @property
    def frames(self) -> list["FakePage"]:
        return [self]

    def on(self, event: str, handler: Callable[[Any], None]) -> None:
        self.listeners.setdefault(event, []).append(handler)

    def emit_request(self, url: str) -> None:
        for handler in self.listeners.get("request", []):
            handler(FakeRequest(url))

    async def goto(self, url: str, **_: Any) -> None:
        self.visited.append(url)
        if self.goto_error:
            raise PlaywrightError(self.goto_error)

    async def wait_for_selector(self, selector: str, timeout: float = 0) -> FakeElement:
        found = self.selectors.get(selector)
        if not found:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")
        return found[0]

    async def query_selector_all(self, selector: str) -> list[FakeElement]:
        return list(self.selectors.get(selector, []))

    async def query_selector(self, selector: str) -> Optional[FakeElement]:
        found = self.selectors.get(selector)
        return found[0] if found else None

    async def wait_for_timeout(self, timeout: float) -> None:
        await asyncio.sleep(0)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        if "scrollBy" in script:
            self.scrolls += 1
            return None
        if "getComputedStyle" in script:
            return arg.background
        return False

    async def eval_on_selector_all(self, selector: str, script: str) -> list[str]:
        return list(self.iframes)

    async def content(self) -> str:
        return self.html

    async def close(self) -> None:
        self.closed = True


class FakeSession:
    """Session double that hands out pages built by ``page_factory``."""

    def __init__(self, page_factory: Callable[[], FakePage], number: int = 1) -> None:
        self.page_factory = page_factory
        self.number = number
        self.healthy = True
        self.pages: list[FakePage] = []
        self.isolated: list[FakePage] = []

    @asynccontextmanager
    async def page(self) -> AsyncIterator[FakePage]:
        page = self.page_factory()
        self.pages.append(page)
        try:
            yield page
        finally:
            await page.close()

    @asynccontextmanager
    async def isolated_page(self) -> AsyncIterator[FakePage]:
        page = self.page_factory()
        self.isolated.append(page)
        try:
            yield page
        finally:
            await page.close()
