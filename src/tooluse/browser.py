"""Headless browser session driven by the browser_action tool.

The Playwright implementation needs the ``browser`` extra
(``pip install tooluse[browser]`` and ``playwright install chromium``).
"""

import asyncio
import base64
from typing import List, Optional, Protocol, runtime_checkable

from .logger import get_logger
from .models import BrowserActionResult

log = get_logger("browser")

VIEWPORT = {"width": 900, "height": 600}
NAVIGATION_TIMEOUT_MS = 7000
SETTLE_SECONDS = 0.5


@runtime_checkable
class BrowserSession(Protocol):
    @property
    def is_open(self) -> bool: ...

    async def launch(self, url: str) -> BrowserActionResult: ...
    async def click(self, coordinate: str) -> BrowserActionResult: ...
    async def type(self, text: str) -> BrowserActionResult: ...
    async def scroll_down(self) -> BrowserActionResult: ...
    async def scroll_up(self) -> BrowserActionResult: ...
    async def close(self) -> BrowserActionResult: ...


def parse_coordinate(coordinate: str):
    """'x,y' -> (x, y) as ints. Raises ValueError."""
    parts = [p.strip() for p in coordinate.split(",")]
    if len(parts) != 2:
        raise ValueError(f"Invalid coordinate '{coordinate}', expected 'x,y'")
    return int(float(parts[0])), int(float(parts[1]))


class PlaywrightBrowserSession:
    """One Chromium page; console messages are captured between actions."""

    def __init__(self, headless: bool = True):
        self.headless = headless
        self._pw = None
        self._browser = None
        self._page = None
        self._console: List[str] = []
        self._mouse: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self._page is not None

    def _on_console(self, msg) -> None:
        self._console.append(f"[{msg.type}] {msg.text}")
        if len(self._console) > 200:
            self._console = self._console[-200:]

    async def _ensure_started(self) -> None:
        if self._page is not None:
            return
        from playwright.async_api import async_playwright

        self._pw = await async_playwright().start()
        self._browser = await self._pw.chromium.launch(
            headless=self.headless,
            args=["--disable-notifications"],
        )
        context = await self._browser.new_context(viewport=VIEWPORT)
        self._page = await context.new_page()
        self._page.on("console", self._on_console)
        log.info("browser started (headless=%s)", self.headless)

    async def _capture(self) -> BrowserActionResult:
        await asyncio.sleep(SETTLE_SECONDS)
        png = await self._page.screenshot(type="png")
        logs = "\n".join(self._console)
        self._console = []
        return BrowserActionResult(
            screenshot="data:image/png;base64," + base64.b64encode(png).decode("ascii"),
            logs=logs,
            current_url=self._page.url,
            current_mouse_position=self._mouse,
        )

    async def launch(self, url: str) -> BrowserActionResult:
        await self._ensure_started()
        try:
            await self._page.goto(url, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS)
        except Exception as e:
            # Slow pages still get a screenshot of whatever loaded
            log.warning("navigation to %s incomplete: %s", url, e)
            self._console.append(f"[navigation] {e}")
        return await self._capture()

    async def click(self, coordinate: str) -> BrowserActionResult:
        x, y = parse_coordinate(coordinate)
        await self._page.mouse.click(x, y)
        self._mouse = f"{x},{y}"
        return await self._capture()

    async def type(self, text: str) -> BrowserActionResult:
        await self._page.keyboard.type(text)
        return await self._capture()

    async def scroll_down(self) -> BrowserActionResult:
        await self._page.mouse.wheel(0, VIEWPORT["height"])
        return await self._capture()

    async def scroll_up(self) -> BrowserActionResult:
        await self._page.mouse.wheel(0, -VIEWPORT["height"])
        return await self._capture()

    async def close(self) -> BrowserActionResult:
        if self._browser is not None:
            await self._browser.close()
        if self._pw is not None:
            await self._pw.stop()
        self._pw = self._browser = self._page = None
        self._console = []
        self._mouse = None
        log.info("browser closed")
        return BrowserActionResult()
