from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Optional

from playwright.async_api import Browser, BrowserContext, Error as PlaywrightError, Page, Playwright, async_playwright

from ..errors import SessionError
from ..models import Cookie
from .browser import BrowserProcess
from .options import LoginSettings


logger = logging.getLogger(__name__)


class PageSession:
    """
    The browser-tab operations the login screens need.

    Every operation raises `SessionError` on transport/protocol failure, except `location()`,
    which answers from local state and never blocks.
    """

    log: logging.Logger = logger

    async def start(self) -> None:
        raise NotImplementedError

    async def navigate(self, url: str) -> None:
        raise NotImplementedError

    async def location(self) -> str:
        raise NotImplementedError

    async def poll_session_storage(self, key: str, *, timeout: float) -> str:
        """Wait until `sessionStorage[key]` is non-empty and return it."""
        raise NotImplementedError

    async def cookies(self) -> list[dict[str, Any]]:
        raise NotImplementedError

    async def add_cookies(self, cookies: Iterable[Cookie]) -> None:
        raise NotImplementedError

    async def screenshot(self) -> bytes:
        raise NotImplementedError

    async def is_visible(self, selector: str) -> bool:
        raise NotImplementedError

    async def fill(self, selector: str, value: str) -> None:
        raise NotImplementedError

    async def click(self, selector: str) -> None:
        raise NotImplementedError

    async def body_text(self) -> str:
        raise NotImplementedError

    async def wait_for_load(self, *, timeout: float) -> None:
        raise NotImplementedError

    async def close(self, *, grace_period: float) -> None:
        raise NotImplementedError


class PlaywrightPageSession(PageSession):
    """
    Page session backed by a browser process we launch ourselves and drive over CDP with Playwright.
    """

    def __init__(self, settings: LoginSettings) -> None:
        self.settings = settings
        self.log = settings.logger.getChild("session")
        self._pw: Optional[Playwright] = None
        self._process: Optional[BrowserProcess] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise SessionError("page session not started")
        return self._page

    async def start(self) -> None:
        try:
            self._pw = await async_playwright().start()
            binary = self.settings.binary_path or self._pw.chromium.executable_path
            self._process = await BrowserProcess.launch(
                binary,
                headless=self.settings.headless,
                locale=self.settings.locale,
                log=self.log,
            )
            self._browser = await self._pw.chromium.connect_over_cdp(self._process.endpoint)
            self._context = await self._browser.new_context(locale=self.settings.locale, color_scheme="light")
            self._page = await self._context.new_page()
        except PlaywrightError as e:
            raise SessionError("start browser", e) from e

    async def navigate(self, url: str) -> None:
        try:
            await self.page.goto(url, wait_until="domcontentloaded")
        except PlaywrightError as e:
            raise SessionError(f"navigate to {url!r}", e) from e

    async def location(self) -> str:
        if self._page is None:
            return ""
        try:
            return self._page.url or ""
        except PlaywrightError:
            return ""

    async def poll_session_storage(self, key: str, *, timeout: float) -> str:
        try:
            handle = await self.page.wait_for_function(
                "(key) => window.sessionStorage.getItem(key)",
                arg=key,
                timeout=timeout * 1000,
            )
            value = await handle.json_value()
        except PlaywrightError as e:
            raise SessionError(f"read sessionStorage[{key!r}]", e) from e
        return "" if value is None else str(value)

    async def cookies(self) -> list[dict[str, Any]]:
        if self._context is None:
            raise SessionError("get cookies: page session not started")
        try:
            return [dict(c) for c in await self._context.cookies()]
        except PlaywrightError as e:
            raise SessionError("get cookies", e) from e

    async def add_cookies(self, cookies: Iterable[Cookie]) -> None:
        if self._context is None:
            raise SessionError("set cookies: page session not started")
        try:
            await self._context.add_cookies([c.to_browser() for c in cookies])
        except PlaywrightError as e:
            raise SessionError("set cookies", e) from e

    async def screenshot(self) -> bytes:
        try:
            return await self.page.screenshot(full_page=True, type="jpeg", quality=75)
        except PlaywrightError as e:
            raise SessionError("screenshot", e) from e

    async def _first_visible(self, selector: str):
        """
        Search every frame (login forms are often in iframes) and return the first visible match.
        """
        for frame in self.page.frames:
            loc = frame.locator(selector)
            try:
                n = min(await loc.count(), 25)
            except PlaywrightError:
                # Detached frames are common mid-navigation.
                continue
            for i in range(n):
                cand = loc.nth(i)
                try:
                    if await cand.is_visible():
                        return cand
                except PlaywrightError:
                    continue
        return None

    async def is_visible(self, selector: str) -> bool:
        try:
            return await self._first_visible(selector) is not None
        except PlaywrightError as e:
            raise SessionError(f"find {selector!r}", e) from e

    async def fill(self, selector: str, value: str) -> None:
        try:
            loc = await self._first_visible(selector)
            if loc is None:
                raise SessionError(f"fill {selector!r}: no visible element")
            await loc.fill(value)
        except PlaywrightError as e:
            raise SessionError(f"fill {selector!r}", e) from e

    async def click(self, selector: str) -> None:
        try:
            loc = await self._first_visible(selector)
            if loc is None:
                raise SessionError(f"click {selector!r}: no visible element")
            await loc.click()
        except PlaywrightError as e:
            raise SessionError(f"click {selector!r}", e) from e

    async def body_text(self) -> str:
        try:
            return await self.page.inner_text("body")
        except PlaywrightError as e:
            raise SessionError("read page text", e) from e

    async def wait_for_load(self, *, timeout: float) -> None:
        """
        Avoid `networkidle`: the site keeps background requests running.
        """
        try:
            await self.page.wait_for_load_state("domcontentloaded", timeout=timeout * 1000)
        except PlaywrightError:
            self.log.debug("Page did not reach domcontentloaded within %.1fs.", timeout, exc_info=True)
        await asyncio.sleep(0.5)

    async def _close_browser(self) -> None:
        if self._browser is None:
            return
        try:
            cdp = await self._browser.new_browser_cdp_session()
            await cdp.send("Browser.close")
        except PlaywrightError:
            # The connection drops as the browser exits; the process wait decides.
            self.log.debug("CDP Browser.close returned an error.", exc_info=True)

    async def close(self, *, grace_period: float) -> None:
        try:
            if self._process is not None:
                killed = await self._process.stop(grace_period=grace_period, graceful=self._close_browser)
                if killed:
                    self.log.warning("Browser was killed after %.1fs grace period.", grace_period)
                else:
                    self.log.info("Browser closed.")
        finally:
            if self._pw is not None:
                try:
                    await self._pw.stop()
                except PlaywrightError:
                    self.log.debug("Failed to stop Playwright.", exc_info=True)
            self._pw = None
            self._process = None
            self._browser = None
            self._context = None
            self._page = None
