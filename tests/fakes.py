from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Iterable, Optional

from digiposte_login.errors import SessionError
from digiposte_login.models import Cookie
from digiposte_login.portal.screens import ACCESS_TOKEN_KEY, EXPIRES_AT_KEY
from digiposte_login.portal.selectors import LoginSelectors
from digiposte_login.portal.session import PageSession


SEL = LoginSelectors()
BASE_URL = "https://secure.digiposte.fr/"
HOME_URL = "https://secure.digiposte.fr/home"
FAKE_TOKEN = "eyJhbGciOiJSUzI1NiJ9.fake-payload.fake-signature"


class FakePageSession(PageSession):
    """
    Scripted page: tests describe what is visible and what clicks/navigations change.
    """

    def __init__(self) -> None:
        self.url = ""
        self.visible: set[str] = set()
        self.storage: dict[str, str] = {}
        self.browser_cookies: list[dict[str, Any]] = []
        self.body = ""
        self.on_navigate: Optional[Callable[["FakePageSession"], None]] = None
        self.on_click: dict[str, Callable[["FakePageSession"], None]] = {}
        self.screenshot_bytes = b""
        self.screenshot_error: Optional[BaseException] = None

        self.started = False
        self.closed = False
        self.close_grace: Optional[float] = None
        self.navigations: list[str] = []
        self.filled: dict[str, str] = {}
        self.clicks: list[str] = []
        self.added_cookies: list[Cookie] = []

    async def start(self) -> None:
        self.started = True

    async def navigate(self, url: str) -> None:
        self.navigations.append(url)
        self.url = url
        if self.on_navigate is not None:
            self.on_navigate(self)

    async def location(self) -> str:
        return self.url

    async def poll_session_storage(self, key: str, *, timeout: float) -> str:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not self.storage.get(key):
            if loop.time() >= deadline:
                raise SessionError(f"read sessionStorage[{key!r}]: timed out")
            await asyncio.sleep(0.01)
        return self.storage[key]

    async def cookies(self) -> list[dict[str, Any]]:
        return [dict(c) for c in self.browser_cookies]

    async def add_cookies(self, cookies: Iterable[Cookie]) -> None:
        self.added_cookies.extend(cookies)

    async def screenshot(self) -> bytes:
        if self.screenshot_error is not None:
            raise self.screenshot_error
        return self.screenshot_bytes

    async def is_visible(self, selector: str) -> bool:
        return selector in self.visible

    async def fill(self, selector: str, value: str) -> None:
        if selector not in self.visible:
            raise SessionError(f"fill {selector!r}: no visible element")
        self.filled[selector] = value

    async def click(self, selector: str) -> None:
        if selector not in self.visible:
            raise SessionError(f"click {selector!r}: no visible element")
        self.clicks.append(selector)
        cb = self.on_click.get(selector)
        if cb is not None:
            cb(self)

    async def body_text(self) -> str:
        return self.body

    async def wait_for_load(self, *, timeout: float) -> None:
        await asyncio.sleep(0)

    async def close(self, *, grace_period: float) -> None:
        self.closed = True
        self.close_grace = grace_period


def show_consent(s: FakePageSession) -> None:
    s.visible |= {SEL.consent_banner, SEL.consent_accept, SEL.consent_reject}


def hide_consent(s: FakePageSession) -> None:
    s.visible -= {SEL.consent_banner, SEL.consent_accept, SEL.consent_reject}


def show_login_form(s: FakePageSession) -> None:
    s.visible |= {SEL.username_input, SEL.password_input, SEL.credentials_submit}


def show_otp_form(s: FakePageSession) -> None:
    s.visible = {SEL.otp_input, SEL.otp_submit}


def show_trusted_device(s: FakePageSession) -> None:
    s.visible = {SEL.trusted_device_prompt, SEL.trusted_device_confirm}


def land_home(s: FakePageSession, *, expires_in: float = 3600.0) -> None:
    s.url = HOME_URL
    s.visible = set()
    s.storage[ACCESS_TOKEN_KEY] = FAKE_TOKEN
    s.storage[EXPIRES_AT_KEY] = f"{time.time() + expires_in:.3f}"
    s.browser_cookies = [
        {
            "name": "SESSION",
            "value": "s3ss10n",
            "domain": "secure.digiposte.fr",
            "path": "/",
            "expires": -1,
            "httpOnly": True,
            "secure": True,
            "sameSite": "Lax",
        },
        {
            "name": "XSRF-TOKEN",
            "value": "xsrf",
            "domain": ".digiposte.fr",
            "path": "/",
            "expires": time.time() + 3600,
            "httpOnly": False,
            "secure": True,
            "sameSite": "Strict",
        },
    ]


def scripted_login_page() -> FakePageSession:
    """
    consent banner + login form on load; rejecting consent hides the banner; submitting lands on /home.
    """
    s = FakePageSession()

    def _loaded(page: FakePageSession) -> None:
        show_consent(page)
        show_login_form(page)

    s.on_navigate = _loaded
    s.on_click[SEL.consent_reject] = hide_consent
    s.on_click[SEL.consent_accept] = hide_consent
    s.on_click[SEL.credentials_submit] = land_home
    return s


def stuck_page(url: str = "https://secure.digiposte.fr/loading") -> FakePageSession:
    """A page no screen recognizes."""
    s = FakePageSession()

    def _loaded(page: FakePageSession) -> None:
        page.url = url

    s.on_navigate = _loaded
    return s
