from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Optional
from urllib.parse import urlparse

import pyotp

from ..errors import InvalidCredentialsError, InvalidTokenError, MissingOtpSecretError, ScreenActionError, SessionError
from ..models import Cookie, LoginResult, Token, mask_secret
from ..util.dates import unix_to_datetime
from .selectors import LoginSelectors
from .session import PageSession

if TYPE_CHECKING:
    from .resolver import Completion


logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "access_token"
# The site also stores "access_expires_at", but it holds the current time rather than the expiry.
EXPIRES_AT_KEY = "app_expires_at"

SUSPICIOUS_VALIDITY = timedelta(seconds=60)

CONSENT_DISMISS_POLLS = 10
CONSENT_DISMISS_STEP = 0.2


class Screen:
    """
    One recognizable state of the login flow and the single action that advances past it.

    - `matches()` must not change the page. Transient browser errors count as "no match".
    - `act()` performs exactly one transition and raises a typed error on failure.
    - `wait_for_response`: the page must move on before any predicate is evaluated again.
    """

    name: str = "screen"
    wait_for_response: bool = False

    def __init__(self, *, selectors: Optional[LoginSelectors] = None, log: Optional[logging.Logger] = None) -> None:
        self.selectors = selectors or LoginSelectors()
        self.log = log or logger

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"

    async def matches(self, session: PageSession) -> bool:
        try:
            return await self._matches(session)
        except SessionError as e:
            self.log.info("%s: match check failed, treating as no match. (%s)", self.name, e)
            return False

    async def _matches(self, session: PageSession) -> bool:
        raise NotImplementedError

    async def act(self, session: PageSession) -> None:
        raise NotImplementedError

    async def check_rejected(self, session: PageSession) -> None:
        """
        Called while the page still matches after `act()`. Raise if the page shows that the
        submitted value was refused; return otherwise.
        """
        return None


class InitialLoadScreen(Screen):
    name = "initial load"

    def __init__(self, url: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.url = url

    async def _matches(self, session: PageSession) -> bool:
        loc = await session.location()
        return loc in ("", "about:blank")

    async def act(self, session: PageSession) -> None:
        await session.navigate(self.url)
        self.log.info("Page %r loaded.", self.url)


class ConsentScreen(Screen):
    name = "cookie consent"

    def __init__(self, *, accept: bool = False, **kwargs) -> None:
        super().__init__(**kwargs)
        self.accept = accept

    async def _matches(self, session: PageSession) -> bool:
        return await session.is_visible(self.selectors.consent_banner)

    async def act(self, session: PageSession) -> None:
        if self.accept:
            await session.click(self.selectors.consent_accept)
        else:
            await session.click(self.selectors.consent_reject)
        self.log.info("Cookie banner %s.", "accepted" if self.accept else "rejected")

        # Wait for the banner to fade out.
        for _ in range(CONSENT_DISMISS_POLLS):
            if not await session.is_visible(self.selectors.consent_banner):
                return
            await asyncio.sleep(CONSENT_DISMISS_STEP)
        self.log.debug("Cookie banner still visible after dismissal.")


class CredentialsScreen(Screen):
    name = "credentials"
    wait_for_response = True

    def __init__(self, *, username: str, password: str, settle_timeout: float = 10.0, **kwargs) -> None:
        super().__init__(**kwargs)
        self.username = username
        self.password = password
        self.settle_timeout = settle_timeout

    async def _matches(self, session: PageSession) -> bool:
        if await session.is_visible(self.selectors.username_input):
            return True
        return await session.is_visible(self.selectors.password_input)

    async def act(self, session: PageSession) -> None:
        if await session.is_visible(self.selectors.username_input):
            await session.fill(self.selectors.username_input, self.username)

        # Some logins are two-step (username -> next -> password).
        if not await session.is_visible(self.selectors.password_input):
            await session.click(self.selectors.credentials_submit)
            await session.wait_for_load(timeout=self.settle_timeout)
            if not await session.is_visible(self.selectors.password_input):
                await self.check_rejected(session)
                raise ScreenActionError(self.name, "password field did not appear after submitting the username")

        await session.fill(self.selectors.password_input, self.password)
        await session.click(self.selectors.credentials_submit)
        self.log.info("Credentials submitted.")

    async def check_rejected(self, session: PageSession) -> None:
        try:
            text = (await session.body_text()).lower()
        except SessionError:
            return
        if any(t in text for t in self.selectors.account_locked_texts):
            raise InvalidCredentialsError(
                self.name,
                "the site reports the account is locked or out of attempts; check it in a regular browser before retrying",
            )
        if any(t in text for t in self.selectors.invalid_credentials_texts):
            raise InvalidCredentialsError(self.name, "the site rejected the username/password")


class OtpScreen(Screen):
    name = "one-time code"
    wait_for_response = True

    def __init__(self, *, secret: str = "", **kwargs) -> None:
        super().__init__(**kwargs)
        self.secret = (secret or "").replace(" ", "")

    async def _matches(self, session: PageSession) -> bool:
        return await session.is_visible(self.selectors.otp_input)

    def current_code(self) -> str:
        if not self.secret:
            raise MissingOtpSecretError(self.name)
        try:
            return pyotp.TOTP(self.secret, interval=30).now()
        except ValueError as e:
            raise ScreenActionError(self.name, f"invalid OTP secret: {e}") from e

    async def act(self, session: PageSession) -> None:
        code = self.current_code()
        await session.fill(self.selectors.otp_input, code)
        await session.click(self.selectors.otp_submit)
        self.log.info("One-time code submitted.")

    async def check_rejected(self, session: PageSession) -> None:
        try:
            text = (await session.body_text()).lower()
        except SessionError:
            return
        if "code incorrect" in text or "code invalide" in text or "invalid code" in text:
            raise ScreenActionError(self.name, "the site rejected the one-time code (check the OTP secret and the clock)")


class TrustedDeviceScreen(Screen):
    name = "trusted device"
    wait_for_response = True

    async def _matches(self, session: PageSession) -> bool:
        return await session.is_visible(self.selectors.trusted_device_prompt)

    async def act(self, session: PageSession) -> None:
        await session.click(self.selectors.trusted_device_confirm)
        self.log.info("Trusted device confirmed.")


class FinalScreen(Screen):
    """
    Terminal screen: reads the token from the page's session storage, collects the cookies and
    publishes the LoginResult. It is the only writer of the result.
    """

    name = "final"

    def __init__(
        self,
        completion: "Completion",
        *,
        landing_path: str = "/home",
        storage_timeout: float = 30.0,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.completion = completion
        self.landing_path = landing_path
        self.storage_timeout = storage_timeout

    async def _matches(self, session: PageSession) -> bool:
        loc = await session.location()
        return urlparse(loc).path == self.landing_path

    async def read_token(self, session: PageSession) -> Token:
        self.log.info("Fetching token from browser...")
        access_token = await session.poll_session_storage(ACCESS_TOKEN_KEY, timeout=self.storage_timeout)
        expires_at = await session.poll_session_storage(EXPIRES_AT_KEY, timeout=self.storage_timeout)

        masked = mask_secret(access_token)
        try:
            expiry = unix_to_datetime(expires_at)
        except ValueError as e:
            raise InvalidTokenError(masked, f"cannot parse {EXPIRES_AT_KEY}={expires_at!r}") from e

        token = Token(access_token=access_token, expiry=expiry)
        if not token.access_token:
            raise InvalidTokenError(masked, "empty access token")
        if not token.valid():
            raise InvalidTokenError(masked, f"expired at {token.expiry.isoformat()}")

        remaining = token.remaining()
        if remaining < SUSPICIOUS_VALIDITY:
            self.log.warning(
                "Token expires in %.0fs; %s may not hold the real expiry.", remaining.total_seconds(), EXPIRES_AT_KEY
            )
        return token

    async def act(self, session: PageSession) -> None:
        token = await self.read_token(session)

        self.log.info("Fetching cookies from browser...")
        cookies = tuple(Cookie.from_browser(c) for c in await session.cookies())
        self.log.info("%d cookies fetched from %r.", len(cookies), await session.location())

        if not self.completion.succeed(LoginResult(token=token, cookies=cookies)):
            self.log.warning("Login result was already settled; discarding the new one.")
