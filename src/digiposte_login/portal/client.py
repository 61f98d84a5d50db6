from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from ..errors import (
    LoginCancelledError,
    LoginError,
    LoginTimeoutError,
    NoScreenMatchedError,
    SessionError,
    byte_count_si,
)
from ..models import Credentials, LoginResult
from .options import LoginSettings, Option, build_settings
from .resolver import Completion, ResolverState, ScreenResolver, resolve_screen
from .screens import (
    ConsentScreen,
    CredentialsScreen,
    FinalScreen,
    InitialLoadScreen,
    OtpScreen,
    Screen,
    TrustedDeviceScreen,
)
from .selectors import LoginSelectors
from .session import PageSession, PlaywrightPageSession


SessionFactory = Callable[[LoginSettings], PageSession]


class BrowserLogin:
    """
    Logs into the site by driving a headless browser through whatever screens it shows.

    One `login()` call = one browser process, torn down on every exit path. Nothing is retried:
    submitting credentials twice can lock the account or trigger another OTP prompt.
    """

    def __init__(
        self,
        settings: Optional[LoginSettings] = None,
        *,
        session_factory: Optional[SessionFactory] = None,
        selectors: Optional[LoginSelectors] = None,
    ) -> None:
        self.settings = settings or LoginSettings()
        self.selectors = selectors or LoginSelectors()
        self._session_factory: SessionFactory = session_factory or PlaywrightPageSession
        self.log = self.settings.logger

    @classmethod
    def from_options(cls, *options: Option, session_factory: Optional[SessionFactory] = None) -> "BrowserLogin":
        return cls(build_settings(*options), session_factory=session_factory)

    def __str__(self) -> str:
        return "chrome"

    def build_screens(self, credentials: Credentials, completion: Completion) -> list[Screen]:
        """
        Candidate screens in priority order (first match wins).
        """
        s = self.settings
        common = {"selectors": self.selectors, "log": self.log.getChild("screens")}
        return [
            ConsentScreen(accept=s.accept_cookies, **common),
            CredentialsScreen(
                username=credentials.username,
                password=credentials.password,
                settle_timeout=s.settle_timeout,
                **common,
            ),
            OtpScreen(secret=credentials.otp_secret, **common),
            TrustedDeviceScreen(**common),
            FinalScreen(completion, landing_path=s.landing_path, storage_timeout=s.settle_timeout, **common),
        ]

    async def login(
        self,
        credentials: Credentials,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> LoginResult:
        """
        Run one login attempt.

        `cancel_event` plays the caller's cancellation signal: setting it stops the attempt at the
        next poll. Cancelling the awaiting task works too (clean-up runs, CancelledError propagates).
        """
        if cancel_event is not None and cancel_event.is_set():
            raise LoginCancelledError("login cancelled before start")

        loop = asyncio.get_running_loop()
        deadline: Optional[float] = None
        if self.settings.timeout > 0:
            deadline = loop.time() + self.settings.timeout

        session = self._session_factory(self.settings)
        try:
            try:
                await session.start()
                self.log.info("Browser session started%s.", _pid_suffix(session))
                if self.settings.cookies:
                    await session.add_cookies(self.settings.cookies)
                    self.log.info("%d cookies preloaded.", len(self.settings.cookies))
                return await self._login(session, credentials, deadline=deadline, cancel_event=cancel_event)
            except LoginError as e:
                await self._attach_diagnostics(session, e)
                raise
        finally:
            await self._close_session(session)

    async def _login(
        self,
        session: PageSession,
        credentials: Credentials,
        *,
        deadline: Optional[float],
        cancel_event: Optional[asyncio.Event],
    ) -> LoginResult:
        s = self.settings
        first = InitialLoadScreen(s.url, selectors=self.selectors, log=self.log.getChild("screens"))
        first_task = asyncio.create_task(resolve_screen(session, first, refresh_interval=s.refresh_interval))
        try:
            await self._poll(first_task, deadline=deadline, cancel_event=cancel_event, phase=first.name)
        finally:
            await _cancel_task(first_task)
        first_task.result()

        completion = Completion()
        resolver = ScreenResolver(
            session,
            self.build_screens(credentials, completion),
            completion,
            refresh_interval=s.refresh_interval,
            settle_timeout=s.settle_timeout,
            log=self.log.getChild("resolver"),
        )
        resolver_task = asyncio.create_task(resolver.run())
        watcher_task = (
            asyncio.create_task(_stop_on_cancel(cancel_event, resolver, completion)) if cancel_event else None
        )
        try:
            await self._poll(
                completion, deadline=deadline, cancel_event=cancel_event, resolver=resolver, watch=resolver_task
            )
            if not completion.done():
                raise LoginError("screen resolver stopped before the login completed")
            result = completion.result()
            self.log.info(
                "Login succeeded; token expires at %s, %d cookies.", result.token.expiry.isoformat(), len(result.cookies)
            )
            return result
        finally:
            resolver.stop()
            if watcher_task is not None:
                await _cancel_task(watcher_task)
            await self._join_resolver(resolver_task)
            completion.close()

    async def _poll(
        self,
        target,
        *,
        deadline: Optional[float],
        cancel_event: Optional[asyncio.Event],
        resolver: Optional[ScreenResolver] = None,
        watch: Optional["asyncio.Task[None]"] = None,
        phase: str = "",
    ) -> None:
        """
        Fixed-cadence wait on a task or completion slot, checking the caller's cancellation and
        the deadline between ticks. Also returns once `watch` has finished.
        """
        loop = asyncio.get_running_loop()
        interval = self.settings.refresh_interval
        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise LoginCancelledError()
            if watch is not None and watch.done():
                return
            now = loop.time()
            if deadline is not None and now >= deadline:
                raise self._timeout_error(resolver, phase)

            tick = interval if deadline is None else min(interval, deadline - now)
            if isinstance(target, Completion):
                if await target.wait(tick):
                    return
            else:
                done, _ = await asyncio.wait({target}, timeout=tick)
                if done:
                    return

    def _timeout_error(self, resolver: Optional[ScreenResolver], phase: str) -> LoginTimeoutError:
        waited = self.settings.timeout
        if resolver is None:
            return LoginTimeoutError(f"login timed out after {waited:.1f}s during {phase!r}", screen=phase or None)
        if resolver.state is ResolverState.ACTING and resolver.current_screen is not None:
            name = resolver.current_screen.name
            return LoginTimeoutError(f"login timed out after {waited:.1f}s while on {name!r}", screen=name)
        last = resolver.last_screen.name if resolver.last_screen else None
        return NoScreenMatchedError(waited, screen=last)

    async def _join_resolver(self, task: "asyncio.Task[None]") -> None:
        # An in-flight browser call is abandoned here; closing the browser makes it fail on its own.
        await _cancel_task(task)
        if not task.cancelled() and task.exception() is not None:
            self.log.error("Screen resolver crashed.", exc_info=task.exception())

    async def _attach_diagnostics(self, session: PageSession, err: LoginError) -> None:
        location = ""
        try:
            location = await session.location()
        except Exception:
            self.log.error("Failed to get current location.", exc_info=True)

        screenshot: Optional[bytes] = None
        if self.settings.screenshot_on_error:
            try:
                screenshot = await session.screenshot()
                self.log.info("Screenshot taken (%s).", byte_count_si(len(screenshot)))
            except Exception as e:
                self.log.error("Failed to take screenshot: %s", e)

        err.attach_diagnostics(location=location or None, screenshot=screenshot)

    async def _close_session(self, session: PageSession) -> None:
        try:
            await session.close(grace_period=self.settings.grace_period)
        except SessionError:
            self.log.error("Failed to close browser session.", exc_info=True)


async def _stop_on_cancel(cancel_event: asyncio.Event, resolver: ScreenResolver, completion: Completion) -> None:
    await cancel_event.wait()
    completion.fail(LoginCancelledError())
    resolver.stop()


async def _cancel_task(task: "asyncio.Task") -> None:
    """Cancel `task` and wait for it without re-raising its outcome. Cancellation of the caller still propagates."""
    if not task.done():
        task.cancel()
        await asyncio.wait({task})
    if not task.cancelled():
        # Mark the exception retrieved; `result()` still re-raises it later.
        task.exception()


def _pid_suffix(session: PageSession) -> str:
    pid = getattr(session, "pid", None)
    return f" (pid={pid})" if pid else ""
