from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional, Sequence

from ..errors import LoginError, ScreenActionError, ScreenStuckError, SessionError
from ..models import LoginResult
from .screens import Screen
from .session import PageSession


logger = logging.getLogger(__name__)


class CompletionState(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Completion:
    """
    One-shot slot shared by the resolver (writer) and the controller (reader).

    Backed by an `asyncio.Future`: it settles at most once, and SUCCEEDED is only observable after
    the result is stored. Must be used from the event loop that created it.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future[LoginResult] = asyncio.get_running_loop().create_future()

    @property
    def state(self) -> CompletionState:
        if not self._future.done():
            return CompletionState.PENDING
        if self._future.cancelled() or self._future.exception() is not None:
            return CompletionState.FAILED
        return CompletionState.SUCCEEDED

    def done(self) -> bool:
        return self._future.done()

    def succeed(self, result: LoginResult) -> bool:
        if self._future.done():
            return False
        self._future.set_result(result)
        return True

    def fail(self, error: BaseException) -> bool:
        if self._future.done():
            return False
        self._future.set_exception(error)
        return True

    def result(self) -> LoginResult:
        """Return the result, or raise the stored error. Only valid once `done()`."""
        return self._future.result()

    async def wait(self, timeout: Optional[float]) -> bool:
        """Wait up to `timeout` seconds; return True when settled."""
        if self._future.done():
            return True
        done, _ = await asyncio.wait({self._future}, timeout=timeout)
        return bool(done)

    def close(self) -> None:
        """Settle as failed if still pending, and mark any stored error as retrieved."""
        if not self._future.done():
            self._future.cancel()
        elif not self._future.cancelled():
            self._future.exception()


class ResolverState(str, Enum):
    IDLE = "idle"
    ACTING = "acting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABORTED = "aborted"


class ScreenResolver:
    """
    Drives the page through an ordered list of screens by polling.

    On each tick the screens are evaluated in list order; the first match acts exactly once.
    Failures (including unexpected errors from a predicate) are reported through the completion
    slot, never raised to the caller of `run()`.
    """

    def __init__(
        self,
        session: PageSession,
        screens: Sequence[Screen],
        completion: Completion,
        *,
        refresh_interval: float,
        settle_timeout: float = 30.0,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.session = session
        self.screens = tuple(screens)
        self.completion = completion
        self.refresh_interval = refresh_interval
        self.settle_timeout = settle_timeout
        self.log = log or logger

        self.state = ResolverState.IDLE
        self.current_screen: Optional[Screen] = None
        self.last_screen: Optional[Screen] = None
        self._evaluating: Optional[Screen] = None
        self._stopped = asyncio.Event()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def stop(self) -> None:
        """Cooperative stop: takes effect at the next check between browser calls."""
        self._stopped.set()

    def _should_continue(self) -> bool:
        return not self._stopped.is_set() and not self.completion.done()

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def match(self) -> Optional[Screen]:
        """First screen (in list order) whose predicate holds; later screens are not evaluated."""
        for screen in self.screens:
            if not self._should_continue():
                return None
            self._evaluating = screen
            if await screen.matches(self.session):
                return screen
        self._evaluating = None
        return None

    async def matching_screens(self) -> list[Screen]:
        """Every screen whose predicate holds right now. More than one indicates overlapping screens."""
        return [s for s in self.screens if await s.matches(self.session)]

    async def run(self) -> None:
        try:
            while self._should_continue():
                screen = await self.match()
                if screen is None:
                    await self._sleep(self.refresh_interval)
                    continue

                self.state = ResolverState.ACTING
                self.current_screen = screen
                self.log.info("Screen %r detected.", screen.name)
                try:
                    await screen.act(self.session)
                    if screen.wait_for_response and self._should_continue():
                        await self._settle(screen)
                except Exception as e:
                    self._fail(screen, self._attribute(screen, e))
                    return

                self.last_screen = screen
                self.current_screen = None

                if self.completion.done():
                    break
                self.state = ResolverState.IDLE
                await self._sleep(self.refresh_interval)
        except asyncio.CancelledError:
            self.state = ResolverState.ABORTED
            raise
        except Exception as e:
            # Raised while checking predicates rather than acting.
            screen = self._evaluating or self.current_screen
            name = screen.name if screen is not None else "resolver"
            wrapped = ScreenActionError(name, f"match check failed: {e}")
            wrapped.__cause__ = e
            self._fail(screen, wrapped)
            return

        if self.completion.state is CompletionState.SUCCEEDED:
            self.state = ResolverState.SUCCEEDED
        elif self.state is not ResolverState.FAILED:
            self.state = ResolverState.ABORTED

    def _attribute(self, screen: Screen, err: BaseException) -> LoginError:
        if isinstance(err, LoginError) and not isinstance(err, SessionError):
            return err
        wrapped = ScreenActionError(screen.name, str(err))
        wrapped.__cause__ = err
        return wrapped

    def _fail(self, screen: Optional[Screen], err: LoginError) -> None:
        self.state = ResolverState.FAILED
        self.log.error("Screen %r failed: %s", screen.name if screen is not None else "?", err)
        self.completion.fail(err)

    async def _settle(self, screen: Screen) -> None:
        """
        Wait until the screen that just acted no longer matches, so it is never acted on twice.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settle_timeout
        while self._should_continue():
            if not await screen.matches(self.session):
                await self.session.wait_for_load(timeout=self.settle_timeout)
                return
            await screen.check_rejected(self.session)
            if loop.time() >= deadline:
                raise ScreenStuckError(
                    screen.name,
                    f"page still shows this screen {self.settle_timeout:.1f}s after submitting; not submitting again",
                )
            await self._sleep(self.refresh_interval)


async def resolve_screen(
    session: PageSession,
    screen: Screen,
    *,
    refresh_interval: float,
) -> None:
    """
    Poll a single screen until it matches, then act on it once.
    """
    try:
        while not await screen.matches(session):
            await asyncio.sleep(refresh_interval)
        await screen.act(session)
    except Exception as e:
        if isinstance(e, LoginError) and not isinstance(e, SessionError):
            raise
        raise ScreenActionError(screen.name, str(e)) from e
