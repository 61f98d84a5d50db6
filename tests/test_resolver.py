from __future__ import annotations

import asyncio
from typing import Optional

import pytest

from digiposte_login import BrowserLogin, Credentials, ScreenActionError, ScreenStuckError, SessionError
from digiposte_login.portal.resolver import Completion, CompletionState, ResolverState, ScreenResolver
from digiposte_login.portal.screens import Screen

from fakes import (
    BASE_URL,
    FakePageSession,
    land_home,
    show_consent,
    show_login_form,
    show_otp_form,
    show_trusted_device,
)


class StubScreen(Screen):
    def __init__(
        self, name: str, *, match: bool = True, error: Optional[BaseException] = None, wait: bool = False
    ) -> None:
        super().__init__()
        self.name = name
        self.match = match
        self.error = error
        self.wait_for_response = wait
        self.evaluated = 0
        self.acted = 0

    async def _matches(self, session) -> bool:
        self.evaluated += 1
        return self.match

    async def act(self, session) -> None:
        self.acted += 1
        if self.error is not None:
            raise self.error


class CrashingScreen(StubScreen):
    async def _matches(self, session) -> bool:
        raise RuntimeError("frame handle gone")


def _resolver(session, screens, completion, **kw) -> ScreenResolver:
    kw.setdefault("refresh_interval", 0.01)
    return ScreenResolver(session, screens, completion, **kw)


def test_first_matching_screen_wins_and_later_ones_are_not_evaluated() -> None:
    async def run():
        a = StubScreen("a", match=False)
        b = StubScreen("b")
        c = StubScreen("c")
        resolver = _resolver(FakePageSession(), [a, b, c], Completion())
        return await resolver.match(), (a, b, c)

    found, (a, b, c) = asyncio.run(run())
    assert found is b
    assert (a.evaluated, b.evaluated, c.evaluated) == (1, 1, 0)


def test_match_returns_none_when_nothing_matches() -> None:
    async def run():
        resolver = _resolver(FakePageSession(), [StubScreen("a", match=False)], Completion())
        return await resolver.match()

    assert asyncio.run(run()) is None


def test_action_failure_is_attributed_to_the_screen() -> None:
    async def run():
        completion = Completion()
        screen = StubScreen("broken", error=RuntimeError("boom"))
        resolver = _resolver(FakePageSession(), [screen], completion)
        await resolver.run()
        return resolver, completion, screen

    resolver, completion, screen = asyncio.run(run())
    assert resolver.state is ResolverState.FAILED
    assert completion.state is CompletionState.FAILED
    assert screen.acted == 1
    with pytest.raises(ScreenActionError) as ei:
        completion.result()
    assert ei.value.screen == "broken"
    assert "boom" in str(ei.value)
    assert isinstance(ei.value.__cause__, RuntimeError)


def test_session_error_during_action_is_wrapped_with_screen_name() -> None:
    async def run():
        completion = Completion()
        resolver = _resolver(
            FakePageSession(), [StubScreen("credentials", error=SessionError("click", RuntimeError("detached")))], completion
        )
        await resolver.run()
        return completion

    completion = asyncio.run(run())
    with pytest.raises(ScreenActionError) as ei:
        completion.result()
    assert ei.value.screen == "credentials"
    assert isinstance(ei.value.__cause__, SessionError)


def test_unexpected_match_error_fails_the_completion() -> None:
    async def run():
        completion = Completion()
        ok = StubScreen("consent", match=False)
        resolver = _resolver(FakePageSession(), [ok, CrashingScreen("credentials")], completion)
        await asyncio.wait_for(resolver.run(), timeout=1)
        return resolver, completion

    resolver, completion = asyncio.run(run())
    assert resolver.state is ResolverState.FAILED
    assert completion.state is CompletionState.FAILED
    with pytest.raises(ScreenActionError) as ei:
        completion.result()
    assert ei.value.screen == "credentials"
    assert "match check failed" in str(ei.value)
    assert isinstance(ei.value.__cause__, RuntimeError)


def test_screen_still_matching_after_submit_is_not_acted_twice() -> None:
    async def run():
        completion = Completion()
        screen = StubScreen("otp", wait=True)
        resolver = _resolver(FakePageSession(), [screen], completion, settle_timeout=0.1)
        await resolver.run()
        return completion, screen

    completion, screen = asyncio.run(run())
    assert screen.acted == 1
    with pytest.raises(ScreenStuckError):
        completion.result()


def test_stop_ends_the_run_without_settling_the_completion() -> None:
    async def run():
        completion = Completion()
        resolver = _resolver(FakePageSession(), [StubScreen("never", match=False)], completion)
        task = asyncio.create_task(resolver.run())
        await asyncio.sleep(0.05)
        resolver.stop()
        await asyncio.wait_for(task, timeout=1)
        state = completion.state
        completion.close()
        return resolver, state

    resolver, state = asyncio.run(run())
    assert resolver.stopped
    assert resolver.state is ResolverState.ABORTED
    assert state is CompletionState.PENDING


def test_completion_settles_only_once() -> None:
    async def run():
        c = Completion()
        assert c.state is CompletionState.PENDING
        assert c.fail(RuntimeError("first"))
        assert not c.fail(RuntimeError("second"))
        with pytest.raises(RuntimeError, match="first"):
            c.result()
        c.close()
        assert c.state is CompletionState.FAILED
        return await c.wait(0)

    assert asyncio.run(run()) is True


@pytest.mark.parametrize(
    "prepare,expected",
    [
        (show_consent, "cookie consent"),
        (show_login_form, "credentials"),
        (show_otp_form, "one-time code"),
        (show_trusted_device, "trusted device"),
        (land_home, "final"),
    ],
)
def test_login_screens_are_mutually_exclusive(prepare, expected) -> None:
    async def run():
        session = FakePageSession()
        session.url = BASE_URL
        prepare(session)
        completion = Completion()
        client = BrowserLogin()
        screens = client.build_screens(Credentials(username="u", password="p"), completion)
        resolver = _resolver(session, screens, completion)
        names = [s.name for s in await resolver.matching_screens()]
        completion.close()
        return names

    assert asyncio.run(run()) == [expected]
