from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from digiposte_login import Cookie, Credentials, LoginResult, StaticLoginMethod, Token
from digiposte_login.oauth import (
    CombinedTokenSources,
    NoTokenSourcesError,
    ReuseTokenSource,
    TokenSource,
    TokenSourceError,
)


CREDS = Credentials(username="u", password="p")


def _token(value: str = "tok", *, minutes: float = 60) -> Token:
    return Token(access_token=value, expiry=datetime.now(timezone.utc) + timedelta(minutes=minutes))


class CountingMethod:
    def __init__(self, *tokens: Token) -> None:
        self.tokens = list(tokens)
        self.calls = 0

    async def login(self, credentials: Credentials) -> LoginResult:
        self.calls += 1
        return LoginResult(token=self.tokens[min(self.calls, len(self.tokens)) - 1])


class FailingSource:
    async def token(self) -> Token:
        raise RuntimeError("browser crashed")


def test_token_source_notifies_listener_with_cookies() -> None:
    seen = []
    method = StaticLoginMethod(_token(), cookies=[Cookie(name="SESSION", value="x")])
    src = TokenSource(method, CREDS, listener=lambda tok, cookies: seen.append((tok.access_token, cookies)))

    tok = asyncio.run(src.token())

    assert tok.access_token == "tok"
    assert seen == [("tok", (Cookie(name="SESSION", value="x"),))]
    assert str(method) == "static"


def test_reuse_token_source_only_logs_in_again_after_expiry() -> None:
    method = CountingMethod(_token("first", minutes=0.05), _token("second"))
    src = ReuseTokenSource(TokenSource(method, CREDS))

    async def run():
        # "first" is inside the expiry margin, so it is replaced on the next call
        a = await src.token()
        b = await src.token()
        c = await src.token()
        return a, b, c

    a, b, c = asyncio.run(run())
    assert a.access_token == "first"
    assert b.access_token == "second"
    assert c.access_token == "second"
    assert method.calls == 2


def test_reuse_token_source_starts_from_seed_token() -> None:
    method = CountingMethod(_token("fresh"))
    src = ReuseTokenSource(TokenSource(method, CREDS), token=_token("seed"))
    assert asyncio.run(src.token()).access_token == "seed"
    assert method.calls == 0


def test_combined_sources_returns_first_valid_token() -> None:
    sources = [FailingSource(), TokenSource(StaticLoginMethod(_token("good")), CREDS)]
    tok = asyncio.run(CombinedTokenSources(sources).token())
    assert tok.access_token == "good"


def test_combined_sources_collects_every_error() -> None:
    sources = [FailingSource(), TokenSource(StaticLoginMethod(_token("stale", minutes=-1)), CREDS)]
    with pytest.raises(TokenSourceError) as ei:
        asyncio.run(CombinedTokenSources(sources).token())
    assert len(ei.value.errors) == 1
    assert "source 1: browser crashed" in str(ei.value)


def test_combined_sources_requires_at_least_one_source() -> None:
    with pytest.raises(NoTokenSourcesError, match="no token sources"):
        asyncio.run(CombinedTokenSources([]).token())
