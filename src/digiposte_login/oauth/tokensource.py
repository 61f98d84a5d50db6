from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Sequence

from ..method import LoginMethod
from ..models import Cookie, Credentials, Token


logger = logging.getLogger(__name__)

Listener = Callable[[Token, tuple[Cookie, ...]], None]


class TokenSourceError(RuntimeError):
    def __init__(self, errors: Sequence[BaseException], message: str = "") -> None:
        self.errors = list(errors)
        super().__init__(message or "; ".join(str(e) for e in self.errors) or "no valid token")


class NoTokenSourcesError(TokenSourceError):
    def __init__(self) -> None:
        super().__init__([], "no token sources")


class TokenSource:
    """
    Logs in on every `token()` call. Wrap it in `ReuseTokenSource` to avoid a browser login per request.

    `listener` is called with every new token and its cookies before `token()` returns; the REST client
    uses it to refresh its cookie jar.
    """

    def __init__(
        self,
        login_method: LoginMethod,
        credentials: Credentials,
        *,
        listener: Optional[Listener] = None,
    ) -> None:
        self.login_method = login_method
        self.credentials = credentials
        self.listener = listener

    async def token(self) -> Token:
        result = await self.login_method.login(self.credentials)
        if self.listener is not None:
            self.listener(result.token, result.cookies)
        return result.token


class CombinedTokenSources:
    """
    Try each source in order and return the first valid token.
    """

    def __init__(self, sources: Sequence[object]) -> None:
        self.sources = list(sources)

    async def token(self) -> Token:
        if not self.sources:
            raise NoTokenSourcesError()

        errors: list[BaseException] = []
        for i, source in enumerate(self.sources, start=1):
            try:
                tok = await source.token()  # type: ignore[attr-defined]
            except Exception as e:
                logger.warning("Token source %d failed: %s", i, e)
                errors.append(RuntimeError(f"source {i}: {e}"))
                continue
            if tok is not None and tok.valid():
                return tok
        raise TokenSourceError(errors)


class ReuseTokenSource:
    """
    Cache the last token and only ask the wrapped source again once it is no longer valid.
    """

    def __init__(self, source: object, token: Optional[Token] = None) -> None:
        self.source = source
        self._token = token
        self._lock = asyncio.Lock()

    async def token(self) -> Token:
        async with self._lock:
            if self._token is not None and self._token.valid():
                return self._token
            tok = await self.source.token()  # type: ignore[attr-defined]
            self._token = tok
            return tok
