from __future__ import annotations

from typing import Iterable, Optional, Protocol

from .models import Cookie, Credentials, LoginResult, Token


class LoginMethod(Protocol):
    """
    Anything that can turn credentials into a token + cookies (browser login, static fixture, ...).
    """

    async def login(self, credentials: Credentials) -> LoginResult: ...


class StaticLoginMethod:
    """
    Returns the same token and cookies for every call, without touching a browser.
    Useful when a token was obtained elsewhere, and in tests.
    """

    def __init__(self, token: Token, cookies: Optional[Iterable[Cookie]] = None) -> None:
        self.token = token
        self.cookies = tuple(cookies or ())

    def __str__(self) -> str:
        return "static"

    async def login(self, credentials: Credentials) -> LoginResult:
        return LoginResult(token=self.token, cookies=self.cookies)
