from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from .util.dates import datetime_to_unix, unix_to_datetime


# Same margin oauth2 token sources use before treating a token as expired.
EXPIRY_DELTA = timedelta(seconds=10)


def mask_secret(value: str) -> str:
    s = value or ""
    if len(s) <= 8:
        return "*" * len(s)
    return f"{s[:4]}...{s[-4:]}"


class Credentials(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: str
    password: str = Field(repr=False)
    otp_secret: str = Field(default="", repr=False)


class Token(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str = Field(repr=False)
    token_type: str = "Bearer"
    expiry: datetime

    def remaining(self, now: Optional[datetime] = None) -> timedelta:
        now = now or datetime.now(timezone.utc)
        return self.expiry - now

    def valid(self, now: Optional[datetime] = None) -> bool:
        if not self.access_token:
            return False
        return self.remaining(now) > EXPIRY_DELTA

    def masked(self) -> str:
        return mask_secret(self.access_token)

    def authorization_header(self) -> str:
        return f"{self.token_type} {self.access_token}"


class SameSite(str, Enum):
    DEFAULT = "Default"
    LAX = "Lax"
    STRICT = "Strict"
    NONE = "None"

    @classmethod
    def parse(cls, raw: object) -> "SameSite":
        """
        Unknown or missing values degrade to DEFAULT instead of raising.
        """
        s = str(raw or "").strip().lower()
        for member in (cls.LAX, cls.STRICT, cls.NONE):
            if s == member.value.lower():
                return member
        return cls.DEFAULT


class Cookie(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    value: str = Field(default="", repr=False)
    domain: str = ""
    path: str = "/"
    # None for session cookies.
    expires: Optional[datetime] = None
    secure: bool = False
    http_only: bool = False
    same_site: SameSite = SameSite.DEFAULT

    @property
    def raw(self) -> str:
        return f"{self.name}={self.value}"

    @classmethod
    def from_browser(cls, data: Mapping[str, Any]) -> "Cookie":
        """
        Convert a cookie as reported by the browser (Playwright `BrowserContext.cookies()` shape).
        The browser reports `expires` as fractional Unix seconds, -1 for session cookies.
        """
        expires_raw = data.get("expires")
        expires: Optional[datetime] = None
        if expires_raw is not None:
            try:
                if float(expires_raw) > 0:
                    expires = unix_to_datetime(expires_raw)
            except (TypeError, ValueError):
                expires = None

        return cls(
            name=str(data.get("name") or ""),
            value=str(data.get("value") or ""),
            domain=str(data.get("domain") or ""),
            path=str(data.get("path") or "/"),
            expires=expires,
            secure=bool(data.get("secure", False)),
            http_only=bool(data.get("httpOnly", False)),
            same_site=SameSite.parse(data.get("sameSite")),
        )

    def to_browser(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "name": self.name,
            "value": self.value,
            "domain": self.domain,
            "path": self.path or "/",
            "secure": self.secure,
            "httpOnly": self.http_only,
            "expires": datetime_to_unix(self.expires) if self.expires else -1,
        }
        # The browser has no "default" policy value; leave it unset and let it apply its own.
        if self.same_site is not SameSite.DEFAULT:
            out["sameSite"] = self.same_site.value
        return out


class LoginResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: Token
    cookies: tuple[Cookie, ...] = ()

    def cookie_header(self) -> str:
        return "; ".join(c.raw for c in self.cookies)
