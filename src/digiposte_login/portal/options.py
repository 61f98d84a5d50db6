from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field

from ..errors import InvalidOptionError, MissingOptionError
from ..models import Cookie


DEFAULT_URL = "https://secure.digiposte.fr/"
DEFAULT_REFRESH_INTERVAL = 1.5
DEFAULT_SETTLE_TIMEOUT = 30.0
DEFAULT_GRACE_PERIOD = 5.0
DEFAULT_LANDING_PATH = "/home"
DEFAULT_LOCALE = "fr-FR"
DEFAULT_LOGGER_NAME = "digiposte_login"


class LoginSettings(BaseModel):
    """
    Immutable settings for one browser login. Build it with `build_settings(...)` so every
    value goes through its option's validation.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    url: str = DEFAULT_URL
    cookies: tuple[Cookie, ...] = ()
    refresh_interval: float = Field(default=DEFAULT_REFRESH_INTERVAL, gt=0, allow_inf_nan=False)
    # 0 means unbounded.
    timeout: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    screenshot_on_error: bool = False
    # Empty means Playwright's managed Chromium.
    binary_path: str = ""
    headless: bool = True
    accept_cookies: bool = False
    landing_path: str = DEFAULT_LANDING_PATH
    settle_timeout: float = Field(default=DEFAULT_SETTLE_TIMEOUT, gt=0, allow_inf_nan=False)
    grace_period: float = Field(default=DEFAULT_GRACE_PERIOD, gt=0, allow_inf_nan=False)
    locale: str = DEFAULT_LOCALE
    logger: logging.Logger = Field(default_factory=lambda: logging.getLogger(DEFAULT_LOGGER_NAME), repr=False)


class OptionKind(str, Enum):
    URL = "url"
    COOKIES = "cookies"
    REFRESH_INTERVAL = "refresh_interval"
    TIMEOUT = "timeout"
    SCREENSHOT_ON_ERROR = "screenshot_on_error"
    BINARY = "binary_path"
    HEADLESS = "headless"
    ACCEPT_COOKIES = "accept_cookies"
    LANDING_PATH = "landing_path"
    SETTLE_TIMEOUT = "settle_timeout"
    GRACE_PERIOD = "grace_period"
    LOCALE = "locale"
    LOGGER = "logger"


@dataclass(frozen=True)
class Option:
    kind: OptionKind
    value: Any

    def validate(self) -> None:
        # `with_cookies(None)` clears the jar; every other kind needs a value.
        if self.value is None and self.kind is not OptionKind.COOKIES:
            raise MissingOptionError(self.kind)
        check = _VALIDATORS.get(self.kind)
        if check is None:
            return
        problem = check(self.value)
        if problem:
            raise InvalidOptionError(self.kind, problem)

    def apply(self, settings: LoginSettings) -> LoginSettings:
        value = self.value
        if self.kind is OptionKind.COOKIES:
            value = tuple(value or ())
        elif self.kind in _FLOAT_KINDS:
            value = float(value)
        return settings.model_copy(update={self.kind.value: value})


_FLOAT_KINDS = frozenset(
    {OptionKind.REFRESH_INTERVAL, OptionKind.TIMEOUT, OptionKind.SETTLE_TIMEOUT, OptionKind.GRACE_PERIOD}
)


def _positive_number(label: str) -> Callable[[Any], Optional[str]]:
    def check(value: Any) -> Optional[str]:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return f"{label} must be a number of seconds"
        if not math.isfinite(value):
            return f"{label} must be finite"
        if value <= 0:
            return f"{label} must be positive"
        return None

    return check


def _check_url(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not value.strip():
        return "url is empty"
    parsed = urlparse(value.strip())
    if not parsed.scheme or not parsed.netloc:
        return f"url must be absolute (got {value!r})"
    return None


def _check_cookies(value: Any) -> Optional[str]:
    if value is None:
        return None
    try:
        items = list(value)
    except TypeError:
        return "cookies must be an iterable of Cookie"
    if any(not isinstance(c, Cookie) for c in items):
        return "cookies must be an iterable of Cookie"
    return None


def _check_landing_path(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not value.startswith("/"):
        return "landing path must start with '/'"
    return None


def _check_bool(value: Any) -> Optional[str]:
    if not isinstance(value, bool):
        return "value must be a boolean"
    return None


def _check_str(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return "value must be a string"
    return None


def _check_locale(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not value.strip():
        return "locale is empty"
    return None


def _check_logger(value: Any) -> Optional[str]:
    if not isinstance(value, logging.Logger):
        return "logger must be a logging.Logger"
    return None


_VALIDATORS: dict[OptionKind, Callable[[Any], Optional[str]]] = {
    OptionKind.URL: _check_url,
    OptionKind.COOKIES: _check_cookies,
    OptionKind.REFRESH_INTERVAL: _positive_number("frequency"),
    OptionKind.TIMEOUT: _positive_number("timeout"),
    OptionKind.SCREENSHOT_ON_ERROR: _check_bool,
    OptionKind.BINARY: _check_str,
    OptionKind.HEADLESS: _check_bool,
    OptionKind.ACCEPT_COOKIES: _check_bool,
    OptionKind.LANDING_PATH: _check_landing_path,
    OptionKind.SETTLE_TIMEOUT: _positive_number("settle timeout"),
    OptionKind.GRACE_PERIOD: _positive_number("grace period"),
    OptionKind.LOCALE: _check_locale,
    OptionKind.LOGGER: _check_logger,
}


def with_url(url: str) -> Option:
    return Option(OptionKind.URL, url)


def with_cookies(cookies: Optional[Iterable[Cookie]]) -> Option:
    return Option(OptionKind.COOKIES, tuple(cookies) if cookies is not None else None)


def with_refresh_interval(seconds: float) -> Option:
    """Cadence of the screen polling and of the completion check."""
    return Option(OptionKind.REFRESH_INTERVAL, seconds)


def with_timeout(seconds: float) -> Option:
    """Overall login deadline. Leave the option out for an unbounded login."""
    return Option(OptionKind.TIMEOUT, seconds)


def with_screenshot_on_error(enabled: bool = True) -> Option:
    return Option(OptionKind.SCREENSHOT_ON_ERROR, enabled)


def with_binary(path: str) -> Option:
    return Option(OptionKind.BINARY, path)


def with_headless(enabled: bool = True) -> Option:
    return Option(OptionKind.HEADLESS, enabled)


def with_accept_cookies(accept: bool = True) -> Option:
    return Option(OptionKind.ACCEPT_COOKIES, accept)


def with_landing_path(path: str) -> Option:
    return Option(OptionKind.LANDING_PATH, path)


def with_settle_timeout(seconds: float) -> Option:
    return Option(OptionKind.SETTLE_TIMEOUT, seconds)


def with_grace_period(seconds: float) -> Option:
    return Option(OptionKind.GRACE_PERIOD, seconds)


def with_locale(locale: str) -> Option:
    return Option(OptionKind.LOCALE, locale)


def with_logger(logger: logging.Logger) -> Option:
    return Option(OptionKind.LOGGER, logger)


def validate_options(options: Iterable[Option]) -> list[Option]:
    opts = list(options)
    for opt in opts:
        opt.validate()
    return opts


def build_settings(*options: Option) -> LoginSettings:
    """
    Validate every option first, then apply them in order (a later option of the same kind wins).
    """
    settings = LoginSettings()
    for opt in validate_options(options):
        # `with_binary("")` keeps the default rather than clearing it.
        if opt.kind is OptionKind.BINARY and not opt.value:
            continue
        if opt.kind is OptionKind.COOKIES and opt.value is None:
            settings = settings.model_copy(update={"cookies": ()})
            continue
        settings = opt.apply(settings)
    return settings
