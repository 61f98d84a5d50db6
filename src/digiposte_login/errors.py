from __future__ import annotations

from typing import Any, Optional


class LoginError(RuntimeError):
    """
    Base class for every error raised by a login attempt.

    The controller attaches best-effort diagnostics before re-raising:
    - `location`: the page URL at the time of failure
    - `screenshot`: a full-page JPEG (only when screenshot-on-error is enabled)
    """

    location: Optional[str] = None
    screenshot: Optional[bytes] = None

    def attach_diagnostics(self, *, location: Optional[str] = None, screenshot: Optional[bytes] = None) -> None:
        if location:
            self.location = location
        if screenshot:
            self.screenshot = screenshot

    def __str__(self) -> str:
        msg = super().__str__()
        if self.location:
            return f"{msg} at {self.location!r}"
        return msg


class InvalidOptionError(LoginError, ValueError):
    def __init__(self, option: Any, constraint: str) -> None:
        self.option = option
        self.constraint = constraint
        super().__init__(f"option {_option_name(option)!r}: {constraint}")


class MissingOptionError(LoginError):
    def __init__(self, option: Any) -> None:
        self.option = option
        super().__init__(f"missing option {_option_name(option)!r}")

    def __eq__(self, other: object) -> bool:
        if isinstance(other, MissingOptionError):
            return self.option == other.option
        return NotImplemented

    def __hash__(self) -> int:
        return hash(("missing", self.option))


class SessionError(LoginError):
    """
    A browser/transport operation failed. The underlying Playwright error is chained as `__cause__`.
    """

    def __init__(self, operation: str, cause: Optional[BaseException] = None) -> None:
        self.operation = operation
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{operation}{detail}")
        if cause is not None:
            self.__cause__ = cause


class LoginContextError(LoginError):
    pass


class LoginCancelledError(LoginContextError):
    def __init__(self, message: str = "login cancelled") -> None:
        super().__init__(message)


class LoginTimeoutError(LoginContextError, TimeoutError):
    def __init__(self, message: str, *, screen: Optional[str] = None) -> None:
        self.screen = screen
        super().__init__(message)


class NoScreenMatchedError(LoginTimeoutError):
    """
    The deadline passed while no screen matched the current page.
    `screen` names the last screen that acted (None if nothing ever matched).
    """

    def __init__(self, waited: float, *, screen: Optional[str] = None) -> None:
        self.waited = waited
        after = f" after {screen!r}" if screen else ""
        super().__init__(f"no screen matched{after} within {waited:.1f}s", screen=screen)


class ScreenActionError(LoginError):
    def __init__(self, screen: str, message: str) -> None:
        self.screen = screen
        super().__init__(f"{screen}: {message}")


class MissingOtpSecretError(ScreenActionError):
    def __init__(self, screen: str) -> None:
        super().__init__(screen, "the site asked for a one-time code but no OTP secret is configured")


class InvalidCredentialsError(ScreenActionError):
    pass


class ScreenStuckError(ScreenActionError):
    """
    A screen that waits for a response still matched after its action; acting again could double-submit.
    """


class InvalidTokenError(LoginError):
    def __init__(self, token: Any, reason: str) -> None:
        self.token = token
        self.reason = reason
        super().__init__(f"invalid token {token!r}: {reason}")


def _option_name(option: Any) -> str:
    return str(getattr(option, "value", option))


def _walk(err: Optional[BaseException]):
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        yield err
        err = err.__cause__ or err.__context__


def get_screenshot(err: BaseException) -> Optional[bytes]:
    """Return the screenshot attached to `err` (or to one of its causes), if any."""
    for e in _walk(err):
        shot = getattr(e, "screenshot", None)
        if shot:
            return shot
    return None


def get_location(err: BaseException) -> Optional[str]:
    for e in _walk(err):
        loc = getattr(e, "location", None)
        if loc:
            return loc
    return None


def byte_count_si(n: int) -> str:
    unit = 1000
    if n < unit:
        return f"{n} B"
    div, exp = unit, 0
    m = n // unit
    while m >= unit:
        div *= unit
        exp += 1
        m //= unit
    return f"{n / div:.1f} {'kMGTPE'[exp]}B"
