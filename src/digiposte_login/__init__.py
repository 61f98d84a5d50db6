"""
Headless-browser login for Digiposte: walks the login screens and returns the API token + session cookies.
"""

from .errors import (
    InvalidCredentialsError,
    InvalidOptionError,
    InvalidTokenError,
    LoginCancelledError,
    LoginContextError,
    LoginError,
    LoginTimeoutError,
    MissingOptionError,
    MissingOtpSecretError,
    NoScreenMatchedError,
    ScreenActionError,
    ScreenStuckError,
    SessionError,
    get_location,
    get_screenshot,
)
from .method import LoginMethod, StaticLoginMethod
from .models import Cookie, Credentials, LoginResult, SameSite, Token
from .portal import (
    BrowserLogin,
    LoginSettings,
    Option,
    OptionKind,
    build_settings,
    with_accept_cookies,
    with_binary,
    with_cookies,
    with_grace_period,
    with_headless,
    with_landing_path,
    with_locale,
    with_logger,
    with_refresh_interval,
    with_screenshot_on_error,
    with_settle_timeout,
    with_timeout,
    with_url,
)

__all__ = [
    "BrowserLogin",
    "Cookie",
    "Credentials",
    "InvalidCredentialsError",
    "InvalidOptionError",
    "InvalidTokenError",
    "LoginCancelledError",
    "LoginContextError",
    "LoginError",
    "LoginMethod",
    "LoginResult",
    "LoginSettings",
    "LoginTimeoutError",
    "MissingOptionError",
    "MissingOtpSecretError",
    "NoScreenMatchedError",
    "Option",
    "OptionKind",
    "SameSite",
    "ScreenActionError",
    "ScreenStuckError",
    "SessionError",
    "StaticLoginMethod",
    "Token",
    "build_settings",
    "get_location",
    "get_screenshot",
    "with_accept_cookies",
    "with_binary",
    "with_cookies",
    "with_grace_period",
    "with_headless",
    "with_landing_path",
    "with_locale",
    "with_logger",
    "with_refresh_interval",
    "with_screenshot_on_error",
    "with_settle_timeout",
    "with_timeout",
    "with_url",
]
