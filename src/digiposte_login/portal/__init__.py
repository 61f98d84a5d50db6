from .client import BrowserLogin
from .options import (
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
    "LoginSettings",
    "Option",
    "OptionKind",
    "build_settings",
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
