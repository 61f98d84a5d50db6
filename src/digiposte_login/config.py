from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Union
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, Field, model_validator

from .models import Credentials
from .portal.options import (
    DEFAULT_GRACE_PERIOD,
    DEFAULT_LANDING_PATH,
    DEFAULT_REFRESH_INTERVAL,
    DEFAULT_SETTLE_TIMEOUT,
    DEFAULT_URL,
    Option,
    with_accept_cookies,
    with_binary,
    with_grace_period,
    with_headless,
    with_landing_path,
    with_refresh_interval,
    with_screenshot_on_error,
    with_settle_timeout,
    with_timeout,
    with_url,
)


_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")


def _expand_env_vars(value: object) -> object:
    if isinstance(value, str):
        def repl(match: re.Match[str]) -> str:
            var = match.group(1)
            return os.getenv(var, "")

        return _ENV_VAR_PATTERN.sub(repl, value)
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name, "") or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in {"1", "true", "t", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number of seconds (got {raw!r})") from None


def _deep_merge(base: object, override: object) -> object:
    if isinstance(base, dict) and isinstance(override, dict):
        out = dict(base)
        for k, v in override.items():
            if k in out:
                out[k] = _deep_merge(out[k], v)
            else:
                out[k] = v
        return out
    return override


def _default_config_from_env() -> dict:
    """
    Env-only config so most users only need `.env`; a YAML file remains an optional override.
    """
    return {
        "credentials": {
            "username": os.getenv("DIGIPOSTE_USERNAME", ""),
            "password": os.getenv("DIGIPOSTE_PASSWORD", ""),
            "otp_secret": os.getenv("DIGIPOSTE_OTP_SECRET", ""),
        },
        "browser": {
            "url": os.getenv("DIGIPOSTE_URL", "") or DEFAULT_URL,
            "binary_path": os.getenv("DIGIPOSTE_BROWSER_BINARY", ""),
            "headless": _env_bool("DIGIPOSTE_HEADLESS", default=True),
            "timeout": _env_float("DIGIPOSTE_TIMEOUT", 180.0),
            "refresh_interval": _env_float("DIGIPOSTE_REFRESH_INTERVAL", DEFAULT_REFRESH_INTERVAL),
            "screenshot_on_error": _env_bool("DIGIPOSTE_SCREENSHOT_ON_ERROR", default=False),
            "accept_cookies": _env_bool("DIGIPOSTE_ACCEPT_COOKIES", default=False),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "file_path": os.getenv("LOG_FILE", "data/login.log"),
        },
        "debug": {
            "dir": os.getenv("DEBUG_DIR", "data/debug"),
        },
    }


class CredentialsConfig(BaseModel):
    username: str
    password: str = Field(repr=False)
    otp_secret: str = Field(default="", repr=False)

    @model_validator(mode="after")
    def _require_credentials(self) -> "CredentialsConfig":
        if not self.username.strip():
            raise ValueError("credentials.username is required (or set DIGIPOSTE_USERNAME)")
        if not self.password:
            raise ValueError("credentials.password is required (or set DIGIPOSTE_PASSWORD)")
        return self

    def to_credentials(self) -> Credentials:
        return Credentials(username=self.username.strip(), password=self.password, otp_secret=self.otp_secret.strip())


class BrowserConfig(BaseModel):
    url: str = DEFAULT_URL
    binary_path: str = ""
    headless: bool = True
    # Seconds; 0 disables the deadline.
    timeout: float = 180.0
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    settle_timeout: float = DEFAULT_SETTLE_TIMEOUT
    grace_period: float = DEFAULT_GRACE_PERIOD
    screenshot_on_error: bool = False
    accept_cookies: bool = False
    landing_path: str = DEFAULT_LANDING_PATH

    @model_validator(mode="after")
    def _normalize(self) -> "BrowserConfig":
        url = (self.url or "").strip()
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"browser.url must be a full URL like {DEFAULT_URL!r}")
        if self.timeout < 0:
            raise ValueError("browser.timeout must be >= 0 (0 disables the deadline)")
        self.url = url
        return self

    def login_options(self) -> list[Option]:
        opts = [
            with_url(self.url),
            with_binary(self.binary_path),
            with_headless(self.headless),
            with_refresh_interval(self.refresh_interval),
            with_settle_timeout(self.settle_timeout),
            with_grace_period(self.grace_period),
            with_screenshot_on_error(self.screenshot_on_error),
            with_accept_cookies(self.accept_cookies),
            with_landing_path(self.landing_path),
        ]
        if self.timeout > 0:
            opts.append(with_timeout(self.timeout))
        return opts


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file_path: str = "data/login.log"


class DebugConfig(BaseModel):
    dir: str = "data/debug"


class AppConfig(BaseModel):
    credentials: CredentialsConfig
    browser: BrowserConfig = BrowserConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: DebugConfig = DebugConfig()

    def login_options(self) -> list[Option]:
        return self.browser.login_options()


def load_config(path: Union[str, Path, None] = None) -> AppConfig:
    raw: dict = {}
    if path:
        p = Path(path)
        if p.exists():
            raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
            raw = _expand_env_vars(raw)  # supports ${ENV_VAR} in YAML

    merged = _deep_merge(_default_config_from_env(), raw)
    return AppConfig.model_validate(merged)
