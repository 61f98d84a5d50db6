from __future__ import annotations

from pathlib import Path

import pytest

from digiposte_login.config import load_config
from digiposte_login.portal.options import OptionKind, build_settings


_ENV_KEYS = (
    "DIGIPOSTE_USERNAME",
    "DIGIPOSTE_PASSWORD",
    "DIGIPOSTE_OTP_SECRET",
    "DIGIPOSTE_URL",
    "DIGIPOSTE_BROWSER_BINARY",
    "DIGIPOSTE_HEADLESS",
    "DIGIPOSTE_TIMEOUT",
    "DIGIPOSTE_REFRESH_INTERVAL",
    "DIGIPOSTE_SCREENSHOT_ON_ERROR",
    "DIGIPOSTE_ACCEPT_COOKIES",
    "LOG_LEVEL",
    "LOG_FILE",
    "DEBUG_DIR",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def _write(tmp_path: Path, name: str, text: str) -> Path:
    p = tmp_path / name
    p.write_text(text, encoding="utf-8")
    return p


def test_env_only_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DIGIPOSTE_USERNAME", " jane@example.com ")
    monkeypatch.setenv("DIGIPOSTE_PASSWORD", "hunter2")
    monkeypatch.setenv("DIGIPOSTE_OTP_SECRET", "JBSWY3DPEHPK3PXP")
    monkeypatch.setenv("DIGIPOSTE_HEADLESS", "false")
    monkeypatch.setenv("DIGIPOSTE_TIMEOUT", "90")

    cfg = load_config(None)
    creds = cfg.credentials.to_credentials()
    assert creds.username == "jane@example.com"
    assert creds.otp_secret == "JBSWY3DPEHPK3PXP"
    assert cfg.browser.headless is False
    assert cfg.browser.timeout == 90
    assert cfg.browser.url == "https://secure.digiposte.fr/"


def test_yaml_overrides_env_and_expands_vars(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DIGIPOSTE_USERNAME", "from-env")
    monkeypatch.setenv("DIGIPOSTE_PASSWORD", "env-pass")
    monkeypatch.setenv("MY_PASSWORD", "yaml-pass")
    cfg_path = _write(
        tmp_path,
        "cfg.yaml",
        """
credentials:
  password: "${MY_PASSWORD}"
browser:
  url: "https://secure.digiposte.fr/"
  refresh_interval: 0.5
  screenshot_on_error: true
logging:
  level: "DEBUG"
""",
    )
    cfg = load_config(cfg_path)
    assert cfg.credentials.username == "from-env"
    assert cfg.credentials.password == "yaml-pass"
    assert cfg.browser.refresh_interval == 0.5
    assert cfg.browser.screenshot_on_error is True
    assert cfg.logging.level == "DEBUG"


def test_missing_credentials_rejected() -> None:
    with pytest.raises(Exception, match="DIGIPOSTE_USERNAME"):
        load_config(None)


def test_invalid_url_rejected(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DIGIPOSTE_USERNAME", "u")
    monkeypatch.setenv("DIGIPOSTE_PASSWORD", "p")
    cfg_path = _write(tmp_path, "cfg.yaml", 'browser:\n  url: "secure.digiposte.fr"\n')
    with pytest.raises(Exception):
        load_config(cfg_path)


def test_login_options_build_valid_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DIGIPOSTE_USERNAME", "u")
    monkeypatch.setenv("DIGIPOSTE_PASSWORD", "p")
    monkeypatch.setenv("DIGIPOSTE_BROWSER_BINARY", "/usr/bin/chromium")
    monkeypatch.setenv("DIGIPOSTE_ACCEPT_COOKIES", "yes")

    cfg = load_config(None)
    settings = build_settings(*cfg.login_options())
    assert settings.binary_path == "/usr/bin/chromium"
    assert settings.accept_cookies is True
    assert settings.timeout == 180.0


def test_zero_timeout_leaves_login_unbounded(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DIGIPOSTE_USERNAME", "u")
    monkeypatch.setenv("DIGIPOSTE_PASSWORD", "p")
    monkeypatch.setenv("DIGIPOSTE_TIMEOUT", "0")

    opts = load_config(None).login_options()
    assert all(o.kind is not OptionKind.TIMEOUT for o in opts)
    assert build_settings(*opts).timeout == 0
