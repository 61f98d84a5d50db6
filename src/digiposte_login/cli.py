from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import time
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .config import load_config
from .errors import LoginError
from .logging_config import configure_logging
from .models import LoginResult
from .portal.client import BrowserLogin
from .portal.options import OptionKind, build_settings, with_headless, with_screenshot_on_error, with_timeout
from .util.debug_bundle import create_debug_bundle, save_error_artifacts


logger = logging.getLogger("digiposte_login")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="digiposte_login")
    p.add_argument(
        "--env-file",
        default=".env",
        help="Path to a dotenv file (default: .env). If missing, env vars must already be set.",
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    login = sub.add_parser("login", help="Log into Digiposte with a headless browser and print the resulting token")
    login.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")
    login.add_argument("--headful", action="store_true", help="Run browser headful (debug)")
    login.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Overall login deadline in seconds (default: browser.timeout from config; 0 disables it).",
    )
    login.add_argument(
        "--screenshot-on-error",
        action="store_true",
        help="Capture a full-page screenshot when the login fails (written under the debug dir).",
    )
    login.add_argument("--debug-dir", default="", help="Where to write failure artifacts (default: debug.dir from config).")
    login.add_argument(
        "--json",
        action="store_true",
        help="Print the full token + cookies as JSON (contains secrets; avoid in logged environments).",
    )

    bundle = sub.add_parser("debug-bundle", help="Zip the debug dir + log file for sharing (no secrets included)")
    bundle.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")
    bundle.add_argument("--out-dir", default="data", help="Directory to write the zip (default: data).")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)

    # Default logging: can be overridden once config is loaded.
    configure_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    if args.cmd == "login":
        cfg = load_config(args.config)
        configure_logging(level=cfg.logging.level, file_path=cfg.logging.file_path)

        options = cfg.login_options()
        if args.headful:
            options.append(with_headless(False))
        if args.screenshot_on_error:
            options.append(with_screenshot_on_error(True))
        if args.timeout is not None:
            options = [o for o in options if o.kind is not OptionKind.TIMEOUT]
            if args.timeout > 0:
                options.append(with_timeout(args.timeout))
        settings = build_settings(*options)

        debug_dir = args.debug_dir or cfg.debug.dir
        client = BrowserLogin(settings)
        logger.info("Starting login (browser=%s headless=%s timeout=%.0fs)", client, settings.headless, settings.timeout)
        t0 = time.time()
        try:
            result = asyncio.run(client.login(cfg.credentials.to_credentials()))
        except KeyboardInterrupt:
            print("Interrupted.")
            return 130
        except LoginError as e:
            logger.error("Login failed after %.1fs: %s", time.time() - t0, e)
            try:
                save_error_artifacts(e, debug_dir=debug_dir)
                out = create_debug_bundle(debug_dir=debug_dir, log_file=cfg.logging.file_path, out_dir="data")
                logger.error("Wrote debug bundle: %s", out)
            except OSError:
                logger.debug("Failed to write failure artifacts.", exc_info=True)
            print(f"❌ login failed: {e}")
            return 1

        logger.info("Login finished (seconds=%.2f)", time.time() - t0)
        print(_format_result(result, full=args.json))
        return 0

    if args.cmd == "debug-bundle":
        cfg = load_config(args.config)
        out = create_debug_bundle(debug_dir=cfg.debug.dir, log_file=cfg.logging.file_path, out_dir=args.out_dir)
        print(f"✅ Debug bundle written: {out}")
        return 0

    raise AssertionError("Unhandled command")


def _format_result(result: LoginResult, *, full: bool) -> str:
    if full:
        payload = {
            "access_token": result.token.access_token,
            "token_type": result.token.token_type,
            "expiry": result.token.expiry.isoformat(),
            "cookies": [c.model_dump(mode="json") for c in result.cookies],
        }
        return json.dumps(payload, indent=2)

    lines = [
        f"✅ token {result.token.masked()} (expires {result.token.expiry.isoformat()})",
        f"   {len(result.cookies)} cookies: {', '.join(sorted(c.name for c in result.cookies)) or '-'}",
    ]
    return "\n".join(lines)


if __name__ == "__main__":
    raise SystemExit(main())
