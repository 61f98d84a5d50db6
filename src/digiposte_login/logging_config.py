import logging
import os
from pathlib import Path
from typing import Optional

PACKAGE_LOGGER = "digiposte_login"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def parse_level(level: Optional[str], default: int = logging.INFO) -> int:
    value = getattr(logging, (level or "").strip().upper(), None)
    return value if isinstance(value, int) else default


def configure_logging(level: str = "INFO", file_path: Optional[str] = None) -> None:
    """
    `level` applies to the login's own loggers. Everything else logs at INFO or above, so a
    DEBUG login run does not turn on Playwright's protocol traces.
    """
    numeric_level = parse_level(level)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if file_path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    logging.basicConfig(
        level=max(numeric_level, logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,  # the CLI configures once from env, then again from the config file
    )
    logging.getLogger(PACKAGE_LOGGER).setLevel(numeric_level)

    # Reduce noise from chatty libraries
    noisy_level = parse_level(os.getenv("NOISY_LOG_LEVEL"), default=logging.WARNING)
    for noisy in ("playwright", "asyncio"):
        logging.getLogger(noisy).setLevel(noisy_level)
