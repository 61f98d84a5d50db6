from __future__ import annotations

import logging
import time
import zipfile
from pathlib import Path
from typing import Iterable, Optional

from ..errors import get_location, get_screenshot


logger = logging.getLogger(__name__)


def save_error_artifacts(err: BaseException, *, debug_dir: str, prefix: str = "login_failed") -> list[Path]:
    """
    Write the screenshot and page location attached to a login error (if any) into `debug_dir`.

    Returns the written paths; empty when the error carries no diagnostics.
    """
    screenshot = get_screenshot(err)
    location = get_location(err)
    if not screenshot and not location:
        return []

    out_root = Path(debug_dir)
    out_root.mkdir(parents=True, exist_ok=True)
    stamp = time.strftime("%Y%m%d_%H%M%S")

    written: list[Path] = []
    if screenshot:
        shot = out_root / f"{prefix}_{stamp}.jpg"
        shot.write_bytes(screenshot)
        written.append(shot)
    note = out_root / f"{prefix}_{stamp}.txt"
    note.write_text(f"error: {err}\nlocation: {location or '-'}\n", encoding="utf-8")
    written.append(note)

    logger.info("Saved login diagnostics (%s)", ", ".join(p.name for p in written))
    return written


def create_debug_bundle(
    *,
    debug_dir: str,
    log_file: str,
    out_dir: str = "data",
    extra_paths: Optional[Iterable[str]] = None,
) -> Path:
    """
    Create a shareable zip containing debug artifacts + logs.

    Intentionally excludes secrets (.env, config.yaml).
    """
    out_root = Path(out_dir)
    out_root.mkdir(parents=True, exist_ok=True)

    stamp = time.strftime("%Y%m%d_%H%M%S")
    out_path = out_root / f"debug_bundle_{stamp}.zip"

    dbg = Path(debug_dir)
    log = Path(log_file)

    def _add_file(z: zipfile.ZipFile, file_path: Path, arcname: str) -> None:
        try:
            if file_path.exists() and file_path.is_file():
                z.write(file_path, arcname=arcname)
        except OSError:
            # best-effort; don't fail bundling because a file disappeared
            logger.debug("Skipping %s in debug bundle", file_path, exc_info=True)

    with zipfile.ZipFile(out_path, "w", compression=zipfile.ZIP_DEFLATED) as z:
        _add_file(z, log, arcname=log.name)

        if dbg.exists() and dbg.is_dir():
            for p in sorted(dbg.rglob("*")):
                if p.is_file():
                    _add_file(z, p, arcname=str(Path("debug") / p.relative_to(dbg)))

        for raw in extra_paths or ():
            p = Path(raw)
            if p.is_file():
                _add_file(z, p, arcname=str(Path("extra") / p.name))
            elif p.is_dir():
                for f in sorted(p.rglob("*")):
                    if f.is_file():
                        _add_file(z, f, arcname=str(Path("extra") / p.name / f.relative_to(p)))

    return out_path
