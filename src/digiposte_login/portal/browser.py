from __future__ import annotations

import asyncio
import logging
import shutil
import socket
import tempfile
from typing import Awaitable, Callable, Optional, Sequence

from ..errors import SessionError


logger = logging.getLogger(__name__)


DEFAULT_ARGS: tuple[str, ...] = (
    "--no-first-run",
    "--no-default-browser-check",
    "--disable-background-networking",
    "--disable-client-side-phishing-detection",
    "--disable-default-apps",
    "--disable-extensions",
    "--disable-hang-monitor",
    "--disable-popup-blocking",
    "--disable-sync",
    "--disable-translate",
    "--metrics-recording-only",
    "--password-store=basic",
    "--disable-blink-features=AutomationControlled",
)


def _find_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class BrowserProcess:
    """
    A Chromium-family browser started as our own child process with remote debugging enabled.

    Playwright attaches to it over CDP. Owning the process (instead of letting Playwright launch it)
    gives us a PID to kill when the browser does not exit within the grace period.
    """

    def __init__(self, proc: asyncio.subprocess.Process, *, port: int, user_data_dir: str, log: logging.Logger) -> None:
        self._proc = proc
        self.port = port
        self._user_data_dir = user_data_dir
        self._log = log

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def endpoint(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    @property
    def running(self) -> bool:
        return self._proc.returncode is None

    @classmethod
    async def launch(
        cls,
        binary_path: str,
        *,
        headless: bool = True,
        locale: str = "",
        extra_args: Sequence[str] = (),
        startup_timeout: float = 20.0,
        log: Optional[logging.Logger] = None,
    ) -> "BrowserProcess":
        log = log or logger
        port = _find_free_port()
        user_data_dir = tempfile.mkdtemp(prefix="digiposte_login_")

        args = [
            binary_path,
            f"--remote-debugging-port={port}",
            f"--user-data-dir={user_data_dir}",
            *DEFAULT_ARGS,
            *extra_args,
        ]
        if locale:
            args.append(f"--lang={locale}")
        if headless:
            args.append("--headless=new")

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            shutil.rmtree(user_data_dir, ignore_errors=True)
            raise SessionError("launch browser", e) from e

        browser = cls(proc, port=port, user_data_dir=user_data_dir, log=log)
        try:
            await browser._wait_until_listening(startup_timeout)
        except BaseException:
            await browser.kill()
            shutil.rmtree(user_data_dir, ignore_errors=True)
            raise
        log.info("Browser started (pid=%d, port=%d).", proc.pid, port)
        return browser

    async def _wait_until_listening(self, timeout: float) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            if not self.running:
                raise SessionError(f"launch browser: process exited with code {self._proc.returncode}")
            try:
                _, writer = await asyncio.open_connection("127.0.0.1", self.port)
            except OSError:
                await asyncio.sleep(0.1)
                continue
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass
            return
        raise SessionError(f"launch browser: remote debugging port {self.port} not ready after {timeout:.1f}s")

    async def stop(
        self,
        *,
        grace_period: float,
        graceful: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> bool:
        """
        Ask the browser to exit (via `graceful`, e.g. CDP `Browser.close`) and wait up to `grace_period`
        for the process to end; kill it otherwise. Returns True if the process had to be killed.
        """
        killed = False
        loop = asyncio.get_running_loop()
        deadline = loop.time() + grace_period
        try:
            if self.running:
                try:
                    if graceful is not None:
                        await asyncio.wait_for(graceful(), timeout=grace_period)
                    else:
                        self._proc.terminate()
                    await asyncio.wait_for(self._proc.wait(), timeout=max(0.0, deadline - loop.time()))
                except (asyncio.TimeoutError, ProcessLookupError):
                    self._log.error("Browser did not exit within %.1fs; killing it (pid=%d).", grace_period, self.pid)
                    await self.kill()
                    killed = True
                except Exception:
                    self._log.error("Failed to close browser gracefully; killing it (pid=%d).", self.pid, exc_info=True)
                    await self.kill()
                    killed = True
        finally:
            shutil.rmtree(self._user_data_dir, ignore_errors=True)
        return killed

    async def kill(self) -> None:
        if not self.running:
            return
        try:
            self._proc.kill()
        except ProcessLookupError:
            return
        except OSError:
            self._log.error("Failed to kill browser (pid=%d).", self.pid, exc_info=True)
            return
        await self._proc.wait()
