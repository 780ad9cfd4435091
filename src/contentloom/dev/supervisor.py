"""Lifecycle supervisor: owns the user's sub-command and tears it down exactly once."""

from __future__ import annotations

import asyncio
import atexit
import contextlib
import logging
import signal
import sys
from typing import TYPE_CHECKING, Any

from contentloom.errors import SubprocessError

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path
    from types import TracebackType

logger = logging.getLogger(__name__)

SIGNAL_NAMES = ("SIGINT", "SIGTERM", "SIGUSR1", "SIGUSR2")


class LifecycleSupervisor:
    """Starts the sub-command and kills it on exit, signal or uncaught fault.

    ``shutdown()`` is idempotent: whichever trigger fires first does the work,
    every later trigger is a no-op.
    """

    def __init__(
        self,
        command: str | None,
        *,
        cwd: Path | None = None,
        on_exit: Callable[[], None] | None = None,
    ) -> None:
        self.command = command
        self.cwd = cwd
        self.on_exit = on_exit
        self.process: asyncio.subprocess.Process | None = None
        self.is_shut_down = False
        self._installed = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._previous_excepthook: Callable[..., Any] | None = None

    async def start(self) -> asyncio.subprocess.Process | None:
        """Launch the sub-command, if one was given.

        Raises
        ------
        SubprocessError
            When the shell cannot be spawned.
        """
        if not self.command:
            return None
        try:
            self.process = await asyncio.create_subprocess_shell(self.command, cwd=self.cwd)
        except OSError as exc:
            raise SubprocessError(f"Unable to start `{self.command}`: {exc}") from exc
        logger.info("Starting subprocess: %s", self.command)
        return self.process

    def install(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Register the shutdown triggers. Calling it again does nothing."""
        if self._installed:
            return
        self._installed = True
        self._loop = loop or asyncio.get_running_loop()

        atexit.register(self.shutdown)
        for name in SIGNAL_NAMES:
            sig = getattr(signal, name, None)
            if sig is None:
                continue
            try:
                self._loop.add_signal_handler(sig, self._on_signal, name)
            except (NotImplementedError, RuntimeError, ValueError):
                logger.debug("Cannot install handler for %s", name)
        self._loop.set_exception_handler(self._on_loop_exception)
        self._previous_excepthook = sys.excepthook
        sys.excepthook = self._on_uncaught

    def uninstall(self) -> None:
        if not self._installed:
            return
        self._installed = False
        atexit.unregister(self.shutdown)
        if self._loop is not None and not self._loop.is_closed():
            for name in SIGNAL_NAMES:
                sig = getattr(signal, name, None)
                if sig is not None:
                    with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
                        self._loop.remove_signal_handler(sig)
            self._loop.set_exception_handler(None)
        if self._previous_excepthook is not None:
            sys.excepthook = self._previous_excepthook

    def shutdown(self) -> None:
        """Kill the sub-command if it is still running."""
        if self.is_shut_down:
            return
        self.is_shut_down = True
        proc = self.process
        if proc is not None and proc.returncode is None:
            logger.debug("Stopping subprocess %s", proc.pid)
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
        if self.on_exit is not None:
            self.on_exit()

    async def wait(self, timeout: float = 5.0) -> int | None:
        """Reap the sub-command after :meth:`shutdown` and return its exit code."""
        proc = self.process
        if proc is None:
            return None
        try:
            return await asyncio.wait_for(proc.wait(), timeout)
        except asyncio.TimeoutError:
            logger.warning("Subprocess %s did not exit within %.0fs", proc.pid, timeout)
            return proc.returncode

    # -- triggers -----------------------------------------------------------

    def _on_signal(self, name: str) -> None:
        logger.debug("Received %s", name)
        self.shutdown()

    def _on_loop_exception(
        self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]
    ) -> None:
        loop.default_exception_handler(context)
        self.shutdown()

    def _on_uncaught(
        self,
        exc_type: type[BaseException],
        exc: BaseException,
        tb: TracebackType | None,
    ) -> None:
        self.shutdown()
        hook = self._previous_excepthook or sys.__excepthook__
        hook(exc_type, exc, tb)
