"""csync2 process adapter.

This module provides:
- CsyncEngine: Runs csync2 client commands (check, update, full resync)
- CsyncServer: Owns the background csync2 server process

csync2 options given on the command line are forwarded verbatim to every
client command. The server only receives the hostname (-N) and database
(-D) options, plus -ii (listen) and -t (timings, used for quiescence).
"""

from __future__ import annotations

import logging
import subprocess
import time
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import IO, Any

from csynctrigger.core.config import DEFAULT_CSYNC_BINARY
from csynctrigger.core.errors import SyncServerError
from csynctrigger.sync.types import CommandResult

logger = logging.getLogger(__name__)

# Seconds to wait for the server to exit before killing it
SERVER_STOP_TIMEOUT = 5.0

Runner = Callable[..., Any]


class CsyncEngine:
    """Issues csync2 client commands.

    Every command is ``[binary, *options, *subcommand]``. Failures are
    reported through CommandResult rather than raised, so a failed check or
    update never stops the coordinator.
    """

    def __init__(
        self,
        options: Sequence[str] = (),
        binary: str = DEFAULT_CSYNC_BINARY,
        runner: Runner = subprocess.run,
    ) -> None:
        """Initialize the engine.

        Args:
            options: Passthrough csync2 options.
            binary: csync2 executable.
            runner: subprocess.run compatible callable (injectable for tests).
        """
        self._options = list(options)
        self._binary = binary
        self._runner = runner

    @property
    def options(self) -> list[str]:
        """Get the passthrough options."""
        return list(self._options)

    def command(self, *subcommand: str) -> list[str]:
        """Build a full csync2 command line."""
        return [self._binary, *self._options, *subcommand]

    def run(self, *subcommand: str) -> CommandResult:
        """Run one csync2 command and wait for it.

        Args:
            subcommand: csync2 arguments following the passthrough options.

        Returns:
            The command result. Nonzero exits and spawn errors are logged.
        """
        args = self.command(*subcommand)
        started = time.monotonic()
        try:
            completed = self._runner(args, check=False)
        except OSError as e:
            result = CommandResult(
                args=args,
                returncode=None,
                elapsed=time.monotonic() - started,
                error=str(e),
            )
        else:
            result = CommandResult(
                args=args,
                returncode=completed.returncode,
                elapsed=time.monotonic() - started,
            )

        if result.ok:
            logger.debug("csync2 finished in %.2fs: %s", result.elapsed, " ".join(args))
        else:
            logger.error("csync2 command %s", result.describe())
        return result

    def check(self, paths: Sequence[str], recursive: bool = True) -> CommandResult:
        """Check paths and mark changed files dirty.

        Args:
            paths: Paths to check.
            recursive: Also check everything below directories.
        """
        flag = "-cr" if recursive else "-c"
        return self.run(flag, *paths)

    def update(self, peer: str | None = None) -> CommandResult:
        """Push dirty files to one peer, or to all peers if none given."""
        if peer is None:
            return self.run("-u")
        return self.run("-ub", "-P", peer)

    def full_resync(self) -> CommandResult:
        """Check and update the whole configured tree."""
        return self.run("-x")


class CsyncServer:
    """Background csync2 server process.

    Whoever starts the server owns stopping it; use it as a context manager
    (or with contextlib.ExitStack) so it is stopped on every exit path.

    Usage:
        with CsyncServer(["-N", "node1"], Path("csync_server.log")):
            ...  # run the coordinator
    """

    def __init__(
        self,
        server_options: Sequence[str],
        status_log: Path,
        binary: str = DEFAULT_CSYNC_BINARY,
        startup_delay: float = 0.5,
        popen: Callable[..., subprocess.Popen[bytes]] = subprocess.Popen,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the server wrapper.

        Args:
            server_options: Hostname and database options for the server.
            status_log: File receiving the server output.
            binary: csync2 executable.
            startup_delay: Seconds to wait before checking the process.
            popen: subprocess.Popen compatible callable.
            sleep: Sleep function.
        """
        self._server_options = list(server_options)
        self._status_log = Path(status_log)
        self._binary = binary
        self._startup_delay = startup_delay
        self._popen = popen
        self._sleep = sleep
        self._process: subprocess.Popen[bytes] | None = None
        self._log_handle: IO[bytes] | None = None

    @property
    def command(self) -> list[str]:
        """Command line used to start the server."""
        return [self._binary, "-ii", "-t", *self._server_options]

    @property
    def is_running(self) -> bool:
        """Check if the server process is alive."""
        return self._process is not None and self._process.poll() is None

    @property
    def pid(self) -> int | None:
        """Get the server process id."""
        return self._process.pid if self._process else None

    def start(self) -> None:
        """Start the server and verify it stays up.

        Raises:
            SyncServerError: If the process cannot be spawned or exits
                during the startup delay.
        """
        if self._process is not None:
            return

        self._status_log.parent.mkdir(parents=True, exist_ok=True)
        # Append mode so clearing the log never leaves the server writing
        # past the end of the truncated file
        self._log_handle = open(self._status_log, "ab")  # noqa: SIM115

        try:
            self._process = self._popen(
                self.command,
                stdin=subprocess.DEVNULL,
                stdout=self._log_handle,
                stderr=subprocess.STDOUT,
            )
        except OSError as e:
            self._close_log()
            raise SyncServerError(f"Failed to start csync server: {e}") from e

        self._sleep(self._startup_delay)
        if self._process.poll() is not None:
            returncode = self._process.returncode
            self._process = None
            self._close_log()
            raise SyncServerError(
                f"Failed to start csync server (exited with status {returncode})"
            )

        logger.info("csync2 server running (pid %d)", self._process.pid)

    def stop(self, timeout: float = SERVER_STOP_TIMEOUT) -> None:
        """Stop the server. Safe to call more than once."""
        process = self._process
        if process is None:
            return
        self._process = None

        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                logger.warning("csync2 server did not stop, killing it")
                process.kill()
                process.wait()

        self._close_log()
        logger.info("csync2 server stopped")

    def _close_log(self) -> None:
        if self._log_handle is not None:
            self._log_handle.close()
            self._log_handle = None

    def __enter__(self) -> CsyncServer:
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.stop()
