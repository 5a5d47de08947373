"""Interactive subprocess sessions: spawn, stream output, forward input, kill."""

from __future__ import annotations

import os
import signal
import subprocess
import threading
from collections.abc import Callable
from pathlib import Path

from .core import logger

OutputCallback = Callable[["ProcessHandle", str], None]
ExitCallback = Callable[["ProcessHandle", int], None]

KILL_GRACE_SECONDS = 3.0

_POSIX = os.name == "posix"


class ProcessHandle:
    """A running shell command whose output is drained by a reader thread.

    ``on_output`` receives each line as it arrives; ``on_exit`` fires once,
    after the last line has been delivered, with the exit status.
    """

    def __init__(
        self,
        process: subprocess.Popen[str],
        on_output: OutputCallback,
        on_exit: ExitCallback,
    ) -> None:
        self._process = process
        self._on_output = on_output
        self._on_exit = on_exit
        self._done = threading.Event()
        self._reader = threading.Thread(target=self._drain, name=f"jest-{process.pid}", daemon=True)

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    def start(self) -> None:
        self._reader.start()

    def _drain(self) -> None:
        stdout = self._process.stdout
        try:
            if stdout is not None:
                for line in stdout:
                    self._on_output(self, line)
        finally:
            status = self._process.wait()
            try:
                self._on_exit(self, status)
            finally:
                self._done.set()

    def is_alive(self) -> bool:
        """False once the exit callback has returned."""
        return not self._done.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until output is drained and the exit callback ran."""
        return self._done.wait(timeout)

    def send_text(self, text: str) -> bool:
        stdin = self._process.stdin
        if stdin is None or not self.is_alive():
            return False
        try:
            stdin.write(text)
            stdin.flush()
        except (BrokenPipeError, ValueError, OSError) as exc:
            logger.debug(f"send_text failed for pid {self.pid}: {exc}")
            return False
        return True

    def _signal(self, force: bool) -> None:
        # The shell runs in its own session on POSIX; signal the whole group
        # so node workers die with it.
        try:
            if _POSIX:
                os.killpg(self._process.pid, signal.SIGKILL if force else signal.SIGTERM)
            elif force:
                self._process.kill()
            else:
                self._process.terminate()
        except ProcessLookupError:
            pass

    def kill(self) -> None:
        """Terminate the process, escalating to a hard kill after a grace period."""
        if self._process.poll() is None:
            self._signal(force=False)
            try:
                self._process.wait(timeout=KILL_GRACE_SECONDS)
            except subprocess.TimeoutExpired:
                logger.warning(f"Process {self.pid} ignored terminate, killing")
                self._signal(force=True)
        if threading.current_thread() is not self._reader:
            self.wait(KILL_GRACE_SECONDS)


def spawn_process(
    cwd: Path,
    command: str,
    on_output: OutputCallback,
    on_exit: ExitCallback,
    env: dict[str, str] | None = None,
) -> ProcessHandle:
    """Run *command* through the shell in *cwd* and start streaming its output.

    Returns immediately.  Raises ``OSError`` if the process cannot be started.
    """
    process = subprocess.Popen(
        command,
        shell=True,
        cwd=str(cwd),
        env=env,
        start_new_session=_POSIX,
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        encoding="utf-8",
        errors="replace",
        bufsize=1,
    )
    handle = ProcessHandle(process, on_output, on_exit)
    handle.start()
    return handle
