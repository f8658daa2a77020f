from __future__ import annotations

import os
import signal
import subprocess
import threading
from typing import Callable, IO, List, Optional, Sequence

from ..ui import Ui
from .errors import ScriptExecutionError


_POSIX = os.name == "posix"


class LocalCommunicator:
    """
    Runs a command on this host and relays its output to a Ui as it arrives.

    `argv[0]` is the program and the rest its arguments; no shell is added
    around it, the execute_command templates decide that.
    """

    def __init__(self, *, poll_interval: float = 0.1, kill_grace: float = 5.0):
        self._poll_interval = poll_interval
        self._kill_grace = kill_grace

    def run(self, argv: Sequence[str], ui: Ui, *, cancel: Optional[threading.Event] = None) -> int:
        if not argv:
            raise ScriptExecutionError(
                code="command.empty",
                message="Error launching command via shell-local communicator: No ExecuteCommand provided",
            )

        try:
            proc = subprocess.Popen(
                list(argv),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                start_new_session=_POSIX,
            )
        except (OSError, ValueError) as e:
            raise ScriptExecutionError(
                code="script.exec_failed",
                message=f"Error launching command: {e}",
                data={"program": argv[0]},
            ) from e

        relay_errors: List[BaseException] = []
        relays = [
            threading.Thread(target=self._relay, args=(proc.stdout, ui.message, relay_errors), daemon=True),
            threading.Thread(target=self._relay, args=(proc.stderr, ui.error, relay_errors), daemon=True),
        ]
        for t in relays:
            t.start()

        cancelled = False
        while True:
            try:
                proc.wait(timeout=self._poll_interval)
                break
            except subprocess.TimeoutExpired:
                if cancel is not None and cancel.is_set():
                    cancelled = True
                    self._stop(proc)
                    break
            except KeyboardInterrupt:
                self._stop(proc)
                raise

        for t in relays:
            t.join()

        if cancelled:
            raise ScriptExecutionError(code="script.exec_failed", message="Command cancelled before it finished")
        if relay_errors:
            raise ScriptExecutionError(
                code="script.exec_failed",
                message=f"Error relaying command output: {relay_errors[0]!r}",
            ) from relay_errors[0]

        code = proc.returncode
        if code is None or code < 0:
            # Negative return codes are POSIX signal deaths, not exit statuses.
            raise ScriptExecutionError(
                code="script.exec_failed",
                message=f"Command terminated abnormally (return code {code})",
                data={"returncode": code},
            )
        return code

    def _stop(self, proc: subprocess.Popen) -> None:
        # The child leads its own session on POSIX, so signal the whole group
        # to reach anything it spawned that still holds the output pipes.
        self._signal(proc, signal.SIGTERM if _POSIX else None)
        try:
            proc.wait(timeout=self._kill_grace)
        except subprocess.TimeoutExpired:
            self._signal(proc, signal.SIGKILL if _POSIX else None)
            proc.wait()

    @staticmethod
    def _signal(proc: subprocess.Popen, sig) -> None:
        if sig is None:
            proc.kill()
            return
        try:
            os.killpg(proc.pid, sig)
        except ProcessLookupError:
            pass

    @staticmethod
    def _relay(stream: Optional[IO[str]], sink: Callable[[str], None], errors: List[BaseException]) -> None:
        if stream is None:
            return
        try:
            with stream:
                for line in stream:
                    sink(line.rstrip("\r\n"))
        except Exception as e:  # noqa: BLE001
            errors.append(e)
