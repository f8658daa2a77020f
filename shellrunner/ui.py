from __future__ import annotations

import sys
import threading
from typing import List, Protocol, TextIO, Tuple


class Ui(Protocol):
    """
    Output sink for a run.

    - say: orchestrator status lines
    - message: child stdout, line by line
    - error: child stderr, line by line
    """

    def say(self, message: str) -> None: ...

    def message(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class StreamUi:
    """
    Writes to text streams. stdout/stderr relay threads may call it
    concurrently, so writes are serialized.
    """

    def __init__(self, out: TextIO | None = None, err: TextIO | None = None):
        self._out = out if out is not None else sys.stdout
        self._err = err if err is not None else sys.stderr
        self._lock = threading.Lock()

    def _write(self, stream: TextIO, message: str) -> None:
        with self._lock:
            stream.write(message + "\n")
            stream.flush()

    def say(self, message: str) -> None:
        self._write(self._out, f"==> {message}")

    def message(self, message: str) -> None:
        self._write(self._out, f"    {message}")

    def error(self, message: str) -> None:
        self._write(self._err, f"    {message}")


class BufferedUi:
    """
    Keeps every line in memory as (kind, text); kind is say|message|error.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.lines: List[Tuple[str, str]] = []

    def _add(self, kind: str, message: str) -> None:
        with self._lock:
            self.lines.append((kind, message))

    def say(self, message: str) -> None:
        self._add("say", message)

    def message(self, message: str) -> None:
        self._add("message", message)

    def error(self, message: str) -> None:
        self._add("error", message)

    def of_kind(self, kind: str) -> List[str]:
        with self._lock:
            return [text for k, text in self.lines if k == kind]
