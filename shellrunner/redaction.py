from __future__ import annotations

import threading
from typing import Any, Iterable


REDACTED = "<sensitive>"


class SecretFilter:
    """
    Replaces registered secret values with a placeholder.

    One instance is handed to the runner and to everything that writes
    diagnostics for it; there is no process-wide registry.
    """

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        self._lock = threading.Lock()
        self._secrets: set[str] = set()
        for s in secrets:
            self.add(s)

    def add(self, *values: str) -> None:
        with self._lock:
            for v in values:
                # Whitespace-only values would redact every space in the output.
                if isinstance(v, str) and v.strip():
                    self._secrets.add(v)

    def __contains__(self, value: object) -> bool:
        with self._lock:
            return value in self._secrets

    def __len__(self) -> int:
        with self._lock:
            return len(self._secrets)

    def redact(self, text: str) -> str:
        with self._lock:
            # Longest first so a secret containing another is replaced whole.
            secrets = sorted(self._secrets, key=len, reverse=True)
        for s in secrets:
            text = text.replace(s, REDACTED)
        return text

    def redact_obj(self, obj: Any) -> Any:
        if isinstance(obj, str):
            return self.redact(obj)
        if isinstance(obj, dict):
            return {k: self.redact_obj(v) for k, v in obj.items()}
        if isinstance(obj, (list, tuple)):
            return [self.redact_obj(v) for v in obj]
        return obj
