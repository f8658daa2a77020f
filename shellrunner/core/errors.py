from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ShellRunnerError(Exception):
    code: str
    message: str
    data: dict[str, Any] | None = None

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ValidationError(ShellRunnerError):
    pass


class RenderError(ShellRunnerError):
    pass


class ScriptPreparationError(ShellRunnerError):
    pass


class ScriptExecutionError(ShellRunnerError):
    pass


class ExitCodeRejected(ShellRunnerError):
    pass
