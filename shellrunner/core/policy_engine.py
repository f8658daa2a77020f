from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .config import RunConfig
from .errors import ExitCodeRejected
from .runtime_context import RuntimeContext


@dataclass(frozen=True)
class PolicyResult:
    decision: str  # allow|skip
    reason_codes: List[str]
    summary: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.decision == "allow"


class PolicyEngine:
    """
    Decides whether a run applies to this host at all.

    A skip is not an error: the caller reports it and treats the run as
    successful.
    """

    def evaluate_platform(self, ctx: RuntimeContext, config: RunConfig) -> PolicyResult:
        if not config.only_on:
            return PolicyResult(decision="allow", reason_codes=["os.any"], summary="No only_on restriction")
        if ctx.runtime_os in config.only_on:
            return PolicyResult(decision="allow", reason_codes=["os.ok"], summary=f"Runtime OS {ctx.runtime_os} is allowed")
        return PolicyResult(
            decision="skip",
            reason_codes=["os.not_listed"],
            summary="Runtime OS {} not in only_on: {}".format(ctx.runtime_os, ", ".join(config.only_on)),
        )


class ExitCodePolicy:
    """
    Exit-code acceptance: a code is accepted when it is one of `valid_codes`.
    """

    def __init__(self, valid_codes: Iterable[int] = (0,)):
        codes: Tuple[int, ...] = tuple(valid_codes)
        self._codes = codes if codes else (0,)

    @classmethod
    def from_config(cls, config: RunConfig) -> "ExitCodePolicy":
        return cls(config.valid_exit_codes)

    @property
    def valid_codes(self) -> Tuple[int, ...]:
        return self._codes

    def accepts(self, code: int) -> bool:
        return code in self._codes

    def require_valid(self, code: int, *, script: str) -> None:
        if not self.accepts(code):
            raise ExitCodeRejected(
                code="script.exit_code_rejected",
                message="Script {} exited with non-zero exit status: {}. Allowed exit codes are: {}".format(
                    script, code, list(self._codes)
                ),
                data={"script": script, "exit_code": code, "valid_exit_codes": list(self._codes)},
            )
