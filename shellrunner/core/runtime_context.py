from __future__ import annotations

import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


def current_os() -> str:
    """
    Runtime OS identifier in the lowercase form used by `only_on`
    (linux, darwin, windows, freebsd, ...).
    """
    return platform.system().lower()


@dataclass(frozen=True)
class RuntimeContext:
    """
    Per-invocation facts supplied by the hosting system.

    - build_name/builder_type identify the build and are exported to scripts.
    - runtime_os is what the `only_on` gate is checked against.
    """

    run_id: str
    build_name: str = ""
    builder_type: str = ""
    runtime_os: str = field(default_factory=current_os)
    trace_path: Path = Path("trace.jsonl")
    meta: dict[str, Any] = field(default_factory=dict)
