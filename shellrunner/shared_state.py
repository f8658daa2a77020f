from __future__ import annotations

import os
import tempfile
from pathlib import Path


RUN_UUID_ENV = "SHELLRUNNER_RUN_UUID"


class SharedStateStore:
    """
    File-backed key/value state shared between the hosting system and runs.

    A value for (key, build_name) lives in
    `<tmp_dir>/shellrunner-<run_uuid>-<key>-<build_name>`. Builders write
    secrets such as the WinRM password here; scripts read them back through
    template data.
    """

    def __init__(self, tmp_dir: Path | None = None, run_uuid: str | None = None):
        self._tmp_dir = Path(tmp_dir) if tmp_dir is not None else Path(tempfile.gettempdir())
        self._run_uuid = run_uuid if run_uuid is not None else os.environ.get(RUN_UUID_ENV, "")

    def path_for(self, key: str, build_name: str) -> Path:
        return self._tmp_dir / f"shellrunner-{self._run_uuid}-{key}-{build_name}"

    def retrieve(self, key: str, build_name: str) -> str:
        """
        Raises OSError when nothing has been stored for (key, build_name).
        """
        return self.path_for(key, build_name).read_text(encoding="utf-8")

    def store(self, key: str, build_name: str, value: str) -> Path:
        p = self.path_for(key, build_name)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(value, encoding="utf-8")
        return p

    def remove(self, key: str, build_name: str) -> None:
        try:
            self.path_for(key, build_name).unlink()
        except FileNotFoundError:
            pass
