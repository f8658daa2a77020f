from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path
from typing import Iterator, List, Optional

from ..trace.trace_emitter import TraceEmitter
from .config import RunConfig
from .errors import ScriptPreparationError
from .templating import EnvVarsTemplateData, TemplateRenderer


TEMP_SCRIPT_PREFIX = "shellrunner-shell"


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def materialize_inline_script(
    config: RunConfig,
    data: EnvVarsTemplateData,
    renderer: TemplateRenderer,
    trace: TraceEmitter,
    *,
    tmp_dir: Optional[Path] = None,
) -> Path:
    """
    Write `config.inline` to a new executable temp file and return its path.

    The caller owns the returned file. On failure nothing is left on disk.
    """
    try:
        fd, name = tempfile.mkstemp(prefix=TEMP_SCRIPT_PREFIX, dir=str(tmp_dir) if tmp_dir else None)
    except OSError as e:
        raise ScriptPreparationError(code="script.prepare_failed", message=f"Error preparing shell script: {e}") from e
    path = Path(name)

    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            if config.inline_shebang:
                shebang = f"#!{config.inline_shebang}\n"
                trace.emit("shebang_prepended", script=str(path), message=f"Prepending inline script with {shebang.strip()}")
                f.write(shebang)

            for statement in config.inline:
                # RenderError propagates unchanged.
                f.write(renderer.render(statement, data) + "\n")

            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        _remove_quietly(path)
        raise ScriptPreparationError(
            code="script.prepare_failed",
            message=f"Error preparing shell script: {e}",
            data={"path": str(path)},
        ) from e
    except BaseException:
        _remove_quietly(path)
        raise

    try:
        os.chmod(path, 0o700)
    except OSError as e:
        trace.emit(
            "chmod_failed",
            script=str(path),
            level="error",
            message=f"error modifying permissions of temp script file: {e}",
        )

    if config.tempfile_extension:
        renamed = path.with_name(f"{path.name}.{config.tempfile_extension}")
        try:
            os.rename(path, renamed)
        except OSError as e:
            _remove_quietly(path)
            raise ScriptPreparationError(
                code="script.prepare_failed",
                message=f"Error preparing shell script: {e}",
                data={"path": str(path)},
            ) from e
        path = renamed

    trace.emit("script_materialized", script=str(path), data={"statements": len(config.inline)})
    return path


@contextlib.contextmanager
def owned_scripts(
    config: RunConfig,
    data: EnvVarsTemplateData,
    renderer: TemplateRenderer,
    trace: TraceEmitter,
    *,
    tmp_dir: Optional[Path] = None,
) -> Iterator[List[str]]:
    """
    Yield the ordered script paths of a run.

    Explicit scripts pass through untouched. An inline script is generated on
    entry and deleted on exit, whichever way the block is left.
    """
    if config.scripts:
        yield list(config.scripts)
        return
    if not config.inline:
        yield []
        return

    path = materialize_inline_script(config, data, renderer, trace, tmp_dir=tmp_dir)
    try:
        yield [str(path)]
    finally:
        _remove_quietly(path)
