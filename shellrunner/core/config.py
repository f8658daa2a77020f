from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import jsonschema
import yaml

from shellrunner.resources import run_config_schema_path

from .errors import ValidationError
from .runtime_context import current_os


SUPPORTED_OS = ("darwin", "freebsd", "linux", "openbsd", "solaris", "windows")

_PRINTF_S_RE = re.compile(r"(?<!%)(?:%%)*%s")


@dataclass(frozen=True)
class RunConfig:
    """
    Immutable configuration for one run.

    `scripts` and `inline` are mutually exclusive; `load_config` guarantees
    exactly one of them is non-empty.
    """

    scripts: Tuple[str, ...] = ()
    inline: Tuple[str, ...] = ()
    only_on: Tuple[str, ...] = ()
    execute_command: Tuple[str, ...] = ()
    environment_vars: Tuple[str, ...] = ()
    env_var_format: str = "%s='%s' "
    tempfile_extension: str = ""
    inline_shebang: str = ""
    valid_exit_codes: Tuple[int, ...] = (0,)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scripts": list(self.scripts),
            "inline": list(self.inline),
            "only_on": list(self.only_on),
            "execute_command": list(self.execute_command),
            "environment_vars": list(self.environment_vars),
            "env_var_format": self.env_var_format,
            "tempfile_extension": self.tempfile_extension,
            "inline_shebang": self.inline_shebang,
            "valid_exit_codes": list(self.valid_exit_codes),
        }


def default_execute_command(runtime_os: str) -> Tuple[str, ...]:
    if runtime_os == "windows":
        return ("cmd", "/V", "/C", "{{ Vars }}", "call", "{{ Script }}")
    return ("/bin/sh", "-c", "{{ Vars }} {{ Script }}")


def default_env_var_format(runtime_os: str) -> str:
    if runtime_os == "windows":
        return "set %s=%s && "
    return "%s='%s' "


_SCHEMA: Optional[Dict[str, Any]] = None


def _schema() -> Dict[str, Any]:
    global _SCHEMA
    if _SCHEMA is None:
        _SCHEMA = json.loads(run_config_schema_path().read_text(encoding="utf-8"))
    return _SCHEMA


def load_config(raw: Any, *, runtime_os: Optional[str] = None) -> RunConfig:
    """
    Validate a raw mapping (e.g. parsed YAML) and apply OS-dependent defaults.

    All problems are collected and raised together as one ValidationError.
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValidationError(code="config.invalid", message="Config must be an object")

    validator = jsonschema.Draft202012Validator(_schema())
    schema_errors = [e.message for e in sorted(validator.iter_errors(raw), key=str)]
    if schema_errors:
        raise ValidationError(
            code="config.schema_invalid",
            message="Config does not validate against run_config.schema.json",
            data={"errors": schema_errors},
        )

    os_id = runtime_os or current_os()
    errors: List[str] = []

    command = raw.get("command")
    inline = raw.get("inline")
    script = raw.get("script")
    scripts = list(raw.get("scripts") or [])

    # An empty inline list means "not set".
    if inline is not None and len(inline) == 0:
        inline = None

    sources = [name for name, v in (("command", command), ("inline", inline), ("script", script)) if v]
    if scripts:
        sources.append("scripts")
    if len(sources) > 1:
        errors.append("Command, Inline, Script and Scripts options cannot be used together.")
    elif not sources:
        errors.append("Command, Inline, Script or Scripts must be specified.")

    if command:
        inline = [command]
    if script:
        scripts.append(script)

    for p in scripts:
        path = Path(p)
        if not path.exists():
            errors.append(f"Bad script '{p}': file does not exist")
        elif not path.is_file():
            errors.append(f"Bad script '{p}': not a regular file")

    only_on = list(raw.get("only_on") or [])
    for os_name in only_on:
        if os_name not in SUPPORTED_OS:
            errors.append(
                "Invalid OS specified in only_on: '{}'. Supported OS names: {}".format(os_name, ", ".join(SUPPORTED_OS))
            )

    environment_vars = list(raw.get("environment_vars") or [])
    for kv in environment_vars:
        key, sep, _ = kv.partition("=")
        if not sep or not key:
            errors.append(f"Environment variable not in format 'key=value': {kv}")

    execute_command_raw = raw.get("execute_command")
    if execute_command_raw is None:
        execute_command = default_execute_command(os_id)
    elif isinstance(execute_command_raw, str):
        execute_command = (execute_command_raw,)
    else:
        execute_command = tuple(execute_command_raw)
        if not execute_command:
            errors.append("execute_command must not be an empty list.")

    env_var_format = raw.get("env_var_format") or default_env_var_format(os_id)
    if len(_PRINTF_S_RE.findall(env_var_format)) != 2:
        errors.append(f"env_var_format must contain exactly two '%s' placeholders: {env_var_format!r}")
    else:
        try:
            env_var_format % ("KEY", "VALUE")
        except (TypeError, ValueError) as e:
            errors.append(f"env_var_format is not a valid format string: {e}")

    inline_shebang = raw.get("inline_shebang")
    if inline_shebang is None:
        inline_shebang = "" if os_id == "windows" else "/bin/sh -e"

    tempfile_extension = raw.get("tempfile_extension")
    if tempfile_extension is None:
        tempfile_extension = "cmd" if os_id == "windows" else ""
    tempfile_extension = tempfile_extension.lstrip(".")

    valid_exit_codes = tuple(raw.get("valid_exit_codes") or (0,))

    if errors:
        raise ValidationError(code="config.invalid", message="; ".join(errors), data={"errors": errors})

    return RunConfig(
        scripts=tuple(scripts),
        inline=tuple(inline or ()),
        only_on=tuple(only_on),
        execute_command=execute_command,
        environment_vars=tuple(environment_vars),
        env_var_format=env_var_format,
        tempfile_extension=tempfile_extension,
        inline_shebang=inline_shebang,
        valid_exit_codes=valid_exit_codes,
    )


def load_config_file(path: Path, *, runtime_os: Optional[str] = None) -> RunConfig:
    p = Path(path).expanduser()
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ValidationError(code="config.invalid", message=f"Cannot read config {p}: {e}", data={"path": str(p)}) from e
    return load_config(raw, runtime_os=runtime_os)
