from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..discovery import HttpDiscovery
from ..redaction import SecretFilter
from ..shared_state import SharedStateStore
from ..trace.trace_emitter import TraceEmitter
from ..trace.trace_store_jsonl import TraceStoreJSONL
from ..ui import Ui
from .commands import build_commands, flatten_command
from .communicator import LocalCommunicator
from .config import RunConfig
from .environment import assemble_environment, flatten_environment
from .errors import ScriptExecutionError, ShellRunnerError
from .policy_engine import ExitCodePolicy, PolicyEngine
from .runtime_context import RuntimeContext
from .scripts import owned_scripts
from .templating import EnvVarsTemplateData, ExecuteCommandTemplateData, TemplateRenderer


WINRM_PASSWORD_KEY = "winrm_password"


@dataclass(frozen=True)
class ScriptResult:
    script: str
    command: str
    exit_code: int


@dataclass(frozen=True)
class RunResult:
    ok: bool
    os_allowed: bool
    results: List[ScriptResult] = field(default_factory=list)

    @property
    def skipped(self) -> bool:
        return not self.os_allowed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "os_allowed": self.os_allowed,
            "results": [{"script": r.script, "command": r.command, "exit_code": r.exit_code} for r in self.results],
        }


class LocalShellRunner:
    """
    Runs a RunConfig's scripts on this host: OS gate -> scripts -> env ->
    per script (command -> execute -> exit-code check).

    Hard rules:
    - scripts run strictly one after another; the first failure stops the run.
    - a generated inline script never outlives the call.
    - secrets never reach the trace unredacted.
    """

    def __init__(
        self,
        *,
        renderer: Optional[TemplateRenderer] = None,
        shared_state: Optional[SharedStateStore] = None,
        discovery: Optional[HttpDiscovery] = None,
        secret_filter: Optional[SecretFilter] = None,
        communicator: Optional[LocalCommunicator] = None,
        tmp_dir: Optional[Path] = None,
    ):
        self._renderer = renderer or TemplateRenderer()
        self._shared_state = shared_state or SharedStateStore()
        self._discovery = discovery
        self._secrets = secret_filter if secret_filter is not None else SecretFilter()
        self._communicator = communicator or LocalCommunicator()
        self._tmp_dir = tmp_dir

    @property
    def secret_filter(self) -> SecretFilter:
        return self._secrets

    def _winrm_password(self, build_name: str) -> str:
        try:
            password = self._shared_state.retrieve(WINRM_PASSWORD_KEY, build_name)
        except (OSError, ValueError):
            # Nothing usable shared for this build (missing or not UTF-8).
            return ""
        self._secrets.add(password)
        return password

    def run(self, ctx: RuntimeContext, ui: Ui, config: RunConfig, *, cancel: Optional[threading.Event] = None) -> RunResult:
        trace = TraceEmitter(store=TraceStoreJSONL(ctx.trace_path), run_id=ctx.run_id, secret_filter=self._secrets)
        try:
            result = self._run(ctx, ui, config, trace, cancel)
        except ShellRunnerError as e:
            trace.emit("error", level="error", message=str(e), data=e.data)
            trace.emit("run_finished", message="Run failed", data={"ok": False})
            raise
        trace.emit("run_finished", message="Run finished", data=result.to_dict())
        return result

    def _run(
        self,
        ctx: RuntimeContext,
        ui: Ui,
        config: RunConfig,
        trace: TraceEmitter,
        cancel: Optional[threading.Event],
    ) -> RunResult:
        decision = PolicyEngine().evaluate_platform(ctx, config)
        if not decision.allowed:
            ui.say("Skipping shell-local due to runtime OS")
            trace.emit(
                "run_skipped",
                message="skipping shell-local due to missing runtime OS",
                data={"reason_codes": decision.reason_codes, "summary": decision.summary},
            )
            return RunResult(ok=True, os_allowed=False)

        trace.emit("run_started", data={"runtime_os": ctx.runtime_os, "build_name": ctx.build_name})

        env_data = EnvVarsTemplateData(
            WinRMPassword=self._winrm_password(ctx.build_name),
            build_name=ctx.build_name,
            build_type=ctx.builder_type,
        )
        exit_policy = ExitCodePolicy.from_config(config)
        discovery = self._discovery if self._discovery is not None else HttpDiscovery.from_environ()

        results: List[ScriptResult] = []
        with owned_scripts(config, env_data, self._renderer, trace, tmp_dir=self._tmp_dir) as scripts:
            env_vars = assemble_environment(
                build_name=ctx.build_name,
                builder_type=ctx.builder_type,
                discovery=discovery,
                declarations=config.environment_vars,
                data=env_data,
                renderer=self._renderer,
            )
            flattened_env = flatten_environment(env_vars, config.env_var_format)

            for script in scripts:
                command_data = ExecuteCommandTemplateData(
                    Vars=flattened_env,
                    Script=script,
                    Command=script,
                    WinRMPassword=self._winrm_password(ctx.build_name),
                    build_name=ctx.build_name,
                    build_type=ctx.builder_type,
                )
                commands = build_commands(config.execute_command, command_data, self._renderer)
                ui.say(f"Running local shell script: {script}")

                flattened_cmd = flatten_command(commands)
                trace.emit("script_started", script=script, message=f"starting local command: {flattened_cmd}")
                try:
                    exit_code = self._communicator.run(commands, ui, cancel=cancel)
                except ScriptExecutionError as e:
                    raise ScriptExecutionError(
                        code=e.code,
                        message=f"Error executing script: {script}\n\nPlease see output above for more information.",
                        data={"script": script, "cause": e.message},
                    ) from e

                trace.emit("script_finished", script=script, data={"exit_code": exit_code})
                exit_policy.require_valid(exit_code, script=script)
                results.append(ScriptResult(script=script, command=flattened_cmd, exit_code=exit_code))

        return RunResult(ok=True, os_allowed=True, results=results)


def run(ctx: RuntimeContext, ui: Ui, config: RunConfig, *, cancel: Optional[threading.Event] = None) -> RunResult:
    return LocalShellRunner().run(ctx, ui, config, cancel=cancel)
