from .runtime_context import RuntimeContext, current_os
from .config import RunConfig, load_config, load_config_file
from .policy_engine import ExitCodePolicy, PolicyEngine, PolicyResult
from .templating import EnvVarsTemplateData, ExecuteCommandTemplateData, TemplateRenderer
from .environment import assemble_environment, flatten_environment
from .scripts import materialize_inline_script, owned_scripts
from .commands import build_commands
from .communicator import LocalCommunicator
from .runner import LocalShellRunner, RunResult, ScriptResult, run

__all__ = [
  "RuntimeContext",
  "current_os",
  "RunConfig",
  "load_config",
  "load_config_file",
  "ExitCodePolicy",
  "PolicyEngine",
  "PolicyResult",
  "EnvVarsTemplateData",
  "ExecuteCommandTemplateData",
  "TemplateRenderer",
  "assemble_environment",
  "flatten_environment",
  "materialize_inline_script",
  "owned_scripts",
  "build_commands",
  "LocalCommunicator",
  "LocalShellRunner",
  "RunResult",
  "ScriptResult",
  "run",
]
