from __future__ import annotations

from typing import Dict, Iterable

from ..discovery import HttpDiscovery
from .errors import RenderError
from .templating import EnvVarsTemplateData, TemplateRenderer


def shell_single_quote_escape(value: str) -> str:
    """
    Make `value` safe inside a single-quoted POSIX shell word: ' -> '"'"'
    """
    return value.replace("'", "'\"'\"'")


def assemble_environment(
    *,
    build_name: str,
    builder_type: str,
    discovery: HttpDiscovery,
    declarations: Iterable[str],
    data: EnvVarsTemplateData,
    renderer: TemplateRenderer,
) -> Dict[str, str]:
    """
    Build the name -> value mapping exported to every script of a run.

    Declarations are applied in order, so a later KEY overrides an earlier
    one and any built-in variable with the same name.
    """
    env_vars: Dict[str, str] = {
        "PACKER_BUILD_NAME": build_name,
        "PACKER_BUILDER_TYPE": builder_type,
    }
    if discovery.addr:
        env_vars["PACKER_HTTP_ADDR"] = discovery.addr
    if discovery.ip:
        env_vars["PACKER_HTTP_IP"] = discovery.ip
    if discovery.port:
        env_vars["PACKER_HTTP_PORT"] = discovery.port

    for declaration in declarations:
        rendered = renderer.render(declaration, data)
        key, sep, value = rendered.partition("=")
        if not sep or not key:
            raise RenderError(
                code="env.invalid",
                message=f"Environment variable not in format 'key=value' after rendering: {declaration}",
                data={"declaration": declaration},
            )
        env_vars[key] = shell_single_quote_escape(value)
    return env_vars


def flatten_environment(env_vars: Dict[str, str], env_var_format: str) -> str:
    return "".join(env_var_format % (key, env_vars[key]) for key in sorted(env_vars))
