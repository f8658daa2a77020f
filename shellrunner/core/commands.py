from __future__ import annotations

from typing import Iterable, List

from .errors import RenderError
from .templating import ExecuteCommandTemplateData, TemplateRenderer


def build_commands(templates: Iterable[str], data: ExecuteCommandTemplateData, renderer: TemplateRenderer) -> List[str]:
    """
    Render each execute_command entry, in order, for one script.
    """
    commands: List[str] = []
    for template in templates:
        try:
            commands.append(renderer.render(template, data))
        except RenderError as e:
            raise RenderError(
                code="command.render_failed",
                message=f"Error processing command: {e.message}",
                data={"template": template, "script": data.Script},
            ) from e
    return commands


def flatten_command(commands: Iterable[str]) -> str:
    return " ".join(commands)
