from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict

import jinja2

from .errors import RenderError


@dataclass(frozen=True)
class EnvVarsTemplateData:
    """
    Names visible to inline statements and environment_vars expressions.
    """

    WinRMPassword: str = ""
    build_name: str = ""
    build_type: str = ""


@dataclass(frozen=True)
class ExecuteCommandTemplateData:
    """
    Names visible to execute_command templates. `Command` is an alias of
    `Script`.
    """

    Vars: str
    Script: str
    Command: str
    WinRMPassword: str = ""
    build_name: str = ""
    build_type: str = ""


class TemplateRenderer:
    """
    Renders `{{ Name }}` templates against one of the template data classes.

    Unknown names fail instead of rendering as empty strings.
    """

    def __init__(self) -> None:
        self._env = jinja2.Environment(
            undefined=jinja2.StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
            # Only {{ Name }} is special; {% and {# are ordinary shell text.
            block_start_string="<%shellrunner-block",
            block_end_string="shellrunner-block%>",
            comment_start_string="<#shellrunner-comment",
            comment_end_string="shellrunner-comment#>",
            line_statement_prefix=None,
            line_comment_prefix=None,
        )

    def render(self, template: str, data: Any) -> str:
        ctx: Dict[str, Any] = asdict(data) if data is not None else {}
        try:
            return self._env.from_string(template).render(ctx)
        except jinja2.TemplateError as e:
            raise RenderError(
                code="template.render_failed",
                message=f"Error rendering template {template!r}: {e}",
                data={"template": template},
            ) from e
