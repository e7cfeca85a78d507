"""
Placeholder rendering for email and Slack text.

Templates are rendered in a Jinja2 sandbox. Unresolved placeholders, however
deeply dotted, render as an empty string.
"""

from collections.abc import Mapping
from typing import Any

from jinja2 import ChainableUndefined, TemplateError, TemplateSyntaxError
from jinja2.sandbox import SandboxedEnvironment

from automation_engine.errors import ActionExecutionError, ValidationError


class ContextEnvironment(SandboxedEnvironment):
    """Sandbox in which ``a.b`` on a mapping reads the key ``b`` before any attribute."""

    def getattr(self, obj: Any, attribute: str) -> Any:  # noqa: ANN401
        if isinstance(obj, Mapping) and attribute in obj:
            return obj[attribute]
        return super().getattr(obj, attribute)


_env = ContextEnvironment(undefined=ChainableUndefined, autoescape=False)


def render_template(template: str, context: Mapping[str, Any]) -> str:
    """
    Render ``template`` against the run context.

    Context keys are top-level names (``{{ record.name }}``); the whole context
    is also reachable as ``context`` for keys that are not identifiers, e.g.
    ``{{ context["step_<id>_result"].status }}``.
    """
    if not template:
        return ""
    try:
        compiled = _env.from_string(template)
    except TemplateSyntaxError as e:
        raise ValidationError(f"Invalid template: {e}") from e
    try:
        return compiled.render({**context, "context": dict(context)})
    except TemplateError as e:
        raise ActionExecutionError(f"Template rendering failed: {e}") from e
