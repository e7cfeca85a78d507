"""
Monty scripting engine for automation scripts.

This module runs user-defined scripts with pydantic-monty, a sandboxed Python
subset interpreter with no filesystem, environment or import access. Scripts
see only the capabilities injected here: the table API, the run ``context``
and ``fetch``. External function calls are served through Monty's
pause/resume model, so async capabilities are awaited directly on the event
loop.
"""

import ast
import asyncio
import io
import json
import logging
import re
import tokenize
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import partial
from typing import Any

import pydantic_monty

from .config import ScriptConfig
from .errors import (
    ScriptError,
    ScriptExecutionError,
    ScriptSyntaxError,
    ScriptTimeoutError,
)

logger = logging.getLogger(__name__)

# Seconds the interpreter's own duration limit runs past the async deadline
_INTERPRETER_GRACE_SECONDS = 1.0

_SCOPE_NODES = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef, ast.Lambda)


@dataclass
class ScriptResult:
    """Value of a script run plus everything it printed."""

    result: Any
    console_output: list[str] = field(default_factory=list)


class ConsoleCapture:
    """Collects print() output line by line, in arrival order."""

    def __init__(self) -> None:
        self.lines: list[str] = []
        self._partial = ""

    def write(self, stream: str, text: str) -> None:
        buffered = self._partial + text
        *complete, self._partial = buffered.split("\n")
        self.lines.extend(complete)

    def flush(self) -> list[str]:
        if self._partial:
            self.lines.append(self._partial)
            self._partial = ""
        return list(self.lines)


def _has_top_level_return(node: ast.AST) -> bool:
    """True if a ``return`` appears in ``node`` outside any nested function."""
    for child in ast.iter_child_nodes(node):
        if isinstance(child, ast.Return):
            return True
        if not isinstance(child, _SCOPE_NODES) and _has_top_level_return(child):
            return True
    return False


def _lines_inside_tokens(script: str) -> set[int]:
    """Line numbers that start inside a multi-line token, e.g. a triple-quoted string."""
    lines: set[int] = set()
    for token in tokenize.generate_tokens(io.StringIO(script).readline):
        lines.update(range(token.start[0] + 1, token.end[0] + 1))
    return lines


def prepare_script(script: str) -> str:
    """
    Wrap scripts that use top-level ``return`` in a function.

    Scripts without one are left alone so their value is that of their final
    expression. Lines that continue a multi-line string are not re-indented.
    """
    try:
        tree = ast.parse(script)
    except SyntaxError:
        # Left for the interpreter to report
        return script
    if not _has_top_level_return(tree):
        return script

    keep = _lines_inside_tokens(script)
    body = "\n".join(
        line if lineno in keep or not line.strip() else f"    {line}"
        for lineno, line in enumerate(script.splitlines(), start=1)
    )
    return f"""
def _automation_script():
{body}

_automation_script()
"""


def to_script_value(value: Any) -> Any:  # noqa: ANN401
    """Deep-copy a value into plain JSON types the interpreter accepts."""
    return json.loads(json.dumps(value, default=str))


class MontyEngine:
    """
    Sandboxed script runtime.

    Each ``run`` builds a fresh interpreter, so no state leaks between steps.
    """

    def __init__(
        self,
        functions: dict[str, Callable[..., Any]] | None = None,
        config: ScriptConfig | None = None,
    ) -> None:
        """
        Args:
            functions: Host capabilities exposed to scripts as external functions.
            config: Deadline and resource limits.
        """
        self.functions = dict(functions or {})
        self.config = config or ScriptConfig()

        logger.info(
            "Initialized MontyEngine with config: max_execution_time=%s",
            self.config.max_execution_time,
        )

    async def run(
        self,
        script: str | None,
        context: dict[str, Any] | None = None,
        input_vars: dict[str, Any] | None = None,
    ) -> ScriptResult:
        """
        Run a script and return its value with its captured console output.

        Raises:
            ScriptSyntaxError: If the script cannot be parsed.
            ScriptExecutionError: If the script is empty or raises.
            ScriptTimeoutError: If the script exceeds ``max_execution_time``.
        """
        if not script or not script.strip():
            raise ScriptExecutionError("No script provided")

        console = ConsoleCapture()
        try:
            result = await asyncio.wait_for(
                self._run_impl(script, context or {}, input_vars or {}, console),
                timeout=self.config.max_execution_time,
            )
        except TimeoutError as e:
            error_msg = (
                f"Script execution timed out after "
                f"{self.config.max_execution_time} seconds"
            )
            logger.warning(error_msg)
            raise ScriptTimeoutError(
                error_msg,
                self.config.max_execution_time,
                console_output=console.flush(),
            ) from e
        except ScriptError as e:
            e.console_output = console.flush()
            raise

        output = console.flush()
        logger.debug(f"Script finished with {len(output)} line(s) of console output")
        return ScriptResult(result=result, console_output=output)

    async def _run_impl(
        self,
        script: str,
        context: dict[str, Any],
        input_vars: dict[str, Any],
        console: ConsoleCapture,
    ) -> Any:  # noqa: ANN401
        """Internal async implementation using manual start/resume loop."""
        inputs = {key: to_script_value(value) for key, value in input_vars.items()}
        inputs["context"] = to_script_value(context)
        ext_fn_impls = dict(self.functions)

        try:
            m = pydantic_monty.Monty(
                prepare_script(script),
                inputs=list(inputs.keys()),
                external_functions=list(ext_fn_impls.keys()),
            )

            print_cb = console.write if self.config.enable_print else None
            loop = asyncio.get_running_loop()

            # Monty execution is CPU-bound, keep it off the event loop
            progress = await loop.run_in_executor(
                None,
                partial(
                    m.start,
                    inputs=inputs,
                    limits=self._build_resource_limits(),
                    print_callback=print_cb,
                ),
            )

            while not isinstance(progress, pydantic_monty.MontyComplete):
                if not isinstance(progress, pydantic_monty.MontySnapshot):
                    raise ScriptExecutionError(
                        f"Unexpected Monty progress type: {type(progress)}"
                    )

                fn_name = progress.function_name
                fn = ext_fn_impls.get(fn_name)

                if fn is None:
                    progress = await loop.run_in_executor(
                        None,
                        partial(
                            progress.resume,
                            exception=NameError(f"name '{fn_name}' is not defined"),
                        ),
                    )
                    continue

                try:
                    if asyncio.iscoroutinefunction(fn):
                        result = await fn(*progress.args, **progress.kwargs)
                    else:
                        result = fn(*progress.args, **progress.kwargs)
                    result = to_script_value(result)
                except Exception as e:
                    # Host failures surface inside the script as exceptions it may catch
                    progress = await loop.run_in_executor(
                        None, partial(progress.resume, exception=e)
                    )
                    continue

                progress = await loop.run_in_executor(
                    None, partial(progress.resume, return_value=result)
                )

            return progress.output

        except pydantic_monty.MontySyntaxError as e:
            error_str = str(e)
            line = None
            match = re.search(r"line (\d+)", error_str)
            if match:
                line = int(match.group(1))
            raise ScriptSyntaxError(error_str, line=line) from e

        except pydantic_monty.MontyRuntimeError as e:
            raise ScriptExecutionError(f"Script execution failed: {e}") from e

        except pydantic_monty.MontyError as e:
            raise ScriptExecutionError(f"Script execution failed: {e}") from e

        except ScriptError:
            raise

        except Exception as e:
            error_msg = f"Script execution failed: {e}"
            logger.error(error_msg, exc_info=True)
            raise ScriptExecutionError(error_msg) from e

    def _build_resource_limits(self) -> pydantic_monty.ResourceLimits:
        return pydantic_monty.ResourceLimits(
            max_duration_secs=self.config.max_execution_time
            + _INTERPRETER_GRACE_SECONDS,
            max_memory=self.config.max_memory_bytes,
            max_recursion_depth=self.config.max_recursion_depth,
        )
