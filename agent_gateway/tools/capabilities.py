"""
Execution capabilities for locally compiled tools.

A capability takes the tool's named arguments and returns either the tool's
value or a structured failure ``{"success": False, "errorMessage": ...}``.
It never raises.

Two variants share that contract:

- ``InProcessCapability`` runs the body as a Python function inside the
  gateway process. It has full host privileges and should only be used for
  trusted sources.
- ``SandboxedCapability`` runs the body in a separate isolated interpreter
  with a wall-clock timeout, rlimits, an empty environment and a scratch
  working directory.
"""

import builtins
import json
import keyword
import logging
import subprocess
import sys
import tempfile
import textwrap
from pathlib import Path
from typing import Any

from ..errors import ValidationError, failure_result

logger = logging.getLogger(__name__)

FUNCTION_NAME = "__tool__"
RUNNER_PATH = Path(__file__).with_name("sandbox_runner.py")


def build_function_source(param_names: list[str], body: str) -> str:
    """Wrap a function body in a ``def`` taking ``param_names`` positionally."""
    for param in param_names:
        if not param.isidentifier() or keyword.iskeyword(param):
            raise ValidationError(f"Invalid parameter name: {param!r}")
    code = textwrap.dedent(body).strip("\n") or "pass"
    return f"def {FUNCTION_NAME}({', '.join(param_names)}):\n" + textwrap.indent(
        code, "    "
    )


class ExecutionCapability:
    """Base class: named arguments in, value or structured failure out."""

    def __init__(self, tool_name: str, param_names: list[str], body: str):
        self.tool_name = tool_name
        self.param_names = list(param_names)
        self.body = body
        self.source = build_function_source(self.param_names, body)
        try:
            compile(self.source, f"<tool:{tool_name}>", "exec")
        except SyntaxError as e:
            raise ValidationError(
                f"Tool '{tool_name}' body does not compile: {e.msg} (line {e.lineno})"
            ) from e

    def bind(self, args: dict) -> list:
        """Positional binding; missing arguments become None, extras are ignored."""
        return [args.get(name) for name in self.param_names]

    def __call__(self, args: dict) -> Any:
        raise NotImplementedError


class InProcessCapability(ExecutionCapability):
    """Trusted closure executed in the host interpreter."""

    def __init__(self, tool_name: str, param_names: list[str], body: str):
        super().__init__(tool_name, param_names, body)
        namespace: dict = {"__builtins__": builtins, "__name__": f"tool_{tool_name}"}
        exec(compile(self.source, f"<tool:{tool_name}>", "exec"), namespace)
        self._function = namespace[FUNCTION_NAME]

    def __call__(self, args: dict) -> Any:
        try:
            return self._function(*self.bind(args))
        except (Exception, SystemExit) as e:
            logger.warning("Tool '%s' raised: %s", self.tool_name, e)
            return failure_result(str(e) or type(e).__name__)


class SandboxedCapability(ExecutionCapability):
    """Body executed in a separate, resource-limited interpreter."""

    def __init__(
        self,
        tool_name: str,
        param_names: list[str],
        body: str,
        timeout: float = 10.0,
        memory_mb: int = 256,
    ):
        super().__init__(tool_name, param_names, body)
        self.timeout = timeout
        self.memory_mb = memory_mb

    def __call__(self, args: dict) -> Any:
        payload = {
            "source": self.source,
            "function": FUNCTION_NAME,
            "args": self.bind(args),
            "cpu_seconds": max(1, int(self.timeout)),
            "memory_mb": self.memory_mb,
        }
        try:
            payload_json = json.dumps(payload, default=str)
        except (TypeError, ValueError) as e:
            return failure_result(f"Arguments are not serializable: {e}")

        with tempfile.TemporaryDirectory(prefix="tool-sandbox-") as workdir:
            try:
                completed = subprocess.run(
                    [sys.executable, "-I", str(RUNNER_PATH)],
                    input=payload_json,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                    cwd=workdir,
                    env={},
                )
            except subprocess.TimeoutExpired:
                logger.error(
                    "Sandboxed tool '%s' timed out after %ss", self.tool_name, self.timeout
                )
                return failure_result(f"Execution timed out after {self.timeout} seconds")
            except OSError as e:
                logger.error("Failed to start sandbox for '%s': %s", self.tool_name, e)
                return failure_result(f"Failed to start sandbox: {e}")

        return _adapt_runner_output(completed)


def _adapt_runner_output(completed: subprocess.CompletedProcess) -> Any:
    """
    Adapt the runner's output to the capability contract.

    The runner prints one JSON object: ``{"success": true, "result": ...}`` or
    ``{"success": false, "errorMessage": ...}``. Anything else means the
    interpreter died (rlimit, crash) before it could report.
    """
    lines = completed.stdout.strip().splitlines()
    if lines:
        try:
            report = json.loads(lines[-1])
        except json.JSONDecodeError:
            report = None
        if isinstance(report, dict) and "success" in report:
            if report["success"]:
                return report.get("result")
            return failure_result(report.get("errorMessage") or "Execution failed")

    stderr = completed.stderr.strip()
    if stderr:
        return failure_result(stderr.splitlines()[-1])
    return failure_result(f"Sandbox exited with code {completed.returncode}")
