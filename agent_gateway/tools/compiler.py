"""
Dynamic Tool Compiler.

Turns a (name, description, parameter schema, source body) tuple into a
local tool. The formal parameters are the schema's property names in
declaration order; the body is Python executed as the body of a function
taking those parameters.
"""

import logging
from typing import Any, Optional

from ..errors import ValidationError, failure_result
from .capabilities import ExecutionCapability, InProcessCapability, SandboxedCapability
from .registry import LOCAL_ORIGIN, Tool, ToolRegistry

logger = logging.getLogger(__name__)

SANDBOX_MODES = ("inprocess", "subprocess")

TOOL_CREATOR_NAME = "tool-creator"

TOOL_CREATOR_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "name": {
            "type": "string",
            "description": (
                "The name of the new tool to create. If this name already exists, "
                "the previous tool will be overwritten."
            ),
        },
        "description": {
            "type": "string",
            "description": "A description of the new tool to create",
        },
        "code": {
            "type": "string",
            "description": (
                "A Python function body that will be executed when the tool is "
                "invoked. The body is wrapped in a function whose positional "
                "parameters are the property names of the specified parameters, "
                "in order. The function's return value is the output of the tool, "
                "so the body must end with a return statement."
            ),
        },
        "parameters": {
            "type": "object",
            "description": (
                "A JSON schema object describing the parameters the function "
                "accepts, in the OpenAI function-calling format"
            ),
        },
    },
    "required": ["name", "description", "code", "parameters"],
}


def normalize_schema(parameters: Optional[dict]) -> dict:
    """Return an object schema with ``properties`` and ``required`` present."""
    if parameters is None:
        parameters = {}
    if not isinstance(parameters, dict):
        raise ValidationError("parameters must be a JSON schema object")
    properties = parameters.get("properties") or {}
    if not isinstance(properties, dict):
        raise ValidationError("parameters.properties must be an object")
    required = parameters.get("required") or []
    if not isinstance(required, list):
        raise ValidationError("parameters.required must be a list")
    return {**parameters, "type": "object", "properties": properties, "required": required}


class ToolCompiler:
    """Compiles source text into local tools and registers them."""

    def __init__(
        self,
        registry: ToolRegistry,
        sandbox: str = "inprocess",
        sandbox_timeout: float = 10.0,
        sandbox_memory_mb: int = 256,
    ):
        if sandbox not in SANDBOX_MODES:
            raise ValueError(f"Unknown sandbox mode '{sandbox}', expected one of {SANDBOX_MODES}")
        self.registry = registry
        self.sandbox = sandbox
        self.sandbox_timeout = sandbox_timeout
        self.sandbox_memory_mb = sandbox_memory_mb

    def build_capability(
        self, name: str, param_names: list[str], code: str
    ) -> ExecutionCapability:
        if self.sandbox == "subprocess":
            return SandboxedCapability(
                name,
                param_names,
                code,
                timeout=self.sandbox_timeout,
                memory_mb=self.sandbox_memory_mb,
            )
        return InProcessCapability(name, param_names, code)

    def compile(
        self,
        name: str,
        description: str,
        parameters: Optional[dict],
        code: str,
    ) -> Tool:
        """Compile and register a local tool.

        Raises:
            ValidationError: if the name, schema or body is unusable.
        """
        if not name or not isinstance(name, str):
            raise ValidationError("Tool name is required")
        if not isinstance(code, str):
            raise ValidationError("Tool code must be a string")
        schema = normalize_schema(parameters)
        param_names = list(schema["properties"].keys())

        capability = self.build_capability(name, param_names, code)
        tool = Tool(
            name=name,
            description=description or "",
            capability=capability,
            parameters=schema,
            origin=LOCAL_ORIGIN,
        )
        logger.info(
            "Compiled local tool '%s' (%s, params=%s)", name, self.sandbox, param_names
        )
        return self.registry.add(tool)

    def install_tool_creator(self) -> Tool:
        """Register the ``tool-creator`` tool, letting the model author new tools."""

        def create_tool(args: dict) -> Any:
            try:
                self.compile(
                    args.get("name"),
                    args.get("description", ""),
                    args.get("parameters"),
                    args.get("code"),
                )
            except ValidationError as e:
                return failure_result(str(e))
            return "Tool created"

        return self.registry.add(
            Tool(
                name=TOOL_CREATOR_NAME,
                description=(
                    "Use this tool to create a new tool when you need additional "
                    "information"
                ),
                capability=create_tool,
                parameters=TOOL_CREATOR_SCHEMA,
                origin=LOCAL_ORIGIN,
            )
        )

    def remove_tool_creator(self) -> Optional[Tool]:
        return self.registry.remove_by_name(TOOL_CREATOR_NAME)
