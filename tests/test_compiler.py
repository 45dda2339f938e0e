"""
Tests for the dynamic tool compiler.

Tests cover parameter binding, structured failures, schema normalization,
compile-time validation and the tool-creator tool.
"""

import pytest

from agent_gateway.errors import ValidationError
from agent_gateway.tools.compiler import (
    TOOL_CREATOR_NAME,
    ToolCompiler,
    normalize_schema,
)
from agent_gateway.tools.registry import LOCAL_ORIGIN

ADD_SCHEMA = {
    "type": "object",
    "properties": {"a": {"type": "number"}, "b": {"type": "number"}},
    "required": ["a", "b"],
}


@pytest.fixture
def compiler(tool_registry):
    return ToolCompiler(tool_registry)


class TestNormalizeSchema:
    """Tests for normalize_schema."""

    def test_none_becomes_empty_object(self):
        assert normalize_schema(None) == {"type": "object", "properties": {}, "required": []}

    def test_fills_missing_required(self):
        schema = normalize_schema({"properties": {"x": {"type": "string"}}})
        assert schema["required"] == []
        assert schema["type"] == "object"

    def test_keeps_extra_keys(self):
        schema = normalize_schema({"properties": {}, "additionalProperties": False})
        assert schema["additionalProperties"] is False

    @pytest.mark.parametrize(
        "parameters",
        ["not a dict", {"properties": ["a"]}, {"properties": {}, "required": "a"}],
    )
    def test_rejects_malformed(self, parameters):
        with pytest.raises(ValidationError):
            normalize_schema(parameters)


class TestCompile:
    """Tests for ToolCompiler.compile."""

    def test_compiled_tool_is_registered_local(self, compiler, tool_registry):
        tool = compiler.compile("add", "Add numbers", ADD_SCHEMA, "return a + b")

        assert tool_registry.get("add") is tool
        assert tool.origin == LOCAL_ORIGIN
        assert tool.parameters["required"] == ["a", "b"]

    def test_invocation_binds_named_arguments(self, compiler, tool_registry):
        compiler.compile("sub", "Subtract", ADD_SCHEMA, "return a - b")
        assert tool_registry.invoke("sub", {"b": 1, "a": 5}) == 4

    def test_missing_arguments_bind_to_none(self, compiler, tool_registry):
        compiler.compile("pair", "Pair", ADD_SCHEMA, "return [a, b]")
        assert tool_registry.invoke("pair", {"a": 1}) == [1, None]

    def test_extra_arguments_are_ignored(self, compiler, tool_registry):
        compiler.compile("add", "Add", ADD_SCHEMA, "return a + b")
        assert tool_registry.invoke("add", {"a": 1, "b": 2, "c": 3}) == 3

    def test_multiline_body(self, compiler, tool_registry):
        code = """
            total = 0
            for value in (a, b):
                total += value
            return total
        """
        compiler.compile("sum", "Sum", ADD_SCHEMA, code)
        assert tool_registry.invoke("sum", {"a": 2, "b": 3}) == 5

    def test_raising_body_returns_structured_failure(self, compiler, tool_registry):
        """A body that raises yields a failure result instead of an exception."""
        compiler.compile("boom", "Boom", None, "raise ValueError('bad input')")

        result = tool_registry.invoke("boom", {})

        assert result == {"success": False, "errorMessage": "bad input"}

    def test_exit_in_body_is_contained(self, compiler, tool_registry):
        compiler.compile("quit", "Quit", None, "raise SystemExit(1)")
        assert tool_registry.invoke("quit", {})["success"] is False

    def test_syntax_error_rejected_at_compile_time(self, compiler, tool_registry):
        with pytest.raises(ValidationError, match="does not compile"):
            compiler.compile("broken", "Broken", None, "return (")
        assert "broken" not in tool_registry

    @pytest.mark.parametrize("param", ["1abc", "class", "a-b"])
    def test_invalid_parameter_names_rejected(self, compiler, param):
        schema = {"properties": {param: {"type": "string"}}}
        with pytest.raises(ValidationError, match="Invalid parameter name"):
            compiler.compile("bad", "Bad", schema, "return 1")

    def test_empty_name_rejected(self, compiler):
        with pytest.raises(ValidationError):
            compiler.compile("", "No name", None, "return 1")

    def test_recompiling_replaces_tool(self, compiler, tool_registry):
        compiler.compile("value", "Value", None, "return 1")
        compiler.compile("value", "Value", None, "return 2")

        assert len(tool_registry) == 1
        assert tool_registry.invoke("value", {}) == 2

    def test_unknown_sandbox_mode(self, tool_registry):
        with pytest.raises(ValueError):
            ToolCompiler(tool_registry, sandbox="docker")


class TestToolCreator:
    """Tests for the tool-creator tool."""

    def test_install_registers_tool(self, compiler, tool_registry):
        compiler.install_tool_creator()

        tool = tool_registry.get(TOOL_CREATOR_NAME)
        assert tool is not None
        assert tool.parameters["required"] == ["name", "description", "code", "parameters"]

    def test_creates_new_tool(self, compiler, tool_registry):
        compiler.install_tool_creator()

        result = tool_registry.invoke(
            TOOL_CREATOR_NAME,
            {
                "name": "double",
                "description": "Double a number",
                "code": "return x * 2",
                "parameters": {"type": "object", "properties": {"x": {"type": "number"}}},
            },
        )

        assert result == "Tool created"
        assert tool_registry.invoke("double", {"x": 21}) == 42

    def test_invalid_request_returns_failure(self, compiler, tool_registry):
        compiler.install_tool_creator()

        result = tool_registry.invoke(
            TOOL_CREATOR_NAME,
            {"name": "broken", "description": "x", "code": "return (", "parameters": {}},
        )

        assert result["success"] is False
        assert "broken" not in tool_registry

    def test_remove(self, compiler, tool_registry):
        compiler.install_tool_creator()
        compiler.remove_tool_creator()
        assert TOOL_CREATOR_NAME not in tool_registry
