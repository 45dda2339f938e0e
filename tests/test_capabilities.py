"""
Tests for execution capabilities.

The sandboxed variant runs a real child interpreter, so these tests also
cover the runner script.
"""

import sys

import pytest

from agent_gateway.errors import ValidationError
from agent_gateway.tools.capabilities import (
    InProcessCapability,
    SandboxedCapability,
    build_function_source,
)


class TestBuildFunctionSource:
    """Tests for build_function_source."""

    def test_wraps_body(self):
        source = build_function_source(["a", "b"], "return a + b")
        assert source == "def __tool__(a, b):\n    return a + b"

    def test_empty_body_becomes_pass(self):
        assert build_function_source([], "") == "def __tool__():\n    pass"

    def test_dedents_body(self):
        source = build_function_source(["x"], "    y = x\n    return y\n")
        assert source == "def __tool__(x):\n    y = x\n    return y"

    def test_rejects_keyword(self):
        with pytest.raises(ValidationError):
            build_function_source(["lambda"], "return 1")


class TestInProcessCapability:
    """Tests for the trusted in-process variant."""

    def test_returns_value(self):
        capability = InProcessCapability("upper", ["text"], "return text.upper()")
        assert capability({"text": "hi"}) == "HI"

    def test_failure_without_message_uses_type_name(self):
        capability = InProcessCapability("fail", [], "raise KeyError()")
        assert capability({}) == {"success": False, "errorMessage": "KeyError"}

    def test_can_import_modules(self):
        capability = InProcessCapability("sqrt", ["x"], "import math\nreturn math.sqrt(x)")
        assert capability({"x": 16}) == 4.0


class TestSandboxedCapability:
    """Tests for the subprocess sandbox."""

    def test_returns_value(self):
        capability = SandboxedCapability("add", ["a", "b"], "return a + b", timeout=20)
        assert capability({"a": 2, "b": 3}) == 5

    def test_structured_failure(self):
        capability = SandboxedCapability("fail", [], "raise ValueError('nope')", timeout=20)
        assert capability({}) == {"success": False, "errorMessage": "nope"}

    def test_environment_is_not_inherited(self, monkeypatch):
        monkeypatch.setenv("GATEWAY_SECRET", "hunter2")
        capability = SandboxedCapability(
            "env", [], "import os\nreturn os.environ.get('GATEWAY_SECRET')", timeout=20
        )
        assert capability({}) is None

    def test_timeout(self):
        capability = SandboxedCapability(
            "sleep", [], "import time\ntime.sleep(10)", timeout=0.5
        )
        result = capability({})
        assert result["success"] is False
        assert "timed out" in result["errorMessage"]

    def test_non_json_result_is_stringified(self):
        capability = SandboxedCapability("obj", [], "return {1, 2}", timeout=20)
        assert capability({}) == "{1, 2}"

    @pytest.mark.skipif(sys.platform == "win32", reason="rlimits are POSIX only")
    def test_memory_limit(self):
        capability = SandboxedCapability(
            "hog", [], "return len(bytearray(512 * 1024 * 1024))", timeout=20, memory_mb=128
        )
        result = capability({})
        assert result["success"] is False
