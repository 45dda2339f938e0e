"""
Tests for the orchestration loop.

The model backend is a mock scripted with ModelResponse values; tools are
real registry entries.
"""

import json
import threading
import time

import pytest

from agent_gateway.errors import BackendError
from agent_gateway.llm_call import ModelResponse
from agent_gateway.messages import Message, ToolCall
from agent_gateway.orchestration.loop import (
    LoopState,
    OrchestrationLoop,
    OrchestrationResult,
    OrchestrationStep,
)
from agent_gateway.tools.compiler import ToolCompiler
from agent_gateway.tools.registry import Tool


def final(content: str) -> ModelResponse:
    return ModelResponse(content=content)


def calls(*tool_calls) -> ModelResponse:
    return ModelResponse(
        tool_calls=[ToolCall(id=i, name=n, arguments=a) for i, n, a in tool_calls]
    )


def sent_messages(backend, turn: int) -> list[dict]:
    """Messages the backend received on the given (0-based) turn."""
    return backend.complete.call_args_list[turn].args[0]


@pytest.fixture
def loop(message_log, tool_registry, mock_backend):
    orchestration = OrchestrationLoop(message_log, tool_registry, mock_backend, max_turns=5)
    yield orchestration
    orchestration.close()


@pytest.fixture
def compiler(tool_registry):
    return ToolCompiler(tool_registry)


class TestOrchestrationResult:
    """Tests for the result dataclasses."""

    def test_tools_used_deduplicates_in_order(self):
        result = OrchestrationResult(
            state=LoopState.DONE,
            answer="",
            turns=3,
            steps=[
                OrchestrationStep(1, [ToolCall("1", "b"), ToolCall("2", "a")]),
                OrchestrationStep(2, [ToolCall("3", "b")]),
            ],
        )
        assert result.tools_used == ["b", "a"]

    def test_max_turns_must_be_positive(self, message_log, tool_registry, mock_backend):
        with pytest.raises(ValueError):
            OrchestrationLoop(message_log, tool_registry, mock_backend, max_turns=0)


class TestFinalAnswer:
    """Tests for the direct-answer path."""

    def test_direct_answer(self, loop, message_log, mock_backend):
        mock_backend.complete.side_effect = [final("Hello!")]

        result = loop.send_message("Hi")

        assert result.state == LoopState.DONE
        assert result.answer == "Hello!"
        assert result.turns == 1
        assert result.turn_limit_reached is False
        assert [(m.role, m.content) for m in message_log.snapshot()] == [
            ("user", "Hi"),
            ("assistant", "Hello!"),
        ]

    def test_full_history_and_tools_sent(self, loop, message_log, tool_registry, compiler, mock_backend):
        message_log.append(Message(role="system", content="Be brief."))
        compiler.compile("now", "Current time", None, "return '12:00'")
        mock_backend.complete.side_effect = [final("ok")]

        loop.send_message("What time is it?")

        messages, tools = mock_backend.complete.call_args.args
        assert messages == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "What time is it?"},
        ]
        assert tools[0]["type"] == "function"
        assert tools[0]["function"]["name"] == "now"


class TestToolTurns:
    """Tests for tool-calling turns."""

    def test_single_tool_call(self, loop, message_log, compiler, mock_backend):
        compiler.compile(
            "add",
            "Add",
            {"properties": {"a": {"type": "number"}, "b": {"type": "number"}}},
            "return a + b",
        )
        mock_backend.complete.side_effect = [
            calls(("call_1", "add", {"a": 2, "b": 3})),
            final("The sum is 5."),
        ]

        result = loop.send_message("2 + 3?")

        log = message_log.snapshot()
        assert [m.role for m in log] == ["user", "assistant", "tool", "assistant"]
        assert log[1].tool_calls[0].id == "call_1"
        assert log[2].tool_call_id == "call_1"
        assert log[2].name == "add"
        assert log[2].content == "5"
        assert result.answer == "The sum is 5."
        assert result.turns == 2
        assert result.tools_used == ["add"]

        second_turn = sent_messages(mock_backend, 1)
        assert second_turn[1]["tool_calls"][0]["function"]["name"] == "add"
        assert second_turn[2] == {
            "role": "tool",
            "content": "5",
            "tool_call_id": "call_1",
            "name": "add",
        }

    def test_parallel_calls_appended_in_request_order(
        self, loop, message_log, tool_registry, mock_backend
    ):
        """N calls yield N tool messages, in request order, before the next turn."""

        def sleeper(delay, value):
            def capability(args):
                time.sleep(delay)
                return value

            return capability

        tool_registry.add(Tool("slow", "Slow", sleeper(0.3, "slow")))
        tool_registry.add(Tool("medium", "Medium", sleeper(0.15, "medium")))
        tool_registry.add(Tool("fast", "Fast", sleeper(0.0, "fast")))
        mock_backend.complete.side_effect = [
            calls(("c1", "slow", {}), ("c2", "medium", {}), ("c3", "fast", {})),
            final("done"),
        ]

        started = time.monotonic()
        loop.send_message("go")
        elapsed = time.monotonic() - started

        tool_messages = [m for m in message_log.snapshot() if m.role == "tool"]
        assert [(m.tool_call_id, m.content) for m in tool_messages] == [
            ("c1", "slow"),
            ("c2", "medium"),
            ("c3", "fast"),
        ]
        # Ran concurrently rather than back to back
        assert elapsed < 0.45
        second_turn = sent_messages(mock_backend, 1)
        assert [m["tool_call_id"] for m in second_turn if m["role"] == "tool"] == ["c1", "c2", "c3"]

    def test_unknown_tool_is_scoped_to_its_call(self, loop, message_log, compiler, mock_backend):
        compiler.compile("ping", "Ping", None, "return 'pong'")
        mock_backend.complete.side_effect = [
            calls(("c1", "missing", {}), ("c2", "ping", {})),
            final("ok"),
        ]

        result = loop.send_message("go")

        tool_messages = [m for m in message_log.snapshot() if m.role == "tool"]
        failure = json.loads(tool_messages[0].content)
        assert failure == {
            "success": False,
            "errorMessage": "Unknown tool 'missing'",
            "errorType": "UnknownToolError",
        }
        assert tool_messages[1].content == "pong"
        assert result.state == LoopState.DONE

    def test_compiled_tool_failure_continues_loop(self, loop, message_log, compiler, mock_backend):
        """A raising body is appended as a structured failure and the loop goes on."""
        compiler.compile("boom", "Boom", None, "raise RuntimeError('kaput')")
        mock_backend.complete.side_effect = [calls(("c1", "boom", {})), final("recovered")]

        result = loop.send_message("go")

        tool_message = [m for m in message_log.snapshot() if m.role == "tool"][0]
        assert json.loads(tool_message.content) == {"success": False, "errorMessage": "kaput"}
        assert result.answer == "recovered"

    def test_escaping_exception_becomes_failure(self, loop, message_log, tool_registry, mock_backend):
        def broken(args):
            raise RuntimeError("capability bug")

        tool_registry.add(Tool("broken", "Broken", broken))
        mock_backend.complete.side_effect = [calls(("c1", "broken", {})), final("ok")]

        loop.send_message("go")

        tool_message = [m for m in message_log.snapshot() if m.role == "tool"][0]
        assert json.loads(tool_message.content) == {
            "success": False,
            "errorMessage": "capability bug",
            "errorType": "ToolExecutionError",
        }

    def test_non_string_results_are_json_encoded(self, loop, message_log, tool_registry, mock_backend):
        tool_registry.add(Tool("data", "Data", lambda args: {"x": 1, "y": [1, 2]}))
        tool_registry.add(Tool("nothing", "Nothing", lambda args: None))
        mock_backend.complete.side_effect = [
            calls(("c1", "data", {}), ("c2", "nothing", {})),
            final("ok"),
        ]

        loop.send_message("go")

        contents = [m.content for m in message_log.snapshot() if m.role == "tool"]
        assert contents == ['{"x": 1, "y": [1, 2]}', ""]


class TestTermination:
    """Tests for the failed state and the turn limit."""

    def test_backend_error_fails_run(self, loop, message_log, mock_backend):
        mock_backend.complete.side_effect = BackendError("no route", "connection")

        with pytest.raises(BackendError):
            loop.send_message("Hi")

        assert loop.state == LoopState.FAILED
        assert [m.role for m in message_log.snapshot()] == ["user"]

    def test_backend_error_keeps_earlier_messages(self, loop, message_log, compiler, mock_backend):
        compiler.compile("ping", "Ping", None, "return 'pong'")
        mock_backend.complete.side_effect = [
            calls(("c1", "ping", {})),
            BackendError("rate limited", "rate_limit"),
        ]

        with pytest.raises(BackendError):
            loop.send_message("go")

        assert [m.role for m in message_log.snapshot()] == ["user", "assistant", "tool"]

    def test_turn_limit(self, message_log, tool_registry, mock_backend):
        tool_registry.add(Tool("again", "Again", lambda args: "more"))
        mock_backend.complete.side_effect = lambda messages, tools: calls(
            (f"c{len(messages)}", "again", {})
        )
        loop = OrchestrationLoop(message_log, tool_registry, mock_backend, max_turns=3)

        result = loop.send_message("loop forever")
        loop.close()

        assert mock_backend.complete.call_count == 3
        assert result.turn_limit_reached is True
        assert result.state == LoopState.DONE
        assert result.turns == 3
        assert len(result.steps) == 3
        last = message_log.snapshot()[-1]
        assert last.role == "assistant"
        assert "3 tool-calling turns" in last.content

    def test_loop_is_reusable_after_failure(self, loop, mock_backend):
        mock_backend.complete.side_effect = [BackendError("down"), final("back")]

        with pytest.raises(BackendError):
            loop.send_message("first")
        result = loop.send_message("second")

        assert result.answer == "back"
        assert loop.state == LoopState.DONE


class TestSerialization:
    """One traversal in flight per loop."""

    def test_concurrent_sends_do_not_overlap(self, loop, message_log, mock_backend):
        active = []
        overlap = []
        guard = threading.Lock()

        def complete(messages, tools):
            with guard:
                active.append(1)
                if len(active) > 1:
                    overlap.append(True)
            time.sleep(0.05)
            with guard:
                active.pop()
            return final("ok")

        mock_backend.complete.side_effect = complete
        threads = [threading.Thread(target=loop.send_message, args=(f"m{i}",)) for i in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert overlap == []
        roles = [m.role for m in message_log.snapshot()]
        assert roles == ["user", "assistant"] * 4
