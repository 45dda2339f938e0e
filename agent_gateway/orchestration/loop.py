"""
Core orchestration loop.

Drives one user message through zero or more tool-calling turns:

    awaiting-model --final answer--> done
    awaiting-model --tool calls----> executing-tools --all results--> awaiting-model
    awaiting-model --backend error-> failed

Every turn sends the full message log and the current tool catalog. Tool
calls of one turn run concurrently; their results are appended in request
order once all of them have finished, before the next model request. The
number of model turns per message is bounded by ``max_turns``.
"""

import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum

from ..errors import BackendError, UnknownToolError, failure_result
from ..llm_call import ModelBackend, ModelResponse, message_to_openai
from ..messages import Message, MessageLog, ToolCall
from ..tools.registry import ToolRegistry
from ..tracing import RequestTrace
from .tool_defs import build_tool_definitions, format_tool_result, is_failure

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 10

# Longest exception text forwarded to the model
MAX_ERROR_CHARS = 500


class LoopState(str, Enum):
    AWAITING_MODEL = "awaiting-model"
    EXECUTING_TOOLS = "executing-tools"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = frozenset({LoopState.DONE, LoopState.FAILED})


@dataclass
class OrchestrationStep:
    """One tool-calling turn."""

    turn: int
    tool_calls: list[ToolCall] = field(default_factory=list)
    results: list[str] = field(default_factory=list)


@dataclass
class OrchestrationResult:
    """Outcome of a ``send_message`` call."""

    state: LoopState
    answer: str
    turns: int
    steps: list[OrchestrationStep] = field(default_factory=list)
    turn_limit_reached: bool = False

    @property
    def tools_used(self) -> list[str]:
        seen: list[str] = []
        for step in self.steps:
            for call in step.tool_calls:
                if call.name not in seen:
                    seen.append(call.name)
        return seen


class OrchestrationLoop:
    """Multi-turn tool-calling loop over a message log and a tool registry."""

    def __init__(
        self,
        messages: MessageLog,
        tools: ToolRegistry,
        backend: ModelBackend,
        max_turns: int = DEFAULT_MAX_TURNS,
        max_workers: int = 8,
    ):
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self.messages = messages
        self.tools = tools
        self.backend = backend
        self.max_turns = max_turns
        self.state = LoopState.AWAITING_MODEL
        self._run_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_workers), thread_name_prefix="tool-call"
        )

    def send_message(self, user_text: str) -> OrchestrationResult:
        """
        Append a user message and run the loop until it terminates.

        Returns:
            OrchestrationResult with the final answer.

        Raises:
            BackendError: if the model backend fails. Messages appended
                before the failure stay in the log.
        """
        with self._run_lock:
            execution_id = f"exec-{uuid.uuid4().hex[:8]}"
            trace = RequestTrace(execution_id)
            trace.start(input={"message": user_text})
            try:
                result = self._run(user_text, execution_id, trace)
            except BackendError as e:
                trace.end(output=str(e), status="error")
                raise
            trace.end(
                output={"answer": result.answer[:500], "turns": result.turns},
                status="success",
            )
            return result

    def _run(self, user_text: str, execution_id: str, trace: RequestTrace) -> OrchestrationResult:
        prefix = f"[{execution_id}] "
        self.state = LoopState.AWAITING_MODEL
        logger.info("%sProcessing message: %s", prefix, user_text[:100])
        self.messages.append(Message(role="user", content=user_text))

        steps: list[OrchestrationStep] = []
        for turn in range(1, self.max_turns + 1):
            self._transition(LoopState.AWAITING_MODEL, prefix)
            response = self._call_model(turn, trace, prefix)

            if response.is_final:
                answer = response.content or ""
                self.messages.append(Message(role="assistant", content=answer))
                self._transition(LoopState.DONE, prefix)
                self._log_trace_summary(steps, prefix)
                return OrchestrationResult(
                    state=self.state, answer=answer, turns=turn, steps=steps
                )

            self.messages.append(
                Message(
                    role="assistant",
                    content=response.content or "",
                    tool_calls=tuple(response.tool_calls),
                )
            )
            self._transition(LoopState.EXECUTING_TOOLS, prefix)
            results = self._execute_tool_calls(response.tool_calls, trace, prefix)
            for call, content in zip(response.tool_calls, results):
                self.messages.append(
                    Message(role="tool", content=content, tool_call_id=call.id, name=call.name)
                )
            steps.append(
                OrchestrationStep(turn=turn, tool_calls=list(response.tool_calls), results=results)
            )

        logger.warning("%sTurn limit (%d) reached without a final answer", prefix, self.max_turns)
        answer = (
            f"Stopped after {self.max_turns} tool-calling turns without reaching a final answer."
        )
        self.messages.append(Message(role="assistant", content=answer))
        self._transition(LoopState.DONE, prefix)
        self._log_trace_summary(steps, prefix)
        return OrchestrationResult(
            state=self.state,
            answer=answer,
            turns=self.max_turns,
            steps=steps,
            turn_limit_reached=True,
        )

    def _transition(self, state: LoopState, prefix: str) -> None:
        if self.state != state:
            logger.debug("%s%s -> %s", prefix, self.state.value, state.value)
        self.state = state

    def _call_model(self, turn: int, trace: RequestTrace, prefix: str) -> ModelResponse:
        messages = [message_to_openai(message) for message in self.messages.snapshot()]
        tool_defs = build_tool_definitions(self.tools)

        with trace.generation(
            f"model_turn_{turn}",
            model=getattr(getattr(self.backend, "settings", None), "model", None),
            input=messages,
        ) as generation:
            try:
                logger.debug(
                    "%sTurn %d: calling model with %d messages, %d tools",
                    prefix,
                    turn,
                    len(messages),
                    len(tool_defs),
                )
                response = self.backend.complete(messages, tool_defs)
            except BackendError as e:
                generation.set_status("error")
                self._transition(LoopState.FAILED, prefix)
                logger.error("%sModel call failed at turn %d: %s", prefix, turn, e)
                raise

            generation.set_output(
                response.content
                if response.is_final
                else [call.to_json() for call in response.tool_calls]
            )
            generation.set_usage(response.usage)
            return response

    def _execute_tool_calls(
        self, calls: list[ToolCall], trace: RequestTrace, prefix: str
    ) -> list[str]:
        """Run every call of a turn and return their results in request order."""
        if len(calls) == 1:
            return [self._execute_tool(calls[0], trace, prefix)]
        logger.debug("%sRunning %d tool calls concurrently", prefix, len(calls))
        return list(
            self._executor.map(lambda call: self._execute_tool(call, trace, prefix), calls)
        )

    def _execute_tool(self, call: ToolCall, trace: RequestTrace, prefix: str) -> str:
        with trace.span(f"tool:{call.name}", input=call.arguments) as span:
            try:
                logger.debug("%sExecuting tool '%s' (%s)", prefix, call.name, call.id)
                raw_result = self.tools.invoke(call.name, call.arguments)
            except UnknownToolError as e:
                logger.warning("%s%s", prefix, e)
                raw_result = failure_result(str(e), "UnknownToolError")
            except Exception as e:
                logger.error("%sTool '%s' execution failed: %s", prefix, call.name, e)
                error_msg = str(e)
                if len(error_msg) > MAX_ERROR_CHARS:
                    error_msg = error_msg[:MAX_ERROR_CHARS] + "..."
                raw_result = failure_result(error_msg, "ToolExecutionError")

            content = format_tool_result(raw_result)
            if is_failure(raw_result):
                span.set_status("error")
            span.set_output({"result": content[:500]})
            return content

    def _log_trace_summary(self, steps: list[OrchestrationStep], prefix: str) -> None:
        for step in steps:
            for call, result in zip(step.tool_calls, step.results):
                preview = result[:80] + "..." if len(result) > 80 else result
                logger.info("%sTurn %d: %s -> %s", prefix, step.turn, call.name, preview)

    def close(self) -> None:
        """Stop the tool worker pool and close the backend."""
        self._executor.shutdown(wait=True)
        close = getattr(self.backend, "close", None)
        if callable(close):
            close()
