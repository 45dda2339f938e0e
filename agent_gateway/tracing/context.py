"""
Request-scoped tracing.

A ``RequestTrace`` wraps one ``send_message`` call in a root span. Model
turns are recorded as generations and tool calls as spans, both children of
the root, using explicit ``trace_context`` propagation so nesting is
correct across the tool worker threads.
"""

import logging
import time
from contextlib import contextmanager
from typing import Any, Generator, Optional

from langfuse.types import TraceContext

from .client import get_tracing_client

logger = logging.getLogger(__name__)


class Observation:
    """One span or generation. All methods are no-ops when tracing is off."""

    def __init__(
        self,
        name: str,
        as_type: str = "span",
        trace_context: Optional[TraceContext] = None,
        **attributes: Any,
    ):
        self.name = name
        self.as_type = as_type
        self.trace_context = trace_context
        self.attributes = attributes
        self.output: Any = None
        self.usage: Optional[dict] = None
        self.status = "success"
        self._manager: Any = None
        self._observation: Any = None
        self._start_time = 0.0

    @property
    def id(self) -> Optional[str]:
        return getattr(self._observation, "id", None)

    @property
    def trace_id(self) -> Optional[str]:
        return getattr(self._observation, "trace_id", None)

    def start(self) -> None:
        client = get_tracing_client()
        if not client or not client.enabled or not client.client:
            return
        try:
            self._start_time = time.time()
            self._manager = client.client.start_as_current_observation(
                trace_context=self.trace_context,
                as_type=self.as_type,
                name=self.name,
                **self.attributes,
            )
            self._observation = self._manager.__enter__()
        except Exception as e:
            logger.warning(f"Failed to start {self.as_type} '{self.name}': {e}")
            self._observation = None

    def end(self) -> None:
        if self._observation is None:
            return
        try:
            update: dict[str, Any] = {
                "metadata": {
                    "status": self.status,
                    "duration_ms": round((time.time() - self._start_time) * 1000, 2),
                }
            }
            if self.output is not None:
                update["output"] = self.output
            if self.usage:
                update["usage_details"] = self.usage
            self._observation.update(**update)
            self._manager.__exit__(None, None, None)
        except Exception as e:
            logger.warning(f"Failed to end {self.as_type} '{self.name}': {e}")

    def set_output(self, output: Any) -> None:
        self.output = output

    def set_usage(self, usage: Optional[dict]) -> None:
        self.usage = usage

    def set_status(self, status: str) -> None:
        self.status = status


class RequestTrace:
    """Root span for a single orchestration run."""

    def __init__(self, execution_id: str, name: str = "send_message"):
        self.execution_id = execution_id
        self.root = Observation(name, metadata={"execution_id": execution_id})

    @property
    def enabled(self) -> bool:
        client = get_tracing_client()
        return bool(client and client.enabled)

    def start(self, input: Optional[dict] = None) -> None:
        self.root.attributes["input"] = input
        self.root.start()
        logger.debug(f"[{self.execution_id}] trace started (id={self.root.trace_id})")

    def end(self, output: Any = None, status: str = "success") -> None:
        self.root.set_output(output)
        self.root.set_status(status)
        self.root.end()
        client = get_tracing_client()
        if client:
            client.flush()

    def _child_context(self) -> Optional[TraceContext]:
        if not self.root.trace_id or not self.root.id:
            return None
        return TraceContext(trace_id=self.root.trace_id, parent_span_id=self.root.id)

    @contextmanager
    def span(self, name: str, **attributes: Any) -> Generator[Observation, None, None]:
        observation = Observation(name, "span", self._child_context(), **attributes)
        observation.start()
        try:
            yield observation
        finally:
            observation.end()

    @contextmanager
    def generation(self, name: str, **attributes: Any) -> Generator[Observation, None, None]:
        observation = Observation(name, "generation", self._child_context(), **attributes)
        observation.start()
        try:
            yield observation
        finally:
            observation.end()
