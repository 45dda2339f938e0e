"""
Provider Process Manager.

Owns one external tool provider: spawns it, performs the MCP
initialize/discovery handshake, and proxies tool invocations to it.

Each provider gets its own event-loop thread running one ``mcp``
``ClientSession`` over the stdio transport. The public methods are
synchronous: they submit coroutines to that loop and wait on the result, so
concurrent calls from the orchestration worker pool complete independently.
When the process exits unexpectedly every in-flight call fails with
ProviderUnavailableError and the exit callback fires so the owning registry
can reap the provider.
"""

import asyncio
import logging
import os
import threading
from concurrent.futures import CancelledError as FutureCancelled
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from contextlib import AsyncExitStack
from typing import Any, Callable, Optional

import anyio
from mcp import ClientSession
from mcp.client.stdio import stdio_client
from mcp.shared.exceptions import McpError
from mcp.types import Tool as McpTool

from ..errors import (
    BootstrapError,
    ProviderRequestError,
    ProviderUnavailableError,
    ToolExecutionError,
    ValidationError,
    failure_result,
)
from ..tools.compiler import normalize_schema
from ..tools.registry import Tool, empty_schema, provider_origin
from .protocol import CLIENT_INFO, format_call_result, stdio_parameters

logger = logging.getLogger(__name__)

# Transport failures that mean the process can no longer be reached
_TRANSPORT_ERRORS = (anyio.ClosedResourceError, anyio.BrokenResourceError, anyio.EndOfStream)


class ProviderToolCapability:
    """Execution capability that forwards a call to a provider process."""

    def __init__(self, provider: "ProviderProcess", tool_name: str):
        self.provider = provider
        self.tool_name = tool_name

    def __call__(self, args: dict) -> Any:
        try:
            return self.provider.call_tool(self.tool_name, args)
        except ProviderUnavailableError as e:
            logger.warning("Provider tool '%s' unavailable: %s", self.tool_name, e)
            return failure_result(str(e), "ProviderUnavailableError")
        except ProviderRequestError as e:
            logger.warning("Provider tool '%s' request failed: %s", self.tool_name, e)
            return failure_result(str(e), "ProviderRequestError")
        except ToolExecutionError as e:
            return failure_result(str(e), "ToolExecutionError")


async def _cancel_task(task: asyncio.Task) -> None:
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)


class ProviderProcess:
    """A single external tool provider reached over stdio."""

    def __init__(
        self,
        name: str,
        command: str,
        args: Optional[list[str]] = None,
        env: Optional[dict[str, str]] = None,
        handshake_timeout: float = 30.0,
        request_timeout: float = 60.0,
        shutdown_grace: float = 5.0,
    ):
        self.name = name
        self.command = command
        self.args = list(args or [])
        self.env = env or {}
        self.handshake_timeout = handshake_timeout
        self.request_timeout = request_timeout
        self.shutdown_grace = shutdown_grace

        self.tools: list[Tool] = []
        self.server_info: dict = {}

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[threading.Thread] = None
        self._lifecycle: Optional[Future] = None
        self._stop: Optional[asyncio.Event] = None
        self._session: Optional[ClientSession] = None
        self._errlog = None
        self._stderr_reader: Optional[threading.Thread] = None

        self._pending: set[Future] = set()
        self._state_lock = threading.Lock()
        self._shutdown_lock = threading.Lock()
        self._dead = False
        self._closing = False
        self._shut_down = False
        self._exit_reason: Optional[str] = None
        self._on_exit: Optional[Callable[["ProviderProcess"], None]] = None
        self._log = logging.getLogger(f"{__name__}.{name}")

    @property
    def origin(self) -> str:
        return provider_origin(self.name)

    @property
    def alive(self) -> bool:
        return self._session is not None and not self._dead and not self._closing

    @property
    def server_name(self) -> str:
        return self.server_info.get("name", "unknown")

    @property
    def tool_names(self) -> list[str]:
        return [tool.name for tool in self.tools]

    def set_exit_callback(self, callback: Optional[Callable[["ProviderProcess"], None]]) -> None:
        """Called from a reaper thread when the process exits unexpectedly."""
        self._on_exit = callback

    def bootstrap(self) -> list[Tool]:
        """
        Spawn the process, run the handshake and discover its tools.

        Returns:
            Proxy tools for every discovered capability.

        Raises:
            BootstrapError: if the process cannot be spawned or the handshake
                does not complete. The process is stopped in that case.
        """
        if self._loop is not None:
            raise BootstrapError(self.name, "already started")

        logger.info("Starting provider '%s': %s %s", self.name, self.command, " ".join(self.args))
        read_fd, write_fd = os.pipe()
        self._errlog = os.fdopen(write_fd, "w")
        self._stderr_reader = threading.Thread(
            target=self._read_stderr,
            args=(os.fdopen(read_fd, encoding="utf-8", errors="replace"),),
            name=f"provider-{self.name}-stderr",
            daemon=True,
        )
        self._stderr_reader.start()

        self._loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(
            target=self._run_loop, name=f"provider-{self.name}-loop", daemon=True
        )
        self._loop_thread.start()

        self._stop = asyncio.Event()
        ready: Future = Future()
        self._lifecycle = asyncio.run_coroutine_threadsafe(self._serve(ready), self._loop)
        try:
            specs = ready.result(timeout=self.handshake_timeout + self.shutdown_grace)
        except (FutureTimeout, TimeoutError):
            self.shutdown()
            raise BootstrapError(
                self.name, f"handshake timed out after {self.handshake_timeout} seconds"
            ) from None
        except Exception as e:
            # Spawn, handshake and discovery failures all surface here
            self.shutdown()
            raise BootstrapError(self.name, str(e) or type(e).__name__) from e

        self.tools = [self._proxy_tool(spec) for spec in specs]
        logger.info(
            "Provider '%s' ready (server=%s, tools=%s)", self.name, self.server_name, self.tool_names
        )
        return self.tools

    def call_tool(self, tool_name: str, arguments: dict) -> str:
        """
        Invoke a tool on the provider and wait for its result.

        Raises:
            ProviderUnavailableError: the process is gone.
            ProviderRequestError: JSON-RPC error or timeout.
            ToolExecutionError: the tool reported ``isError``.
        """
        result = self._submit(
            "tools/call",
            lambda session: session.call_tool(tool_name, arguments or {}),
            self.request_timeout,
        )
        is_error, text = format_call_result(result)
        if is_error:
            raise ToolExecutionError(tool_name, text or f"Tool '{tool_name}' reported an error")
        return text

    def shutdown(self) -> None:
        """Close the session and stop the process and its loop thread. Idempotent.

        Closing the stdio transport closes the provider's stdin, then
        terminates it if it does not exit on its own.
        """
        with self._shutdown_lock:
            if self._loop is None or self._shut_down:
                return
            self._closing = True
            logger.info("Stopping provider '%s'", self.name)

            if self._stop is not None:
                self._loop.call_soon_threadsafe(self._stop.set)
            try:
                self._lifecycle.result(timeout=self.shutdown_grace * 3)
            except (FutureTimeout, TimeoutError):
                logger.warning("Provider '%s' did not stop in time, abandoning it", self.name)
                self._lifecycle.cancel()
            except FutureCancelled:
                pass

            self._loop.call_soon_threadsafe(self._loop.stop)
            current = threading.current_thread()
            for thread in (self._loop_thread, self._stderr_reader):
                if thread is not None and thread is not current:
                    thread.join(timeout=self.shutdown_grace)
            self._shut_down = True
            logger.info("Provider '%s' stopped", self.name)

    def to_json(self) -> dict:
        return {
            "name": self.name,
            "command": self.command,
            "args": self.args,
            "tools": self.tool_names,
            "alive": self.alive,
            "server": self.server_info,
        }

    def _proxy_tool(self, spec: McpTool) -> Tool:
        try:
            schema = normalize_schema(spec.inputSchema)
        except ValidationError as e:
            logger.warning("Provider '%s' tool '%s' has an unusable schema: %s", self.name, spec.name, e)
            schema = empty_schema()
        return Tool(
            name=spec.name,
            description=spec.description or "",
            capability=ProviderToolCapability(self, spec.name),
            parameters=schema,
            origin=self.origin,
        )

    def _submit(self, method: str, call: Callable[[ClientSession], Any], timeout: float) -> Any:
        """Run ``call(session)`` on the provider loop and wait for its result."""
        with self._state_lock:
            if self._session is None or self._dead or self._closing:
                raise ProviderUnavailableError(self.name, self._exit_reason)
            future = asyncio.run_coroutine_threadsafe(call(self._session), self._loop)
            self._pending.add(future)
        try:
            return future.result(timeout=timeout)
        except (FutureTimeout, TimeoutError):
            future.cancel()
            raise ProviderRequestError(
                self.name, f"'{method}' timed out after {timeout} seconds"
            ) from None
        except FutureCancelled:
            raise ProviderUnavailableError(self.name, self._exit_reason) from None
        except McpError as e:
            if self._dead:
                raise ProviderUnavailableError(self.name, self._exit_reason) from e
            raise ProviderRequestError(self.name, e.error.message, e.error.code) from e
        except _TRANSPORT_ERRORS as e:
            raise ProviderUnavailableError(self.name, self._exit_reason or type(e).__name__) from e
        finally:
            with self._state_lock:
                self._pending.discard(future)

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_forever()
        finally:
            self._loop.close()

    def _read_stderr(self, stream) -> None:
        with stream:
            for line in stream:
                self._log.debug("stderr: %s", line.rstrip())

    async def _serve(self, ready: Future) -> None:
        """Own the transport and session from spawn until shutdown."""
        try:
            async with AsyncExitStack() as stack:
                try:
                    specs = await self._open(stack)
                except Exception as e:
                    ready.set_exception(e)
                    return
                ready.set_result(specs)
                await self._stop.wait()
        except Exception as e:
            # Teardown of a transport whose process already exited
            self._log.debug("Session teardown: %r", e)
        finally:
            if not ready.done():
                ready.set_exception(
                    ProviderUnavailableError(self.name, "session closed during startup")
                )
            self._transport_closed()

    async def _open(self, stack: AsyncExitStack) -> list[McpTool]:
        params = stdio_parameters(self.command, self.args, self.env)
        try:
            read_stream, write_stream = await stack.enter_async_context(
                stdio_client(params, errlog=self._errlog)
            )
        finally:
            # The child holds its own copy of the stderr pipe
            self._errlog.close()

        relay_send, relay_receive = anyio.create_memory_object_stream(0)
        relay = asyncio.get_running_loop().create_task(self._relay(read_stream, relay_send))
        stack.push_async_callback(_cancel_task, relay)

        session = await stack.enter_async_context(
            ClientSession(relay_receive, write_stream, client_info=CLIENT_INFO)
        )
        with anyio.fail_after(self.handshake_timeout):
            initialized = await session.initialize()
            specs = await self._list_tools(session)
        self.server_info = initialized.serverInfo.model_dump(exclude_none=True)
        self._session = session
        return specs

    @staticmethod
    async def _list_tools(session: ClientSession) -> list[McpTool]:
        specs: list[McpTool] = []
        cursor = None
        while True:
            page = await session.list_tools(cursor=cursor)
            specs.extend(page.tools)
            cursor = page.nextCursor
            if not cursor:
                return specs

    async def _relay(self, source, sink) -> None:
        """Pass transport messages to the session and notice end of output."""
        try:
            async for message in source:
                await sink.send(message)
            self._transport_closed()
        finally:
            sink.close()

    def _transport_closed(self) -> None:
        with self._state_lock:
            if self._dead:
                return
            self._dead = True
            self._exit_reason = "process exited"
            pending = list(self._pending)
        for future in pending:
            future.cancel()
        self._stop.set()

        if self._closing or self._session is None:
            return
        logger.warning("Provider '%s' exited unexpectedly", self.name)
        threading.Thread(
            target=self._notify_exit, name=f"provider-{self.name}-reaper", daemon=True
        ).start()

    def _notify_exit(self) -> None:
        if self._on_exit is None:
            return
        try:
            self._on_exit(self)
        except Exception:
            logger.exception("Exit handler for provider '%s' failed", self.name)
