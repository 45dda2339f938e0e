"""
Gateway context: the explicitly constructed owner of every store.

Holds the event bus, message log, tool and provider registries, the tool
compiler, the runtime settings and the orchestration loop. Front ends (the
FastAPI app and the interactive CLI) build one context and call ``close()``
on exit; ``close()`` shuts down every provider exactly once and is safe to
call more than once.
"""

import atexit
import logging
import threading
from pathlib import Path
from typing import Optional

from .config import Config
from .errors import ValidationError
from .events import (
    CONFIG_UPDATED,
    SNAPSHOT_CONFIG,
    SNAPSHOT_MESSAGES,
    SNAPSHOT_PROVIDERS,
    SNAPSHOT_TOOLS,
    Event,
    EventBus,
    Listener,
    Subscription,
)
from .llm_call import LLMClient, ModelBackend
from .messages import Message, MessageLog
from .orchestration import OrchestrationLoop, OrchestrationResult
from .providers import (
    ProviderProcess,
    ProviderRegistry,
    bootstrap_providers,
    load_provider_specs,
)
from .tools import ToolCompiler, ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant with access to tools. Use a tool whenever it "
    "gives you information you do not already have, then answer the user "
    "directly and concisely."
)


def load_system_prompt(path: str = "") -> str:
    """Read the system prompt from ``path``, falling back to the default."""
    if not path:
        return DEFAULT_SYSTEM_PROMPT
    try:
        return Path(path).read_text(encoding="utf-8").strip()
    except OSError as e:
        logger.warning(f"Could not read system prompt from {path}: {e}; using default")
        return DEFAULT_SYSTEM_PROMPT


class RuntimeSettings:
    """Settings that can change while the gateway is running."""

    def __init__(self, system_prompt: str, model: str, endpoint: str, api_key: str = ""):
        self.system_prompt = system_prompt
        self.model = model
        self.endpoint = endpoint
        self.api_key = api_key
        self._lock = threading.Lock()

    def update(
        self,
        system_prompt: str,
        model: str,
        endpoint: str,
        api_key: Optional[str] = None,
    ) -> None:
        """Replace the settings. An empty or missing api_key keeps the current key."""
        if not system_prompt or not model or not endpoint:
            raise ValidationError("systemPrompt, model and endpoint are required")
        with self._lock:
            self.system_prompt = system_prompt
            self.model = model
            self.endpoint = endpoint
            if api_key:
                self.api_key = api_key

    def to_json(self) -> dict:
        # The API key itself is never sent to clients
        return {
            "systemPrompt": self.system_prompt,
            "model": self.model,
            "endpoint": self.endpoint,
            "hasApiKey": bool(self.api_key),
        }


class GatewayContext:
    """Owns the gateway's stores and their teardown."""

    def __init__(self, config: Config, backend: Optional[ModelBackend] = None):
        self.config = config
        self.bus = EventBus()
        self.messages = MessageLog(self.bus)
        self.tools = ToolRegistry(self.bus)
        self.providers = ProviderRegistry(self.bus, self.tools)
        self.compiler = ToolCompiler(
            self.tools,
            sandbox=config.tools.sandbox,
            sandbox_timeout=config.tools.sandbox_timeout,
            sandbox_memory_mb=config.tools.sandbox_memory_mb,
        )
        self.settings = RuntimeSettings(
            system_prompt=load_system_prompt(config.model.system_prompt_path),
            model=config.model.model,
            endpoint=config.model.base_url,
            api_key=config.model.api_key,
        )
        self.backend = backend or LLMClient(
            self.settings,
            temperature=config.model.temperature,
            timeout=config.model.timeout,
        )
        self.loop = OrchestrationLoop(
            self.messages,
            self.tools,
            self.backend,
            max_turns=config.model.max_turns,
            max_workers=config.tools.max_workers,
        )
        self._closed = False
        self._close_lock = threading.Lock()

        self.seed_system_prompt()
        if config.tools.tool_creator_enabled:
            self.compiler.install_tool_creator()

    def seed_system_prompt(self) -> Message:
        return self.messages.append(
            Message(role="system", content=self.settings.system_prompt)
        )

    def clear_conversation(self) -> None:
        """Empty the log and re-seed it with the current system prompt.

        Observers see ``log-cleared`` before the seeding ``message-appended``.
        """
        with self.bus.lock:
            self.messages.clear()
            self.seed_system_prompt()

    def send_message(self, text: str) -> OrchestrationResult:
        return self.loop.send_message(text)

    def update_settings(
        self,
        system_prompt: str,
        model: str,
        endpoint: str,
        api_key: Optional[str] = None,
    ) -> dict:
        """Apply new runtime settings and publish ``config-updated``.

        The new system prompt is used the next time the log is seeded; the
        current conversation is left as is.
        """
        self.settings.update(system_prompt, model, endpoint, api_key)
        payload = self.settings.to_json()
        logger.info(f"Runtime settings updated (model={self.settings.model})")
        self.bus.publish(CONFIG_UPDATED, payload)
        return payload

    def snapshot_events(self) -> list[Event]:
        """The state a newly attached observer is brought up to date with."""
        return [
            Event(SNAPSHOT_CONFIG, self.settings.to_json()),
            Event(SNAPSHOT_MESSAGES, self.messages.to_json()),
            Event(SNAPSHOT_TOOLS, self.tools.to_json()),
            Event(SNAPSHOT_PROVIDERS, self.providers.to_json()),
        ]

    def attach(self, listener: Listener) -> Subscription:
        """Replay current state to ``listener``, then stream live events to it."""
        return self.bus.attach(listener, self.snapshot_events)

    def new_provider(
        self, name: str, command: str, args: Optional[list[str]] = None, env: Optional[dict] = None
    ) -> ProviderProcess:
        """Build a provider manager using the configured timeouts."""
        return ProviderProcess(
            name,
            command,
            args,
            env=env,
            handshake_timeout=self.config.providers.handshake_timeout,
            request_timeout=self.config.providers.request_timeout,
            shutdown_grace=self.config.providers.shutdown_grace,
        )

    def preload_providers(self) -> list[str]:
        """Start the providers listed in ``PROVIDERS_CONFIG_PATH``, if any."""
        specs = load_provider_specs(self.config.providers.config_path)
        if not specs:
            return []
        return bootstrap_providers(
            self.providers,
            specs,
            handshake_timeout=self.config.providers.handshake_timeout,
            request_timeout=self.config.providers.request_timeout,
            shutdown_grace=self.config.providers.shutdown_grace,
        )

    def register_atexit(self) -> None:
        atexit.register(self.close)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Shut down every provider and release the backend. Idempotent."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        logger.info(f"Closing gateway context ({len(self.providers)} providers)")
        self.providers.shutdown_all()
        self.loop.close()
        atexit.unregister(self.close)
