"""
Gateway settings read from the environment (and ``.env``, if present).

Everything here is fixed at startup. The system prompt, model, endpoint and
API key can later be changed at runtime through ``/api/config``; see
``context.RuntimeSettings``.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_optional_float(name: str) -> Optional[float]:
    value = os.getenv(name, "").strip()
    return float(value) if value else None


@dataclass
class ModelConfig:
    """OpenAI-compatible chat completions backend."""
    base_url: str = os.getenv("MODEL_BASE_URL", "https://api.openai.com/v1")
    model: str = os.getenv("MODEL_NAME", "gpt-4o")
    api_key: str = os.getenv("OPENAI_API_KEY", "")
    temperature: float = float(os.getenv("MODEL_TEMPERATURE", "0.7"))
    timeout: float = float(os.getenv("MODEL_TIMEOUT", "120"))
    # Model turns allowed per user message before the loop gives up
    max_turns: int = int(os.getenv("MAX_TOOL_TURNS", "10"))
    system_prompt_path: str = os.getenv("SYSTEM_PROMPT_PATH", "")


@dataclass
class ToolConfig:
    """Local (compiled) tools."""
    # inprocess | subprocess
    sandbox: str = os.getenv("TOOL_SANDBOX", "inprocess")
    sandbox_timeout: float = float(os.getenv("TOOL_SANDBOX_TIMEOUT", "10"))
    sandbox_memory_mb: int = int(os.getenv("TOOL_SANDBOX_MEMORY_MB", "256"))
    max_workers: int = int(os.getenv("TOOL_MAX_WORKERS", "8"))
    tool_creator_enabled: bool = _env_flag("TOOL_CREATOR_ENABLED")


@dataclass
class ProviderConfig:
    """Stdio tool provider processes."""
    handshake_timeout: float = float(os.getenv("PROVIDER_HANDSHAKE_TIMEOUT", "30"))
    request_timeout: float = float(os.getenv("PROVIDER_REQUEST_TIMEOUT", "60"))
    shutdown_grace: float = float(os.getenv("PROVIDER_SHUTDOWN_GRACE", "5"))
    # YAML file of providers to start at boot
    config_path: str = os.getenv("PROVIDERS_CONFIG_PATH", "")


@dataclass
class ServerConfig:
    host: str = os.getenv("SERVER_HOST", "0.0.0.0")
    port: int = int(os.getenv("SERVER_PORT", "3000"))
    reload: bool = _env_flag("SERVER_RELOAD")
    cors_origins: list[str] = field(
        default_factory=lambda: [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "*").split(",")
            if origin.strip()
        ]
    )


@dataclass
class LangfuseConfig:
    """Langfuse tracing. Enabled only when both keys are set."""
    public_key: str = os.getenv("LANGFUSE_PUBLIC_KEY", "")
    secret_key: str = os.getenv("LANGFUSE_SECRET_KEY", "")
    host: str = os.getenv("LANGFUSE_HOST", "")
    environment: str = os.getenv("LANGFUSE_TRACING_ENVIRONMENT", "")
    sample_rate: Optional[float] = _env_optional_float("LANGFUSE_SAMPLE_RATE")
    debug: bool = _env_flag("LANGFUSE_DEBUG")

    @property
    def enabled(self) -> bool:
        return bool(self.public_key and self.secret_key)


@dataclass
class Config:
    model: ModelConfig
    tools: ToolConfig
    providers: ProviderConfig
    server: ServerConfig
    langfuse: LangfuseConfig
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


def get_config() -> Config:
    """Build a fresh configuration from the current environment defaults."""
    return Config(
        model=ModelConfig(),
        tools=ToolConfig(),
        providers=ProviderConfig(),
        server=ServerConfig(),
        langfuse=LangfuseConfig(),
    )


config = get_config()
