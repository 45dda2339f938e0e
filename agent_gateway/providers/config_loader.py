"""
Provider preloading from YAML.

The file lists providers to start when the gateway boots. Strings support
environment variable interpolation with ``${VAR}`` and ``${VAR:-default}``::

    providers:
      filesystem:
        command: npx
        args: ["-y", "@modelcontextprotocol/server-filesystem", "${HOME}"]
        env:
          LOG_LEVEL: ${PROVIDER_LOG_LEVEL:-info}
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from ..errors import BootstrapError, ProviderExistsError, ProviderUnavailableError
from .process import ProviderProcess
from .registry import ProviderRegistry

logger = logging.getLogger(__name__)

# ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


@dataclass
class ProviderSpec:
    """How to launch one provider."""
    name: str
    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)


def resolve_env_vars(value: str) -> str:
    """Resolve ``${VAR}`` and ``${VAR:-default}`` references in a string."""

    def replace_match(match: re.Match) -> str:
        default_value = match.group(2) if match.group(2) is not None else ""
        return os.environ.get(match.group(1), default_value)

    return ENV_VAR_PATTERN.sub(replace_match, value)


def _substitute_env_vars_recursive(data: Any) -> Any:
    if isinstance(data, dict):
        return {k: _substitute_env_vars_recursive(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_substitute_env_vars_recursive(item) for item in data]
    if isinstance(data, str):
        return resolve_env_vars(data)
    return data


def _parse_provider(name: str, data: Any) -> ProviderSpec:
    if not isinstance(data, dict) or not data.get("command"):
        raise ValueError(f"Provider '{name}' needs a 'command'")
    args = data.get("args") or []
    env = data.get("env") or {}
    if not isinstance(args, list) or not isinstance(env, dict):
        raise ValueError(f"Provider '{name}': 'args' must be a list and 'env' a mapping")
    return ProviderSpec(
        name=name,
        command=str(data["command"]),
        args=[str(arg) for arg in args],
        env={str(k): str(v) for k, v in env.items()},
    )


def load_provider_specs(path: Optional[str]) -> list[ProviderSpec]:
    """
    Load provider launch specs from a YAML file.

    Returns an empty list when no path is configured or the file is missing.

    Raises:
        ValueError: if the file is present but malformed.
    """
    if not path:
        return []
    config_path = Path(path)
    if not config_path.exists():
        logger.warning(f"Providers config not found at {config_path}, starting none")
        return []

    logger.debug(f"Loading providers config from {config_path}")
    with open(config_path, "r") as f:
        raw_config = yaml.safe_load(f)

    if not raw_config:
        return []
    providers_data = _substitute_env_vars_recursive(raw_config.get("providers") or {})
    if not isinstance(providers_data, dict):
        raise ValueError("'providers' must be a mapping of name -> launch spec")

    return [_parse_provider(name, data) for name, data in providers_data.items()]


def bootstrap_providers(
    registry: ProviderRegistry,
    specs: list[ProviderSpec],
    handshake_timeout: float = 30.0,
    request_timeout: float = 60.0,
    shutdown_grace: float = 5.0,
) -> list[str]:
    """
    Start and register each provider. Failures are logged and skipped.

    Returns:
        Names of the providers that were registered.
    """
    started = []
    for spec in specs:
        provider = ProviderProcess(
            spec.name,
            spec.command,
            spec.args,
            env=spec.env,
            handshake_timeout=handshake_timeout,
            request_timeout=request_timeout,
            shutdown_grace=shutdown_grace,
        )
        try:
            provider.bootstrap()
            registry.add(provider)
        except BootstrapError as e:
            logger.error(f"Skipping provider '{spec.name}': {e}")
            continue
        except (ProviderExistsError, ProviderUnavailableError) as e:
            logger.error(f"Skipping provider '{spec.name}': {e}")
            provider.shutdown()
            continue
        started.append(spec.name)
    return started
