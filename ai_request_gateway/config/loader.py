"""
Configuration management and loading.

Reads gateway settings once at startup from a YAML file or environment
variables. The result is frozen for the lifetime of the process.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from ai_request_gateway.core.cache import (
    DEFAULT_KEY_PREFIX_CHARS,
    DEFAULT_MAX_ENTRIES,
    DEFAULT_TTL_SECONDS,
)
from ai_request_gateway.storage.db import DEFAULT_DB_PATH

DEFAULT_MODEL = "gpt-3.5-turbo"
DEFAULT_MAX_TOKENS = 500
DEFAULT_TEMPERATURE = 0.7
DEFAULT_TIMEOUT_SECONDS = 30.0

# Placeholder shipped in sample configs; never a usable credential
PLACEHOLDER_API_KEY = "sk-your-openai-api-key-here"


class ConfigSource(Enum):
    """Where the active configuration came from."""
    FILE = "file"
    ENVIRONMENT = "environment"
    NONE = "none"


@dataclass(frozen=True)
class ProviderSettings:
    """LLM provider credentials and generation bounds."""
    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = DEFAULT_TEMPERATURE
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    enabled: bool = True

    def __post_init__(self):
        """Validate provider bounds."""
        if not self.model or not self.model.strip():
            raise ValueError("model cannot be empty")
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")
        if not 0 <= self.temperature <= 2:
            raise ValueError("temperature must be between 0 and 2")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key) and self.api_key != PLACEHOLDER_API_KEY


@dataclass(frozen=True)
class CacheSettings:
    """Request cache sizing and expiry."""
    default_ttl_seconds: float = DEFAULT_TTL_SECONDS
    max_entries: int = DEFAULT_MAX_ENTRIES
    key_prefix_chars: int = DEFAULT_KEY_PREFIX_CHARS

    def __post_init__(self):
        """Validate cache values are positive."""
        if self.default_ttl_seconds <= 0:
            raise ValueError("default_ttl_seconds must be > 0")
        if self.max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        if self.key_prefix_chars <= 0:
            raise ValueError("key_prefix_chars must be > 0")


@dataclass(frozen=True)
class OperationSettings:
    """Per-operation overrides."""
    cache_ttl_seconds: float

    def __post_init__(self):
        if self.cache_ttl_seconds <= 0:
            raise ValueError("cache_ttl_seconds must be > 0")


@dataclass(frozen=True)
class GatewayConfig:
    """Complete gateway configuration."""
    provider: ProviderSettings = field(default_factory=ProviderSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    operations: Mapping[str, OperationSettings] = field(default_factory=dict)
    db_path: str = DEFAULT_DB_PATH
    source: ConfigSource = ConfigSource.NONE

    @property
    def is_usable(self) -> bool:
        """True when the provider may be contacted."""
        return self.provider.enabled and self.provider.has_api_key

    def cache_ttl_for(self, operation: str) -> float:
        """TTL for an operation, using the cache default if not overridden."""
        settings = self.operations.get(operation)
        if settings is None:
            return self.cache.default_ttl_seconds
        return settings.cache_ttl_seconds


def load_gateway_config(
    path: str,
    environ: Optional[Mapping[str, str]] = None
) -> GatewayConfig:
    """Load and validate gateway configuration from a YAML file.

    Strict validation: unknown keys and out-of-range values are rejected
    instead of being silently ignored. When the file has no api_key the
    OPENAI_API_KEY environment variable is used.

    Args:
        path: Path to YAML configuration file
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated GatewayConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    environ = os.environ if environ is None else environ
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Gateway config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration root must be a dictionary")

    allowed_top_keys = {'provider', 'cache', 'operations', 'storage'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    if 'provider' not in raw_config:
        raise ValueError("Missing required 'provider' section")

    provider = _parse_provider(_section(raw_config, 'provider'), environ)
    cache = _parse_cache(_section(raw_config, 'cache'))

    operations = {}
    for name, data in _section(raw_config, 'operations').items():
        if not isinstance(data, dict):
            raise ValueError(f"Operation '{name}' must be a dictionary")
        _reject_unknown(data, {'cache_ttl_seconds'}, f"operations.{name}")
        if 'cache_ttl_seconds' not in data:
            raise ValueError(f"Missing required 'cache_ttl_seconds' in operations.{name}")
        operations[str(name)] = OperationSettings(
            cache_ttl_seconds=_number(data['cache_ttl_seconds'], f"operations.{name}.cache_ttl_seconds")
        )

    storage = _section(raw_config, 'storage')
    _reject_unknown(storage, {'db_path'}, "storage")
    db_path = storage.get('db_path', DEFAULT_DB_PATH)
    if not isinstance(db_path, str) or not db_path.strip():
        raise ValueError("'db_path' in storage must be a non-empty string")

    return GatewayConfig(
        provider=provider,
        cache=cache,
        operations=operations,
        db_path=db_path,
        source=ConfigSource.FILE,
    )


def load_gateway_config_from_env(environ: Optional[Mapping[str, str]] = None) -> GatewayConfig:
    """Build configuration from environment variables.

    Recognized variables: OPENAI_API_KEY, OPENAI_MODEL, OPENAI_MAX_TOKENS,
    OPENAI_TEMPERATURE, OPENAI_ENABLED, AI_CACHE_TTL_SECONDS,
    AI_GATEWAY_DB_PATH.

    Raises:
        ValueError: If a numeric variable cannot be parsed
    """
    environ = os.environ if environ is None else environ
    api_key = environ.get('OPENAI_API_KEY') or None

    try:
        provider = ProviderSettings(
            api_key=api_key,
            model=environ.get('OPENAI_MODEL') or DEFAULT_MODEL,
            max_tokens=int(environ.get('OPENAI_MAX_TOKENS') or DEFAULT_MAX_TOKENS),
            temperature=float(environ.get('OPENAI_TEMPERATURE') or DEFAULT_TEMPERATURE),
            enabled=environ.get('OPENAI_ENABLED', 'true').strip().lower() != 'false',
        )
        cache = CacheSettings(
            default_ttl_seconds=float(environ.get('AI_CACHE_TTL_SECONDS') or DEFAULT_TTL_SECONDS)
        )
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid gateway environment configuration: {e}")

    return GatewayConfig(
        provider=provider,
        cache=cache,
        db_path=environ.get('AI_GATEWAY_DB_PATH') or DEFAULT_DB_PATH,
        source=ConfigSource.ENVIRONMENT if api_key else ConfigSource.NONE,
    )


def load_config(path: Optional[str] = None) -> GatewayConfig:
    """Load from path when given, otherwise from the environment."""
    if path:
        return load_gateway_config(path)
    return load_gateway_config_from_env()


def _section(raw_config: Dict, name: str) -> Dict:
    data = raw_config.get(name)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    return data


def _reject_unknown(data: Dict, allowed: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")


def _number(value: Any, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{path}' must be a number")
    return float(value)


def _parse_provider(data: Dict, environ: Mapping[str, str]) -> ProviderSettings:
    """Parse and validate the provider section.

    Args:
        data: Provider configuration data
        environ: Environment used for the api_key fallback

    Returns:
        Validated ProviderSettings

    Raises:
        ValueError: If configuration is invalid
    """
    allowed_keys = {'api_key', 'model', 'max_tokens', 'temperature', 'timeout_seconds', 'enabled'}
    _reject_unknown(data, allowed_keys, "provider")

    api_key = data.get('api_key')
    if api_key is not None and not isinstance(api_key, str):
        raise ValueError("'api_key' in provider must be a string")
    api_key = api_key or environ.get('OPENAI_API_KEY') or None

    model = data.get('model', DEFAULT_MODEL)
    if not isinstance(model, str):
        raise ValueError("'model' in provider must be a string")

    max_tokens = data.get('max_tokens', DEFAULT_MAX_TOKENS)
    if isinstance(max_tokens, bool) or not isinstance(max_tokens, int):
        raise ValueError("'max_tokens' in provider must be an integer")

    enabled = data.get('enabled', True)
    if not isinstance(enabled, bool):
        raise ValueError("'enabled' in provider must be a boolean")

    return ProviderSettings(
        api_key=api_key,
        model=model,
        max_tokens=max_tokens,
        temperature=_number(data.get('temperature', DEFAULT_TEMPERATURE), "provider.temperature"),
        timeout_seconds=_number(
            data.get('timeout_seconds', DEFAULT_TIMEOUT_SECONDS), "provider.timeout_seconds"
        ),
        enabled=enabled,
    )


def _parse_cache(data: Dict) -> CacheSettings:
    """Parse and validate the cache section."""
    allowed_keys = {'default_ttl_seconds', 'max_entries', 'key_prefix_chars'}
    _reject_unknown(data, allowed_keys, "cache")

    for key in ('max_entries', 'key_prefix_chars'):
        value = data.get(key)
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            raise ValueError(f"'{key}' in cache must be an integer")

    return CacheSettings(
        default_ttl_seconds=_number(
            data.get('default_ttl_seconds', DEFAULT_TTL_SECONDS), "cache.default_ttl_seconds"
        ),
        max_entries=data.get('max_entries', DEFAULT_MAX_ENTRIES),
        key_prefix_chars=data.get('key_prefix_chars', DEFAULT_KEY_PREFIX_CHARS),
    )
