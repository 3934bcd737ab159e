"""Configuration resolver with 4-level priority.

Priority (highest to lowest):
1. CLI arguments
2. Environment variables (FILEDECK_*)
3. Config files (user > system)
4. Defaults
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from filedeck.core.errors import ConfigError

ALLOWED_LOGGING_LEVELS = frozenset({"quiet", "normal", "verbose", "debug"})
DEFAULT_LOGGING_LEVEL = "normal"

ENV_PREFIX = "FILEDECK_"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass
class ConfigSource:
    """Represents where a config value came from."""

    value: Any
    source: str  # 'cli' | 'env' | 'user_config' | 'system_config' | 'default'


CONFIG_TYPE_ANY = "any"
CONFIG_TYPE_STRING = "string"
CONFIG_TYPE_INT = "int"
CONFIG_TYPE_FLOAT = "float"
CONFIG_TYPE_BOOL = "bool"
CONFIG_TYPE_LIST = "list"
CONFIG_TYPE_OBJECT = "object"


@dataclass(frozen=True)
class ConfigKeySchema:
    """Schema metadata for a single config key."""

    key_path: str
    type: str
    default: Any | None = None
    unknown: bool = False


def _infer_schema_type(value: Any) -> str:
    if isinstance(value, bool):
        return CONFIG_TYPE_BOOL
    if isinstance(value, int):
        return CONFIG_TYPE_INT
    if isinstance(value, float):
        return CONFIG_TYPE_FLOAT
    if isinstance(value, list):
        return CONFIG_TYPE_LIST
    if isinstance(value, dict):
        return CONFIG_TYPE_OBJECT
    if isinstance(value, str):
        return CONFIG_TYPE_STRING
    return CONFIG_TYPE_ANY


def _flatten_items(data: dict[str, Any], prefix: str = "") -> list[tuple[str, Any]]:
    """Flatten nested dicts to dot-notation key paths."""
    items: list[tuple[str, Any]] = []

    for key, value in data.items():
        key_path = f"{prefix}.{key}" if prefix else str(key)

        if isinstance(value, dict) and value:
            items.extend(_flatten_items(value, key_path))
        else:
            items.append((key_path, value))

    return items


@dataclass(frozen=True)
class LoggingPolicy:
    """Resolved, immutable logging policy."""

    level_name: str  # quiet | normal | verbose | debug
    emit_warning: bool
    emit_info: bool
    emit_verbose: bool
    emit_debug: bool
    source: str


class ConfigResolver:
    """Resolve configuration with strict 4-level priority.

    Example:
        resolver = ConfigResolver(
            cli_args={'file_ops': {'temp_dir': '/var/tmp/filedeck'}},
            user_config_path=Path('~/.config/filedeck/config.yaml'),
        )

        temp_dir, source = resolver.resolve('file_ops.temp_dir')
        # temp_dir = '/var/tmp/filedeck', source = 'cli'
    """

    def __init__(
        self,
        cli_args: dict[str, Any] | None = None,
        user_config_path: Path | None = None,
        system_config_path: Path | None = None,
        defaults: dict[str, Any] | None = None,
    ) -> None:
        """Initialize config resolver.

        Args:
            cli_args: Arguments from CLI (highest priority)
            user_config_path: Path to user config file
            system_config_path: Path to system config file
            defaults: Default values (lowest priority)
        """
        self.cli_args = cli_args or {}
        self.user_config_path = user_config_path or Path.home() / ".config/filedeck/config.yaml"
        self.system_config_path = system_config_path or Path("/etc/filedeck/config.yaml")
        self.defaults = defaults if defaults is not None else self.default_config()

        self._schema = {
            key: ConfigKeySchema(key_path=key, type=_infer_schema_type(value), default=value)
            for key, value in _flatten_items(self.defaults)
        }

        # Cache loaded configs
        self._user_config: dict[str, Any] | None = None
        self._system_config: dict[str, Any] | None = None

    def resolve(self, key: str) -> tuple[Any, str]:
        """Resolve config value with priority.

        Args:
            key: Config key (supports dot notation: 'logging.level')

        Returns:
            (value, source) tuple

        Raises:
            ConfigError: If key not found in any source
        """
        value = self._get_nested(self.cli_args, key)
        if value is not None:
            return value, "cli"

        value = self._from_env(key)
        if value is not None:
            return value, "env"

        value = self._get_nested(self._get_user_config(), key)
        if value is not None:
            return value, "user_config"

        value = self._get_nested(self._get_system_config(), key)
        if value is not None:
            return value, "system_config"

        value = self._get_nested(self.defaults, key)
        if value is not None:
            return value, "default"

        raise ConfigError(f"Config key '{key}' not found in any source")

    def resolve_bool(self, key: str, default: bool) -> bool:
        """Resolve a bool, accepting bool-like strings from env/CLI."""
        try:
            value, src = self.resolve(key)
        except ConfigError:
            return default

        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return bool(value)

        text = str(value).strip().lower()
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False

        raise ConfigError(
            f"Config key '{key}' must be a bool, got {value!r} (from {src})",
            "Use one of: true, false, 1, 0, yes, no",
        )

    def resolve_float(self, key: str, default: float) -> float:
        try:
            value, _src = self.resolve(key)
        except ConfigError:
            return default
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ConfigError(f"Config key '{key}' must be a number, got {value!r}") from None

    def resolve_int(self, key: str, default: int) -> int:
        try:
            value, _src = self.resolve(key)
        except ConfigError:
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigError(f"Config key '{key}' must be an int, got {value!r}") from None

    def resolve_list(self, key: str, default: list[str]) -> list[str]:
        """Resolve a list of strings; env values are comma-separated."""
        try:
            value, _src = self.resolve(key)
        except ConfigError:
            return list(default)

        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        if isinstance(value, (list, tuple)):
            return [str(v) for v in value]

        raise ConfigError(f"Config key '{key}' must be a list, got {type(value).__name__}")

    def resolve_logging_level(self) -> str:
        """Resolve and validate logging.level.

        Allowed values (after normalization):
            quiet | normal | verbose | debug

        Raises:
            ConfigError: If the resolved value is invalid.
        """
        level, _src = self._resolve_logging_level_and_source()
        return level

    def resolve_logging_policy(self) -> LoggingPolicy:
        """Resolve the logging policy (side-effect free)."""
        level_name, src = self._resolve_logging_level_and_source()
        rank = ["quiet", "normal", "verbose", "debug"].index(level_name)
        return LoggingPolicy(
            level_name=level_name,
            emit_warning=True,
            emit_info=rank >= 1,
            emit_verbose=rank >= 2,
            emit_debug=rank >= 3,
            source=src,
        )

    def _resolve_logging_level_and_source(self) -> tuple[str, str]:
        key = "logging.level"
        try:
            value, src = self.resolve(key)
        except ConfigError:
            return DEFAULT_LOGGING_LEVEL, "default"

        if not isinstance(value, str):
            raise ConfigError(f"Config key '{key}' must be a string, got {type(value).__name__}")

        norm = value.strip().lower()
        if norm not in ALLOWED_LOGGING_LEVELS:
            allowed = ", ".join(sorted(ALLOWED_LOGGING_LEVELS))
            raise ConfigError(f"Invalid '{key}': {value!r}. Allowed values: {allowed}")

        return norm, src

    def list_known_keys(self) -> list[str]:
        """Return a deterministic list of known keys (defaults-driven)."""
        return sorted(self._schema)

    def get_key_schema(self, key_path: str) -> ConfigKeySchema:
        known = self._schema.get(key_path)
        if known is not None:
            return known
        return ConfigKeySchema(key_path=key_path, type=CONFIG_TYPE_ANY, unknown=True)

    def resolve_all(self) -> dict[str, ConfigSource]:
        """Resolve all known keys plus keys present in CLI args and config files."""
        all_keys: set[str] = set(self.list_known_keys())
        for data in (self.cli_args, self._get_user_config(), self._get_system_config()):
            all_keys.update(k for k, _v in _flatten_items(data))

        result: dict[str, ConfigSource] = {}
        for key in sorted(all_keys):
            try:
                value, source = self.resolve(key)
            except ConfigError:
                continue
            result[key] = ConfigSource(value=value, source=source)
        return result

    def _from_env(self, key: str) -> Any | None:
        """Get value from environment variables.

        Environment variable format: FILEDECK_KEY_NAME
        Example: FILEDECK_FILE_OPS_TEMP_DIR, FILEDECK_LOGGING_LEVEL
        """
        env_key = f"{ENV_PREFIX}{key.upper().replace('.', '_')}"
        return os.environ.get(env_key)

    def _get_user_config(self) -> dict[str, Any]:
        """Load user config file (cached)."""
        if self._user_config is None:
            self._user_config = self._load_yaml(self.user_config_path)
        return self._user_config

    def _get_system_config(self) -> dict[str, Any]:
        """Load system config file (cached)."""
        if self._system_config is None:
            self._system_config = self._load_yaml(self.system_config_path)
        return self._system_config

    def _load_yaml(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
                return data if isinstance(data, dict) else {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config from {path}: {e}") from e

    def _get_nested(self, data: dict[str, Any], key: str) -> Any | None:
        """Get nested value using dot notation.

        Example:
            data = {'logging': {'level': 'debug'}}
            _get_nested(data, 'logging.level') -> 'debug'
        """
        current: Any = data

        for part in key.split("."):
            if not isinstance(current, dict):
                return None
            current = current.get(part)
            if current is None:
                return None

        return current

    @staticmethod
    def default_config() -> dict[str, Any]:
        """Default configuration."""
        return {
            "logging": {
                "level": "normal",
                "color": True,
            },
            "diagnostics": {
                "enabled": False,
                "path": str(Path.home() / ".filedeck" / "diagnostics.jsonl"),
            },
            "file_ops": {
                # Empty string selects the system temp directory.
                "temp_dir": "",
                "archives": {
                    "extensions": [".zip"],
                },
                "copy": {
                    "yield_seconds": 0.001,
                },
                "search": {
                    "max_results": 1000,
                },
                "sync_folder_prefixes": ["OneDrive"],
            },
        }
