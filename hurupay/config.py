"""
Hurupay Configuration System

Configuration management with YAML files, environment variables and
validation.

Configuration Sources (in order of precedence):
    1. Environment variables (HURUPAY_*)
    2. Runtime overrides (ConfigManager.set)
    3. Project config file (./hurupay.yaml or ./config/hurupay.yaml)
    4. Default values

The relay never reads the singleton on its own. ``create_relay`` takes a
``RelayConfig`` explicitly, so independent relays can coexist in one
process with different settings.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml
from eth_utils import is_address

from hurupay.fees import (
    DEFAULT_MINIMUM_FEE,
    MAX_FEE_RATE_BASIS_POINTS,
    FeeDestination,
    FeePolicy,
)
from hurupay.hardening import NULL_ADDRESS
from hurupay.observability import RelayLayer, get_logger
from hurupay.signing import PROTOCOL_NAME, PROTOCOL_VERSION, DomainContext

T = TypeVar("T")

_log = get_logger("manager", RelayLayer.CONFIG)


class ConfigError(Exception):
    """Configuration error."""
    pass


class ConfigValidationError(ConfigError):
    """Configuration validation error."""
    pass


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports default values, environment variable binding,
    validation, and change callbacks.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)
    _callbacks: List[Callable[[Optional[T], T], None]] = field(default_factory=list, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            return self._coerce(os.environ[self.env_var])
        return self._value if self._value is not None else self.default

    def set(self, value: T) -> None:
        """Set the value with validation."""
        if self.validator and not self.validator(value):
            raise ConfigValidationError(f"Invalid value for config: {value!r}")

        old_value = self._value
        self._value = value

        for callback in self._callbacks:
            callback(old_value, value)

    def reset(self) -> None:
        self._value = None

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)

        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")  # type: ignore
        elif target_type == int:
            try:
                return int(value, 0)  # type: ignore
            except ValueError as e:
                raise ConfigValidationError(f"{self.env_var}: expected an integer, got {value!r}") from e
        else:
            return value  # type: ignore

    def on_change(self, callback: Callable[[Optional[T], T], None]) -> None:
        """Register a change callback."""
        self._callbacks.append(callback)


def _is_address_or_empty(value: Any) -> bool:
    return value == "" or (isinstance(value, str) and is_address(value))


def _is_uint(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


@dataclass
class FeeConfig:
    """Fee policy applied by a new relay."""
    rate_basis_points: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=100,
        env_var="HURUPAY_FEE_RATE_BPS",
        description=f"Percentage fee in basis points (0-{MAX_FEE_RATE_BASIS_POINTS})",
        validator=lambda x: _is_uint(x) and x <= MAX_FEE_RATE_BASIS_POINTS,
    ))
    minimum_fee: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=DEFAULT_MINIMUM_FEE,
        env_var="HURUPAY_MINIMUM_FEE",
        description="Fee floor in stablecoin base units",
        validator=_is_uint,
    ))
    destination: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default=FeeDestination.ACCRUE.value,
        env_var="HURUPAY_FEE_DESTINATION",
        description="Where fees go (accrue, immediate)",
        validator=lambda x: x in {d.value for d in FeeDestination},
    ))


@dataclass
class DomainConfig:
    """Structured-data signing domain."""
    name: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default=PROTOCOL_NAME,
        env_var="HURUPAY_DOMAIN_NAME",
        description="Signing domain name",
        validator=lambda x: isinstance(x, str) and bool(x),
    ))
    version: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default=PROTOCOL_VERSION,
        env_var="HURUPAY_DOMAIN_VERSION",
        description="Signing domain version",
        validator=lambda x: isinstance(x, str) and bool(x),
    ))
    chain_id: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=8453,
        env_var="HURUPAY_CHAIN_ID",
        description="Network identifier bound into every signature",
        validator=lambda x: _is_uint(x) and x > 0,
    ))
    verifying_contract: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="HURUPAY_VERIFYING_CONTRACT",
        description="Relay holding address, bound into every signature",
        validator=_is_address_or_empty,
    ))


@dataclass
class TokenConfig:
    """The managed stablecoin."""
    stablecoin: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="HURUPAY_STABLECOIN",
        description="Stablecoin asset identity",
        validator=_is_address_or_empty,
    ))
    decimals: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=6,
        env_var="HURUPAY_STABLECOIN_DECIMALS",
        description="Stablecoin decimals",
        validator=lambda x: _is_uint(x) and x <= 36,
    ))


@dataclass
class SecurityConfig:
    """Replay protection storage."""
    replay_journal_path: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="HURUPAY_REPLAY_JOURNAL",
        description="Consumed request id journal (empty keeps ids in memory)",
        validator=lambda x: isinstance(x, str),
    ))


@dataclass
class ObservabilityConfig:
    """Configuration for Observability."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="HURUPAY_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="HURUPAY_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))


@dataclass
class RelayConfig:
    """
    Root configuration for one relay deployment.

    Aggregates all section configurations and provides
    loading/saving functionality.
    """
    fees: FeeConfig = field(default_factory=FeeConfig)
    domain: DomainConfig = field(default_factory=DomainConfig)
    token: TokenConfig = field(default_factory=TokenConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                return obj.get()
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        """Convert to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RelayConfig":
        config = cls()
        apply_dict(config, data)
        return config

    def fee_policy(self) -> FeePolicy:
        """The FeePolicy described by the ``fees`` section."""
        minimum_fee = self.fees.minimum_fee.get()
        return FeePolicy(
            rate_basis_points=self.fees.rate_basis_points.get(),
            minimum_fee=minimum_fee or None,
            destination=FeeDestination(self.fees.destination.get()),
        )

    def domain_context(self, verifying_contract: Optional[str] = None) -> DomainContext:
        """
        The signing domain described by the ``domain`` section.

        ``verifying_contract`` overrides the configured address; one of the
        two must be set.
        """
        contract = verifying_contract or self.domain.verifying_contract.get()
        if not contract or contract.lower() == NULL_ADDRESS:
            raise ConfigError("domain.verifying_contract is not configured")
        return DomainContext(
            chain_id=self.domain.chain_id.get(),
            verifying_contract=contract,
            name=self.domain.name.get(),
            version=self.domain.version.get(),
        )


def apply_dict(config: Any, values: Dict[str, Any], path: str = "") -> None:
    """Apply nested dictionary values to a config dataclass."""
    for key, value in values.items():
        key_path = f"{path}.{key}" if path else key
        if not hasattr(config, key):
            raise ConfigError(f"Unknown config key: {key_path}")
        attr = getattr(config, key)
        if isinstance(attr, ConfigValue):
            attr.set(value)
        elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
            apply_dict(attr, value, key_path)
        else:
            raise ConfigError(f"Expected a mapping for config section: {key_path}")


class ConfigManager:
    """
    Configuration manager with file loading and environment binding.

    Thread-safe singleton that manages configuration lifecycle.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    DEFAULT_PATHS = (
        Path("hurupay.yaml"),
        Path("config/hurupay.yaml"),
    )

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self):
        if self._initialized:
            return
        self._config = RelayConfig()
        self._config_paths: List[Path] = []
        self._initialized = True

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton; the next ConfigManager() starts from defaults."""
        with cls._lock:
            cls._instance = None

    @property
    def config(self) -> RelayConfig:
        """Get the current configuration."""
        return self._config

    @property
    def loaded_paths(self) -> List[Path]:
        return list(self._config_paths)

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Malformed configuration file {path}: {e}") from e

        if data:
            if not isinstance(data, dict):
                raise ConfigError(f"Configuration file {path} must contain a mapping")
            apply_dict(self._config, data)
        self._config_paths.append(path)
        _log.info("configuration loaded", operation="load_from_file", path=str(path))

    def load_defaults(self) -> Optional[Path]:
        """Load the first default configuration file that exists."""
        for path in self.DEFAULT_PATHS:
            if path.exists():
                self.load_from_file(path)
                return path
        return None

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: config.set("fees.rate_basis_points", 50)
        """
        attr = self._resolve(path)
        if not isinstance(attr, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        attr.set(value)

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: config.get("domain.chain_id")
        """
        obj = self._resolve(path)
        if isinstance(obj, ConfigValue):
            return obj.get()
        return obj

    def _resolve(self, path: str) -> Any:
        obj: Any = self._config
        for part in path.split("."):
            if not hasattr(obj, part):
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)
        return obj

    def validate(self) -> List[str]:
        """
        Validate all configuration values.

        Returns list of validation errors.
        """
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                except ConfigError as e:
                    errors.append(f"{path}: {e}")
                    return
                if obj.validator and not obj.validator(value):
                    errors.append(f"{path}: validation failed for value {value!r}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._config)
        return errors

    def export_schema(self) -> Dict[str, Any]:
        """Export configuration schema for documentation."""
        schema: Dict[str, Any] = {"properties": {}}

        def extract_schema(obj: Any, properties: Dict[str, Any]) -> None:
            if isinstance(obj, ConfigValue):
                properties["type"] = type(obj.default).__name__
                properties["default"] = str(obj.default)
                properties["description"] = obj.description
                if obj.env_var:
                    properties["env_var"] = obj.env_var
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    properties[field_name] = {}
                    extract_schema(getattr(obj, field_name), properties[field_name])

        extract_schema(self._config, schema["properties"])
        return schema

    def to_yaml(self) -> str:
        return self._config.to_yaml()


def get_config() -> RelayConfig:
    """Get the process-wide relay configuration."""
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    """Get the configuration manager instance."""
    return ConfigManager()
