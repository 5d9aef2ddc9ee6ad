"""
Contract Configuration

Deployment-time configuration: the role-policy table, input limits, the
private collection name and logging settings.

Configuration Sources (in order of precedence):
    1. Environment variables (ASSETFLOW_*)
    2. Runtime overrides (``ContractConfig.set``)
    3. YAML file passed to ``load_config``
    4. Default values

The YAML document is validated against ``schemas/contract-config.schema.json``
before it is applied. An engine is always built from an already-resolved
config; nothing here is consulted while a transaction executes.

Copyright (c) 2024 Momentum. All rights reserved.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

from assetflow.core import CONFIG_DIR, load_yaml
from assetflow.schema import validation_errors

T = TypeVar("T")

CONFIG_SCHEMA = "contract-config.schema.json"
DEFAULT_CONFIG_PATH = CONFIG_DIR / "asset-approval.yaml"


class ConfigError(Exception):
    """Configuration error."""
    pass


class ConfigValidationError(ConfigError):
    """Configuration validation error."""
    pass


def _role_list(value: Any) -> bool:
    return (
        isinstance(value, list)
        and len(value) > 0
        and all(isinstance(r, str) and r.strip() for r in value)
        and len(set(value)) == len(value)
    )


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports default values, environment variable binding and validation.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            return self._coerce(os.environ[self.env_var])
        return self._value if self._value is not None else self.default

    def set(self, value: T) -> None:
        """Set the value with validation."""
        if self.validator and not self.validator(value):
            raise ConfigValidationError(f"Invalid value for config: {value!r}")
        self._value = value

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)

        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")  # type: ignore
        elif target_type == int:
            return int(value)  # type: ignore
        elif target_type == list:
            return [v.strip() for v in value.split(",") if v.strip()]  # type: ignore
        else:
            return value  # type: ignore


@dataclass
class PolicyConfig:
    """Role-policy table. Roles are claims, never organization identifiers."""
    required_approvals: ConfigValue[List[str]] = field(default_factory=lambda: ConfigValue(
        default=["auditor", "regulator"],
        env_var="ASSETFLOW_REQUIRED_APPROVALS",
        description="Ordered roles whose approval is needed to reach APPROVED",
        validator=_role_list,
    ))
    owner_roles: ConfigValue[List[str]] = field(default_factory=lambda: ConfigValue(
        default=["owner"],
        env_var="ASSETFLOW_OWNER_ROLES",
        description="Roles allowed to create and manage their own assets",
        validator=_role_list,
    ))
    private_access_roles: ConfigValue[List[str]] = field(default_factory=lambda: ConfigValue(
        default=["owner", "auditor"],
        env_var="ASSETFLOW_PRIVATE_ACCESS_ROLES",
        description="Roles allowed to read the private partition",
        validator=_role_list,
    ))
    operations: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class LimitsConfig:
    """Input length limits."""
    asset_id_max_length: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=64,
        env_var="ASSETFLOW_ASSET_ID_MAX_LENGTH",
        description="Maximum asset id length",
        validator=lambda x: 0 < x <= 256,
    ))
    description_max_length: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=1024,
        env_var="ASSETFLOW_DESCRIPTION_MAX_LENGTH",
        description="Maximum description length",
        validator=lambda x: x > 0,
    ))
    reason_max_length: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=500,
        env_var="ASSETFLOW_REASON_MAX_LENGTH",
        description="Maximum rejection reason length",
        validator=lambda x: x > 0,
    ))


@dataclass
class PrivateDataConfig:
    """Private partition settings."""
    collection: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="assetPrivateDetails",
        env_var="ASSETFLOW_PRIVATE_COLLECTION",
        description="Name of the restricted collection holding confidential records",
        validator=lambda x: bool(x),
    ))
    transient_key: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="asset_private_data",
        env_var="ASSETFLOW_TRANSIENT_KEY",
        description="Transient map key carrying the confidential payload at creation",
        validator=lambda x: bool(x),
    ))


@dataclass
class ObservabilityConfig:
    """Configuration for logging."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="ASSETFLOW_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="ASSETFLOW_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))


@dataclass
class ContractConfig:
    """
    Root configuration for the contract engine.

    Aggregates all section configurations and provides loading/saving.
    """
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    private_data: PrivateDataConfig = field(default_factory=PrivateDataConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ContractConfig":
        """Build a config from a parsed document, validating it first."""
        data = data or {}
        errs = validation_errors(CONFIG_SCHEMA, data)
        if errs:
            raise ConfigValidationError(f"invalid contract config: {errs[0]}")

        config = cls()
        config._apply_dict(data)
        return config

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        def apply_to_config(config_obj: Any, values: Dict[str, Any]) -> None:
            for key, value in values.items():
                if not hasattr(config_obj, key):
                    continue
                attr = getattr(config_obj, key)
                if isinstance(attr, ConfigValue):
                    attr.set(value)
                elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                    apply_to_config(attr, value)
                elif isinstance(attr, dict) and isinstance(value, dict):
                    attr.clear()
                    attr.update({k: list(v) for k, v in value.items()})

        apply_to_config(self, data)

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: config.set("policy.required_approvals", ["auditor"])
        """
        parts = path.split(".")
        obj: Any = self
        for part in parts[:-1]:
            obj = getattr(obj, part)

        attr = getattr(obj, parts[-1], None)
        if isinstance(attr, ConfigValue):
            attr.set(value)
        else:
            raise ConfigError(f"Invalid config path: {path}")

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: config.get("limits.reason_max_length")
        """
        obj: Any = self
        for part in path.split("."):
            obj = getattr(obj, part)
        if isinstance(obj, ConfigValue):
            return obj.get()
        return obj

    def validate(self) -> List[str]:
        """
        Validate all configuration values, including environment overrides.

        Returns list of validation errors.
        """
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                    if obj.validator and not obj.validator(value):
                        errors.append(f"{path}: validation failed for value {value!r}")
                except ValueError as e:
                    errors.append(f"{path}: {e}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self)

        from assetflow.contract.policy import Ops

        known = Ops.all()
        for op, roles in self.policy.operations.items():
            if op not in known:
                errors.append(f"policy.operations.{op}: unknown operation")
            elif not _role_list(roles):
                errors.append(f"policy.operations.{op}: must be a non-empty list of unique roles")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary of resolved values."""
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                value = obj.get()
                return list(value) if isinstance(value, list) else value
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            elif isinstance(obj, dict):
                return {k: list(v) for k, v in obj.items()}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        """Convert to YAML string."""
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=True)


def load_config(path: Optional[Union[str, Path]] = None) -> ContractConfig:
    """Load and validate a contract configuration.

    With no path the bundled ``assetflow/config/asset-approval.yaml`` is used when it
    exists, otherwise built-in defaults.
    """
    if path is None:
        path = DEFAULT_CONFIG_PATH if DEFAULT_CONFIG_PATH.exists() else None

    data: Optional[Dict[str, Any]] = None
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")
        data = load_yaml(path)
        if data is not None and not isinstance(data, dict):
            raise ConfigValidationError(f"{path}: top level must be a mapping")

    config = ContractConfig.from_dict(data)
    errors = config.validate()
    if errors:
        raise ConfigValidationError("; ".join(errors))
    return config
