"""
Configuration module for Paranoid Toolkit.

Provides centralized configuration for the soft delete policy engine.
"""

import json
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union, get_args, get_origin

import pytz
import yaml
from pydantic import BaseModel, Field, ValidationInfo, field_validator


class CascadeFailurePolicy(str, Enum):
    """What a cascading restore does when one related branch fails."""

    ABORT = "abort"  # stop at the first failing branch
    CONTINUE = "continue"  # try every branch, then report all failures


class ParanoidConfig(BaseModel):
    """Central configuration for the soft delete policy engine.

    Per-entity settings (tombstone field, destroyed value, sentinel) live in
    each type's ``ScopePolicy``; this object holds the process-wide behaviour
    that every registered type shares.

    Configuration Sources (in order of precedence):
        1. Programmatic settings (highest priority)
        2. Environment variables (PARANOID_ prefix)
        3. Configuration files (JSON or YAML)
        4. Default values (lowest priority)

    Example:
        >>> config = ParanoidConfig(cascade_failure_policy="continue")

        Loading from environment:

        >>> os.environ['PARANOID_CASCADE_RESTORE_ENABLED'] = 'false'
        >>> config = ParanoidConfig.from_env()

        Loading from file:

        >>> config = ParanoidConfig.from_file('paranoid.yaml')
    """

    # General settings
    timezone: str = Field("UTC", description="Timezone for default destroy timestamps")
    default_tombstone_field: str = Field(
        "deleted_at", description="Tombstone field used when a policy names none"
    )

    # Cascade settings
    cascade_destroy_enabled: bool = Field(
        True, description="Destroy dependent owned records along with their owner"
    )
    cascade_restore_enabled: bool = Field(
        True, description="Restore related records along with their owner"
    )
    cascade_failure_policy: CascadeFailurePolicy = Field(
        CascadeFailurePolicy.ABORT,
        description="Behaviour when a branch of a cascading restore fails",
    )

    # Variant naming
    including_deleted_suffix: str = Field(
        "_including_deleted", description="Suffix of all-states variants"
    )
    deleted_only_suffix: str = Field(
        "_deleted_only", description="Suffix of deleted-only variants"
    )

    # Query settings
    include_deleted_option: str = Field(
        "include_deleted",
        description="Execution option that disables the default filter per statement",
    )

    # Logging
    log_transitions: bool = Field(
        True, description="Log destroy/restore/hard delete transitions at INFO"
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Ensure the timezone is known to pytz."""
        if v not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @field_validator("including_deleted_suffix", "deleted_only_suffix")
    @classmethod
    def validate_suffix(cls, v: str, info: ValidationInfo) -> str:
        """Variant suffixes must be identifier-like and distinct."""
        if not v.startswith("_") or not v[1:].isidentifier():
            raise ValueError(
                "Variant suffixes must start with '_' followed by an identifier"
            )
        if info.field_name == "deleted_only_suffix":
            if v == info.data.get("including_deleted_suffix"):
                raise ValueError("Variant suffixes must be different")
        return v

    @field_validator("default_tombstone_field", "include_deleted_option")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        if not v.isidentifier():
            raise ValueError(f"{v!r} is not a valid identifier")
        return v

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return self.model_dump(mode="json")

    def tzinfo(self) -> Any:
        """Return the configured timezone object."""
        return pytz.timezone(self.timezone)

    @classmethod
    def from_env(cls, prefix: str = "PARANOID_") -> "ParanoidConfig":
        """
        Load configuration from environment variables.

        Args:
            prefix: Prefix for environment variables

        Returns:
            Configuration instance
        """
        config_dict: Dict[str, Any] = {}

        for field_name, field_info in cls.model_fields.items():
            env_var = f"{prefix}{field_name.upper()}"
            if env_var in os.environ:
                value = os.environ[env_var]

                field_type = field_info.annotation

                # Handle Optional types
                if get_origin(field_type) is Union:
                    args = get_args(field_type)
                    field_type = next(
                        (arg for arg in args if arg is not type(None)), str
                    )

                try:
                    if field_type == bool:
                        config_dict[field_name] = value.lower() in (
                            "true",
                            "1",
                            "yes",
                            "on",
                        )
                    elif field_type == int:
                        config_dict[field_name] = int(value)
                    elif isinstance(field_type, type) and issubclass(field_type, Enum):
                        config_dict[field_name] = field_type(value.lower())
                    else:
                        config_dict[field_name] = value
                except (ValueError, TypeError):
                    # Let pydantic report the raw value
                    config_dict[field_name] = value

        return cls.model_validate(config_dict)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ParanoidConfig":
        """
        Load configuration from a JSON or YAML file.

        Args:
            path: Path to a ``.json``, ``.yaml`` or ``.yml`` file

        Returns:
            Configuration instance

        Raises:
            ValueError: Unsupported file extension or malformed content
        """
        path = Path(path)
        text = path.read_text(encoding="utf-8")

        if path.suffix == ".json":
            data = json.loads(text)
        elif path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text) or {}
        else:
            raise ValueError(f"Unsupported configuration file type: {path.suffix}")

        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")

        return cls.model_validate(data)


# Global configuration instance
_config: Optional[ParanoidConfig] = None


def get_config() -> ParanoidConfig:
    """
    Get the global configuration instance.

    Returns:
        Global configuration
    """
    global _config

    if _config is None:
        _config = ParanoidConfig.from_env()

    return _config


def set_config(config: Optional[ParanoidConfig]) -> None:
    """
    Set the global configuration instance.

    Args:
        config: Configuration to set, or None to reload from the environment
            on next access
    """
    global _config
    _config = config


def configure(**kwargs: Any) -> ParanoidConfig:
    """
    Configure the toolkit with keyword arguments.

    Args:
        **kwargs: Configuration parameters

    Returns:
        Updated configuration
    """
    global _config

    if _config is None:
        _config = ParanoidConfig(**kwargs)
    else:
        config_dict = _config.model_dump()
        config_dict.update(kwargs)
        _config = ParanoidConfig(**config_dict)

    return _config
