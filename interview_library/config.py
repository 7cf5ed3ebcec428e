"""
Configuration module for the Interview Library integrity engine.

Provides centralized configuration for database access, the domain event log
and the soft delete service.
"""

import json
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union, get_args, get_origin

import yaml
from pydantic import BaseModel, Field, field_validator


class EventStorageBackend(str, Enum):
    """Supported storage backends for the domain event log."""

    SQL = "sql"
    FILE = "file"


class LibraryConfig(BaseModel):
    """Central configuration for the soft delete / restore engine.

    Configuration Sources (in order of precedence):
        1. Programmatic settings (highest priority)
        2. Environment variables (ILIB_ prefix)
        3. Configuration files (JSON or YAML)
        4. Default values (lowest priority)

    Example:
        >>> config = LibraryConfig(database_url="sqlite:///library.db")

        >>> import os
        >>> os.environ["ILIB_CASCADE_DELETE_ENABLED"] = "false"
        >>> config = LibraryConfig.from_env()

        >>> config = LibraryConfig.from_file("ilib.yaml")

    Environment Variables:
        Every field can be set with the ILIB_ prefix, for example
        ILIB_DATABASE_URL, ILIB_LOG_LEVEL or ILIB_AUDIT_STORAGE_BACKEND.
    """

    # General settings
    application_name: str = Field(
        "Interview Library", description="Name of the application"
    )
    environment: str = Field(
        "production",
        description="Environment (development, staging, production, test)",
    )

    # Database settings
    database_url: str = Field(
        "sqlite:///interview_library.db", description="SQLAlchemy database URL"
    )
    sql_echo: bool = Field(False, description="Log emitted SQL statements")
    log_level: str = Field("INFO", description="Logging level for the CLI")

    # Domain event settings
    audit_enabled: bool = Field(True, description="Record domain events")
    audit_storage_backend: EventStorageBackend = Field(
        EventStorageBackend.SQL, description="Storage backend for domain events"
    )
    audit_file_path: Optional[str] = Field(
        "./domain_events", description="Directory for file-based event storage"
    )
    record_blocked_restores: bool = Field(
        True, description="Record RESTORE_BLOCKED events for refused restores"
    )

    # Soft delete settings
    cascade_delete_enabled: bool = Field(
        True, description="Allow forced deletes to cascade to live children"
    )
    list_page_size_max: int = Field(
        500, description="Upper bound for deleted-row listings", gt=0, le=10000
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is valid."""
        valid_environments = {"development", "staging", "production", "test"}
        if v.lower() not in valid_environments:
            raise ValueError(
                f"Environment must be one of: {', '.join(sorted(valid_environments))}"
            )
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(
                f"Log level must be one of: {', '.join(sorted(valid_levels))}"
            )
        return v.upper()

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return self.model_dump(mode="json")

    def get_event_storage_kwargs(self, engine: Any = None) -> Dict[str, Any]:
        """
        Keyword arguments for :func:`get_event_storage` of the configured backend.

        Args:
            engine: Entity engine to share with the SQL backend, so events
                join the entity transaction

        Returns:
            Backend-specific keyword arguments
        """
        if self.audit_storage_backend == EventStorageBackend.FILE:
            return {"storage_path": self.audit_file_path}
        if engine is not None:
            return {"engine": engine}
        return {"connection_string": self.database_url}

    @classmethod
    def from_env(cls, prefix: str = "ILIB_") -> "LibraryConfig":
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
            if env_var not in os.environ:
                continue
            value = os.environ[env_var]

            field_type = field_info.annotation
            if get_origin(field_type) is Union:
                args = get_args(field_type)
                field_type = next((arg for arg in args if arg is not type(None)), str)

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
                # Leave the raw string for pydantic to report
                config_dict[field_name] = value

        return cls.model_validate(config_dict)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "LibraryConfig":
        """
        Load configuration from a JSON or YAML file.

        Args:
            path: Path to a .json, .yaml or .yml file

        Returns:
            Configuration instance

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file format is not supported
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                data = json.load(f)
            elif path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                raise ValueError(f"Unsupported configuration format: {path.suffix}")

        return cls.model_validate(data or {})


# Global configuration instance
_config: Optional[LibraryConfig] = None


def get_config() -> LibraryConfig:
    """
    Get the global configuration instance.

    Returns:
        Global configuration
    """
    global _config

    if _config is None:
        _config = LibraryConfig.from_env()

    return _config


def set_config(config: Optional[LibraryConfig]) -> None:
    """
    Set the global configuration instance.

    Args:
        config: Configuration to set, or None to reload from the environment
    """
    global _config
    _config = config


def configure(**kwargs: Any) -> LibraryConfig:
    """
    Configure the library with keyword arguments.

    Args:
        **kwargs: Configuration parameters

    Returns:
        Updated configuration
    """
    global _config

    if _config is None:
        _config = LibraryConfig(**kwargs)
    else:
        config_dict = _config.model_dump()
        config_dict.update(kwargs)
        _config = LibraryConfig(**config_dict)

    return _config
