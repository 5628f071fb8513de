"""
Configuration for ReviewFlow.

Supports loading from:
1. Environment variables (highest priority)
2. YAML config file
3. Default values (fallback)

Feature flags live in an explicit structure that is passed to component
constructors at startup; nothing reads a module-level flag at runtime.
"""

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from reviewflow.utils.exceptions import ConfigurationError


class StoreConfig(BaseModel):
    """Document store configuration."""

    backend: Literal["memory", "sqlite"] = "memory"
    db_path: str = "data/reviewflow.db"
    # How many times a losing transaction function is re-run before giving up
    transaction_attempts: int = Field(default=5, ge=1)


class FeatureFlags(BaseModel):
    """
    Feature flags, one documented effect each.

    - notification_fanout: "client" runs fan-out inside the resolving actor's call,
      "server" hands it to the background outbox worker.
    - watch_match: "ancestor" makes a watch on a subject/type cover everything below it,
      "exact" only matches the watched path itself.
    - notify_author: the proposal author is notified about resolutions of their proposal.
    - notify_thread_participants: discussion-related fan-outs also reach thread participants.
    - audit_submissions: submitting a proposal writes a "create" activity log entry.
    """

    notification_fanout: Literal["client", "server"] = "client"
    watch_match: Literal["ancestor", "exact"] = "ancestor"
    notify_author: bool = True
    notify_thread_participants: bool = True
    audit_submissions: bool = True


class FanoutConfig(BaseModel):
    """Fan-out delivery tuning."""

    client_timeout: float | None = 10.0
    max_attempts: int = Field(default=3, ge=1)
    retry_delay: float = 0.5
    poll_interval: float = 2.0
    batch_size: int = Field(default=50, ge=1)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    log_to_file: bool = True
    log_dir: str = "logs"
    file_rotation: str = "10 MB"
    file_retention: str = "7 days"
    compression: str = "zip"
    serialize: bool = True


class Config(BaseModel):
    """Main configuration."""

    store: StoreConfig = Field(default_factory=StoreConfig)
    flags: FeatureFlags = Field(default_factory=FeatureFlags)
    fanout: FanoutConfig = Field(default_factory=FanoutConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "Config":
        """
        Load configuration from environment variables.

        Priority: .env file -> system environment variables -> defaults

        Args:
            env_file: Optional path to .env file (default: .env in project root)

        Returns:
            Config instance

        Raises:
            ConfigurationError: If a variable has an invalid value

        Environment variables:
            REVIEWFLOW_STORE_BACKEND: Document store backend (memory, sqlite)
            REVIEWFLOW_STORE_DB_PATH: SQLite database path
            REVIEWFLOW_STORE_TRANSACTION_ATTEMPTS: Transaction re-run ceiling
            REVIEWFLOW_NOTIFICATION_FANOUT: Fan-out mode (client, server)
            REVIEWFLOW_WATCH_MATCH: Watch matching policy (ancestor, exact)
            REVIEWFLOW_NOTIFY_AUTHOR: Notify proposal authors (true/false)
            REVIEWFLOW_NOTIFY_THREAD_PARTICIPANTS: Notify discussion participants
            REVIEWFLOW_AUDIT_SUBMISSIONS: Audit proposal submissions
            REVIEWFLOW_FANOUT_CLIENT_TIMEOUT: Client-mode fan-out timeout in seconds
            REVIEWFLOW_FANOUT_MAX_ATTEMPTS: Server-mode per-recipient attempt ceiling
            REVIEWFLOW_FANOUT_RETRY_DELAY: Server-mode base backoff in seconds
            REVIEWFLOW_FANOUT_POLL_INTERVAL: Outbox worker poll interval in seconds
            REVIEWFLOW_FANOUT_BATCH_SIZE: Outbox records drained per worker pass
            REVIEWFLOW_LOG_LEVEL: Log level
        """
        # Load .env file if provided or exists
        if env_file:
            load_dotenv(env_file)
        elif Path(".env").exists():
            load_dotenv()

        def get_env(key: str, default: Any = None) -> Any:
            """Get environment variable with type conversion."""
            value = os.getenv(key)
            if value is None:
                return default
            # If value is empty string, return default
            if value == "":
                return default
            # Convert boolean strings
            if isinstance(default, bool):
                return str(value).lower() in ("true", "1", "yes")
            # Convert numeric strings
            if isinstance(default, int):
                return int(value)
            if isinstance(default, float):
                return float(value)
            return value

        try:
            return cls._from_env_values(get_env)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment configuration: {e}") from e

    @classmethod
    def _from_env_values(cls, get_env) -> "Config":
        return cls(
            store=StoreConfig(
                backend=get_env("REVIEWFLOW_STORE_BACKEND", "memory"),
                db_path=get_env("REVIEWFLOW_STORE_DB_PATH", "data/reviewflow.db"),
                transaction_attempts=get_env("REVIEWFLOW_STORE_TRANSACTION_ATTEMPTS", 5),
            ),
            flags=FeatureFlags(
                notification_fanout=get_env("REVIEWFLOW_NOTIFICATION_FANOUT", "client"),
                watch_match=get_env("REVIEWFLOW_WATCH_MATCH", "ancestor"),
                notify_author=get_env("REVIEWFLOW_NOTIFY_AUTHOR", True),
                notify_thread_participants=get_env("REVIEWFLOW_NOTIFY_THREAD_PARTICIPANTS", True),
                audit_submissions=get_env("REVIEWFLOW_AUDIT_SUBMISSIONS", True),
            ),
            fanout=FanoutConfig(
                client_timeout=get_env("REVIEWFLOW_FANOUT_CLIENT_TIMEOUT", 10.0),
                max_attempts=get_env("REVIEWFLOW_FANOUT_MAX_ATTEMPTS", 3),
                retry_delay=get_env("REVIEWFLOW_FANOUT_RETRY_DELAY", 0.5),
                poll_interval=get_env("REVIEWFLOW_FANOUT_POLL_INTERVAL", 2.0),
                batch_size=get_env("REVIEWFLOW_FANOUT_BATCH_SIZE", 50),
            ),
            logging=LoggingConfig(
                level=get_env("REVIEWFLOW_LOG_LEVEL", "INFO"),
                log_to_file=get_env("REVIEWFLOW_LOG_TO_FILE", True),
                log_dir=get_env("REVIEWFLOW_LOG_DIR", "logs"),
                file_rotation=get_env("REVIEWFLOW_LOG_FILE_ROTATION", "10 MB"),
                file_retention=get_env("REVIEWFLOW_LOG_FILE_RETENTION", "7 days"),
                compression=get_env("REVIEWFLOW_LOG_COMPRESSION", "zip"),
                serialize=get_env("REVIEWFLOW_LOG_SERIALIZE", True),
            ),
        )

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> "Config":
        """
        Load configuration from YAML file.

        Args:
            yaml_path: Path to YAML configuration file

        Returns:
            Config instance

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            yaml.YAMLError: If YAML is invalid
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def from_env_or_yaml(
        cls, yaml_path: str | Path | None = None, env_file: str | Path | None = None
    ) -> "Config":
        """
        Load configuration with priority: env vars > YAML > defaults.

        Args:
            yaml_path: Optional path to YAML config
            env_file: Optional path to .env file

        Returns:
            Config instance
        """
        # Start with YAML if provided
        if yaml_path and Path(yaml_path).exists():
            with open(yaml_path) as f:
                config_dict = yaml.safe_load(f) or {}
        else:
            config_dict = {}

        # Override with env vars if present
        env_config = cls.from_env(env_file=env_file)

        # Merge: env vars override YAML
        final_dict = {**config_dict}

        # Apply env overrides (non-default sections)
        default = cls()
        if env_config.store != default.store:
            final_dict["store"] = env_config.store.model_dump()
        if env_config.flags != default.flags:
            final_dict["flags"] = env_config.flags.model_dump()
        if env_config.fanout != default.fanout:
            final_dict["fanout"] = env_config.fanout.model_dump()
        if env_config.logging != default.logging:
            final_dict["logging"] = env_config.logging.model_dump()

        return cls(**final_dict) if final_dict else env_config


# Default config instance
default_config = Config()
