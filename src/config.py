"""
Configuration module for the BingoCloud provider.

Loads configuration from environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from errors import ConfigurationError

DEFAULT_REGION = "default"


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class ProviderConfig:
    """Connection settings for the BingoCloud API."""

    endpoint: str = ""
    access_key: str = ""
    secret_key: str = field(default="", repr=False)  # Never log secret key
    region: str = DEFAULT_REGION
    insecure_skip_tls: bool = False
    connect_timeout: int = 10  # seconds
    read_timeout: int = 60  # seconds

    def __post_init__(self):
        if not self.region:
            self.region = DEFAULT_REGION

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            endpoint=os.getenv("BINGOCLOUD_ENDPOINT") or os.getenv("AWS_ENDPOINT", ""),
            access_key=os.getenv("AWS_ACCESS_KEY_ID", ""),
            secret_key=os.getenv("AWS_SECRET_ACCESS_KEY", ""),
            region=os.getenv("AWS_REGION", DEFAULT_REGION),
            insecure_skip_tls=_env_bool("BINGOCLOUD_INSECURE_SKIP_TLS"),
            connect_timeout=int(os.getenv("BINGOCLOUD_CONNECT_TIMEOUT", "10")),
            read_timeout=int(os.getenv("BINGOCLOUD_READ_TIMEOUT", "60")),
        )

    def validate(self) -> None:
        """
        Check that the required connection settings are present.

        Raises:
            ConfigurationError: Listing every missing setting.
        """
        missing: List[str] = []
        if not self.endpoint:
            missing.append(
                "endpoint must be set via provider config or the "
                "AWS_ENDPOINT environment variable"
            )
        if not self.access_key:
            missing.append(
                "access_key must be set via provider config or the "
                "AWS_ACCESS_KEY_ID environment variable"
            )
        if not self.secret_key:
            missing.append(
                "secret_key must be set via provider config or the "
                "AWS_SECRET_ACCESS_KEY environment variable"
            )
        if missing:
            raise ConfigurationError("; ".join(missing))


@dataclass
class ReconcilerConfig:
    """Instance reconciler wait settings."""

    wait_timeout: int = 600  # seconds to wait for an instance to run
    poll_interval: float = 5.0  # seconds between status checks

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            wait_timeout=int(os.getenv("BINGOCLOUD_WAIT_TIMEOUT", "600")),
            poll_interval=float(os.getenv("BINGOCLOUD_POLL_INTERVAL", "5")),
        )


@dataclass
class EngineConfig:
    """Host-side engine configuration."""

    operation_timeout: int = 1800  # seconds per reconciler call
    max_concurrent_reconciles: int = 5
    state_file: str = "bingocloud.tfstate.json"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            operation_timeout=int(os.getenv("BINGOCLOUD_OPERATION_TIMEOUT", "1800")),
            max_concurrent_reconciles=int(os.getenv("MAX_CONCURRENT_RECONCILES", "5")),
            state_file=os.getenv("BINGOCLOUD_STATE_FILE", "bingocloud.tfstate.json"),
        )


@dataclass
class Config:
    """Main configuration object."""

    provider: ProviderConfig
    reconciler: ReconcilerConfig
    engine: EngineConfig
    log_level: str = "INFO"

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            provider=ProviderConfig.from_env(),
            reconciler=ReconcilerConfig.from_env(),
            engine=EngineConfig.from_env(),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            provider=ProviderConfig(),
            reconciler=ReconcilerConfig(),
            engine=EngineConfig(),
        )


# Global config instance
config: Optional[Config] = None


def load_config() -> Config:
    """Load configuration (singleton pattern)."""
    global config
    if config is None:
        config = Config.from_env()
    return config


def get_config() -> Config:
    """Get the current configuration."""
    if config is None:
        return load_config()
    return config


def reset_config() -> None:
    """Reset configuration (mainly for testing)."""
    global config
    config = None
