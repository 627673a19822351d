"""Pool configuration types and the configuration factory."""

# Standard library imports
import os
from dataclasses import InitVar, dataclass, field, fields
from typing import Any, Dict, FrozenSet, Mapping, Optional, Type, TypeVar

# Local imports
from ..exceptions import ConfigurationError

ENV_PREFIX = "PROCPOOL_"

OPTION_DEBUG = "Debug"
OPTION_POLL_INTERVAL = "PollInterval"
OPTION_IDLE_TIMEOUT = "IdleTimeout"
OPTION_READ_CHUNK_SIZE = "ReadChunkSize"
OPTION_WRITE_CHUNK_SIZE = "WriteChunkSize"

POOL_OPTION_FIELDS = {
    OPTION_DEBUG: "debug",
    OPTION_POLL_INTERVAL: "poll_interval",
    OPTION_IDLE_TIMEOUT: "idle_timeout",
    OPTION_READ_CHUNK_SIZE: "read_chunk_size",
    OPTION_WRITE_CHUNK_SIZE: "write_chunk_size",
}
POOL_OPTION_FIELDS.update({name: name for name in list(POOL_OPTION_FIELDS.values())})

MAX_CHUNK_SIZE = 16 * 1024 * 1024
MAX_IDLE_TIMEOUT = 3600


@dataclass
class PoolConfig:
    """Settings of the pool's multiplex loop.

    Every field can be overridden with a ``PROCPOOL_<FIELD>`` environment
    variable, e.g. ``PROCPOOL_POLL_INTERVAL=0.01``. Environment values only
    apply to fields that were not passed explicitly; ``explicit`` names the
    fields to protect when an argument happens to equal its default.
    """

    debug: bool = field(default=False)
    poll_interval: float = field(default=0.05)
    idle_timeout: float = field(default=1.0)
    read_chunk_size: int = field(default=65536)
    write_chunk_size: int = field(default=65536)
    explicit: InitVar[Optional[FrozenSet[str]]] = None

    def __post_init__(self, explicit: Optional[FrozenSet[str]] = None):
        """Initialize configuration after creation."""
        self._load_from_env(explicit or frozenset())
        self._validate()

    def _load_from_env(self, explicit: FrozenSet[str]) -> None:
        """Load configuration from environment variables."""
        defaults = {f.name: f.default for f in fields(self)}
        for f in fields(self):
            env_key = f"{ENV_PREFIX}{f.name.upper()}"
            env_value = os.getenv(env_key)
            if env_value is None:
                continue
            # Arguments passed explicitly take precedence
            if f.name in explicit or getattr(self, f.name) != defaults[f.name]:
                continue

            env_value = env_value.split("#")[0].strip()
            try:
                if f.type in (bool, "bool"):
                    value = env_value.lower() in ("true", "1", "yes", "on")
                elif f.type in (int, "int"):
                    value = int(env_value)
                elif f.type in (float, "float"):
                    value = float(env_value)
                else:
                    value = env_value
            except ValueError as e:
                raise ConfigurationError(
                    f"Invalid value for {env_key}: {env_value} - {str(e)}",
                    option=env_key,
                ) from e
            setattr(self, f.name, value)

    def _validate(self) -> None:
        """Validate configuration values."""
        if not isinstance(self.debug, bool):
            raise ConfigurationError("debug must be a boolean", option="debug")

        if isinstance(self.poll_interval, bool) or not isinstance(
            self.poll_interval, (int, float)
        ):
            raise ConfigurationError(
                "poll_interval must be a number", option="poll_interval"
            )
        if not 0 < self.poll_interval <= 5:
            raise ConfigurationError(
                f"poll_interval must be in (0, 5], got {self.poll_interval}",
                option="poll_interval",
            )

        if isinstance(self.idle_timeout, bool) or not isinstance(
            self.idle_timeout, (int, float)
        ):
            raise ConfigurationError(
                "idle_timeout must be a number", option="idle_timeout"
            )
        if not 0 < self.idle_timeout <= MAX_IDLE_TIMEOUT:
            raise ConfigurationError(
                f"idle_timeout must be in (0, {MAX_IDLE_TIMEOUT}], got {self.idle_timeout}",
                option="idle_timeout",
            )

        for name in ("read_chunk_size", "write_chunk_size"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{name} must be an integer", option=name)
            if not 1 <= value <= MAX_CHUNK_SIZE:
                raise ConfigurationError(
                    f"{name} must be between 1 and {MAX_CHUNK_SIZE}, got {value}",
                    option=name,
                )

    @classmethod
    def from_options(cls, options: Optional[Mapping[str, Any]] = None) -> "PoolConfig":
        """Build a config from pool options such as ``{"Debug": True}``.

        Raises:
            ConfigurationError: If an option is unknown or invalid
        """
        kwargs: Dict[str, Any] = {}
        for name, value in (options or {}).items():
            try:
                kwargs[POOL_OPTION_FIELDS[name]] = value
            except KeyError:
                raise ConfigurationError(
                    f"Unknown pool option: {name}", option=name
                ) from None
        return cls(**kwargs, explicit=frozenset(kwargs))


T = TypeVar("T", bound=PoolConfig)


class ConfigFactory:
    """Factory for creating and caching configuration instances."""

    _instances: Dict[Type[PoolConfig], PoolConfig] = {}

    @classmethod
    def get_config(
        cls,
        config_type: Type[T] = PoolConfig,
        force_refresh: bool = False,
    ) -> T:
        """
        Get configuration instance of the specified type.

        Args:
            config_type: Type of configuration to create.
            force_refresh: Whether to force creation of a new instance.

        Returns:
            Configuration instance.
        """
        if force_refresh or config_type not in cls._instances:
            cls._instances[config_type] = config_type()
        return cls._instances[config_type]

    @classmethod
    def clear_cache(cls) -> None:
        """Clear all cached configuration instances."""
        cls._instances.clear()


def get_config(force_refresh: bool = False) -> PoolConfig:
    """Get the default pool configuration.

    Args:
        force_refresh: If True, create a new config instance even if one exists

    Returns:
        PoolConfig instance
    """
    return ConfigFactory.get_config(PoolConfig, force_refresh=force_refresh)


def clear_config() -> None:
    """Clear the cached pool configuration."""
    ConfigFactory.clear_cache()
