"""
Framework configuration for deep values resolution.

Holds the process-wide default settings. Engines and clients accept an explicit
config that takes precedence over the default.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class DeepValuesConfig:
    """Settings shared by the engine and the items client."""
    new_record_sentinel: str = "+"  # Primary key of a record not yet persisted
    primary_key_field: str = "id"
    current_user_key: str = "__currentUser"
    users_collection: str = "directus_users"  # Routed to the users endpoint
    request_timeout: float = 30.0


_config: Optional[DeepValuesConfig] = None


def set_config(config: DeepValuesConfig) -> None:
    """Set the process default configuration.

    Args:
        config: Settings used by engines and clients created without an explicit config
    """
    global _config
    _config = config


def get_config() -> DeepValuesConfig:
    """Get the process default configuration, creating it on first use."""
    global _config
    if _config is None:
        _config = DeepValuesConfig()
    return _config


def reset_config() -> None:
    """Drop the process default so the next get_config() returns fresh defaults."""
    global _config
    _config = None
