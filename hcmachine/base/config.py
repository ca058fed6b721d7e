"""
Pydantic configuration models for machine drivers.

Validates driver configs at construction time instead of discovering a bad
token or option halfway through provisioning. Every option can be given
explicitly, through the orchestrator's create flags, or through an
environment variable.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from hcmachine.base.exceptions import ConfigurationError

DEFAULT_IMAGE = "debian-9"
DEFAULT_LOCATION = "fsn1"
DEFAULT_SERVER_TYPE = "cx11"
DEFAULT_ARCHITECTURE = "x86"
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_SSH_USER = "root"
DEFAULT_SSH_PORT = 22
DEFAULT_STORE_PATH = "~/.hcmachine"


class McnFlag(BaseModel):
    """A create flag as the orchestrator registers it on its command line."""

    model_config = ConfigDict(frozen=True)

    name: str
    env_var: str
    usage: str
    default: str | None = None
    field: str = Field(exclude=True)


class HetznerConfig(BaseModel):
    """Configuration for the Hetzner Cloud driver.

    Options are resolved in order:
    1. Explicit values passed in the config dict.
    2. Environment variables (HETZNER_ACCESS_TOKEN, HETZNER_IMAGE,
       HETZNER_LOCATION, HETZNER_SERVER_TYPE, HCMACHINE_STORAGE_PATH).
    3. The built-in defaults.

    The access token has no default: an empty or missing token fails
    validation before any network call is made.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    access_token: str | None = Field(default=None, description="Hetzner Cloud API token")
    image: str = Field(default=DEFAULT_IMAGE, description="Image name or numeric ID")
    location: str = Field(default=DEFAULT_LOCATION, description="Location name (e.g. 'fsn1')")
    server_type: str = Field(default=DEFAULT_SERVER_TYPE, description="Server type (e.g. 'cx11')")
    architecture: str = Field(
        default=DEFAULT_ARCHITECTURE, description="Image architecture ('x86' or 'arm')"
    )
    poll_interval: float = Field(
        default=DEFAULT_POLL_INTERVAL, ge=0, description="Seconds between status polls"
    )
    create_timeout: float | None = Field(
        default=None, gt=0, description="Optional deadline for the readiness poll, in seconds"
    )
    action_timeout: float | None = Field(
        default=None, gt=0, description="Optional deadline for power actions, in seconds"
    )
    cleanup_on_failure: bool = Field(
        default=False,
        description="Release the registered SSH key when server creation fails",
    )
    store_path: Path = Field(
        default=Path(DEFAULT_STORE_PATH), description="Root of the local machine store"
    )
    ssh_user: str = Field(default=DEFAULT_SSH_USER)
    ssh_port: int = Field(default=DEFAULT_SSH_PORT, gt=0, lt=65536)

    @model_validator(mode="before")
    @classmethod
    def resolve_from_env(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Fall back to environment variables for missing options."""
        values = dict(values)
        env_map = {
            "access_token": "HETZNER_ACCESS_TOKEN",
            "image": "HETZNER_IMAGE",
            "location": "HETZNER_LOCATION",
            "server_type": "HETZNER_SERVER_TYPE",
            "store_path": "HCMACHINE_STORAGE_PATH",
        }
        for field, env_var in env_map.items():
            if not values.get(field):
                env_value = os.environ.get(env_var)
                if env_value:
                    values[field] = env_value
                else:
                    values.pop(field, None)
        return values

    @model_validator(mode="after")
    def validate_token(self) -> HetznerConfig:
        """Ensure the access token is present and not blank."""
        if not self.access_token or not self.access_token.strip():
            raise ValueError(
                "hetzner driver requires the --hetzner-access-token option "
                "or the HETZNER_ACCESS_TOKEN environment variable"
            )
        return self

    @property
    def resolved_store_path(self) -> Path:
        return self.store_path.expanduser()


HETZNER_FLAGS: tuple[McnFlag, ...] = (
    McnFlag(
        name="hetzner-access-token",
        env_var="HETZNER_ACCESS_TOKEN",
        usage="Access token",
        field="access_token",
    ),
    McnFlag(
        name="hetzner-image",
        env_var="HETZNER_IMAGE",
        usage="Image",
        default=DEFAULT_IMAGE,
        field="image",
    ),
    McnFlag(
        name="hetzner-location",
        env_var="HETZNER_LOCATION",
        usage="Location",
        default=DEFAULT_LOCATION,
        field="location",
    ),
    McnFlag(
        name="hetzner-server-type",
        env_var="HETZNER_SERVER_TYPE",
        usage="Server type",
        default=DEFAULT_SERVER_TYPE,
        field="server_type",
    ),
)


# Map driver names to their config models and flags for dynamic validation
CONFIG_REGISTRY: dict[str, type[BaseModel]] = {
    "hetzner": HetznerConfig,
}

FLAG_REGISTRY: dict[str, tuple[McnFlag, ...]] = {
    "hetzner": HETZNER_FLAGS,
}


def validate_config(driver_name: str, config: Mapping[str, Any]) -> BaseModel:
    """Validate and return a typed config model for the given driver.

    Args:
        driver_name: The driver name (e.g. 'hetzner').
        config: Raw configuration mapping.

    Returns:
        A validated Pydantic config model.

    Raises:
        ValueError: If the driver is unknown.
        ConfigurationError: If the config is invalid.
    """
    model = CONFIG_REGISTRY.get(driver_name)
    if model is None:
        raise ValueError(f"No config model registered for driver: {driver_name}")
    try:
        return model(**config)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid {driver_name} configuration: {e}") from e


def config_from_flags(
    driver_name: str,
    flags: Mapping[str, Any],
    base: BaseModel | None = None,
) -> BaseModel:
    """Build a config model from orchestrator flag values.

    Args:
        driver_name: The driver name (e.g. 'hetzner').
        flags: Flag name to value, e.g. ``{"hetzner-image": "ubuntu-24.04"}``.
            Flags that are absent or empty fall back to env vars and defaults.
        base: Existing config whose options not covered by flags are kept.

    Returns:
        A validated Pydantic config model.
    """
    known = FLAG_REGISTRY.get(driver_name)
    if known is None:
        raise ValueError(f"No flags registered for driver: {driver_name}")
    flag_fields = {flag.field for flag in known}
    config = base.model_dump(exclude=flag_fields) if base is not None else {}
    config.update({flag.field: flags[flag.name] for flag in known if flags.get(flag.name)})
    return validate_config(driver_name, config)


__all__ = [
    "DEFAULT_IMAGE",
    "DEFAULT_LOCATION",
    "DEFAULT_SERVER_TYPE",
    "HetznerConfig",
    "McnFlag",
    "HETZNER_FLAGS",
    "CONFIG_REGISTRY",
    "FLAG_REGISTRY",
    "validate_config",
    "config_from_flags",
]
