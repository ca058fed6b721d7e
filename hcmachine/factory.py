"""Driver factory.

Provides :func:`driver_factory`, the single entry-point for building a
machine driver. The config dict is validated against the driver's
Pydantic model before the driver is constructed, so a missing access
token fails here, before any network call.
"""

from __future__ import annotations

from typing import Any, Mapping

from hcmachine.base import MachineDriverBlueprint, MachineStore, existing_drivers
from hcmachine.base.config import validate_config
from hcmachine.base.store import DriverRecord
from hcmachine.hetzner.driver import Driver as HetznerDriver


# Driver registry: driver name -> driver class
_DRIVER_REGISTRY: dict[str, type[MachineDriverBlueprint]] = {
    "hetzner": HetznerDriver,
}


def driver_factory(
    driver_name: existing_drivers,
    machine_name: str,
    config: Mapping[str, Any],
    store: MachineStore | None = None,
) -> MachineDriverBlueprint:
    """
    Create a driver for one machine.
    Args:
        driver_name: The driver name (e.g. 'hetzner').
        machine_name: Orchestrator-assigned machine name.
        config: Configuration mapping validated by the driver's config model.
        store: Optional machine store; defaults to the config's store path.
    Returns:
        A driver instance with no server attached yet.
    Raises:
        ValueError: If the driver is not supported.
        ConfigurationError: If the config is invalid.
    """
    if driver_name not in _DRIVER_REGISTRY:
        raise ValueError(f"Unsupported driver: {driver_name}")

    driver_class = _DRIVER_REGISTRY[driver_name]
    config_obj = validate_config(driver_name, config)
    return driver_class(machine_name, config_obj, store=store)


def load_driver(record: DriverRecord, store: MachineStore | None = None) -> MachineDriverBlueprint:
    """Rebuild a driver from a stored :class:`DriverRecord`."""
    if record.driver_name not in _DRIVER_REGISTRY:
        raise ValueError(f"Unsupported driver: {record.driver_name}")
    return _DRIVER_REGISTRY[record.driver_name].from_record(record, store=store)
