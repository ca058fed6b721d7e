"""Abstract driver blueprint and core utilities.

Every machine driver inherits from :class:`MachineDriverBlueprint`.
Import it to type-hint your own code or to add another provider.
"""

from .driver import MachineDriverBlueprint
from .state import MachineState
from .store import DriverRecord, MachineStore
from .waiter import Waiter
from .supported_drivers import existing_drivers, existing_operations


__all__ = [
    "MachineDriverBlueprint",
    "MachineState",
    "DriverRecord",
    "MachineStore",
    "Waiter",
    "existing_drivers",
    "existing_operations",
]
