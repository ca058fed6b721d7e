"""hcmachine: Docker Machine style driver for Hetzner Cloud servers.

Entry point for the library. Import :func:`driver_factory` to build a
driver for one machine with a single call::

    from hcmachine import driver_factory

    driver = driver_factory("hetzner", "web-1", {"access_token": "..."})
    driver.create()
"""

__version__ = "0.1.0"

from .base import MachineDriverBlueprint, MachineState  # noqa: E402
from .factory import driver_factory  # noqa: E402

__all__ = [
    "MachineDriverBlueprint",
    "MachineState",
    "driver_factory",
    "__version__",
]
