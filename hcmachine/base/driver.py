"""Machine driver blueprint."""

from __future__ import annotations

import ipaddress
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Mapping

from hcmachine.base.config import McnFlag
from hcmachine.base.state import MachineState
from hcmachine.base.store import DriverRecord, MachineStore

DOCKER_PORT = 2376


class MachineDriverBlueprint(ABC):
    """Abstract interface an orchestrator uses to control one machine.

    Mirrors the Docker Machine driver contract. All operations block until
    the provider reports a terminal outcome or an error is raised.

    Attributes:
        machine_name: Orchestrator-assigned machine name.
        store: Local store holding the machine's key pair and record.
        ip_address: Public address captured at creation, ``""`` before.
        ssh_user: Login user on the machine.
        ssh_port: SSH port on the machine.
    """

    def __init__(
        self,
        machine_name: str,
        store: MachineStore,
        ssh_user: str = "root",
        ssh_port: int = 22,
    ) -> None:
        self.machine_name = machine_name
        self.store = store
        self.ip_address = ""
        self.ssh_user = ssh_user
        self.ssh_port = ssh_port

    # --- Identity and configuration ---

    @abstractmethod
    def driver_name(self) -> str:
        """Short driver name, e.g. ``hetzner``."""

    @abstractmethod
    def get_create_flags(self) -> list[McnFlag]:
        """Flags the orchestrator should expose for ``create``."""

    @abstractmethod
    def set_config_from_flags(self, flags: Mapping[str, Any]) -> None:
        """Replace the driver configuration with orchestrator flag values.

        Raises:
            ConfigurationError: If a required option is missing.
        """

    # --- Lifecycle ---

    @abstractmethod
    def pre_create_check(self) -> None:
        """Validate that ``create`` can succeed before touching anything."""

    @abstractmethod
    def create(self) -> None:
        """Provision the machine and wait until it is running."""

    @abstractmethod
    def start(self) -> None:
        """Power the machine on."""

    @abstractmethod
    def stop(self) -> None:
        """Power the machine off."""

    @abstractmethod
    def restart(self) -> None:
        """Reboot the machine."""

    @abstractmethod
    def kill(self) -> None:
        """Force the machine down."""

    @abstractmethod
    def remove(self) -> None:
        """Delete the machine."""

    @abstractmethod
    def get_state(self) -> MachineState:
        """Return the machine's current state as reported by the provider."""

    @abstractmethod
    def get_ip(self) -> str:
        """Return the machine's public address."""

    # --- Persistence ---

    @abstractmethod
    def to_record(self) -> DriverRecord:
        """Serialise configuration and provider handles."""

    @classmethod
    @abstractmethod
    def from_record(
        cls, record: DriverRecord, store: MachineStore | None = None
    ) -> MachineDriverBlueprint:
        """Rebuild a driver from :meth:`to_record` output."""

    # --- Shared helpers ---

    def get_ssh_hostname(self) -> str:
        return self.get_ip()

    def get_ssh_key_path(self) -> Path:
        return self.store.ssh_key_path(self.machine_name)

    def get_url(self) -> str:
        """Return the Docker daemon URL, e.g. ``tcp://203.0.113.7:2376``."""
        ip = self.get_ip()
        host = f"[{ip}]" if _is_ipv6(ip) else ip
        return f"tcp://{host}:{DOCKER_PORT}"


def _is_ipv6(address: str) -> bool:
    try:
        return ipaddress.ip_address(address).version == 6
    except ValueError:
        return False
