"""Hetzner Cloud implementation of the machine driver blueprint."""

from __future__ import annotations

import threading
from typing import Any, Callable, Mapping

from hcloud.actions import BoundAction
from hcloud.servers import BoundServer

from hcmachine.base.config import (
    HETZNER_FLAGS,
    HetznerConfig,
    McnFlag,
    config_from_flags,
    validate_config,
)
from hcmachine.base.driver import MachineDriverBlueprint
from hcmachine.base.exceptions import (
    MachineDriverError,
    MachineNotCreatedError,
    ProviderError,
    WaitCancelledError,
)
from hcmachine.base.logger import hm_logger
from hcmachine.base.state import MachineState
from hcmachine.base.store import DriverRecord, MachineStore
from hcmachine.base.waiter import Waiter
from hcmachine.hetzner.actions import ActionWaiter
from hcmachine.hetzner.client import HetznerClient
from hcmachine.hetzner.credentials import CredentialProvisioner
from hcmachine.hetzner.provisioner import InstanceProvisioner, public_ipv4
from hcmachine.hetzner.status import map_server_status

DRIVER_NAME = "hetzner"


class Driver(MachineDriverBlueprint):
    """Hetzner Cloud machine driver.

    The driver keeps only identifiers between calls (server ID, SSH key ID)
    plus the address captured at creation. Server status is re-read from
    the API on every call.

    Attributes:
        config: Validated driver configuration.
        server_id: Provider server ID, ``0`` until ``create`` succeeds.
        ssh_key_id: Provider SSH key ID, ``0`` until the key is registered.
        cancel_event: Setting it aborts any running poll loop.
    """

    def __init__(
        self,
        machine_name: str,
        config: HetznerConfig,
        store: MachineStore | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        super().__init__(
            machine_name,
            store or MachineStore(config.resolved_store_path),
            ssh_user=config.ssh_user,
            ssh_port=config.ssh_port,
        )
        self.config = config
        self.server_id = 0
        self.ssh_key_id = 0
        self.cancel_event = cancel_event or threading.Event()
        self._client: HetznerClient | None = None
        self.log = hm_logger.bind(provider=DRIVER_NAME, machine=machine_name)

    # --- Identity and configuration ---

    def driver_name(self) -> str:
        return DRIVER_NAME

    def get_create_flags(self) -> list[McnFlag]:
        return list(HETZNER_FLAGS)

    def set_config_from_flags(self, flags: Mapping[str, Any]) -> None:
        self.config = config_from_flags(DRIVER_NAME, flags, base=self.config)
        self.ssh_user = self.config.ssh_user
        self.ssh_port = self.config.ssh_port
        self._client = None

    @property
    def client(self) -> HetznerClient:
        if self._client is None:
            self._client = HetznerClient(self.config)
        return self._client

    def cancel(self) -> None:
        """Abort the operation currently in progress.

        The request only affects the running operation; the next one
        starts with the event cleared.
        """
        self.cancel_event.set()

    def _begin(self) -> None:
        self.cancel_event.clear()
        self.log = hm_logger.bind(provider=DRIVER_NAME, machine=self.machine_name)

    def _check_cancelled(self, operation: str) -> None:
        if self.cancel_event.is_set():
            raise WaitCancelledError(
                f"{operation} of machine '{self.machine_name}' was cancelled"
            )

    def _waiter(self, timeout: float | None) -> Waiter:
        return Waiter(
            interval=self.config.poll_interval,
            timeout=timeout,
            cancel_event=self.cancel_event,
        )

    # --- Lifecycle ---

    def pre_create_check(self) -> None:
        """Resolve image, location and server type before anything is created.

        Raises:
            MachineDriverError: If the machine already has a server.
            ResourceNotFoundError: If an option names an unknown resource.
            AuthenticationError: If the token is rejected.
        """
        self._require_no_server()
        self.client.get_image(self.config.image)
        self.client.get_location(self.config.location)
        self.client.get_server_type(self.config.server_type)

    def create(self) -> None:
        """Register an SSH key, create the server and wait until it runs.

        On failure ``server_id`` stays ``0``. Resources created before the
        failure (key files, the provider SSH key, a server that never
        reached ``running``) are left in place unless
        ``cleanup_on_failure`` is set, in which case the SSH key is
        released when the server could not be created.

        Raises:
            MachineDriverError: If the machine already has a server.
            WaitCancelledError: If :meth:`cancel` was called before the
                server was requested or during the readiness poll.
        """
        self._require_no_server()
        self._begin()
        self.log.info("Creating SSH key", operation="create")
        credentials = CredentialProvisioner(self.client, self.store, log=self.log)
        credential = credentials.provision(self.machine_name)
        self.ssh_key_id = credential.ssh_key_id

        provisioner = InstanceProvisioner(
            self.client,
            self._waiter(self.config.create_timeout),
            credentials if self.config.cleanup_on_failure else None,
            log=self.log,
        )
        created: list[int] = []
        try:
            server_id, ip_address = provisioner.provision(
                self.machine_name,
                image=self.config.image,
                location=self.config.location,
                server_type=self.config.server_type,
                credential=credential,
                on_created=created.append,
            )
        except MachineDriverError:
            if created:
                self.log.error(
                    f"Server {created[0]} was created but never observed running",
                    operation="create",
                )
            raise

        self.server_id = server_id
        self.ip_address = ip_address
        self.log.info(f"Machine ready at {ip_address}", operation="create")

    def start(self) -> None:
        self._power("start", lambda server: self.client.power_on(server))

    def stop(self) -> None:
        self._power("stop", lambda server: self.client.power_off(server))

    def restart(self) -> None:
        self._power("restart", lambda server: self.client.reboot(server))

    def kill(self) -> None:
        self._power("kill", lambda server: self.client.shutdown(server))

    def remove(self) -> None:
        """Submit the delete request without waiting for it to finish.

        The registered SSH key is not deleted.
        """
        self._begin()
        server = self._get_server()
        self.client.delete_server(server)
        self.log.info(f"Delete requested for server {server.id}", operation="remove")

    def get_state(self) -> MachineState:
        """Map the server's provider status to a :class:`MachineState`.

        Raises:
            MachineNotCreatedError: Before ``create``.
            ProviderError: If the server cannot be resolved; the exception's
                ``state`` is :attr:`MachineState.ERROR`.
        """
        try:
            server = self._get_server()
        except ProviderError as e:
            e.state = MachineState.ERROR
            raise
        return map_server_status(server.status)

    def get_ip(self) -> str:
        """Return the address captured at creation, re-reading it if unset."""
        if self.ip_address:
            return self.ip_address
        self.ip_address = public_ipv4(self._get_server())
        return self.ip_address

    # --- Internals ---

    def _require_server(self) -> None:
        if not self.server_id:
            raise MachineNotCreatedError(
                f"Machine '{self.machine_name}' has not been created"
            )

    def _require_no_server(self) -> None:
        if self.server_id:
            raise MachineDriverError(
                f"Machine '{self.machine_name}' already has server {self.server_id}"
            )

    def _get_server(self) -> BoundServer:
        self._require_server()
        return self.client.get_server(self.server_id)

    def _power(self, operation: str, submit: Callable[[BoundServer], BoundAction]) -> None:
        self._begin()
        server = self._get_server()
        self._check_cancelled(operation)
        action = submit(server)
        self.log.info(
            f"Action {action.id} ({action.command}) submitted", operation=operation
        )
        ActionWaiter(self.client, self._waiter(self.config.action_timeout)).wait(action)
        self.log.info(f"Action {action.id} succeeded", operation=operation)

    # --- Persistence ---

    def to_record(self) -> DriverRecord:
        return DriverRecord(
            driver_name=DRIVER_NAME,
            machine_name=self.machine_name,
            config=self.config.model_dump(mode="json"),
            server_id=self.server_id,
            ssh_key_id=self.ssh_key_id,
            ip_address=self.ip_address,
        )

    @classmethod
    def from_record(cls, record: DriverRecord, store: MachineStore | None = None) -> Driver:
        """Rebuild a driver from a stored record.

        Raises:
            ConfigurationError: If the stored config no longer validates.
        """
        config = validate_config(DRIVER_NAME, record.config)
        driver = cls(record.machine_name, config, store=store)
        driver.server_id = record.server_id
        driver.ssh_key_id = record.ssh_key_id
        driver.ip_address = record.ip_address
        return driver
