"""Server provisioning: create request plus readiness poll."""

from __future__ import annotations

from typing import Callable

from hcloud.servers import BoundServer

from hcmachine.base.exceptions import (
    MachineDriverError,
    ProviderError,
    WaitCancelledError,
)
from hcmachine.base.logger import BoundMachineLogger, hm_logger
from hcmachine.base.state import MachineState
from hcmachine.base.waiter import Waiter
from hcmachine.hetzner.client import HetznerClient
from hcmachine.hetzner.credentials import CredentialHandle, CredentialProvisioner
from hcmachine.hetzner.status import map_server_status


class InstanceProvisioner:
    """Turn a resolved configuration into a running server.

    Args:
        client: Provider client adapter.
        waiter: Wait context for the readiness poll.
        credentials: When given, the credential is released if the server
            cannot be created. ``None`` leaves it in place.
        log: Logger whose request ID the provisioning records share; a
            new one is bound per call when omitted.
    """

    def __init__(
        self,
        client: HetznerClient,
        waiter: Waiter,
        credentials: CredentialProvisioner | None = None,
        log: BoundMachineLogger | None = None,
    ) -> None:
        self.client = client
        self.waiter = waiter
        self.credentials = credentials
        self.log = log

    def provision(
        self,
        machine_name: str,
        image: str,
        location: str,
        server_type: str,
        credential: CredentialHandle,
        on_created: Callable[[int], None] | None = None,
    ) -> tuple[int, str]:
        """Create the server and wait until it is running.

        Args:
            machine_name: Server name.
            image: Image name or ID.
            location: Location name.
            server_type: Server type name.
            credential: SSH credential to attach.
            on_created: Called with the server ID as soon as the provider
                accepts the create request, before the readiness poll.

        Returns:
            ``(server_id, ipv4_address)`` of the running server.

        Raises:
            ResourceNotFoundError: If a resource cannot be resolved.
            ProviderError: If the create request or a status query fails.
            WaitError: If the optional deadline expired, or the wait was
                cancelled (before the create request, no server is made).
        """
        base_log = self.log or hm_logger.bind(provider="hetzner", machine=machine_name)
        log = base_log.bind(operation="create")

        try:
            ssh_key = self.client.get_ssh_key(credential.ssh_key_id)
            resolved_image = self.client.get_image(image)
            resolved_location = self.client.get_location(location)
            resolved_type = self.client.get_server_type(server_type)
            if self.waiter.cancelled:
                raise WaitCancelledError(f"Creation of server '{machine_name}' was cancelled")

            server = self.client.create_server(
                name=machine_name,
                server_type=resolved_type,
                image=resolved_image,
                location=resolved_location,
                ssh_keys=[ssh_key],
                labels={"managed-by": "hcmachine"},
            )
        except (ProviderError, WaitCancelledError):
            if self.credentials is not None:
                log.warning("Server creation failed, releasing SSH credential")
                self.credentials.release(credential, machine_name)
            raise

        server_id = server.id
        log.info(f"Server {server_id} requested, waiting for it to run")
        if on_created is not None:
            on_created(server_id)

        running = self.waiter.poll(
            lambda: self.client.get_server(server_id),
            lambda current: map_server_status(current.status) is MachineState.RUNNING,
            description=f"server {server_id}",
        )
        ip_address = public_ipv4(running)
        log.info(f"Server {server_id} is running at {ip_address}")
        return server_id, ip_address


def public_ipv4(server: BoundServer) -> str:
    public_net = server.public_net
    if public_net is None or public_net.ipv4 is None or not public_net.ipv4.ip:
        raise MachineDriverError(f"Server {server.id} has no public IPv4 address")
    return public_net.ipv4.ip
