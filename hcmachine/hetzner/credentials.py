"""SSH credential provisioning for new servers."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from hcmachine.base.exceptions import CredentialError, ProviderError
from hcmachine.base.logger import BoundMachineLogger, hm_logger
from hcmachine.base.ssh import generate_ssh_key, public_key_path, read_public_key
from hcmachine.base.store import MachineStore
from hcmachine.hetzner.client import HetznerClient


@dataclass(frozen=True)
class CredentialHandle:
    """Local private key paired with the provider's SSH key ID."""

    private_key_path: Path
    ssh_key_id: int


class CredentialProvisioner:
    """Generate a key pair and register its public half with Hetzner.

    The key must exist before the server is created: it is attached by the
    create request and cannot be added afterwards.
    """

    def __init__(
        self,
        client: HetznerClient,
        store: MachineStore,
        log: BoundMachineLogger | None = None,
    ) -> None:
        self.client = client
        self.store = store
        self.log = log

    def _bind(self, machine_name: str, operation: str) -> BoundMachineLogger:
        base = self.log or hm_logger.bind(provider="hetzner", machine=machine_name)
        return base.bind(operation=operation)

    def provision(self, machine_name: str) -> CredentialHandle:
        """Create the machine's SSH credential.

        Nothing is rolled back on failure: a generated key file or a
        registered provider key may be left behind.

        Raises:
            CredentialError: If generation, reading or registration fails.
        """
        log = self._bind(machine_name, "create")
        key_path = self.store.ssh_key_path(machine_name)

        generate_ssh_key(key_path, comment=f"hcmachine@{machine_name}")
        public_key = read_public_key(key_path)

        try:
            ssh_key = self.client.create_ssh_key(
                machine_name, public_key, labels={"managed-by": "hcmachine"}
            )
        except ProviderError as e:
            raise CredentialError(
                f"Failed to register SSH key for '{machine_name}': {e}"
            ) from e

        log.info(f"Registered SSH key {ssh_key.id}")
        return CredentialHandle(private_key_path=key_path, ssh_key_id=ssh_key.id)

    def release(self, handle: CredentialHandle, machine_name: str) -> None:
        """Best-effort removal of the provider key and the local key pair.

        Failures are logged, never raised.
        """
        log = self._bind(machine_name, "cleanup")
        try:
            self.client.delete_ssh_key(handle.ssh_key_id)
            log.info(f"Deleted SSH key {handle.ssh_key_id}")
        except ProviderError as e:
            log.warning(f"Could not delete SSH key {handle.ssh_key_id}: {e}")

        for path in (handle.private_key_path, public_key_path(handle.private_key_path)):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                log.warning(f"Could not remove {path}: {e}")
