"""Hetzner Cloud client adapter.

Thin typed accessor over :class:`hcloud.Client`. Every call goes to the
API; nothing is cached, so results always reflect current remote state.
"""

from __future__ import annotations

from typing import Any, NoReturn

import requests
from hcloud import APIException, Client
from hcloud.actions import BoundAction
from hcloud.images import BoundImage
from hcloud.locations import BoundLocation
from hcloud.server_types import BoundServerType
from hcloud.servers import BoundServer
from hcloud.ssh_keys import BoundSSHKey

from hcmachine import __version__
from hcmachine.base.config import HetznerConfig
from hcmachine.base.exceptions import (
    AuthenticationError,
    ProviderError,
    ResourceNotFoundError,
)

_ERROR_MAP: dict[str, type[ProviderError]] = {
    "not_found": ResourceNotFoundError,
    "unauthorized": AuthenticationError,
    "forbidden": AuthenticationError,
    "token_readonly": AuthenticationError,
}


def _handle(e: Exception, msg: str) -> NoReturn:
    code = e.code if isinstance(e, APIException) else None
    exc = _ERROR_MAP.get(code) if code else None
    detail = getattr(e, "message", None) or str(e)
    raise (exc or ProviderError)(f"{msg}: {detail}") from e


def _not_found(kind: str, selector: Any) -> NoReturn:
    raise ResourceNotFoundError(f"{kind} '{selector}' not found")


class HetznerClient:
    """Hetzner Cloud API accessor.

    Attributes:
        client: ``hcloud`` API client.
        architecture: Architecture used when resolving images by name.
    """

    def __init__(self, config: HetznerConfig) -> None:
        """Initialize the hcloud client.

        Args:
            config: Validated driver configuration; only ``access_token``
                and ``architecture`` are read here.
        """
        self.client = Client(
            token=config.access_token,
            application_name="hcmachine",
            application_version=__version__,
        )
        self.architecture = config.architecture

    # --- Lookups ---

    def get_image(self, selector: str) -> BoundImage:
        """Resolve an image by numeric ID or by name.

        Raises:
            ResourceNotFoundError: If no such image exists.
        """
        try:
            if selector.isdigit():
                return self.client.images.get_by_id(int(selector))
            image = self.client.images.get_by_name_and_architecture(
                selector, self.architecture
            )
        except (APIException, requests.RequestException) as e:
            _handle(e, f"Failed to get image '{selector}'")
        if image is None:
            _not_found("Image", selector)
        return image

    def get_location(self, name: str) -> BoundLocation:
        """Resolve a location by name (e.g. ``fsn1``)."""
        try:
            location = self.client.locations.get_by_name(name)
        except (APIException, requests.RequestException) as e:
            _handle(e, f"Failed to get location '{name}'")
        if location is None:
            _not_found("Location", name)
        return location

    def get_server_type(self, name: str) -> BoundServerType:
        """Resolve a server type by name (e.g. ``cx11``)."""
        try:
            server_type = self.client.server_types.get_by_name(name)
        except (APIException, requests.RequestException) as e:
            _handle(e, f"Failed to get server type '{name}'")
        if server_type is None:
            _not_found("Server type", name)
        return server_type

    def get_server(self, server_id: int) -> BoundServer:
        """Fetch the server with *server_id*.

        Raises:
            ResourceNotFoundError: If the server no longer exists.
        """
        try:
            return self.client.servers.get_by_id(server_id)
        except (APIException, requests.RequestException) as e:
            _handle(e, f"Failed to get server {server_id}")

    def get_ssh_key(self, ssh_key_id: int) -> BoundSSHKey:
        try:
            return self.client.ssh_keys.get_by_id(ssh_key_id)
        except (APIException, requests.RequestException) as e:
            _handle(e, f"Failed to get SSH key {ssh_key_id}")

    def get_action(self, action_id: int) -> BoundAction:
        try:
            return self.client.actions.get_by_id(action_id)
        except (APIException, requests.RequestException) as e:
            _handle(e, f"Failed to get action {action_id}")

    # --- SSH keys ---

    def create_ssh_key(
        self, name: str, public_key: str, labels: dict[str, str] | None = None
    ) -> BoundSSHKey:
        """Register *public_key* under *name*."""
        try:
            return self.client.ssh_keys.create(
                name=name, public_key=public_key, labels=labels
            )
        except (APIException, requests.RequestException) as e:
            _handle(e, f"Failed to register SSH key '{name}'")

    def delete_ssh_key(self, ssh_key_id: int) -> None:
        try:
            ssh_key = self.client.ssh_keys.get_by_id(ssh_key_id)
            self.client.ssh_keys.delete(ssh_key)
        except (APIException, requests.RequestException) as e:
            _handle(e, f"Failed to delete SSH key {ssh_key_id}")

    # --- Servers ---

    def create_server(
        self,
        name: str,
        server_type: BoundServerType,
        image: BoundImage,
        location: BoundLocation,
        ssh_keys: list[BoundSSHKey],
        labels: dict[str, str] | None = None,
    ) -> BoundServer:
        """Submit a create request and return the (not yet running) server."""
        try:
            response = self.client.servers.create(
                name=name,
                server_type=server_type,
                image=image,
                location=location,
                ssh_keys=ssh_keys,
                labels=labels,
            )
        except (APIException, requests.RequestException) as e:
            _handle(e, f"Failed to create server '{name}'")
        return response.server

    def power_on(self, server: BoundServer) -> BoundAction:
        try:
            return self.client.servers.power_on(server)
        except (APIException, requests.RequestException) as e:
            _handle(e, f"Failed to power on server {server.id}")

    def power_off(self, server: BoundServer) -> BoundAction:
        try:
            return self.client.servers.power_off(server)
        except (APIException, requests.RequestException) as e:
            _handle(e, f"Failed to power off server {server.id}")

    def reboot(self, server: BoundServer) -> BoundAction:
        try:
            return self.client.servers.reboot(server)
        except (APIException, requests.RequestException) as e:
            _handle(e, f"Failed to reboot server {server.id}")

    def shutdown(self, server: BoundServer) -> BoundAction:
        try:
            return self.client.servers.shutdown(server)
        except (APIException, requests.RequestException) as e:
            _handle(e, f"Failed to shut down server {server.id}")

    def delete_server(self, server: BoundServer) -> BoundAction:
        try:
            return self.client.servers.delete(server)
        except (APIException, requests.RequestException) as e:
            _handle(e, f"Failed to delete server {server.id}")
