"""Hetzner Cloud driver implementation."""

from .actions import ActionWaiter
from .client import HetznerClient
from .credentials import CredentialHandle, CredentialProvisioner
from .driver import Driver
from .provisioner import InstanceProvisioner

__all__ = [
    "ActionWaiter",
    "CredentialHandle",
    "CredentialProvisioner",
    "Driver",
    "HetznerClient",
    "InstanceProvisioner",
]
