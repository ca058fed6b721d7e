"""
Local machine store.

Each machine owns a directory ``<root>/machines/<name>/`` holding its SSH
key pair (``id_rsa`` / ``id_rsa.pub``) and a ``config.json`` record with the
driver's configuration and provider handles, so a later process can pick up
where ``create`` left off.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from hcmachine.base.exceptions import MachineDriverError

SSH_KEY_FILENAME = "id_rsa"
RECORD_FILENAME = "config.json"


class DriverRecord(BaseModel):
    """Serialised driver state.

    Only identifiers are stored; server status and attributes are always
    re-read from the provider.
    """

    model_config = ConfigDict(extra="forbid")

    driver_name: str
    machine_name: str
    config: dict[str, Any] = Field(default_factory=dict)
    server_id: int = 0
    ssh_key_id: int = 0
    ip_address: str = ""


class MachineStore:
    """Filesystem layout for machine keys and records.

    Attributes:
        root: Store root directory (e.g. ``~/.hcmachine``).
    """

    def __init__(self, root: str | os.PathLike[str]) -> None:
        self.root = Path(root).expanduser()

    def machine_dir(self, machine_name: str) -> Path:
        if not machine_name or "/" in machine_name or machine_name in (".", ".."):
            raise MachineDriverError(f"Invalid machine name: {machine_name!r}")
        return self.root / "machines" / machine_name

    def ssh_key_path(self, machine_name: str) -> Path:
        """Path of the machine's private key; the public key adds ``.pub``."""
        return self.machine_dir(machine_name) / SSH_KEY_FILENAME

    def record_path(self, machine_name: str) -> Path:
        return self.machine_dir(machine_name) / RECORD_FILENAME

    def exists(self, machine_name: str) -> bool:
        return self.record_path(machine_name).is_file()

    def save(self, record: DriverRecord) -> Path:
        """Write *record* to the machine's ``config.json``.

        The record contains the access token, so the file is created
        readable by the owner only.
        """
        path = self.record_path(record.machine_name)
        path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        payload = json.dumps(record.model_dump(mode="json"), indent=2, sort_keys=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as fh:
            fh.write(payload + "\n")
        return path

    def load(self, machine_name: str) -> DriverRecord:
        """Read the machine's record.

        Raises:
            MachineDriverError: If the record is missing or malformed.
        """
        path = self.record_path(machine_name)
        try:
            data = json.loads(path.read_text())
        except FileNotFoundError as e:
            raise MachineDriverError(f"Machine '{machine_name}' does not exist") from e
        except json.JSONDecodeError as e:
            raise MachineDriverError(f"Corrupt machine record: {path}") from e
        try:
            return DriverRecord.model_validate(data)
        except ValidationError as e:
            raise MachineDriverError(f"Corrupt machine record: {path}") from e
