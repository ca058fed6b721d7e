"""Hetzner server status to machine state mapping."""

from __future__ import annotations

from hcloud.servers import Server

from hcmachine.base.state import MachineState

# Every other provider status (starting, stopping, deleting, migrating,
# rebuilding, unknown) reports as NONE.
STATUS_MAP: dict[str, MachineState] = {
    Server.STATUS_INIT: MachineState.STARTING,
    Server.STATUS_RUNNING: MachineState.RUNNING,
    Server.STATUS_OFF: MachineState.STOPPED,
}


def map_server_status(status: str | None) -> MachineState:
    return STATUS_MAP.get(status or "", MachineState.NONE)
