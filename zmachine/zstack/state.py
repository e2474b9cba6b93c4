"""Instance states.

The provider reports an open set of state strings. The driver exposes a
closed set and maps everything it does not recognize to UNKNOWN.
"""

from __future__ import annotations

from enum import StrEnum
from types import MappingProxyType


class ProviderState(StrEnum):
    """State strings ZStack reports for a VM instance."""

    CREATED = "Created"
    STARTING = "Starting"
    RUNNING = "Running"
    STOPPING = "Stopping"
    STOPPED = "Stopped"
    PAUSED = "Paused"
    REBOOTING = "Rebooting"
    MIGRATING = "Migrating"
    DESTROYING = "Destroying"
    DESTROYED = "Destroyed"
    EXPUNGING = "Expunging"
    ERROR = "Error"
    UNKNOWN = "Unknown"


class MachineState(StrEnum):
    """State exposed to the caller of the driver."""

    UNKNOWN = "unknown"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


_STATE_MAP: MappingProxyType[str, MachineState] = MappingProxyType({
    ProviderState.RUNNING: MachineState.RUNNING,
    ProviderState.PAUSED: MachineState.PAUSED,
    ProviderState.STOPPED: MachineState.STOPPED,
})


def map_state(provider_state: str) -> MachineState:
    """Map a provider state string to a MachineState. Unrecognized or empty -> UNKNOWN."""
    return _STATE_MAP.get(provider_state, MachineState.UNKNOWN)


class LifecyclePhase(StrEnum):
    """Controller-local view of where an instance is in its lifecycle.

    Informational only: the provider's reported state is the source of
    truth and is queried on demand.
    """

    UNCREATED = "uncreated"
    CREATING = "creating"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    STARTING = "starting"
    REMOVING = "removing"
    REMOVED = "removed"
    FAILED = "failed"


__all__ = ["LifecyclePhase", "MachineState", "ProviderState", "map_state"]
