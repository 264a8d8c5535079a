"""Oxide instance run states and their mapping onto host machine states."""

from __future__ import annotations

from enum import Enum


class InstanceState(str, Enum):
    """Run states reported by the Oxide API for an instance."""

    CREATING = 'creating'
    STARTING = 'starting'
    RUNNING = 'running'
    STOPPING = 'stopping'
    STOPPED = 'stopped'
    REBOOTING = 'rebooting'
    MIGRATING = 'migrating'
    REPAIRING = 'repairing'
    FAILED = 'failed'
    DESTROYED = 'destroyed'


class MachineState(str, Enum):
    """Machine states understood by the host orchestration platform."""

    NONE = 'None'
    RUNNING = 'Running'
    PAUSED = 'Paused'
    SAVED = 'Saved'
    STOPPED = 'Stopped'
    STOPPING = 'Stopping'
    STARTING = 'Starting'
    ERROR = 'Error'
    TIMEOUT = 'Timeout'
    NOT_FOUND = 'NotFound'


# The host platform does not define its states precisely, so this table is a
# best-effort reading. Repairing is an instance recovering from a failure and
# migrating is a live move between sleds that keeps the instance available.
_STATE_MAP: dict[str, MachineState] = {
    InstanceState.CREATING.value: MachineState.STARTING,
    InstanceState.STARTING.value: MachineState.STARTING,
    InstanceState.REBOOTING.value: MachineState.STARTING,
    InstanceState.REPAIRING.value: MachineState.STARTING,
    InstanceState.RUNNING.value: MachineState.RUNNING,
    InstanceState.MIGRATING.value: MachineState.RUNNING,
    InstanceState.STOPPING.value: MachineState.STOPPING,
    InstanceState.STOPPED.value: MachineState.STOPPED,
    InstanceState.FAILED.value: MachineState.ERROR,
    InstanceState.DESTROYED.value: MachineState.NOT_FOUND,
}


def to_machine_state(state: InstanceState | str | None) -> MachineState:
    """
    Map an Oxide run state to a host machine state.

    Unrecognized values map to :attr:`MachineState.NONE`.

    Example:
        >>> from oxvm.state import to_machine_state
        >>> to_machine_state('migrating').value
        'Running'
        >>> to_machine_state('hibernating').value
        'None'
    """
    if isinstance(state, InstanceState):
        key = state.value
    else:
        key = str(state or '').strip().lower()
    return _STATE_MAP.get(key, MachineState.NONE)
