from __future__ import annotations

import pytest

from zmachine.zstack.state import LifecyclePhase, MachineState, ProviderState, map_state

pytestmark = [pytest.mark.unit]


@pytest.mark.parametrize(
    ("provider_state", "expected"),
    [
        ("Running", MachineState.RUNNING),
        ("Paused", MachineState.PAUSED),
        ("Stopped", MachineState.STOPPED),
        (ProviderState.RUNNING, MachineState.RUNNING),
        ("Starting", MachineState.UNKNOWN),
        ("Migrating", MachineState.UNKNOWN),
        ("Error", MachineState.UNKNOWN),
        ("Timeout", MachineState.UNKNOWN),
        ("running", MachineState.UNKNOWN),
        ("", MachineState.UNKNOWN),
    ],
)
def test_map_state(provider_state: str, expected: MachineState):
    assert map_state(provider_state) is expected


def test_machine_states_are_closed():
    assert {s.value for s in MachineState} == {"unknown", "running", "paused", "stopped"}


def test_lifecycle_phases():
    assert LifecyclePhase.UNCREATED == "uncreated"
    assert LifecyclePhase("failed") is LifecyclePhase.FAILED
