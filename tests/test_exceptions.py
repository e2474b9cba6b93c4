import pytest

from zmachine.core.exceptions import (
    LifecycleError,
    NotFoundError,
    ProvisioningError,
    RemoteOperationError,
    TimeoutError,
    ZMachineError,
)

pytestmark = [pytest.mark.unit]


def test_context_reads_outermost_first():
    err = RemoteOperationError("409", "busy")
    err.add_context("expunge instance vm-1").add_context("remove instance vm-1")
    assert str(err) == "remove instance vm-1: expunge instance vm-1: [409] busy"
    assert err.code == "409"
    assert err.message == "busy"


def test_add_context_returns_same_instance():
    err = NotFoundError("vm instance", "vm-1")
    assert err.add_context("query") is err
    assert str(err) == "query: vm instance 'vm-1' not found"


def test_hierarchy():
    assert issubclass(ProvisioningError, LifecycleError)
    assert issubclass(TimeoutError, ZMachineError)
    assert not issubclass(TimeoutError, OSError)
