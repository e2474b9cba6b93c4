"""ZStack provider: session, job tracking, instance client and lifecycle driver."""

from zmachine.zstack.catalog import Catalog, PassthroughCatalog, ZStackCatalog
from zmachine.zstack.client import InstanceClient, InstanceOperations
from zmachine.zstack.config import DriverConfig, SSHCredentials
from zmachine.zstack.driver import ZStackDriver, open_driver
from zmachine.zstack.jobs import AsyncJob, Failed, JobTracker, Pending, Succeeded
from zmachine.zstack.provisioning import ProvisionHook, format_data_disk
from zmachine.zstack.session import Session
from zmachine.zstack.state import LifecyclePhase, MachineState, ProviderState, map_state
from zmachine.zstack.types import VMInstance, VMNic, Volume

__all__ = [
    "AsyncJob",
    "Catalog",
    "DriverConfig",
    "Failed",
    "InstanceClient",
    "InstanceOperations",
    "JobTracker",
    "LifecyclePhase",
    "MachineState",
    "PassthroughCatalog",
    "Pending",
    "ProviderState",
    "ProvisionHook",
    "SSHCredentials",
    "Session",
    "Succeeded",
    "VMInstance",
    "VMNic",
    "Volume",
    "ZStackCatalog",
    "ZStackDriver",
    "format_data_disk",
    "map_state",
    "open_driver",
]
