"""zmachine - Drive ZStack VM instances through their lifecycle.

Example:

    from zmachine import DriverConfig, open_driver

    config = DriverConfig(
        account_name="admin",
        password="password",
        endpoint="http://zstack.local:8080",
        image="ubuntu-22.04",
        instance_offering="2c4g",
        networks=("public-l3",),
    )

    async with open_driver(config) as driver:
        await driver.create()
        print(await driver.get_url())
"""

# Configuration
from zmachine.config import load_config, resolve_machine

# Errors
from zmachine.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    LifecycleError,
    NotFoundError,
    ProtocolError,
    ProvisioningError,
    RemoteOperationError,
    TimeoutError,
    TransportError,
    ZMachineError,
)

# Logging
from zmachine.observability import LogConfig, setup_logging, teardown_logging

# Driver
from zmachine.zstack import (
    DriverConfig,
    LifecyclePhase,
    MachineState,
    SSHCredentials,
    ZStackDriver,
    format_data_disk,
    open_driver,
)

__version__ = "0.1.0"

__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "DriverConfig",
    "LifecycleError",
    "LifecyclePhase",
    "LogConfig",
    "MachineState",
    "NotFoundError",
    "ProtocolError",
    "ProvisioningError",
    "RemoteOperationError",
    "SSHCredentials",
    "TimeoutError",
    "TransportError",
    "ZMachineError",
    "ZStackDriver",
    "format_data_disk",
    "load_config",
    "open_driver",
    "resolve_machine",
    "setup_logging",
    "teardown_logging",
]
