"""ZStack driver configuration.

Immutable configuration dataclass, validated at construction so that an
invalid combination fails before any remote call is made.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Final

from zmachine.core.exceptions import ConfigurationError
from zmachine.observability.logger import logger

LIFECYCLE_TIMEOUT: Final = 60.0

ENV_ACCOUNT_NAME: Final = "ZSTACK_ACCOUNT_NAME"
ENV_ACCOUNT_PASSWORD: Final = "ZSTACK_ACCOUNT_PASSWORD"
ENV_ENDPOINT: Final = "ZSTACK_ENDPOINT"


@dataclass(frozen=True, slots=True)
class SSHCredentials:
    """How the guest-provisioning hook reaches a freshly created instance."""

    user: str = "root"
    password: str | None = field(default=None, repr=False)
    key_path: str | None = None
    port: int = 22


@dataclass(frozen=True, slots=True)
class DriverConfig:
    """ZStack driver configuration.

    Names for zone, cluster, host, image, offerings and networks are
    resolved to UUIDs by a Catalog before create. Without a catalog they
    are sent as-is, so UUIDs may be given directly.

    Placement precedence: ``host`` overrides ``cluster`` and ``zone``;
    ``cluster`` overrides ``zone``. A disk offering overrides the matching
    disk size.

    Example:
        >>> config = DriverConfig(
        ...     account_name="admin",
        ...     password="password",
        ...     endpoint="http://zstack.local:8080",
        ...     name="worker-1",
        ...     zone="zone-1",
        ...     image="ubuntu-22.04",
        ...     instance_offering="2c4g",
        ...     networks=("public-l3",),
        ... )

    Args:
        account_name: ZStack account. Falls back to ZSTACK_ACCOUNT_NAME.
        password: Plaintext password, hashed before it leaves the process.
            Falls back to ZSTACK_ACCOUNT_PASSWORD.
        endpoint: API endpoint, e.g. ``http://host:8080``. Falls back to
            ZSTACK_ENDPOINT.
        name: Instance name.
        description: Instance description.
        zone: Zone to place the instance in.
        cluster: Cluster to place the instance in.
        host: Physical host to place the instance on.
        image: Image to boot from. Required.
        instance_offering: Instance offering (CPU/memory). Required.
        networks: L3 networks to attach; the first one is the default. Required.
        ip: Optional static IP on the default network.
        system_disk_offering: Root disk offering.
        system_disk_size: Root disk size in GB, used without an offering.
        data_disk_offering: Data disk offering.
        data_disk_size: Data disk size in GB, used without an offering.
        ssh: Credentials for guest provisioning.
        job_timeout: Bound for each lifecycle job, capped at 60 seconds.
        request_timeout: Per-HTTP-request timeout in seconds.
    """

    account_name: str = ""
    password: str = field(default="", repr=False)
    endpoint: str = ""
    name: str = ""
    description: str = ""
    zone: str = ""
    cluster: str = ""
    host: str = ""
    image: str = ""
    instance_offering: str = ""
    networks: tuple[str, ...] = ()
    ip: str = ""
    system_disk_offering: str = ""
    system_disk_size: int = 0
    data_disk_offering: str = ""
    data_disk_size: int = 0
    ssh: SSHCredentials = field(default_factory=SSHCredentials)
    job_timeout: float = LIFECYCLE_TIMEOUT
    request_timeout: float = 30.0

    def __post_init__(self) -> None:
        if isinstance(self.networks, str):
            object.__setattr__(self, "networks", (self.networks,))
        else:
            object.__setattr__(self, "networks", tuple(self.networks))

        for attr, env in (
            ("account_name", ENV_ACCOUNT_NAME),
            ("password", ENV_ACCOUNT_PASSWORD),
            ("endpoint", ENV_ENDPOINT),
        ):
            if not getattr(self, attr):
                object.__setattr__(self, attr, os.environ.get(env, ""))

        self._validate()

    def _validate(self) -> None:
        if not (self.account_name and self.password and self.endpoint):
            raise ConfigurationError("account name, password and endpoint are required")
        if not self.endpoint.startswith(("http://", "https://")):
            raise ConfigurationError(f"endpoint must be an http(s) URL, got '{self.endpoint}'")
        if not self.image:
            raise ConfigurationError("the image is required")
        if not self.instance_offering:
            raise ConfigurationError("the instance offering is required")
        if not self.networks or not all(self.networks):
            raise ConfigurationError("at least one network is required")
        if self.system_disk_size < 0 or self.data_disk_size < 0:
            raise ConfigurationError("disk sizes must not be negative")
        if self.job_timeout <= 0:
            raise ConfigurationError("job_timeout must be positive")

        log = logger.bind(provider="zstack", component="config")
        if self.cluster and self.zone and not self.host:
            log.warning("The cluster has been set so the zone will be omitted")
        if self.host and (self.cluster or self.zone):
            log.warning("The host has been set so the cluster and zone will be omitted")
        if self.system_disk_offering and self.system_disk_size > 0:
            log.warning("The system disk size will be omitted because the system disk offering is set")
        if self.data_disk_offering and self.data_disk_size > 0:
            log.warning("The data disk size will be omitted because the data disk offering is set")

    @property
    def lifecycle_timeout(self) -> float:
        return min(self.job_timeout, LIFECYCLE_TIMEOUT)

    @property
    def placement(self) -> tuple[str, str]:
        """Most specific placement as ``(kind, name)``, or ``("", "")`` to let the scheduler pick."""
        if self.host:
            return "host", self.host
        if self.cluster:
            return "cluster", self.cluster
        if self.zone:
            return "zone", self.zone
        return "", ""


__all__ = ["DriverConfig", "LIFECYCLE_TIMEOUT", "SSHCredentials"]
