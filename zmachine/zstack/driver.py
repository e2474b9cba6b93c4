"""Instance lifecycle controller for ZStack.

Sequences instance operations one at a time, waits for each job to
resolve, and checks the state the job left the instance in. A job that
succeeded but left the instance somewhere unexpected is an error.

The only thing held locally is the instance UUID. Everything else is
queried from the control plane when asked for.
"""

from __future__ import annotations

import uuid as uuidlib
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from typing import Final

from zmachine.core.exceptions import (
    LifecycleError,
    NotFoundError,
    ProvisioningError,
    ZMachineError,
)
from zmachine.observability.logger import logger

from .catalog import Catalog, PassthroughCatalog, ZStackCatalog
from .client import InstanceClient, InstanceOperations
from .config import DriverConfig
from .jobs import DEFAULT_POLL_INTERVAL, JobTracker
from .provisioning import ProvisionHook
from .session import Session
from .state import LifecyclePhase, MachineState, ProviderState, map_state
from .types import (
    STOP_COLD,
    STOP_GRACE,
    CreateInstanceParams,
    CreateInstanceRequest,
    VMInstance,
    decode_inventory,
    decode_nothing,
)

DRIVER_NAME: Final = "zstack"
DOCKER_PORT: Final = 2376


class ZStackDriver:
    """Drives one VM instance through create, start, stop, kill, restart and remove.

    Calls must be serialized by the caller: two lifecycle operations on the
    same instance must not run concurrently.

    Args:
        config: Validated driver configuration.
        instances: Instance operations, already bound to a logged-in session.
        catalog: Resolves configured names to UUIDs. Defaults to using
            names verbatim.
        provision: Hook run once after a successful create.
        instance_uuid: UUID of an instance created earlier, if any.
    """

    def __init__(
        self,
        config: DriverConfig,
        instances: InstanceOperations,
        *,
        catalog: Catalog | None = None,
        provision: ProvisionHook | None = None,
        instance_uuid: str = "",
    ) -> None:
        self.config = config
        self.instances = instances
        self.catalog = catalog or PassthroughCatalog()
        self.provision = provision
        self._instance_uuid = instance_uuid
        self._phase = LifecyclePhase.RUNNING if instance_uuid else LifecyclePhase.UNCREATED
        self._log = logger.bind(provider="zstack", component="driver")

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def instance_uuid(self) -> str:
        return self._instance_uuid

    @property
    def phase(self) -> LifecyclePhase:
        return self._phase

    def driver_name(self) -> str:
        return DRIVER_NAME

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _require_instance(self) -> str:
        if not self._instance_uuid:
            raise LifecycleError("no instance has been created")
        return self._instance_uuid

    @contextmanager
    def _operation(self, name: str, *, moving_to: LifecyclePhase | None = None) -> Iterator[None]:
        """Tag errors raised inside with the operation, and fail the phase on mutating calls."""
        if moving_to is not None:
            self._phase = moving_to
        try:
            yield
        except ZMachineError as e:
            subject = f"{name} instance {self._instance_uuid}" if self._instance_uuid else f"{name} instance"
            e.add_context(subject)
            if moving_to is not None:
                self._phase = LifecyclePhase.FAILED
                self._log.error("{subject} failed: {error}", subject=subject, error=e)
            raise

    @staticmethod
    def _expect_state(instance: VMInstance, expected: ProviderState, operation: str) -> None:
        if instance.state != expected:
            raise LifecycleError(
                f"unexpected state '{instance.state}' after {operation}, expected '{expected}'"
            )

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    async def build_create_request(self) -> CreateInstanceRequest:
        """Resolve configured names and build the create request body."""
        config = self.config
        resolve = self.catalog.resolve

        networks = [await resolve("l3 network", name) for name in config.networks]
        params: CreateInstanceParams = {
            "name": config.name or f"zmachine-{uuidlib.uuid4().hex[:8]}",
            "imageUuid": await resolve("image", config.image),
            "instanceOfferingUuid": await resolve("instance offering", config.instance_offering),
            "l3NetworkUuids": networks,
            "defaultL3NetworkUuid": networks[0],
        }
        if config.description:
            params["description"] = config.description

        match config.placement:
            case ("host", name):
                params["hostUuid"] = await resolve("host", name)
            case ("cluster", name):
                params["clusterUuid"] = await resolve("cluster", name)
            case ("zone", name):
                params["zoneUuid"] = await resolve("zone", name)
            case _:
                pass

        if config.system_disk_offering:
            params["rootDiskOfferingUuid"] = await resolve("disk offering", config.system_disk_offering)
        if config.data_disk_offering:
            params["dataDiskOfferingUuids"] = [await resolve("disk offering", config.data_disk_offering)]

        system_tags = [f"staticIp::{networks[0]}::{config.ip}"] if config.ip else []
        return {"params": params, "systemTags": system_tags, "userTags": []}

    async def pre_create_check(self) -> None:
        """Fail before create if the configuration names something that does not exist."""
        with self._operation("pre-create check"):
            if self._instance_uuid:
                raise LifecycleError(f"an instance is already held: {self._instance_uuid}")
            await self.build_create_request()

    async def create(self) -> None:
        """Create the instance, confirm it exists, then run the provisioning hook.

        The UUID is kept only once the instance is confirmed to exist. A
        provisioning failure does not roll the instance back, and its UUID
        stays held so that ``remove`` can clean it up.
        """
        if self._instance_uuid:
            raise LifecycleError(f"an instance is already held: {self._instance_uuid}")

        with self._operation("create", moving_to=LifecyclePhase.CREATING):
            request = await self.build_create_request()
            job = await self.instances.create_instance(request)
            created = await job.resolve(decode_inventory, self.config.lifecycle_timeout)
            try:
                instance = await self.instances.query_instance(created.uuid)
            except NotFoundError as e:
                raise LifecycleError(f"created instance {created.uuid} is not visible") from e

            self._instance_uuid = instance.uuid
            self._phase = LifecyclePhase.RUNNING
            self._log.info(
                "Created instance {uuid} ({state})", uuid=instance.uuid, state=instance.state or "?"
            )

            if self.provision is not None:
                await self._provision(instance)

    async def _provision(self, instance: VMInstance) -> None:
        if not instance.ip:
            raise ProvisioningError(f"instance {instance.uuid} has no address to provision")
        try:
            await self.provision(instance.ip, self.config.ssh)  # type: ignore[misc]
        except ProvisioningError:
            raise
        except Exception as e:
            raise ProvisioningError(f"provisioning {instance.ip} failed: {e}") from e
        self._log.info("Provisioned instance {uuid} at {ip}", uuid=instance.uuid, ip=instance.ip)

    # -------------------------------------------------------------------------
    # Power
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        uuid = self._require_instance()
        with self._operation("start", moving_to=LifecyclePhase.STARTING):
            job = await self.instances.start_instance(uuid)
            instance = await job.resolve(decode_inventory, self.config.lifecycle_timeout)
            self._expect_state(instance, ProviderState.RUNNING, "start")
            self._phase = LifecyclePhase.RUNNING
            self._log.info("Started instance {uuid}", uuid=uuid)

    async def stop(self) -> None:
        """Stop gracefully, letting the guest shut down."""
        uuid = self._require_instance()
        with self._operation("stop", moving_to=LifecyclePhase.STOPPING):
            job = await self.instances.stop_instance(uuid, STOP_GRACE)
            instance = await job.resolve(decode_inventory, self.config.lifecycle_timeout)
            self._expect_state(instance, ProviderState.STOPPED, "stop")
            self._phase = LifecyclePhase.STOPPED
            self._log.info("Stopped instance {uuid}", uuid=uuid)

    async def kill(self) -> None:
        """Stop immediately, equivalent to pulling the power."""
        uuid = self._require_instance()
        with self._operation("kill", moving_to=LifecyclePhase.STOPPING):
            job = await self.instances.stop_instance(uuid, STOP_COLD)
            instance = await job.resolve(decode_inventory, self.config.lifecycle_timeout)
            self._expect_state(instance, ProviderState.STOPPED, "kill")
            self._phase = LifecyclePhase.STOPPED
            self._log.info("Killed instance {uuid}", uuid=uuid)

    async def restart(self) -> None:
        """Reboot. The resulting state is not checked."""
        uuid = self._require_instance()
        with self._operation("restart", moving_to=LifecyclePhase.STARTING):
            job = await self.instances.restart_instance(uuid)
            await job.resolve(decode_nothing, self.config.lifecycle_timeout)
            self._phase = LifecyclePhase.RUNNING
            self._log.info("Restarted instance {uuid}", uuid=uuid)

    # -------------------------------------------------------------------------
    # Remove
    # -------------------------------------------------------------------------

    async def remove(self) -> None:
        """Delete, then expunge. Both jobs must succeed.

        If expunge fails the delete stands: the instance is gone from normal
        queries but not destroyed, and its UUID stays held for a retry.
        """
        uuid = self._require_instance()
        with self._operation("remove", moving_to=LifecyclePhase.REMOVING):
            job = await self.instances.delete_instance(uuid)
            await job.resolve(decode_nothing, self.config.lifecycle_timeout)
            self._log.debug("Deleted instance {uuid}, expunging", uuid=uuid)

            job = await self.instances.expunge_instance(uuid)
            await job.resolve(decode_nothing, self.config.lifecycle_timeout)

            self._instance_uuid = ""
            self._phase = LifecyclePhase.REMOVED
            self._log.info("Removed instance {uuid}", uuid=uuid)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_state(self) -> MachineState:
        uuid = self._require_instance()
        with self._operation("get state of"):
            instance = await self.instances.query_instance(uuid)
        return map_state(instance.state)

    async def get_ip(self) -> str:
        """First interface address, or "" while the instance has none."""
        uuid = self._require_instance()
        with self._operation("get address of"):
            instance = await self.instances.query_instance(uuid)
        return instance.ip

    async def get_ssh_hostname(self) -> str:
        return await self.get_ip()

    async def get_url(self) -> str:
        """Docker URL ``tcp://{ip}:2376``, or "" while no address is assigned."""
        ip = await self.get_ip()
        if not ip:
            return ""
        return f"tcp://{ip}:{DOCKER_PORT}"


@asynccontextmanager
async def open_driver(
    config: DriverConfig,
    *,
    provision: ProvisionHook | None = None,
    instance_uuid: str = "",
    resolve_names: bool = True,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> AsyncIterator[ZStackDriver]:
    """Log in, build every client, and yield a ready driver.

    The session is torn down on exit whatever happens inside the block.

    Example:
        async with open_driver(config) as driver:
            await driver.create()
            print(await driver.get_url())
    """
    session = await Session.open(
        config.account_name,
        config.password,
        config.endpoint,
        request_timeout=config.request_timeout,
    )
    try:
        jobs = JobTracker(session, interval=poll_interval)
        yield ZStackDriver(
            config,
            InstanceClient(session, jobs),
            catalog=ZStackCatalog(session) if resolve_names else PassthroughCatalog(),
            provision=provision,
            instance_uuid=instance_uuid,
        )
    finally:
        await session.teardown()
