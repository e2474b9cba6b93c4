"""VM instance operations against the ZStack API.

Mutating calls return an AsyncJob without waiting for it. The caller
decides how long to wait and how to decode the result.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from zmachine.core.exceptions import NotFoundError, ProtocolError, RemoteOperationError
from zmachine.infra.http import Response
from zmachine.observability.logger import logger

from .jobs import AsyncJob, JobTracker
from .session import Session
from .types import (
    INSTANCE_ACTIONS_PATH,
    INSTANCE_PATH,
    INSTANCES_PATH,
    CreateInstanceRequest,
    StopType,
    VMInstance,
    action_body,
    describe_error,
)


@runtime_checkable
class InstanceOperations(Protocol):
    """What the lifecycle controller needs from an instance client."""

    async def create_instance(self, request: CreateInstanceRequest) -> AsyncJob: ...
    async def delete_instance(self, uuid: str) -> AsyncJob: ...
    async def expunge_instance(self, uuid: str) -> AsyncJob: ...
    async def start_instance(self, uuid: str) -> AsyncJob: ...
    async def stop_instance(self, uuid: str, stop_type: StopType) -> AsyncJob: ...
    async def restart_instance(self, uuid: str) -> AsyncJob: ...
    async def query_instance(self, uuid: str) -> VMInstance: ...
    async def query_instances(self) -> Sequence[VMInstance]: ...


def _decode_query(resp: Response, what: str) -> list[Mapping[str, Any]]:
    try:
        data = resp.json()
    except ValueError as e:
        raise ProtocolError(f"{what}: undecodable response (status {resp.status})") from e

    error = data.get("error") if isinstance(data, Mapping) else None
    if error:
        try:
            code, message = describe_error(error)
        except ProtocolError as e:
            raise e.add_context(what)
        raise RemoteOperationError(code, message).add_context(what)
    if resp.status != 200:
        raise RemoteOperationError(str(resp.status), resp.body[:200]).add_context(what)

    inventories = data.get("inventories") if isinstance(data, Mapping) else None
    if inventories is None:
        return []
    if not isinstance(inventories, list):
        raise ProtocolError(f"{what}: 'inventories' should be a list")
    return inventories


class InstanceClient:
    """Instance operations bound to one Session and its JobTracker."""

    def __init__(self, session: Session, jobs: JobTracker) -> None:
        self.session = session
        self.jobs = jobs
        self._log = logger.bind(provider="zstack", component="instances")

    async def _submit(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None,
        operation: str,
    ) -> AsyncJob:
        resp = await self.session.request(method, path, body)
        return self.jobs.submit(resp, operation)

    async def create_instance(self, request: CreateInstanceRequest) -> AsyncJob:
        self._log.debug("Creating instance {name}", name=request["params"].get("name", ""))
        return await self._submit("POST", INSTANCES_PATH, dict(request), "create instance")

    async def delete_instance(self, uuid: str) -> AsyncJob:
        return await self._submit(
            "DELETE", INSTANCE_PATH.format(uuid=uuid), None, f"delete instance {uuid}"
        )

    async def expunge_instance(self, uuid: str) -> AsyncJob:
        return await self._submit(
            "PUT",
            INSTANCE_ACTIONS_PATH.format(uuid=uuid),
            action_body("expungeVmInstance"),
            f"expunge instance {uuid}",
        )

    async def start_instance(self, uuid: str) -> AsyncJob:
        return await self._submit(
            "PUT",
            INSTANCE_ACTIONS_PATH.format(uuid=uuid),
            action_body("startVmInstance"),
            f"start instance {uuid}",
        )

    async def stop_instance(self, uuid: str, stop_type: StopType) -> AsyncJob:
        return await self._submit(
            "PUT",
            INSTANCE_ACTIONS_PATH.format(uuid=uuid),
            action_body("stopVmInstance", {"type": stop_type}),
            f"stop ({stop_type}) instance {uuid}",
        )

    async def restart_instance(self, uuid: str) -> AsyncJob:
        return await self._submit(
            "PUT",
            INSTANCE_ACTIONS_PATH.format(uuid=uuid),
            action_body("rebootVmInstance"),
            f"reboot instance {uuid}",
        )

    async def query_instance(self, uuid: str) -> VMInstance:
        """Fetch one instance.

        Raises:
            NotFoundError: The provider returned no inventory for ``uuid``.
        """
        resp = await self.session.request("GET", INSTANCE_PATH.format(uuid=uuid))
        inventories = _decode_query(resp, f"query instance {uuid}")
        if not inventories:
            raise NotFoundError("vm instance", uuid)
        return VMInstance.from_payload(inventories[0])

    async def query_instances(self) -> list[VMInstance]:
        """Fetch every instance visible to the account. Empty is a valid answer."""
        resp = await self.session.request("GET", INSTANCES_PATH)
        return [VMInstance.from_payload(raw) for raw in _decode_query(resp, "query instances")]
