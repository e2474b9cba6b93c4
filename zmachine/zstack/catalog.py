"""Name to UUID resolution for placement, image, offering and network names."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Final, Protocol, runtime_checkable

from zmachine.core.exceptions import NotFoundError, ProtocolError, RemoteOperationError
from zmachine.observability.logger import logger

from .session import Session
from .types import describe_error

RESOURCE_PATHS: Final[Mapping[str, str]] = {
    "zone": "/zstack/v1/zones",
    "cluster": "/zstack/v1/clusters",
    "host": "/zstack/v1/hosts",
    "image": "/zstack/v1/images",
    "instance offering": "/zstack/v1/instance-offerings",
    "disk offering": "/zstack/v1/disk-offerings",
    "l3 network": "/zstack/v1/l3-networks",
}


@runtime_checkable
class Catalog(Protocol):
    async def resolve(self, kind: str, name: str) -> str: ...


class PassthroughCatalog:
    """Treats every configured name as the UUID itself."""

    async def resolve(self, kind: str, name: str) -> str:
        return name


class ZStackCatalog:
    """Looks names up with ``GET /zstack/v1/<resource>?q=name=<name>``."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self._cache: dict[tuple[str, str], str] = {}
        self._log = logger.bind(provider="zstack", component="catalog")

    async def resolve(self, kind: str, name: str) -> str:
        """UUID of the ``kind`` resource called ``name``.

        Raises:
            NotFoundError: No resource of that kind has that name.
        """
        if (kind, name) in self._cache:
            return self._cache[(kind, name)]

        path = RESOURCE_PATHS.get(kind)
        if path is None:
            raise ValueError(f"Unknown resource kind '{kind}'. Valid: {', '.join(RESOURCE_PATHS)}")

        what = f"resolve {kind} '{name}'"
        resp = await self.session.request("GET", path, params={"q": f"name={name}"})
        try:
            data: Any = resp.json()
        except ValueError as e:
            raise ProtocolError(f"undecodable {kind} query response").add_context(what) from e

        if isinstance(data, Mapping) and data.get("error"):
            try:
                code, message = describe_error(data["error"])
            except ProtocolError as e:
                raise e.add_context(what)
            raise RemoteOperationError(code, message).add_context(what)
        if not resp.ok:
            raise RemoteOperationError(str(resp.status), resp.body[:200]).add_context(what)

        inventories = data.get("inventories") if isinstance(data, Mapping) else None
        if not inventories:
            raise NotFoundError(kind, name)
        uuid = inventories[0].get("uuid") if isinstance(inventories[0], Mapping) else None
        if not isinstance(uuid, str) or not uuid:
            raise ProtocolError(f"{kind} '{name}' has no uuid")

        if len(inventories) > 1:
            self._log.warning(
                "{n} {kind}s named '{name}', using {uuid}",
                n=len(inventories), kind=kind, name=name, uuid=uuid,
            )
        self._cache[(kind, name)] = uuid
        return uuid
