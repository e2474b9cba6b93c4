"""ZStack API wire types.

TypedDicts describe the JSON records exactly as the control plane sends
and accepts them. Instance inventories are additionally decoded into
frozen dataclasses, because the driver relies on a handful of fields
being present and well-typed.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final, Literal, NotRequired, TypedDict

from zmachine.core.exceptions import ProtocolError

# =============================================================================
# Paths
# =============================================================================

LOGIN_PATH: Final = "/zstack/v1/accounts/login"
LOGOUT_PATH: Final = "/zstack/v1/accounts/sessions/{uuid}"
JOB_PATH: Final = "/zstack/v1/api-jobs/{uuid}"
INSTANCES_PATH: Final = "/zstack/v1/vm-instances"
INSTANCE_PATH: Final = "/zstack/v1/vm-instances/{uuid}"
INSTANCE_ACTIONS_PATH: Final = "/zstack/v1/vm-instances/{uuid}/actions"

type StopType = Literal["grace", "cold"]

STOP_GRACE: Final[StopType] = "grace"
STOP_COLD: Final[StopType] = "cold"


# =============================================================================
# Envelopes
# =============================================================================


class Tags(TypedDict):
    systemTags: list[str]
    userTags: list[str]


class ErrorPayload(TypedDict):
    """Error object carried by any response envelope."""

    code: NotRequired[str]
    description: NotRequired[str]
    details: NotRequired[str]
    elaboration: NotRequired[str]


class LoginRequest(TypedDict):
    logInByAccount: dict[str, str]
    systemTags: list[str]
    userTags: list[str]


class SessionInventory(TypedDict):
    uuid: str
    accountUuid: NotRequired[str]
    userUuid: NotRequired[str]
    expiredDate: NotRequired[str]


class LoginResponse(TypedDict):
    error: NotRequired[ErrorPayload | None]
    inventory: NotRequired[SessionInventory]


class JobAccepted(TypedDict):
    """Job-accepted envelope: the operation was scheduled, not completed."""

    location: str


class CreateInstanceParams(TypedDict, total=False):
    name: str
    description: str
    instanceOfferingUuid: str
    imageUuid: str
    l3NetworkUuids: list[str]
    defaultL3NetworkUuid: str
    rootDiskOfferingUuid: str
    dataDiskOfferingUuids: list[str]
    zoneUuid: str
    clusterUuid: str
    hostUuid: str
    strategy: str


class CreateInstanceRequest(TypedDict):
    params: CreateInstanceParams
    systemTags: list[str]
    userTags: list[str]


class VMNicPayload(TypedDict, total=False):
    uuid: str
    vmInstanceUuid: str
    l3NetworkUuid: str
    ip: str
    mac: str
    netmask: str
    gateway: str
    deviceId: int


class VolumePayload(TypedDict, total=False):
    uuid: str
    name: str
    type: str
    size: int
    actualSize: int
    state: str
    status: str
    deviceId: int


class VMInstancePayload(TypedDict, total=False):
    uuid: str
    name: str
    description: str
    zoneUuid: str
    clusterUuid: str
    hostUuid: str
    imageUuid: str
    instanceOfferingUuid: str
    rootVolumeUuid: str
    platform: str
    defaultL3NetworkUuid: str
    type: str
    hypervisorType: str
    memorySize: int
    cpuNum: int
    state: str
    vmNics: list[VMNicPayload]
    allVolumes: list[VolumePayload]


class InstanceResponse(TypedDict):
    error: NotRequired[ErrorPayload | None]
    inventory: NotRequired[VMInstancePayload]


class InstancesResponse(TypedDict):
    error: NotRequired[ErrorPayload | None]
    inventories: NotRequired[list[VMInstancePayload]]


def empty_tags() -> Tags:
    return {"systemTags": [], "userTags": []}


def action_body(action: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
    """Body for ``PUT /vm-instances/{uuid}/actions``: ``{action: {...}, tags}``."""
    return {action: params or {}, **empty_tags()}


def describe_error(error: Any) -> tuple[str, str]:
    """Reduce an error object to ``(code, message)``.

    Raises:
        ProtocolError: ``error`` is not an object.
    """
    if not isinstance(error, Mapping):
        raise ProtocolError(f"error should be an object, got {type(error).__name__}: {str(error)[:200]}")
    code = str(error.get("code", "") or "")
    parts = [str(error[k]) for k in ("description", "details") if error.get(k)]
    return code, " ".join(parts) or str(error.get("elaboration", "") or "unknown error")


# =============================================================================
# Decoded inventory
# =============================================================================


def _str(raw: Mapping[str, Any], key: str) -> str:
    value = raw.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ProtocolError(f"field '{key}' should be a string, got {type(value).__name__}")
    return value


def _int(raw: Mapping[str, Any], key: str) -> int:
    value = raw.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ProtocolError(f"field '{key}' should be an integer, got {type(value).__name__}")
    return value


def _records(raw: Mapping[str, Any], key: str) -> list[Mapping[str, Any]]:
    value = raw.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, Mapping) for v in value):
        raise ProtocolError(f"field '{key}' should be a list of objects")
    return value


@dataclass(frozen=True, slots=True)
class VMNic:
    uuid: str
    l3_network_uuid: str
    ip: str
    mac: str = ""
    netmask: str = ""
    gateway: str = ""
    device_id: int = 0

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any]) -> VMNic:
        return cls(
            uuid=_str(raw, "uuid"),
            l3_network_uuid=_str(raw, "l3NetworkUuid"),
            ip=_str(raw, "ip"),
            mac=_str(raw, "mac"),
            netmask=_str(raw, "netmask"),
            gateway=_str(raw, "gateway"),
            device_id=_int(raw, "deviceId"),
        )


@dataclass(frozen=True, slots=True)
class Volume:
    uuid: str
    name: str = ""
    type: str = ""
    size: int = 0
    state: str = ""
    status: str = ""
    device_id: int = 0

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any]) -> Volume:
        return cls(
            uuid=_str(raw, "uuid"),
            name=_str(raw, "name"),
            type=_str(raw, "type"),
            size=_int(raw, "size"),
            state=_str(raw, "state"),
            status=_str(raw, "status"),
            device_id=_int(raw, "deviceId"),
        )


@dataclass(frozen=True, slots=True)
class VMInstance:
    """A VM instance inventory as reported by the control plane."""

    uuid: str
    name: str
    state: str
    nics: tuple[VMNic, ...] = ()
    volumes: tuple[Volume, ...] = ()
    zone_uuid: str = ""
    cluster_uuid: str = ""
    host_uuid: str = ""
    image_uuid: str = ""
    instance_offering_uuid: str = ""
    default_l3_network_uuid: str = ""
    hypervisor_type: str = ""
    cpu_num: int = 0
    memory_size: int = 0

    @property
    def ip(self) -> str:
        """Address of the first network interface, or "" when none is attached yet."""
        return self.nics[0].ip if self.nics else ""

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any]) -> VMInstance:
        if not isinstance(raw, Mapping):
            raise ProtocolError(f"instance inventory should be an object, got {type(raw).__name__}")
        uuid = _str(raw, "uuid")
        if not uuid:
            raise ProtocolError("instance inventory has no uuid")
        return cls(
            uuid=uuid,
            name=_str(raw, "name"),
            state=_str(raw, "state"),
            nics=tuple(VMNic.from_payload(n) for n in _records(raw, "vmNics")),
            volumes=tuple(Volume.from_payload(v) for v in _records(raw, "allVolumes")),
            zone_uuid=_str(raw, "zoneUuid"),
            cluster_uuid=_str(raw, "clusterUuid"),
            host_uuid=_str(raw, "hostUuid"),
            image_uuid=_str(raw, "imageUuid"),
            instance_offering_uuid=_str(raw, "instanceOfferingUuid"),
            default_l3_network_uuid=_str(raw, "defaultL3NetworkUuid"),
            hypervisor_type=_str(raw, "hypervisorType"),
            cpu_num=_int(raw, "cpuNum"),
            memory_size=_int(raw, "memorySize"),
        )


def decode_inventory(payload: Any) -> VMInstance:
    """Decode ``{"inventory": {...}}`` from a resolved job into a VMInstance."""
    if not isinstance(payload, Mapping) or "inventory" not in payload:
        raise ProtocolError("expected an instance inventory in the job result")
    return VMInstance.from_payload(payload["inventory"])


def decode_nothing(_payload: Any) -> None:
    """Decoder for operations whose result body carries nothing of interest."""
    return None


__all__ = [
    "CreateInstanceParams",
    "CreateInstanceRequest",
    "ErrorPayload",
    "InstanceResponse",
    "InstancesResponse",
    "JobAccepted",
    "LoginRequest",
    "LoginResponse",
    "STOP_COLD",
    "STOP_GRACE",
    "StopType",
    "VMInstance",
    "VMInstancePayload",
    "VMNic",
    "Volume",
    "action_body",
    "decode_inventory",
    "decode_nothing",
    "describe_error",
    "empty_tags",
]
