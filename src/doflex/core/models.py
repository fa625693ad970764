"""Domain models for DigitalOcean resources and the flex wire format."""

import json
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from doflex.core.exceptions import InvalidOptionsError

ACTION_IN_PROGRESS = "in-progress"
ACTION_COMPLETED = "completed"
ACTION_ERRORED = "errored"


class Region(BaseModel):
    """Region a volume lives in."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    slug: str
    name: str | None = None


class Volume(BaseModel):
    """Block storage volume as reported by the API."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    name: str
    region: Region
    droplet_ids: tuple[int, ...] = ()
    size_gigabytes: int | None = None
    filesystem_type: str | None = None

    def is_attached_to(self, droplet_id: int) -> bool:
        """Check whether the volume lists the droplet among its holders."""
        return droplet_id in self.droplet_ids


class NetworkV4(BaseModel):
    """IPv4 address of a droplet."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    ip_address: str
    type: str


class Networks(BaseModel):
    """Droplet network interfaces."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    v4: tuple[NetworkV4, ...] = ()


class Droplet(BaseModel):
    """Compute node as reported by the API.

    Droplets returned by the list endpoint may carry an incomplete
    ``volume_ids``; fetch the droplet by id before deciding on attachment.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    name: str
    volume_ids: tuple[str, ...] = ()
    networks: Networks = Networks()

    def _ipv4(self, kind: str) -> str | None:
        for network in self.networks.v4:
            if network.type == kind:
                return network.ip_address
        return None

    def private_ipv4(self) -> str | None:
        """Return the private IPv4 address, if any."""
        return self._ipv4("private")

    def public_ipv4(self) -> str | None:
        """Return the public IPv4 address, if any."""
        return self._ipv4("public")

    def has_volume(self, volume_id: str) -> bool:
        """Check whether the droplet lists the volume as attached."""
        return volume_id in self.volume_ids


class Action(BaseModel):
    """Asynchronous storage action."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    status: str
    type: str | None = None
    resource_id: int | None = None
    resource_type: str | None = None
    region_slug: str | None = None
    started_at: str | None = None
    completed_at: str | None = None

    def describe(self) -> str:
        """Human readable summary used in error messages."""
        return (
            f"action {self.id} type={self.type} status={self.status} "
            f"resource={self.resource_type}:{self.resource_id} region={self.region_slug} "
            f"started_at={self.started_at}"
        )


class VolumeOptions(BaseModel):
    """Options passed by the kubelet as a JSON object."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    fs_type: str = Field(
        default="", validation_alias=AliasChoices("kubernetes.io/fsType", "fsType")
    )
    pv_or_volume_name: str = Field(
        default="",
        validation_alias=AliasChoices("kubernetes.io/pvOrVolumeName", "pvOrVolumeName"),
    )
    readwrite: str = Field(
        default="", validation_alias=AliasChoices("kubernetes.io/readwrite", "readwrite")
    )
    volume_name: str = Field(default="", validation_alias=AliasChoices("volumeName"))
    volume_id: str = Field(default="", validation_alias=AliasChoices("volumeID"))

    @classmethod
    def from_json(cls, payload: str | None) -> "VolumeOptions":
        """Decode the options payload.

        Raises:
            InvalidOptionsError: If the payload is not a JSON object.
        """
        try:
            data = json.loads(payload or "")
        except json.JSONDecodeError as e:
            raise InvalidOptionsError(f"could not decode flex options: {e}") from e
        if not isinstance(data, dict):
            raise InvalidOptionsError("flex options must be a JSON object")
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise InvalidOptionsError(f"invalid flex options: {e}") from e

    def require_volume_id(self) -> str:
        """Return the volume id or fail when it is missing."""
        if not self.volume_id:
            raise InvalidOptionsError("DigitalOcean volume needs volumeID property at flex options")
        return self.volume_id


class Status(str, Enum):
    """Flex status codes."""

    SUCCESS = "Success"
    FAILURE = "Failure"
    NOT_SUPPORTED = "Not supported"


class DriverCapabilities(BaseModel):
    """Capabilities advertised on init."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    attach: bool
    selinux_relabel: bool = Field(serialization_alias="selinuxRelabel")


class DriverStatus(BaseModel):
    """The single record written back to the kubelet."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    status: Status
    message: str | None = None
    device: str | None = None
    volume_name: str | None = Field(default=None, serialization_alias="volumeName")
    attached: bool | None = None
    capabilities: DriverCapabilities | None = Field(
        default=None, serialization_alias="Capabilities"
    )

    @classmethod
    def failure(cls, message: str) -> "DriverStatus":
        return cls(status=Status.FAILURE, message=message)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        return json.dumps(self.to_wire(), separators=(",", ":"))
