"""Base class for flex volume plugins."""

from abc import ABC, abstractmethod
from typing import ClassVar

from doflex.core.models import DriverStatus, Status


class VolumePlugin(ABC):
    """Operations a flex volume plugin implements, one per verb.

    Every operation returns a DriverStatus on success and raises on failure.
    """

    name: ClassVar[str]

    @abstractmethod
    async def init(self) -> DriverStatus:
        """Initialize the driver and report its capabilities."""

    @abstractmethod
    async def get_volume_name(self, options: str) -> DriverStatus:
        """Return a unique name for the volume described by ``options``."""

    @abstractmethod
    async def attach(self, options: str, node_name: str) -> DriverStatus:
        """Attach the volume to the node and report its device path."""

    @abstractmethod
    async def detach(self, device: str, node_name: str) -> DriverStatus:
        """Detach the volume behind ``device`` from the node."""

    @abstractmethod
    async def is_attached(self, options: str, node_name: str) -> DriverStatus:
        """Report whether the volume is attached to the node."""

    async def wait_for_attach(self, device: str, options: str) -> DriverStatus:
        return self.not_supported()

    async def mount_device(self, mount_dir: str, device: str, options: str) -> DriverStatus:
        return self.not_supported()

    async def unmount_device(self, device: str) -> DriverStatus:
        return self.not_supported()

    async def mount(self, mount_dir: str, options: str) -> DriverStatus:
        return self.not_supported()

    async def unmount(self, mount_dir: str) -> DriverStatus:
        return self.not_supported()

    @staticmethod
    def not_supported(message: str | None = None) -> DriverStatus:
        return DriverStatus(status=Status.NOT_SUPPORTED, message=message)

    @staticmethod
    def success(**fields: object) -> DriverStatus:
        return DriverStatus(status=Status.SUCCESS, **fields)  # type: ignore[arg-type]
