"""DigitalOcean block storage flex plugin."""

from loguru import logger

from doflex.core.client import VolumeServiceClient
from doflex.core.lifecycle import LifecycleEngine, volume_name_from_device
from doflex.core.models import DriverCapabilities, DriverStatus, VolumeOptions
from doflex.core.mounter import DeviceMounter
from doflex.core.resolver import NodeResolver
from doflex.core.settings import settings
from doflex.plugins.base import VolumePlugin


class DigitalOceanVolumePlugin(VolumePlugin):
    """Attach DigitalOcean volumes to the droplets backing Kubernetes nodes."""

    name = "digitalocean"

    def __init__(
        self,
        client: VolumeServiceClient,
        *,
        attach_timeout: float | None = None,
        poll_interval: float | None = None,
        mounter: DeviceMounter | None = None,
    ) -> None:
        """Initialize the plugin.

        Args:
            client: Remote volume service.
            attach_timeout: Seconds to wait for attach and detach actions.
            poll_interval: Seconds between action status checks.
            mounter: Device mount helper. mount-device and unmount-device are
                reported as not supported without one.
        """
        self.client = client
        self.engine = LifecycleEngine(client, poll_interval)
        self.resolver = NodeResolver(client)
        self.attach_timeout = (
            attach_timeout if attach_timeout is not None else settings.attach_timeout
        )
        self.mounter = mounter

    async def init(self) -> DriverStatus:
        return self.success(
            message="DigitalOcean flex driver initialized",
            capabilities=DriverCapabilities(attach=True, selinux_relabel=True),
        )

    async def get_volume_name(self, options: str) -> DriverStatus:
        opts = VolumeOptions.from_json(options)
        return self.success(volume_name=opts.require_volume_id())

    async def attach(self, options: str, node_name: str) -> DriverStatus:
        volume_id = VolumeOptions.from_json(options).require_volume_id()
        droplet = await self.resolver.resolve(node_name)
        device = await self.engine.attach(volume_id, droplet.id, self.attach_timeout)
        return self.success(device=device)

    async def detach(self, device: str, node_name: str) -> DriverStatus:
        volume_name = volume_name_from_device(device)
        region = await self.client.current_region()
        volume = await self.client.get_volume_by_name(volume_name, region)
        droplet = await self.resolver.resolve(node_name)
        await self.engine.detach(volume.id, droplet.id, self.attach_timeout)
        return self.success()

    async def is_attached(self, options: str, node_name: str) -> DriverStatus:
        volume_id = VolumeOptions.from_json(options).require_volume_id()
        droplet = await self.resolver.resolve(node_name)
        attached = await self.engine.is_attached(volume_id, droplet.id)
        return self.success(attached=attached)

    async def wait_for_attach(self, device: str, options: str) -> DriverStatus:
        # attach already blocks until the action completes
        return self.not_supported()

    async def mount_device(self, mount_dir: str, device: str, options: str) -> DriverStatus:
        if self.mounter is None:
            return self.not_supported()
        opts = VolumeOptions.from_json(options)
        await self.mounter.mount(mount_dir, device, opts.fs_type)
        return self.success()

    async def unmount_device(self, device: str) -> DriverStatus:
        if self.mounter is None:
            return self.not_supported()
        await self.mounter.unmount_device(device)
        logger.debug(f"Device {device} released")
        return self.success()

    async def mount(self, mount_dir: str, options: str) -> DriverStatus:
        return self.not_supported("mount")

    async def unmount(self, mount_dir: str) -> DriverStatus:
        return self.not_supported("unmount")
