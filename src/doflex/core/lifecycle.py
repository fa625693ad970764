"""Attach/detach lifecycle engine.

Attach and detach are idempotent: the engine re-fetches the droplet or volume
before deciding whether a storage action is needed, and only then issues it.
Issued actions are polled until they reach a terminal status or the deadline
passes.

Device paths are derived from the volume *name*, which is how the host names
the block device under ``/dev/disk/by-id``. ``volume_name_from_device`` is the
exact inverse; turning that name back into a volume id requires a lookup by
name and region.
"""

import asyncio
from enum import Enum

from loguru import logger

from doflex.core.client import VolumeServiceClient
from doflex.core.exceptions import (
    ActionTimeoutError,
    AttachTimeoutError,
    DetachTimeoutError,
    DigitalOceanAPIError,
    NotAProviderDeviceError,
    RemoteActionFailedError,
    UnexpectedActionStatusError,
)
from doflex.core.models import ACTION_COMPLETED, ACTION_ERRORED, ACTION_IN_PROGRESS, Action
from doflex.core.settings import DEVICE_PREFIX, settings


def device_path_for(volume_name: str) -> str:
    """Device path the host exposes for an attached volume."""
    return DEVICE_PREFIX + volume_name


def volume_name_from_device(device: str) -> str:
    """Extract the volume name from a device path.

    Raises:
        NotAProviderDeviceError: If the path is not a DigitalOcean volume device.
    """
    if not device.startswith(DEVICE_PREFIX):
        raise NotAProviderDeviceError(device)
    name = device[len(DEVICE_PREFIX):]
    if not name:
        raise NotAProviderDeviceError(device)
    return name


class ActionKind(Enum):
    """Kind of volume mutation being awaited."""

    ATTACH = "attach"
    DETACH = "detach"

    @property
    def timeout_error(self) -> type[ActionTimeoutError]:
        return AttachTimeoutError if self is ActionKind.ATTACH else DetachTimeoutError


class LifecycleEngine:
    """Decide on, issue, and wait for volume attach and detach actions."""

    def __init__(self, client: VolumeServiceClient, poll_interval: float | None = None) -> None:
        """Initialize the engine.

        Args:
            client: Remote volume service.
            poll_interval: Seconds between action status checks.
        """
        self.client = client
        self.poll_interval = poll_interval if poll_interval is not None else settings.poll_interval

    async def attach(self, volume_id: str, droplet_id: int, timeout: float) -> str:
        """Attach a volume to a droplet and return its device path.

        Nothing is requested when the droplet already lists the volume.
        """
        droplet = await self.client.get_droplet(droplet_id)
        volume = await self.client.get_volume(volume_id)

        if droplet.has_volume(volume_id):
            logger.info(f"Volume {volume_id} already attached to droplet {droplet_id}")
        else:
            action = await self.client.request_attach(volume_id, droplet_id)
            await self.wait_for_action(volume_id, action, timeout, ActionKind.ATTACH)
            logger.info(f"Attached volume {volume_id} to droplet {droplet_id}")

        return device_path_for(volume.name)

    async def detach(self, volume_id: str, droplet_id: int, timeout: float) -> None:
        """Detach a volume from a droplet.

        Nothing is requested when the volume does not list the droplet.
        """
        volume = await self.client.get_volume(volume_id)

        if not volume.is_attached_to(droplet_id):
            logger.info(f"Volume {volume_id} is not attached to droplet {droplet_id}")
            return

        action = await self.client.request_detach(volume_id, droplet_id)
        await self.wait_for_action(volume_id, action, timeout, ActionKind.DETACH)
        logger.info(f"Detached volume {volume_id} from droplet {droplet_id}")

    async def is_attached(self, volume_id: str, droplet_id: int) -> bool:
        """Check whether the droplet currently lists the volume."""
        droplet = await self.client.get_droplet(droplet_id)
        return droplet.has_volume(volume_id)

    async def wait_for_action(
        self, volume_id: str, action: Action, timeout: float, kind: ActionKind
    ) -> Action:
        """Poll an action until it completes.

        Fetch errors during a tick are remembered and polling goes on; the
        last one is reported if the deadline passes.

        Returns:
            The completed action.

        Raises:
            RemoteActionFailedError: The action errored.
            UnexpectedActionStatusError: The action reported an unknown status.
            AttachTimeoutError: Attach did not complete before the deadline.
            DetachTimeoutError: Detach did not complete before the deadline.
        """
        last_error: DigitalOceanAPIError | None = None
        logger.debug(f"Waiting up to {timeout}s for {kind.value} action {action.id}")

        try:
            async with asyncio.timeout(timeout):
                while True:
                    await asyncio.sleep(self.poll_interval)
                    try:
                        current = await self.client.get_action(volume_id, action.id)
                    except DigitalOceanAPIError as e:
                        logger.warning(f"Polling action {action.id} failed: {e}")
                        last_error = e
                        continue

                    if current.status == ACTION_COMPLETED:
                        return current
                    if current.status == ACTION_ERRORED:
                        raise RemoteActionFailedError(current.describe())
                    if current.status != ACTION_IN_PROGRESS:
                        raise UnexpectedActionStatusError(current.status)
        except TimeoutError:
            raise kind.timeout_error(volume_id, last_error) from last_error
