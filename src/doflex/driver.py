"""Flex command dispatch and status reporting."""

import sys
from collections.abc import Sequence
from typing import TextIO

from loguru import logger

from doflex.core.command import Command, Verb, parse_command
from doflex.core.exceptions import DigitalOceanAPIError, FlexError, MountCommandError
from doflex.core.models import DriverStatus
from doflex.plugins.base import VolumePlugin


class FlexDriver:
    """Run one flex command against a plugin and report the outcome."""

    def __init__(self, plugin: VolumePlugin, output: TextIO | None = None) -> None:
        """Initialize the driver.

        Args:
            plugin: Plugin implementing the verbs.
            output: Stream the status record is written to, stdout by default.
        """
        self.plugin = plugin
        self.output = output if output is not None else sys.stdout

    async def execute(self, command: Command) -> DriverStatus:
        """Dispatch a command to the matching plugin operation."""
        plugin = self.plugin
        verb = command.verb
        options = command.options or ""
        node_name = command.node_name or ""
        device = command.device or ""
        mount_dir = command.mount_dir or ""

        if verb is Verb.INIT:
            return await plugin.init()
        elif verb is Verb.GET_VOLUME_NAME:
            return await plugin.get_volume_name(options)
        elif verb is Verb.ATTACH:
            return await plugin.attach(options, node_name)
        elif verb is Verb.DETACH:
            return await plugin.detach(device, node_name)
        elif verb is Verb.WAIT_FOR_ATTACH:
            return await plugin.wait_for_attach(device, options)
        elif verb is Verb.IS_ATTACHED:
            return await plugin.is_attached(options, node_name)
        elif verb is Verb.MOUNT_DEVICE:
            return await plugin.mount_device(mount_dir, device, options)
        elif verb is Verb.UNMOUNT_DEVICE:
            return await plugin.unmount_device(device)
        elif verb is Verb.MOUNT:
            return await plugin.mount(mount_dir, options)
        elif verb is Verb.UNMOUNT:
            return await plugin.unmount(mount_dir)
        return plugin.not_supported()

    def write_status(self, status: DriverStatus) -> None:
        """Write the status record to the output stream."""
        print(status.to_json(), file=self.output, flush=True)

    def write_error(self, error: Exception) -> None:
        """Write a failure record for ``error``."""
        if isinstance(error, (DigitalOceanAPIError, MountCommandError)):
            message = error.get_user_message()
        else:
            message = str(error) or type(error).__name__
        self.write_status(DriverStatus.failure(message))

    async def run(self, args: Sequence[str]) -> int:
        """Parse, execute and report a flex invocation.

        Args:
            args: Full argument vector, ``args[0]`` being the executable.

        Returns:
            Process exit code.
        """
        try:
            command = parse_command(args)
            logger.info(f"Executing flex command {command.verb.value}")
            status = await self.execute(command)
        except FlexError as e:
            logger.bind(**e.to_dict()).error(f"Flex command failed: {e.message}")
            self.write_error(e)
            return 1
        except Exception as e:
            logger.exception(f"Unexpected error running flex command: {e}")
            self.write_error(e)
            return 1

        logger.info(f"Flex command finished with status {status.status.value}")
        self.write_status(status)
        return 0
