"""Format and mount attached block devices."""

import asyncio
import os
import stat
from typing import Any

from loguru import logger

from doflex.core.exceptions import ErrorCode, MountCommandError
from doflex.core.settings import settings


class DeviceMounter:
    """Thin wrapper over findmnt, lsblk, mkfs, mount and umount."""

    def __init__(self, default_fs_type: str | None = None) -> None:
        self.default_fs_type = default_fs_type or settings.default_fs_type

    async def run_command(self, cmd: list[str], check: bool = True) -> dict[str, Any]:
        """Run an external command.

        Args:
            cmd: Command and arguments.
            check: Raise on a non-zero exit code.

        Returns:
            Dictionary with ``stdout``, ``stderr`` and ``returncode``.

        Raises:
            MountCommandError: If the command cannot start, or fails and
                ``check`` is set.
        """
        logger.debug(f"Running {' '.join(cmd)}")
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise MountCommandError(cmd, 127, str(e), ErrorCode.COMMAND_NOT_FOUND) from e
        except PermissionError as e:
            raise MountCommandError(cmd, 126, str(e), ErrorCode.PERMISSION_DENIED) from e

        stdout, stderr = await proc.communicate()
        result = {
            "stdout": stdout.decode(errors="replace"),
            "stderr": stderr.decode(errors="replace"),
            "returncode": proc.returncode,
        }
        if check and proc.returncode != 0:
            output = (result["stderr"] or result["stdout"]).strip()
            raise MountCommandError(cmd, proc.returncode or 1, output)
        return result

    async def is_mounted(self, target_dir: str) -> bool:
        """Check whether something is mounted at ``target_dir``."""
        # findmnt exits 1 when nothing matches
        result = await self.run_command(["findmnt", "-n", target_dir], check=False)
        if result["returncode"] not in (0, 1):
            raise MountCommandError(
                ["findmnt", "-n", target_dir], result["returncode"], result["stderr"].strip()
            )
        words = result["stdout"].split()
        return bool(words) and words[0] == target_dir

    async def current_format(self, device: str) -> str:
        """Return the filesystem on ``device``, empty when unformatted."""
        result = await self.run_command(["lsblk", "-n", "-o", "FSTYPE", device])
        lines = result["stdout"].rstrip("\n").split("\n")
        if lines[0].strip():
            return lines[0].strip()
        if len(lines) == 1:
            return ""
        # Dependent devices, most probably partitions
        return "unknown data, probably partitions"

    @staticmethod
    def ensure_block_device(device: str) -> None:
        try:
            mode = os.stat(device).st_mode
        except OSError as e:
            raise MountCommandError(
                ["stat", device], 1, f"could not stat device {device}: {e}",
                ErrorCode.RESOURCE_NOT_FOUND,
            ) from e
        if not stat.S_ISBLK(mode):
            raise MountCommandError(
                ["stat", device], 1, f"device {device} is not a block device",
                ErrorCode.VALIDATION_FAILED,
            )

    async def mount(self, target_dir: str, device: str, fs_type: str = "") -> None:
        """Mount ``device`` at ``target_dir``, formatting it first if needed."""
        fs_type = fs_type or self.default_fs_type

        self.ensure_block_device(device)

        if await self.is_mounted(target_dir):
            logger.info(f"{target_dir} is already mounted")
            return

        current = await self.current_format(device)
        if current != fs_type:
            logger.info(f"Formatting {device} as {fs_type} (found {current or 'no filesystem'})")
            await self.run_command(["mkfs", "-t", fs_type, device])

        os.makedirs(target_dir, exist_ok=True)
        await self.run_command(["mount", device, target_dir])
        logger.info(f"Mounted {device} at {target_dir}")

    async def unmount_device(self, device: str) -> None:
        """Unmount every mount point backed by ``device``."""
        result = await self.run_command(
            ["findmnt", "-n", "-o", "TARGET", "--source", device], check=False
        )
        targets = [line.strip() for line in result["stdout"].splitlines() if line.strip()]
        if not targets:
            logger.info(f"{device} is not mounted")
            return
        for target in targets:
            await self.run_command(["umount", target])
            logger.info(f"Unmounted {target}")
