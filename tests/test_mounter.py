"""Tests for the device mount helper."""

import pytest

from doflex.core.exceptions import ErrorCode, MountCommandError
from doflex.core.mounter import DeviceMounter

DEVICE = "/dev/disk/by-id/scsi-0DO_Volume_pvc-1"


def result(stdout: str = "", returncode: int = 0, stderr: str = "") -> dict:
    return {"stdout": stdout, "stderr": stderr, "returncode": returncode}


class ScriptedMounter(DeviceMounter):
    """Mounter whose commands answer from a table keyed by executable."""

    def __init__(self, outputs: dict[str, dict]) -> None:
        super().__init__("ext4")
        self.outputs = outputs
        self.commands: list[list[str]] = []

    async def run_command(self, cmd, check=True):
        self.commands.append(cmd)
        return self.outputs.get(cmd[0], result())

    def ran(self, name: str) -> bool:
        return any(cmd[0] == name for cmd in self.commands)


@pytest.fixture(autouse=True)
def block_device(monkeypatch):
    """Treat every device as a block device."""
    monkeypatch.setattr(DeviceMounter, "ensure_block_device", staticmethod(lambda device: None))


class TestIsMounted:
    """Test DeviceMounter.is_mounted."""

    @pytest.mark.asyncio
    async def test_mounted(self):
        """Test findmnt success means mounted."""
        mounter = ScriptedMounter({"findmnt": result(f"/mnt/a {DEVICE} ext4 rw,relatime\n")})
        assert await mounter.is_mounted("/mnt/a") is True

    @pytest.mark.asyncio
    async def test_not_mounted(self):
        """Test findmnt exit code 1 means not mounted."""
        mounter = ScriptedMounter({"findmnt": result("", returncode=1)})
        assert await mounter.is_mounted("/mnt/a") is False

    @pytest.mark.asyncio
    async def test_findmnt_failure(self):
        """Test other findmnt failures raise."""
        mounter = ScriptedMounter({"findmnt": result("", returncode=4, stderr="bad usage")})
        with pytest.raises(MountCommandError):
            await mounter.is_mounted("/mnt/a")


class TestCurrentFormat:
    """Test DeviceMounter.current_format."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "output, expected",
        [
            ("ext4\n", "ext4"),
            ("\n", ""),
            ("\n\nxfs\n", "unknown data, probably partitions"),
        ],
    )
    async def test_formats(self, output, expected):
        """Test the current filesystem type is read from lsblk."""
        mounter = ScriptedMounter({"lsblk": result(output)})
        assert await mounter.current_format(DEVICE) == expected


class TestMount:
    """Test DeviceMounter.mount."""

    @pytest.mark.asyncio
    async def test_formats_and_mounts_fresh_device(self, tmp_path):
        """Test an unformatted device is formatted before mounting."""
        target = tmp_path / "mnt"
        mounter = ScriptedMounter({"findmnt": result(returncode=1), "lsblk": result("\n")})

        await mounter.mount(str(target), DEVICE, "")

        assert ["mkfs", "-t", "ext4", DEVICE] in mounter.commands
        assert ["mount", DEVICE, str(target)] in mounter.commands
        assert target.is_dir()

    @pytest.mark.asyncio
    async def test_keeps_matching_filesystem(self, tmp_path):
        """Test a formatted device is mounted without mkfs."""
        mounter = ScriptedMounter({"findmnt": result(returncode=1), "lsblk": result("xfs\n")})

        await mounter.mount(str(tmp_path / "mnt"), DEVICE, "xfs")

        assert not mounter.ran("mkfs")
        assert mounter.ran("mount")

    @pytest.mark.asyncio
    async def test_already_mounted_is_noop(self, tmp_path):
        """Test a mounted target is left alone."""
        target = str(tmp_path)
        mounter = ScriptedMounter({"findmnt": result(f"{target} {DEVICE} ext4 rw\n")})

        await mounter.mount(target, DEVICE, "ext4")

        assert mounter.commands == [["findmnt", "-n", target]]


class TestUnmountDevice:
    """Test DeviceMounter.unmount_device."""

    @pytest.mark.asyncio
    async def test_unmounts_every_target(self):
        """Test every mount of the device is unmounted."""
        mounter = ScriptedMounter({"findmnt": result("/mnt/a\n/mnt/b\n")})

        await mounter.unmount_device(DEVICE)

        assert ["umount", "/mnt/a"] in mounter.commands
        assert ["umount", "/mnt/b"] in mounter.commands

    @pytest.mark.asyncio
    async def test_not_mounted_is_noop(self):
        """Test an unmounted device needs no umount."""
        mounter = ScriptedMounter({"findmnt": result("", returncode=1)})

        await mounter.unmount_device(DEVICE)

        assert not mounter.ran("umount")


class TestRunCommand:
    """Test DeviceMounter.run_command."""

    @pytest.mark.asyncio
    async def test_missing_executable(self):
        """Test a missing executable raises a not found error."""
        with pytest.raises(MountCommandError) as exc_info:
            await DeviceMounter().run_command(["doflex-no-such-binary"])

        assert exc_info.value.code == ErrorCode.COMMAND_NOT_FOUND
        assert exc_info.value.returncode == 127

    @pytest.mark.asyncio
    async def test_failure_raises(self):
        """Test a failing command raises MountCommandError."""
        with pytest.raises(MountCommandError) as exc_info:
            await DeviceMounter().run_command(["sh", "-c", "echo 'target is busy' >&2; exit 32"])

        assert exc_info.value.returncode == 32
        assert exc_info.value.code == ErrorCode.RESOURCE_BUSY

    @pytest.mark.asyncio
    async def test_unchecked_failure_returns_result(self):
        """Test unchecked commands return their result."""
        out = await DeviceMounter().run_command(["sh", "-c", "echo out; exit 1"], check=False)

        assert out["returncode"] == 1
        assert out["stdout"] == "out\n"


class TestEnsureBlockDevice:
    """Test block device validation."""

    @pytest.fixture(autouse=True)
    def block_device(self):
        """Use the real check."""

    def test_regular_file_rejected(self, tmp_path):
        """Test a regular file is not accepted as a block device."""
        path = tmp_path / "disk.img"
        path.write_bytes(b"")

        with pytest.raises(MountCommandError) as exc_info:
            DeviceMounter.ensure_block_device(str(path))

        assert "not a block device" in exc_info.value.stderr

    def test_missing_device(self, tmp_path):
        """Test a missing device path is rejected."""
        with pytest.raises(MountCommandError) as exc_info:
            DeviceMounter.ensure_block_device(str(tmp_path / "nope"))

        assert exc_info.value.code == ErrorCode.RESOURCE_NOT_FOUND


def test_mount_command_error_user_message():
    """Test MountCommandError carries remediation hints."""
    error = MountCommandError(["mount", DEVICE, "/mnt/a"], 127, "mount: not found")

    assert error.code == ErrorCode.COMMAND_NOT_FOUND
    assert "util-linux" in error.get_user_message()
    assert error.to_dict()["command"] == ["mount", DEVICE, "/mnt/a"]
