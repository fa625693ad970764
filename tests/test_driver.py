"""Tests for flex command dispatch and status output."""

import io
import json

import pytest

from doflex.core.command import Command, Verb
from doflex.core.exceptions import DigitalOceanAPIError
from doflex.core.settings import DEVICE_PREFIX
from doflex.driver import FlexDriver


def read_records(output: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in output.getvalue().splitlines()]


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def driver(plugin, output):
    return FlexDriver(plugin, output)


class TestRun:
    """Test FlexDriver.run."""

    @pytest.mark.asyncio
    async def test_init(self, driver, output):
        """Test init writes a success record with capabilities."""
        code = await driver.run(["flex", "init"])

        assert code == 0
        assert read_records(output) == [
            {
                "status": "Success",
                "message": "DigitalOcean flex driver initialized",
                "Capabilities": {"attach": True, "selinuxRelabel": True},
            }
        ]

    @pytest.mark.asyncio
    async def test_get_volume_name(self, driver, output):
        """Test get-volume-name writes the volume name."""
        code = await driver.run(["flex", "getvolumename", '{"volumeID":"id0123456789"}'])

        assert code == 0
        assert read_records(output) == [{"status": "Success", "volumeName": "id0123456789"}]

    @pytest.mark.asyncio
    async def test_attach(self, driver, output, fake_service):
        """Test attach writes the device path."""
        fake_service.add_droplet(1, "node-a")
        fake_service.add_volume("v1", "pvc-v1")

        code = await driver.run(["flex", "attach", '{"volumeID":"v1"}', "node-a"])

        assert code == 0
        assert read_records(output) == [{"status": "Success", "device": DEVICE_PREFIX + "pvc-v1"}]

    @pytest.mark.asyncio
    async def test_missing_verb_writes_failure(self, driver, output):
        """Test a missing verb writes a failure record."""
        code = await driver.run(["flex"])

        assert code == 1
        records = read_records(output)
        assert len(records) == 1
        assert records[0]["status"] == "Failure"
        assert "no flex command" in records[0]["message"]

    @pytest.mark.asyncio
    async def test_unknown_verb_writes_failure(self, driver, output):
        """Test an unknown verb writes a failure record."""
        code = await driver.run(["flex", "resize", "x"])

        assert code == 1
        assert read_records(output)[0]["status"] == "Failure"

    @pytest.mark.asyncio
    async def test_operation_failure(self, driver, output, fake_service):
        """Test a failing operation writes its message and exits non-zero."""
        code = await driver.run(["flex", "detach", "dev-v1", "node-a"])

        assert code == 1
        records = read_records(output)
        assert records == [{"status": "Failure", "message": records[0]["message"]}]
        assert "dev-v1" in records[0]["message"]
        assert fake_service.calls == []

    @pytest.mark.asyncio
    async def test_api_error_uses_user_message(self, driver, output, fake_service):
        """Test API errors are reported with their user message."""
        fake_service.add_droplet(1, "node-a")

        code = await driver.run(["flex", "attach", '{"volumeID":"gone"}', "node-a"])

        assert code == 1
        message = read_records(output)[0]["message"]
        assert "Requested resource not found" in message
        assert "404" in message

    @pytest.mark.asyncio
    async def test_unexpected_error_still_reports(self, driver, output, fake_service):
        """Test unexpected exceptions still produce a failure record."""
        async def broken():
            raise RuntimeError("boom")

        fake_service.list_droplets = broken

        code = await driver.run(["flex", "attach", '{"volumeID":"v1"}', "node-a"])

        assert code == 1
        assert read_records(output) == [{"status": "Failure", "message": "boom"}]

    @pytest.mark.asyncio
    async def test_not_supported(self, driver, output):
        """Test an unsupported verb exits zero with a not supported record."""
        code = await driver.run(["flex", "mount", "/mnt/a", "{}"])

        assert code == 0
        assert read_records(output) == [{"status": "Not supported", "message": "mount"}]


class TestExecute:
    """Test FlexDriver.execute dispatch."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "command",
        [
            Command(verb=Verb.WAIT_FOR_ATTACH, device=DEVICE_PREFIX + "x", options="{}"),
            Command(verb=Verb.MOUNT_DEVICE, mount_dir="/m", device=DEVICE_PREFIX + "x", options="{}"),
            Command(verb=Verb.UNMOUNT_DEVICE, device=DEVICE_PREFIX + "x"),
            Command(verb=Verb.UNMOUNT, mount_dir="/m"),
        ],
    )
    async def test_unsupported_verbs_are_well_formed(self, driver, command):
        """Test every unsupported verb writes valid JSON."""
        status = await driver.execute(command)
        assert status.to_wire()["status"] == "Not supported"

    @pytest.mark.asyncio
    async def test_remote_error_propagates(self, driver, fake_service):
        """Test execute lets remote errors propagate to the caller."""
        fake_service.add_droplet(1, "node-a")

        with pytest.raises(DigitalOceanAPIError):
            await driver.execute(
                Command(verb=Verb.ATTACH, options='{"volumeID":"missing"}', node_name="node-a")
            )
