"""Shared test fixtures."""

from typing import Any

import pytest

from doflex.core.client import VolumeServiceClient
from doflex.core.exceptions import DigitalOceanAPIError
from doflex.core.models import Action, Droplet, Volume
from doflex.plugins.digitalocean import DigitalOceanVolumePlugin

MUTATIONS = ("request_attach", "request_detach")


class FakeVolumeService(VolumeServiceClient):
    """In-memory volume service recording every call."""

    def __init__(self) -> None:
        self.volumes: dict[str, Volume] = {}
        self.droplets: dict[int, Droplet] = {}
        # Droplets as returned by the list endpoint, without volume ids
        self.listed: list[Droplet] = []
        # Successive get_action results; the last one repeats
        self.action_results: list[str | Exception] = ["completed"]
        self.region = "nyc3"
        self.calls: list[tuple[Any, ...]] = []
        self._next_action_id = 100

    def add_volume(
        self, volume_id: str, name: str, droplet_ids: tuple[int, ...] = (), region: str = "nyc3"
    ) -> Volume:
        volume = Volume(id=volume_id, name=name, region={"slug": region}, droplet_ids=droplet_ids)
        self.volumes[volume_id] = volume
        return volume

    def add_droplet(
        self,
        droplet_id: int,
        name: str,
        volume_ids: tuple[str, ...] = (),
        private: str | None = None,
        public: str | None = None,
    ) -> Droplet:
        v4 = []
        if private:
            v4.append({"ip_address": private, "type": "private"})
        if public:
            v4.append({"ip_address": public, "type": "public"})
        droplet = Droplet(
            id=droplet_id, name=name, volume_ids=volume_ids, networks={"v4": v4}
        )
        self.droplets[droplet_id] = droplet
        self.listed.append(droplet.model_copy(update={"volume_ids": ()}))
        return droplet

    @property
    def mutations(self) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] in MUTATIONS]

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    async def get_volume(self, volume_id: str) -> Volume:
        self.calls.append(("get_volume", volume_id))
        try:
            return self.volumes[volume_id]
        except KeyError:
            raise DigitalOceanAPIError("volume not found", status_code=404) from None

    async def list_volumes(self, name: str | None = None, region: str | None = None) -> list[Volume]:
        self.calls.append(("list_volumes", name, region))
        return [
            v
            for v in self.volumes.values()
            if (name is None or v.name == name) and (region is None or v.region.slug == region)
        ]

    async def get_droplet(self, droplet_id: int) -> Droplet:
        self.calls.append(("get_droplet", droplet_id))
        try:
            return self.droplets[droplet_id]
        except KeyError:
            raise DigitalOceanAPIError("droplet not found", status_code=404) from None

    async def list_droplets(self) -> list[Droplet]:
        self.calls.append(("list_droplets",))
        return list(self.listed)

    def _new_action(self, action_type: str) -> Action:
        self._next_action_id += 1
        return Action(id=self._next_action_id, status="in-progress", type=action_type)

    async def request_attach(self, volume_id: str, droplet_id: int) -> Action:
        self.calls.append(("request_attach", volume_id, droplet_id))
        return self._new_action("attach")

    async def request_detach(self, volume_id: str, droplet_id: int) -> Action:
        self.calls.append(("request_detach", volume_id, droplet_id))
        return self._new_action("detach")

    async def get_action(self, volume_id: str, action_id: int) -> Action:
        self.calls.append(("get_action", volume_id, action_id))
        result = self.action_results.pop(0) if len(self.action_results) > 1 else self.action_results[0]
        if isinstance(result, Exception):
            raise result
        return Action(id=action_id, status=result, type="attach", resource_id=1)

    async def current_region(self) -> str:
        self.calls.append(("current_region",))
        return self.region


@pytest.fixture
def fake_service() -> FakeVolumeService:
    """Create an empty fake volume service."""
    return FakeVolumeService()


@pytest.fixture
def plugin(fake_service: FakeVolumeService) -> DigitalOceanVolumePlugin:
    """Create a plugin with fast polling over the fake service."""
    return DigitalOceanVolumePlugin(fake_service, attach_timeout=2.0, poll_interval=0.001)
