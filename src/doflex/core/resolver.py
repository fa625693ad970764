"""Map Kubernetes node names to droplets."""

from loguru import logger

from doflex.core.client import VolumeServiceClient
from doflex.core.exceptions import NodeNotFoundError
from doflex.core.models import Droplet


class NodeResolver:
    """Find the droplet behind a Kubernetes node name.

    Droplet and node names are expected to match. When they don't (hostname
    or DNS diverging from the droplet name), the node name is compared with
    each droplet's private and then public IPv4 address.
    """

    def __init__(self, client: VolumeServiceClient) -> None:
        self.client = client

    async def resolve(self, node_name: str) -> Droplet:
        """Resolve a node name to a droplet.

        Raises:
            NodeNotFoundError: If no droplet name or address matches.
        """
        droplets = await self.client.list_droplets()

        for droplet in droplets:
            if droplet.name == node_name:
                return droplet

        for droplet in droplets:
            if node_name in (droplet.private_ipv4(), droplet.public_ipv4()):
                logger.info(f"Node {node_name} matched droplet {droplet.name} by address")
                return droplet

        raise NodeNotFoundError(node_name)
