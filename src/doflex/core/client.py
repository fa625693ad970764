"""Remote volume service client.

``VolumeServiceClient`` is the contract the lifecycle engine and the node
resolver depend on. ``DigitalOceanClient`` implements it over the DigitalOcean
v2 REST API.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, TypeVar

import httpx
from loguru import logger
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from doflex.core.credentials import get_token
from doflex.core.exceptions import AmbiguousVolumeError, DigitalOceanAPIError, ErrorCode
from doflex.core.models import Action, Droplet, Volume
from doflex.core.settings import settings

M = TypeVar("M", bound=BaseModel)


class VolumeServiceClient(ABC):
    """Query and mutate volumes and droplets.

    Every query returns a fresh immutable snapshot; callers re-fetch instead
    of holding on to previous results.
    """

    @abstractmethod
    async def get_volume(self, volume_id: str) -> Volume:
        """Get a volume by id."""

    @abstractmethod
    async def list_volumes(
        self, name: str | None = None, region: str | None = None
    ) -> list[Volume]:
        """List volumes, optionally filtered by name and region."""

    async def get_volume_by_name(self, name: str, region: str) -> Volume:
        """Get the single volume with the given name in a region.

        Raises:
            AmbiguousVolumeError: If the lookup does not match exactly one volume.
        """
        volumes = await self.list_volumes(name=name, region=region)
        if len(volumes) != 1:
            raise AmbiguousVolumeError(name, region, len(volumes))
        return volumes[0]

    @abstractmethod
    async def get_droplet(self, droplet_id: int) -> Droplet:
        """Get a droplet by id."""

    @abstractmethod
    async def list_droplets(self) -> list[Droplet]:
        """List every droplet in the account, across all pages."""

    @abstractmethod
    async def request_attach(self, volume_id: str, droplet_id: int) -> Action:
        """Ask for a volume to be attached to a droplet."""

    @abstractmethod
    async def request_detach(self, volume_id: str, droplet_id: int) -> Action:
        """Ask for a volume to be detached from a droplet."""

    @abstractmethod
    async def get_action(self, volume_id: str, action_id: int) -> Action:
        """Get the current state of a volume action."""

    @abstractmethod
    async def current_region(self) -> str:
        """Region slug of the droplet the driver runs on."""

    async def close(self) -> None:
        """Release underlying resources."""


class DigitalOceanClient(VolumeServiceClient):
    """DigitalOcean API client backed by ``httpx.AsyncClient``."""

    def __init__(
        self,
        token: str | None = None,
        *,
        api_url: str | None = None,
        metadata_url: str | None = None,
        timeout: float | None = None,
        page_size: int | None = None,
        token_provider: Callable[[], str] = get_token,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        No network traffic happens until the first request; the token is
        discovered at that point when not given.

        Args:
            token: API token. Looked up with ``token_provider`` when None.
            api_url: API base URL.
            metadata_url: Droplet metadata region endpoint.
            timeout: Per-request timeout in seconds.
            page_size: Items per page for list endpoints.
            token_provider: Callable returning a token.
            transport: Custom httpx transport (used by tests).
        """
        self._token = token
        self._token_provider = token_provider
        self._api_url = api_url or settings.api_url
        self._metadata_url = metadata_url or settings.metadata_url
        self._timeout = timeout if timeout is not None else settings.http_timeout
        self._page_size = page_size or settings.page_size
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_headers(self) -> dict[str, str]:
        """Get request headers with the API token."""
        if self._token is None:
            self._token = self._token_provider()
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {self._token}",
        }

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._api_url,
                headers=self._get_headers(),
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    @staticmethod
    def _api_error(resp: httpx.Response) -> DigitalOceanAPIError:
        """Build an error from a non-success API response."""
        message = resp.reason_phrase or "request failed"
        error_id = None
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = body.get("message") or message
            error_id = body.get("id")
        return DigitalOceanAPIError(message, status_code=resp.status_code, error_id=error_id)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an API request and return the decoded JSON body.

        Raises:
            DigitalOceanAPIError: On transport failures, error statuses or
                undecodable bodies.
        """
        client = await self._get_client()
        logger.debug(f"{method} {path} params={params}")
        try:
            resp = await client.request(method, path, params=params, json=json)
        except httpx.TimeoutException as e:
            raise DigitalOceanAPIError(
                f"{method} {path} timed out: {e}", code=ErrorCode.TIMEOUT
            ) from e
        except httpx.HTTPError as e:
            raise DigitalOceanAPIError(f"{method} {path} failed: {e}") from e

        if resp.is_error:
            raise self._api_error(resp)

        try:
            data = resp.json()
        except ValueError as e:
            raise DigitalOceanAPIError(
                f"could not decode response of {method} {path}: {e}", code=ErrorCode.DECODE_FAILED
            ) from e
        if not isinstance(data, dict):
            raise DigitalOceanAPIError(
                f"unexpected response body of {method} {path}", code=ErrorCode.DECODE_FAILED
            )
        return data

    @staticmethod
    def _decode(model: type[M], data: dict[str, Any], key: str) -> M:
        try:
            return model.model_validate(data[key])
        except (KeyError, PydanticValidationError) as e:
            raise DigitalOceanAPIError(
                f"could not decode {key!r} from response: {e}", code=ErrorCode.DECODE_FAILED
            ) from e

    @staticmethod
    def _is_last_page(data: dict[str, Any]) -> bool:
        pages = (data.get("links") or {}).get("pages") or {}
        return "next" not in pages

    async def _list_all(
        self, path: str, key: str, model: type[M], params: dict[str, Any] | None = None
    ) -> list[M]:
        """Fetch every page of a list endpoint."""
        items: list[M] = []
        page = 1
        while True:
            query = {**(params or {}), "page": page, "per_page": self._page_size}
            data = await self._request("GET", path, params=query)
            try:
                items.extend(model.model_validate(item) for item in data.get(key) or [])
            except PydanticValidationError as e:
                raise DigitalOceanAPIError(
                    f"could not decode {key!r} page {page}: {e}", code=ErrorCode.DECODE_FAILED
                ) from e
            if self._is_last_page(data):
                break
            page += 1
        logger.debug(f"Listed {len(items)} {key} over {page} page(s)")
        return items

    async def get_volume(self, volume_id: str) -> Volume:
        data = await self._request("GET", f"/volumes/{volume_id}")
        return self._decode(Volume, data, "volume")

    async def list_volumes(
        self, name: str | None = None, region: str | None = None
    ) -> list[Volume]:
        params = {}
        if name is not None:
            params["name"] = name
        if region is not None:
            params["region"] = region
        return await self._list_all("/volumes", "volumes", Volume, params)

    async def get_droplet(self, droplet_id: int) -> Droplet:
        data = await self._request("GET", f"/droplets/{droplet_id}")
        return self._decode(Droplet, data, "droplet")

    async def list_droplets(self) -> list[Droplet]:
        return await self._list_all("/droplets", "droplets", Droplet)

    async def _volume_action(self, volume_id: str, droplet_id: int, action_type: str) -> Action:
        data = await self._request(
            "POST",
            f"/volumes/{volume_id}/actions",
            json={"type": action_type, "droplet_id": droplet_id},
        )
        action = self._decode(Action, data, "action")
        logger.info(
            f"Requested {action_type} of volume {volume_id} on droplet {droplet_id}: "
            f"action {action.id} is {action.status}"
        )
        return action

    async def request_attach(self, volume_id: str, droplet_id: int) -> Action:
        return await self._volume_action(volume_id, droplet_id, "attach")

    async def request_detach(self, volume_id: str, droplet_id: int) -> Action:
        return await self._volume_action(volume_id, droplet_id, "detach")

    async def get_action(self, volume_id: str, action_id: int) -> Action:
        data = await self._request("GET", f"/volumes/{volume_id}/actions/{action_id}")
        return self._decode(Action, data, "action")

    async def current_region(self) -> str:
        """Read the region slug from the droplet metadata service."""
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.get(self._metadata_url)
        except httpx.TimeoutException as e:
            raise DigitalOceanAPIError(
                f"droplet metadata request timed out: {e}", code=ErrorCode.TIMEOUT
            ) from e
        except httpx.HTTPError as e:
            raise DigitalOceanAPIError(f"droplet metadata request failed: {e}") from e

        if resp.status_code != httpx.codes.OK:
            raise DigitalOceanAPIError(
                "error retrieving droplet region", status_code=resp.status_code
            )
        return resp.text.strip()
