"""
HTTP client for the anchor sync server.

Talks to the bulk endpoints (``GET /anchors``, ``POST /anchors``) with a
bearer token. Failures surface as store errors so the manager handles them
the same way as a document store failure.
"""

from typing import List, Optional, Sequence

import httpx

from chore_anchors.config import Settings
from chore_anchors.errors import StoreRejected, StoreUnavailable
from chore_anchors.logging_config import get_logger
from chore_anchors.models.anchor import AnchorRecord

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 10.0


class AnchorSyncClient:
    """Async client for the anchor sync server."""

    def __init__(
        self,
        api_url: str,
        api_token: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_url = api_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._api_url,
            headers={
                "Authorization": f"Bearer {api_token}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, config: Settings) -> "AnchorSyncClient":
        return cls(config.sync_url, config.api_token, timeout=config.sync_timeout)

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, **kwargs)
            resp.raise_for_status()
            return resp
        except httpx.HTTPStatusError as e:
            raise StoreRejected(
                f"{method} {path} rejected: {e.response.status_code} {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise StoreUnavailable(f"{method} {path} failed: {e}") from e

    async def fetch_anchors(self) -> List[AnchorRecord]:
        """GET /anchors -> every anchor held by the server."""
        resp = await self._request("GET", "/anchors")
        try:
            data = resp.json()
            if not isinstance(data, list):
                raise ValueError(f"expected an array, got {type(data).__name__}")
            return [AnchorRecord.model_validate(item) for item in data]
        except ValueError as e:
            # covers undecodable JSON and pydantic validation errors
            raise StoreRejected(f"GET /anchors returned unusable anchors: {e}") from e

    async def replace_anchors(self, records: Sequence[AnchorRecord]) -> None:
        """POST /anchors -- replace the server's whole anchor set."""
        payload = [record.to_json_dict() for record in records]
        await self._request("POST", "/anchors", json=payload)
        logger.info("Pushed %d anchors to %s", len(payload), self._api_url)

    async def health(self) -> bool:
        try:
            resp = await self._client.get("/health")
            return resp.status_code == 200 and resp.json().get("status") == "ok"
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Sync server health check failed: %s", e)
            return False

    async def aclose(self) -> None:
        await self._client.aclose()
