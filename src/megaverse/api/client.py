"""Async HTTP client for the megaverse grid service."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from megaverse.domain.grid import CurrentGrid, EntityKind, GoalGrid
from megaverse.errors.retry import classify_http_error, classify_transport_error

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://challenge.crossmint.io/api"
DEFAULT_TIMEOUT_SECONDS = 30.0


class GridService(Protocol):
    """What the reconciler needs from the remote grid."""

    async def get_goal_map(self) -> GoalGrid: ...

    async def get_current_map(self) -> CurrentGrid: ...

    async def create_entity(
        self, kind: EntityKind, row: int, column: int, **attrs: str
    ) -> None: ...

    async def delete_entity(self, kind: EntityKind, row: int, column: int) -> None: ...


class MegaverseClient:
    """Sends map reads and entity writes for one candidate.

    Every non-2xx response is converted to an ApiError subclass here, so the
    rest of the code only ever sees classified errors.
    """

    def __init__(
        self,
        candidate_id: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._candidate_id = candidate_id
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers={"Accept": "application/json"},
            transport=transport,
        )

    @property
    def candidate_id(self) -> str:
        return self._candidate_id

    # --- Maps ---

    async def get_goal_map(self) -> GoalGrid:
        body = await self._request("GET", f"/map/{self._candidate_id}/goal", "Goal map request")
        return body["goal"]

    async def get_current_map(self) -> CurrentGrid:
        body = await self._request("GET", f"/map/{self._candidate_id}", "Current map request")
        return body["map"]["content"]

    # --- Entities ---

    async def create_entity(self, kind: EntityKind, row: int, column: int, **attrs: str) -> None:
        payload = {"row": row, "column": column, **attrs}
        await self._request("POST", f"/{kind.resource}", f"POST {kind.resource}", payload)

    async def delete_entity(self, kind: EntityKind, row: int, column: int) -> None:
        payload = {"row": row, "column": column}
        await self._request("DELETE", f"/{kind.resource}", f"DELETE {kind.resource}", payload)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> MegaverseClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        context: str,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        json_body = None
        if payload is not None:
            json_body = {"candidateId": self._candidate_id, **payload}

        try:
            response = await self._client.request(method, path, json=json_body)
        except httpx.TransportError as exc:
            logger.debug("%s %s transport failure: %s", method, path, exc)
            raise classify_transport_error(exc, context) from exc

        if not response.is_success:
            raise classify_http_error(response, context)

        if not response.content:
            return None
        return response.json()
