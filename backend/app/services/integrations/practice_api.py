"""Read-only client for the practice data API (clients, appointments, meal plans, progress, users)."""

import logging
from typing import Any

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


class PracticeApiClient:
    """Thin async wrapper over the practice REST API. Returns decoded JSON or None on 404."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.practice_api_url).rstrip("/")
        self._token = token if token is not None else settings.practice_api_token
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any | None:
        # Drop unset filters so the API applies its own defaults
        query = {k: v for k, v in (params or {}).items() if v is not None}
        async with httpx.AsyncClient(transport=self._transport, timeout=15.0) as client:
            resp = await client.get(
                f"{self.base_url}/{path.lstrip('/')}",
                headers=self._headers(),
                params=query,
            )
            if resp.status_code == 404:
                logger.debug(f"Practice API 404 for {path}")
                return None
            resp.raise_for_status()
            return resp.json()
