import logging
from typing import Any, Dict, Optional

import httpx

from config.settings import Settings

logger = logging.getLogger(__name__)


class ReplicateClient:
    """
    Thin async wrapper over the three backend endpoints (upload, create, status).

    Returns raw httpx responses; the pipeline steps decide what counts as a
    failure. One client per request, closed when the request finishes.
    """

    def __init__(self, settings: Settings, http: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=settings.REQUEST_TIMEOUT)

    async def __aenter__(self) -> "ReplicateClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def upload_file(self, data: bytes, content_type: str = "application/octet-stream") -> httpx.Response:
        url = self.settings.upload_url
        headers = {
            **self.settings.auth_headers,
            "Content-Type": "application/octet-stream",
        }
        logger.info("[ReplicateClient] Uploading %d bytes (%s) to %s", len(data), content_type, url)
        r = await self._http.post(url, content=data, headers=headers)
        logger.debug("[ReplicateClient] Upload status=%s", r.status_code)
        return r

    async def create_prediction(self, payload: Dict[str, Any]) -> httpx.Response:
        url = self.settings.predictions_url
        headers = {**self.settings.auth_headers, "Content-Type": "application/json"}
        logger.info("[ReplicateClient] Creating prediction at %s", url)
        r = await self._http.post(url, json=payload, headers=headers)
        logger.debug("[ReplicateClient] Create status=%s", r.status_code)
        return r

    async def get_prediction(self, prediction_id: str) -> httpx.Response:
        url = f"{self.settings.status_url}/{prediction_id}"
        r = await self._http.get(url, headers=self.settings.auth_headers)
        logger.debug("[ReplicateClient] Polling %s, status=%s", url, r.status_code)
        return r

