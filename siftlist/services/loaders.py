"""Ready-made async page loaders."""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import ValidationError

from siftlist.config import HttpLoaderSettings
from siftlist.domain.models import LoaderPage
from siftlist.logging import logger
from siftlist.services.exceptions import LoaderContractError, LoaderError
from siftlist.utils.retry import retry_async


class HttpPageLoader:
    """Fetch result pages from a JSON endpoint.

    The endpoint receives the query, the opaque cursor (omitted on the first
    page) and the page size as query parameters, and must answer with
    ``{"items": [...], "has_more": bool, "next_cursor": ..., "total": int?}``.
    An instance is a valid ``SearchController`` loader.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        settings: HttpLoaderSettings | None = None,
        *,
        page_size: int = 20,
    ) -> None:
        self._client = http_client
        self._settings = settings or HttpLoaderSettings()
        self._page_size = page_size

    @property
    def url(self) -> str:
        base = self._settings.base_url
        if base is None:
            return self._settings.path
        return f"{str(base).rstrip('/')}/{self._settings.path.lstrip('/')}"

    async def __call__(self, query: str, cursor: Any) -> LoaderPage:
        params: dict[str, Any] = {
            self._settings.query_param: query,
            self._settings.page_size_param: self._page_size,
        }
        if cursor is not None:
            params[self._settings.cursor_param] = cursor

        async def _request() -> httpx.Response:
            response = await self._client.get(
                self.url,
                params=params,
                timeout=self._settings.request_timeout_seconds,
            )
            response.raise_for_status()
            return response

        try:
            response = await retry_async(
                _request,
                max_attempts=self._settings.retry_attempts,
                base_delay=self._settings.retry_base_delay_seconds,
                retry_on=(httpx.TransportError,),
                logger=logger,
                operation_name="page_request",
            )
        except httpx.HTTPStatusError as exc:
            detail = exc.response.text[:200]
            raise LoaderError(f"page request failed ({exc.response.status_code}): {detail}") from exc
        except httpx.RequestError as exc:
            raise LoaderError(f"page request failed: {exc}") from exc

        return self._parse(response)

    @staticmethod
    def _parse(response: httpx.Response) -> LoaderPage:
        try:
            payload = response.json()
        except ValueError as exc:
            raise LoaderContractError("page response is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise LoaderContractError(f"page response must be an object, got {type(payload).__name__}")
        try:
            return LoaderPage.model_validate(payload)
        except ValidationError as exc:
            raise LoaderContractError(f"malformed page response: {exc}") from exc


__all__ = ["HttpPageLoader"]
