"""Off-chain token metadata lookups."""

from __future__ import annotations

import asyncio
from typing import Any, Mapping, Optional

import httpx

from ..datalake.schemas import MetadataLookup, MetadataStatus
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS

_LINK_CONTAINERS = ("extensions", "links")


def is_fetchable_uri(uri: Optional[str]) -> bool:
    return isinstance(uri, str) and uri.lower().startswith(("http://", "https://"))


def extract_social_link(document: Mapping[str, Any], key: str) -> Optional[str]:
    """Find *key* at the top level, then under ``extensions`` and ``links``."""

    value = document.get(key)
    if value:
        return str(value)
    for container in _LINK_CONTAINERS:
        nested = document.get(container)
        if isinstance(nested, Mapping) and nested.get(key):
            return str(nested[key])
    return None


class MetadataFetcher:
    """Fetches a token's metadata document with a hard timeout."""

    def __init__(self, timeout: float = 3.0, client: Optional[httpx.AsyncClient] = None) -> None:
        self._timeout = timeout
        self._client = client or httpx.AsyncClient(follow_redirects=True)
        self._logger = get_logger(__name__)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def lookup(self, uri: Optional[str]) -> MetadataLookup:
        if not is_fetchable_uri(uri):
            return MetadataLookup(status=MetadataStatus.INVALID_URI)
        try:
            with METRICS.timer("metadata.lookup_seconds"):
                response = await asyncio.wait_for(
                    self._client.get(uri, timeout=self._timeout), timeout=self._timeout
                )
            content_type = response.headers.get("content-type", "")
            if not response.is_success or "application/json" not in content_type:
                return MetadataLookup(
                    status=MetadataStatus.FAILED,
                    error=f"HTTP {response.status_code} ({content_type or 'no content-type'})",
                )
            document = response.json()
        except (httpx.HTTPError, httpx.InvalidURL, asyncio.TimeoutError, ValueError) as exc:
            self._logger.warning("Error fetching metadata from %s: %s", uri, exc)
            return MetadataLookup(status=MetadataStatus.ERROR, error=str(exc) or type(exc).__name__)
        if not isinstance(document, Mapping):
            return MetadataLookup(status=MetadataStatus.OK)
        return MetadataLookup(
            status=MetadataStatus.OK,
            twitter_url=extract_social_link(document, "twitter"),
            telegram_url=extract_social_link(document, "telegram"),
        )


__all__ = ["MetadataFetcher", "extract_social_link", "is_fetchable_uri"]
