"""Retrieves raw image bytes for one source item."""

import asyncio
from pathlib import Path
from typing import List, Optional

import httpx

from ..core.branding import BROWSER_USER_AGENT
from ..core.exceptions import AllSourcesUnavailableError, ValidationError
from ..core.logging_config import get_logger
from ..core.models import FetchedAsset, SourceItem

FETCH_HEADERS = {
    "User-Agent": BROWSER_USER_AGENT,
    "Accept": "image/*,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "DNT": "1",
    "Referer": "https://drive.google.com/",
    "Cache-Control": "no-cache",
}

HTML_SNIFF_BYTES = 100


def is_image_content_type(content_type: Optional[str]) -> bool:
    return bool(content_type) and content_type.split(";")[0].strip().lower().startswith("image/")


def looks_like_html(data: bytes) -> bool:
    """Heuristic for error/interstitial pages served with an image content type."""
    return b"<html" in data[:HTML_SNIFF_BYTES].lower()


class ContentFetcher:
    """
    Tries each fetch hint in order and returns the first real image payload.

    A response is accepted when it is 2xx, declares an ``image/*`` content
    type and does not start like an HTML page. Exhausting all hints raises
    ``AllSourcesUnavailableError``; it is flagged transient only when every
    hint failed with a network error, a timeout or a 5xx/429 status.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        timeout: float = 60.0,
        max_file_size: Optional[int] = None,
    ):
        self._http = http_client
        self._timeout = timeout
        self._max_file_size = max_file_size
        self._logger = get_logger("fetcher")

    async def fetch(self, item: SourceItem) -> FetchedAsset:
        if item.is_local:
            return await self._from_local(item)

        errors: List[str] = []
        all_transient = bool(item.fetch_hints)
        for index, url in enumerate(item.fetch_hints, start=1):
            self._logger.debug(f"[{item.id}] Trying URL {index}: {url}")
            try:
                response = await self._http.get(
                    url,
                    headers=FETCH_HEADERS,
                    timeout=self._timeout,
                    follow_redirects=True,
                )
            except httpx.TransportError as e:
                errors.append(f"{url}: {e!r}")
                self._logger.debug(f"[{item.id}] URL {index} error: {e!r}")
                continue

            if not response.is_success:
                if response.status_code < 500 and response.status_code != 429:
                    all_transient = False
                errors.append(f"{url}: HTTP {response.status_code}")
                self._logger.debug(f"[{item.id}] URL {index} failed with HTTP {response.status_code}")
                continue

            content_type = response.headers.get("content-type", "")
            if not is_image_content_type(content_type):
                all_transient = False
                errors.append(f"{url}: non-image content {content_type!r}")
                self._logger.debug(f"[{item.id}] URL {index} returned non-image content: {content_type}")
                continue

            data = response.content
            if looks_like_html(data):
                all_transient = False
                errors.append(f"{url}: HTML page served as {content_type!r}")
                continue

            self._check_size(item, len(data))
            self._logger.debug(f"[{item.id}] Downloaded {len(data)} bytes from URL {index}")
            return FetchedAsset(
                source_id=item.id,
                data=data,
                declared_content_type=content_type.split(";")[0].strip(),
            )

        self._logger.warning(f"[{item.id}] All {len(item.fetch_hints)} URL(s) failed")
        raise AllSourcesUnavailableError(
            item.id, item.fetch_hints, transient=all_transient, errors=errors
        )

    async def _from_local(self, item: SourceItem) -> FetchedAsset:
        content_type = item.content_type or ""
        if not is_image_content_type(content_type):
            raise ValidationError(
                f"Unsupported file type for {item.suggested_name}: {content_type or 'unknown'}"
            )
        if item.local_bytes is not None:
            data = item.local_bytes
        else:
            data = await self._read_local(item)
        self._check_size(item, len(data))
        return FetchedAsset(source_id=item.id, data=data, declared_content_type=content_type)

    async def _read_local(self, item: SourceItem) -> bytes:
        path = Path(item.local_path or item.id)
        try:
            if not path.is_file():
                raise ValidationError(f"Not a file: {path}")
            self._check_size(item, path.stat().st_size)
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, path.read_bytes)
        except OSError as e:
            raise ValidationError(f"Cannot read {path}: {e}") from e

    def _check_size(self, item: SourceItem, size: int) -> None:
        if self._max_file_size is not None and size > self._max_file_size:
            raise ValidationError(
                f"{item.suggested_name} is {size} bytes, over the {self._max_file_size} byte limit"
            )
