"""Per-batch branding resolution and logo retrieval."""

from typing import Mapping, Optional
from urllib.parse import quote

import httpx

from .logging_config import get_logger
from .models import BrandingContext
from .protocols import EventDirectory

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class BrandingResolver:
    """
    Decides once per batch whether photos get the organizer's watermark.

    The organizer is found through the event record, then their user record
    carries the ``branding`` flag and ``organizationLogo`` reference. Events
    listed in ``overrides`` always get branding with the configured logo.
    Lookup failures degrade to "no branding".
    """

    def __init__(self, directory: EventDirectory, overrides: Optional[Mapping[str, str]] = None):
        self._directory = directory
        self._overrides = dict(overrides or {})
        self._logger = get_logger("branding")

    async def resolve(self, event_id: str, branding_override: Optional[bool] = None) -> BrandingContext:
        event_key = str(event_id)
        if event_key in self._overrides:
            self._logger.info(f"Event {event_key}: forcing branding on with configured logo")
            return BrandingContext(enabled=True, logo_url=self._overrides[event_key])

        context = await self._lookup(event_key)
        if branding_override is not None:
            context = BrandingContext(enabled=branding_override, logo_url=context.logo_url)
        return context

    async def _lookup(self, event_id: str) -> BrandingContext:
        try:
            event = await self._directory.get_event(event_id)
            if not event:
                self._logger.info(f"Event not found: {event_id}")
                return BrandingContext()

            email = event.get("organizerEmail") or event.get("userEmail")
            if not email:
                self._logger.info(f"No organizer email for event {event_id}")
                return BrandingContext()

            user = await self._directory.get_user(email)
            if not user:
                self._logger.info(f"User not found: {email}")
                return BrandingContext()
        except Exception as e:  # noqa: BLE001
            self._logger.error(f"Error getting branding info for {event_id}: {e}")
            return BrandingContext()

        context = BrandingContext(
            enabled=bool(user.get("branding", False)),
            logo_url=user.get("organizationLogo") or None,
        )
        self._logger.info(
            f"Branding for event {event_id}: enabled={context.enabled}, "
            f"has_logo={context.logo_url is not None}"
        )
        return context


class LogoFetcher:
    """
    Resolves a logo reference to bytes.

    Relative paths are served by the site, objects in the storage bucket go
    through the site's image proxy, other URLs are fetched directly.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        site_base_url: str,
        storage_base_url: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self._http = http_client
        self._site_base_url = site_base_url.rstrip("/")
        self._storage_base_url = storage_base_url.rstrip("/") + "/" if storage_base_url else None
        self._timeout = timeout
        self._logger = get_logger("branding")

    def resolve_url(self, logo_ref: str) -> str:
        logo_ref = logo_ref.strip()
        if logo_ref.startswith("/"):
            return f"{self._site_base_url}{quote(logo_ref)}"
        if self._storage_base_url and logo_ref.startswith(self._storage_base_url):
            return f"{self._site_base_url}/api/proxy-image?url={quote(logo_ref, safe='')}"
        return logo_ref

    async def fetch(self, logo_ref: Optional[str]) -> Optional[bytes]:
        if not logo_ref or not logo_ref.strip():
            return None
        url = self.resolve_url(logo_ref)
        self._logger.info(f"Downloading logo from {url}")
        try:
            response = await self._http.get(
                url,
                headers={"User-Agent": BROWSER_USER_AGENT},
                timeout=self._timeout,
                follow_redirects=True,
            )
        except Exception as e:  # noqa: BLE001
            self._logger.error(f"Error downloading logo: {e!r}")
            return None

        if not response.is_success:
            self._logger.error(f"Failed to download logo: HTTP {response.status_code}")
            return None

        self._logger.info(f"Logo downloaded, size: {len(response.content)} bytes")
        return response.content
