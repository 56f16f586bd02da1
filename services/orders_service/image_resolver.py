"""Design asset URL resolution.

Order items store whatever the design tool handed back: a full CDN URL, a
site-relative path such as ``/api/images/123``, or a bare storage key. Prodigi
downloads artwork itself, so every reference has to become a public URL first.
"""

from typing import Optional
from urllib.parse import urlparse

from libs.common.config import get_settings
from libs.common.logging import get_logger

logger = get_logger(__name__)

_LOCAL_HOSTS = {"localhost", "127.0.0.1", "0.0.0.0", "::1"}


class AssetResolutionError(Exception):
    """Raised when an asset reference cannot be turned into a public URL."""

    def __init__(self, message: str, asset_url: Optional[str] = None):
        self.message = message
        self.asset_url = asset_url
        super().__init__(message)


class ImageResolver:
    def __init__(self, site_url: str = None, asset_base_url: str = None):
        settings = get_settings()
        self.site_url = (site_url or settings.PUBLIC_SITE_URL).rstrip("/")
        base = asset_base_url if asset_base_url is not None else settings.ASSET_BASE_URL
        self.asset_base_url = base.rstrip("/") if base else None

    def resolve(self, asset_url: Optional[str]) -> str:
        """
        Resolve an asset reference to a publicly fetchable URL.

        Raises:
            AssetResolutionError: For empty values, ``data:`` URLs, local hosts,
                or bare keys when no asset base URL is configured
        """
        value = (asset_url or "").strip()
        if not value:
            raise AssetResolutionError("Empty asset reference", asset_url)

        if value.startswith("data:"):
            raise AssetResolutionError(
                "Inline data URLs cannot be fetched by the print provider", asset_url
            )

        if value.startswith(("http://", "https://")):
            host = urlparse(value).hostname or ""
            if host in _LOCAL_HOSTS:
                raise AssetResolutionError(
                    f"Asset URL points at a local host: {host}", asset_url
                )
            return value

        if value.startswith("/"):
            resolved = f"{self.site_url}{value}"
            host = urlparse(resolved).hostname or ""
            if host in _LOCAL_HOSTS:
                raise AssetResolutionError(
                    f"Site-relative asset resolves to a local host: {resolved}",
                    asset_url,
                )
            return resolved

        if not self.asset_base_url:
            raise AssetResolutionError(
                f"No ASSET_BASE_URL configured for storage key: {value}", asset_url
            )
        resolved = f"{self.asset_base_url}/{value.lstrip('/')}"
        logger.debug(f"Resolved storage key {value} -> {resolved}")
        return resolved


def get_image_resolver() -> ImageResolver:
    """FastAPI dependency returning an ImageResolver."""
    return ImageResolver()
