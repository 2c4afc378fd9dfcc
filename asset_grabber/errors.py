"""Error taxonomy for grab runs."""

from __future__ import annotations

from typing import Dict, Optional


class GrabError(Exception):
    """Base error carrying a machine-readable reason and an HTTP-style status."""

    reason = "unexpected_error"
    status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Dict[str, str]:
        return {"error": self.message, "reason": self.reason}


class InputError(GrabError):
    """Missing or malformed page URL; raised before any network activity."""

    reason = "invalid_url"
    status = 400


class PageFetchError(GrabError):
    """Target page unreachable or answered with a non-2xx status."""

    reason = "page_fetch_failed"
    status = 400


class DiscoveryEmpty(GrabError):
    """No candidate survived normalization."""

    reason = "no_images_found"
    status = 404

    def __init__(self, message: str = "No images found on the webpage") -> None:
        super().__init__(message)


class AllAssetsFailed(GrabError):
    """Every discovered asset failed acquisition."""

    reason = "no_images_downloaded"
    status = 404

    def __init__(self, message: str = "None of the discovered images could be downloaded") -> None:
        super().__init__(message)


class PackagingError(GrabError):
    """Archive serialization failed."""

    reason = "packaging_failed"
    status = 500


class AssetFetchError(GrabError):
    """Per-item acquisition failure. Recovered locally by skipping the item."""

    reason = "asset_fetch_failed"

    def __init__(self, url: str, detail: str, status_code: Optional[int] = None) -> None:
        super().__init__(f"{detail}: {url}")
        self.url = url
        self.detail = detail
        self.status_code = status_code
