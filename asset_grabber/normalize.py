"""Resolution, filtering and deduplication of candidate asset URLs."""

from __future__ import annotations

import logging
import threading
from typing import Hashable, Iterable, List, Optional, Set
from urllib.parse import urljoin, urlsplit, urlunsplit

from .models import CandidateAsset, ResolvedAsset
from .rules import (
    IMAGE_SUFFIX_PATTERN,
    IMAGE_URL_KEYWORDS,
    TRACKING_MARKERS,
    TRUSTED_PROVENANCES,
)

logger = logging.getLogger("asset_grabber")


class SeenSet:
    """Set with atomic check-and-insert, shared by one run's workers."""

    def __init__(self) -> None:
        self._items: Set[Hashable] = set()
        self._lock = threading.Lock()

    def add(self, item: Hashable) -> bool:
        """Insert ``item``; return False when it was already present."""
        with self._lock:
            if item in self._items:
                return False
            self._items.add(item)
            return True

    def __contains__(self, item: Hashable) -> bool:
        with self._lock:
            return item in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


def resolve_url(raw_value: str, base_url: str) -> Optional[str]:
    """Resolve ``raw_value`` against ``base_url``; None when it is not a usable URL."""
    value = raw_value.strip()
    if value.startswith("data:"):
        return value if value[5:].lower().startswith("image/") else None
    try:
        absolute = urljoin(base_url, value)
        parts = urlsplit(absolute)
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return absolute


def normalized_key(url: str) -> str:
    """Deduplication key: the URL without query or fragment, lower-cased."""
    if url.startswith("data:"):
        return url
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", "")).lower()


def is_tracking_artifact(url: str) -> bool:
    if url.startswith("data:"):
        return False
    lowered = url.lower()
    return any(marker in lowered for marker in TRACKING_MARKERS)


def looks_like_image(url: str) -> bool:
    if url.startswith("data:image/"):
        return True
    if IMAGE_SUFFIX_PATTERN.search(url):
        return True
    lowered = url.lower()
    return any(keyword in lowered for keyword in IMAGE_URL_KEYWORDS)


def normalize_candidates(
    candidates: Iterable[CandidateAsset],
    base_url: str,
    seen: Optional[SeenSet] = None,
) -> List[ResolvedAsset]:
    """Map candidates to unique absolute asset URLs, first occurrence wins.

    Values from image-only sources (``TRUSTED_PROVENANCES``) skip the
    extension/keyword check; everything else must look like an image URL.
    """
    seen = seen if seen is not None else SeenSet()
    resolved: List[ResolvedAsset] = []
    for candidate in candidates:
        url = resolve_url(candidate.raw_value, base_url)
        if url is None:
            logger.debug("Dropping unparsable candidate %r", candidate.raw_value[:120])
            continue
        if is_tracking_artifact(url):
            logger.debug("Dropping tracking artifact %s", url)
            continue
        if candidate.provenance not in TRUSTED_PROVENANCES and not looks_like_image(url):
            continue
        key = normalized_key(url)
        if not seen.add(key):
            continue
        resolved.append(ResolvedAsset(url, key, candidate.provenance, candidate.source))
    return resolved
