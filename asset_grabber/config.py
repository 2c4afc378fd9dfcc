"""Configuration objects and constants for the asset grabber."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
IMAGE_ACCEPT = "image/avif,image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8"
PAGE_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

FETCH_TIMEOUT = 10.0
PAGE_TIMEOUT = 30.0
MIN_ASSET_BYTES = 1024
MAX_ASSET_BYTES = 25 * 1024 * 1024
MAX_FILENAME_LENGTH = 120

DYNAMIC_MODES = ("off", "auto", "always")


@dataclass
class GrabConfig:
    """Settings that control discovery, acquisition and packaging."""

    fetch_timeout: float = FETCH_TIMEOUT
    page_timeout: float = PAGE_TIMEOUT
    min_asset_bytes: int = MIN_ASSET_BYTES
    max_asset_bytes: int = MAX_ASSET_BYTES
    max_filename_length: int = MAX_FILENAME_LENGTH
    user_agent: str = DEFAULT_USER_AGENT
    dynamic: str = "off"
    dynamic_threshold: int = 3
    navigation_timeout: float = 30.0
    wait_after_load: float = 1.0
    scroll_passes: int = 3
    probe_favicons: bool = True
    max_workers: Optional[int] = None

    def __post_init__(self) -> None:
        if self.dynamic not in DYNAMIC_MODES:
            raise ValueError(
                f"dynamic must be one of {', '.join(DYNAMIC_MODES)}, got {self.dynamic!r}"
            )
