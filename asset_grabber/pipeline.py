"""High-level orchestration: page fetch, discovery, acquisition and packaging."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

import requests
from playwright.async_api import Error as PlaywrightError

from .archive import ArchiveBuilder
from .browser import BrowserExtractor
from .config import PAGE_ACCEPT, GrabConfig
from .errors import (
    AllAssetsFailed,
    DiscoveryEmpty,
    GrabError,
    InputError,
    PageFetchError,
)
from .extractor import extract_candidates
from .images import AcquisitionEngine
from .models import CandidateAsset, GrabResult, ProgressEvent, Provenance, ResolvedAsset
from .normalize import normalize_candidates
from .progress import ProgressReporter
from .utils import archive_filename

logger = logging.getLogger("asset_grabber")


@dataclass
class FetchedPage:
    """Target page markup and the URL it was finally served from."""

    url: str
    html: str


def validate_url(url: Optional[str]) -> str:
    """Reject missing or non-http(s) URLs before any network activity."""
    if not url or not url.strip():
        raise InputError("URL is required")
    candidate = url.strip()
    try:
        parsed = urlparse(candidate)
    except ValueError as exc:
        raise InputError("Invalid URL") from exc
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise InputError("Invalid URL")
    return candidate


def build_session(config: GrabConfig) -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": config.user_agent})
    return session


def fetch_page(session: requests.Session, url: str, config: GrabConfig) -> FetchedPage:
    try:
        response = session.get(
            url,
            headers={
                "User-Agent": config.user_agent,
                "Accept": PAGE_ACCEPT,
                "Accept-Language": "en-US,en;q=0.9",
            },
            timeout=config.page_timeout,
        )
        response.raise_for_status()
    except requests.RequestException as exc:
        raise PageFetchError(f"Failed to fetch webpage: {exc}") from exc
    return FetchedPage(url=response.url or url, html=response.text)


def _page_derived(assets: Sequence[ResolvedAsset]) -> List[ResolvedAsset]:
    return [asset for asset in assets if asset.provenance is not Provenance.CONVENTIONAL_PATH]


def _wants_browser(config: GrabConfig, static_assets: Sequence[ResolvedAsset]) -> bool:
    if config.dynamic == "always":
        return True
    return config.dynamic == "auto" and len(_page_derived(static_assets)) < config.dynamic_threshold


async def collect_candidates(
    page: FetchedPage, session: requests.Session, config: GrabConfig
) -> Tuple[str, List[CandidateAsset]]:
    """Run static extraction and, when configured, the live browser strategy."""
    base_url, candidates = await asyncio.to_thread(
        extract_candidates, page.html, page.url, session, config
    )
    if _wants_browser(config, normalize_candidates(candidates, base_url)):
        try:
            candidates.extend(await BrowserExtractor(config).discover(page.url))
        except PlaywrightError as exc:
            logger.warning("Browser discovery failed for %s: %s", page.url, exc)
    return base_url, candidates


def resolve_assets(base_url: str, candidates: Sequence[CandidateAsset]) -> List[ResolvedAsset]:
    """Normalize candidates; raise ``DiscoveryEmpty`` when the page itself referenced nothing."""
    assets = normalize_candidates(candidates, base_url)
    if not _page_derived(assets):
        raise DiscoveryEmpty()
    return assets


async def discover(
    page: FetchedPage, session: requests.Session, config: GrabConfig
) -> List[ResolvedAsset]:
    base_url, candidates = await collect_candidates(page, session, config)
    return resolve_assets(base_url, candidates)


async def grab(
    url: str,
    config: Optional[GrabConfig] = None,
    session: Optional[requests.Session] = None,
) -> GrabResult:
    """Batch mode: discover, fetch everything concurrently, return the archive."""
    config = config or GrabConfig()
    target = validate_url(url)
    session = session or build_session(config)
    start = time.perf_counter()

    page = await asyncio.to_thread(fetch_page, session, target, config)
    assets = await discover(page, session, config)
    logger.info("Discovered %d asset(s) on %s", len(assets), page.url)

    engine = AcquisitionEngine(session, config, referer=page.url)
    outcomes = await engine.fetch_all(assets)

    builder = ArchiveBuilder(config.max_filename_length)
    for outcome in outcomes:
        if outcome.fetched is not None:
            builder.add(outcome.fetched)
    if not builder.entries:
        raise AllAssetsFailed()

    archive = await asyncio.to_thread(builder.build)
    logger.info(
        "Packed %d/%d asset(s) from %s in %.2fs",
        len(builder.entries),
        len(assets),
        target,
        time.perf_counter() - start,
    )
    return GrabResult(
        source_url=target,
        archive=archive,
        filename=archive_filename(target),
        entries=builder.entries,
        outcomes=outcomes,
    )


async def stream(
    url: str,
    config: Optional[GrabConfig] = None,
    session: Optional[requests.Session] = None,
) -> AsyncIterator[ProgressEvent]:
    """Streaming mode: process assets in discovery order, reporting each one.

    Always ends with exactly one terminal event. A consumer that stops
    iterating (closing the generator) prevents further items from starting.
    """
    config = config or GrabConfig()
    reporter = ProgressReporter()
    yield reporter.validating()
    try:
        target = validate_url(url)
        session = session or build_session(config)

        yield reporter.fetching_page()
        page = await asyncio.to_thread(fetch_page, session, target, config)

        yield reporter.analyzing()
        base_url, candidates = await collect_candidates(page, session, config)

        yield reporter.discovering()
        assets = resolve_assets(base_url, candidates)

        yield reporter.downloads_started(len(assets))
        engine = AcquisitionEngine(session, config, referer=page.url)
        builder = ArchiveBuilder(config.max_filename_length)
        async for outcome in engine.iter_fetch(assets):
            entry = builder.add(outcome.fetched) if outcome.fetched is not None else None
            yield reporter.item_done(entry.filename if entry else None)
        if not builder.entries:
            raise AllAssetsFailed()

        yield reporter.packaging()
        archive = await asyncio.to_thread(builder.build)
        yield reporter.done(archive, archive_filename(target))
    except GrabError as exc:
        logger.warning("Grab of %s failed: %s", url, exc.message)
        yield reporter.failed(exc.message)
    except Exception:  # pylint: disable=broad-except
        logger.exception("Unexpected error grabbing %s", url)
        yield reporter.failed("Internal server error")
