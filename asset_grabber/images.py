"""Image downloading, validation and classification."""

from __future__ import annotations

import asyncio
import base64
import binascii
import hashlib
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import AsyncIterator, Dict, List, Optional, Sequence, Tuple
from urllib.parse import unquote_to_bytes

import requests
from filetype import guess

from .config import IMAGE_ACCEPT, GrabConfig
from .errors import AssetFetchError
from .models import AcquisitionOutcome, FetchedAsset, Folder, Provenance, ResolvedAsset
from .normalize import SeenSet
from .rules import (
    CONTENT_TYPE_EXTENSIONS,
    FOLDER_KEYWORDS,
    IMAGE_SIGNATURES,
    IMAGE_SUFFIX_PATTERN,
)
from .utils import url_basename

logger = logging.getLogger("asset_grabber")

# Optional BOM, XML declaration, doctype and comments, then the <svg> root element.
SVG_ROOT_PATTERN = re.compile(
    rb"(?:\xef\xbb\xbf)?\s*(?:<\?xml[^>]*>\s*|<!doctype[^>]*>\s*|<!--.*?-->\s*)*<svg[\s>/]",
    re.IGNORECASE | re.DOTALL,
)


def detect_image_format(data: bytes) -> Optional[str]:
    """Match leading bytes against known image signatures; returns lowercase extension."""
    for signature, extension in IMAGE_SIGNATURES:
        if data.startswith(signature):
            return extension
    kind = guess(data)
    if kind and kind.mime.startswith("image/"):
        ext = kind.extension.lower()
        if ext == "jpeg":
            return "jpg"
        return ext
    return None


def is_svg_document(data: bytes) -> bool:
    """SVG is text, so it is recognised by its root element instead of a magic number."""
    return SVG_ROOT_PATTERN.match(data[:4096]) is not None


def decode_data_uri(uri: str) -> Tuple[str, bytes]:
    """Return the declared MIME type and payload of a ``data:`` URI."""
    header, sep, payload = uri[5:].partition(",")
    if not sep:
        raise ValueError("data URI has no payload separator")
    params = header.split(";")
    mime = params[0].strip().lower() or "text/plain"
    if "base64" in (param.strip().lower() for param in params[1:]):
        data = base64.b64decode(unquote_to_bytes(payload))
    else:
        data = unquote_to_bytes(payload)
    return mime, data


def mime_extension(mime: str) -> str:
    """``image/svg+xml`` -> ``svg``, ``image/jpeg`` -> ``jpg``."""
    subtype = mime.split("/", 1)[-1].split("+", 1)[0].strip() or "img"
    return "jpg" if subtype == "jpeg" else subtype


def extension_for(content_type: Optional[str], url: str) -> str:
    """Pick a file extension from the declared content type, then the URL, then ``.jpg``."""
    if content_type:
        lowered = content_type.lower()
        for marker, extension in CONTENT_TYPE_EXTENSIONS:
            if marker in lowered:
                return extension
    match = IMAGE_SUFFIX_PATTERN.search(url)
    if match:
        return "." + match.group(1).lower()
    return ".jpg"


def resolve_filename(url: str, index: int, content_type: Optional[str]) -> str:
    filename = url_basename(url) or f"image_{index}"
    if "." not in filename:
        filename += extension_for(content_type, url)
    return filename


def classify(url: str, filename: str, content_type: Optional[str] = None) -> Folder:
    """File an asset under the first folder whose keywords match, else ``images``."""
    lowered_url = url.lower()
    lowered_name = filename.lower()
    for folder, keywords in FOLDER_KEYWORDS:
        if folder is Folder.SVGS and content_type and "svg" in content_type.lower():
            return folder
        if any(keyword in lowered_url or keyword in lowered_name for keyword in keywords):
            return folder
    return Folder.IMAGES


class AcquisitionEngine:
    """Fetches, validates and classifies the resolved assets of one run.

    ``session`` is anything with a ``requests.Session``-compatible ``get``.
    Content-hash deduplication state lives on the engine, so an engine must
    not be shared between runs.
    """

    def __init__(
        self,
        session: requests.Session,
        config: GrabConfig,
        referer: Optional[str] = None,
    ) -> None:
        self.session = session
        self.config = config
        self.seen_hashes = SeenSet()
        self.headers: Dict[str, str] = {
            "User-Agent": config.user_agent,
            "Accept": IMAGE_ACCEPT,
            "Accept-Language": "en-US,en;q=0.9",
            "Cache-Control": "no-cache",
            "Sec-Fetch-Dest": "image",
            "Sec-Fetch-Mode": "no-cors",
            "Sec-Fetch-Site": "cross-site",
        }
        if referer:
            self.headers["Referer"] = referer

    def _download(self, url: str) -> Tuple[bytes, Optional[str]]:
        try:
            response = self.session.get(
                url, headers=self.headers, timeout=self.config.fetch_timeout
            )
        except requests.Timeout as exc:
            raise AssetFetchError(url, "timed out") from exc
        except requests.RequestException as exc:
            raise AssetFetchError(url, f"transport error ({exc})") from exc
        if not response.ok:
            raise AssetFetchError(url, f"HTTP {response.status_code}", response.status_code)
        return response.content, response.headers.get("Content-Type")

    def _from_data_uri(self, asset: ResolvedAsset, index: int) -> FetchedAsset:
        try:
            mime, data = decode_data_uri(asset.absolute_url)
        except (ValueError, binascii.Error) as exc:
            raise AssetFetchError(asset.absolute_url[:64], f"undecodable data URI ({exc})") from exc
        if not data:
            raise AssetFetchError(asset.absolute_url[:64], "empty data URI")
        extension = mime_extension(mime)
        folder = Folder.SVGS if extension == "svg" else Folder.IMAGES
        return FetchedAsset(
            resolved=asset,
            data=data,
            content_type=mime,
            content_hash=hashlib.md5(data).hexdigest(),
            filename=f"inline_{extension}_{index}.{extension}",
            folder=folder,
        )

    def fetch(self, asset: ResolvedAsset, index: int) -> FetchedAsset:
        """Acquire one asset; raises ``AssetFetchError`` when it must be skipped."""
        if asset.is_data_uri:
            return self._from_data_uri(asset, index)

        url = asset.absolute_url
        data, content_type = self._download(url)
        if len(data) < self.config.min_asset_bytes:
            raise AssetFetchError(url, f"response too small ({len(data)} bytes)")
        if len(data) > self.config.max_asset_bytes:
            raise AssetFetchError(url, f"response larger than {self.config.max_asset_bytes} bytes")
        if detect_image_format(data) is None and not is_svg_document(data):
            raise AssetFetchError(url, f"not image data (Content-Type={content_type})")

        filename = resolve_filename(url, index, content_type)
        return FetchedAsset(
            resolved=asset,
            data=data,
            content_type=content_type,
            content_hash=hashlib.md5(data).hexdigest(),
            filename=filename,
            folder=classify(url, filename, content_type),
        )

    def _fetch_outcome(self, asset: ResolvedAsset, index: int) -> AcquisitionOutcome:
        try:
            return AcquisitionOutcome(asset, fetched=self.fetch(asset, index))
        except AssetFetchError as exc:
            # Conventional favicon paths are guesses; their misses are expected.
            log = logger.debug if asset.provenance is Provenance.CONVENTIONAL_PATH else logger.warning
            log("Skipping %s: %s", exc.url, exc.detail)
            return AcquisitionOutcome(asset, error=exc.detail)

    def accept(self, outcome: AcquisitionOutcome) -> AcquisitionOutcome:
        """Drop a successful outcome whose bytes were already seen in this run."""
        if outcome.fetched is None:
            return outcome
        if self.seen_hashes.add(outcome.fetched.content_hash):
            return outcome
        logger.debug("Skipping duplicate content from %s", outcome.asset.absolute_url[:120])
        return AcquisitionOutcome(outcome.asset, error="duplicate content")

    async def fetch_all(self, assets: Sequence[ResolvedAsset]) -> List[AcquisitionOutcome]:
        """Launch every fetch at once and join them (batch mode).

        Content-hash deduplication runs after the join in discovery order, so
        the surviving copy does not depend on completion timing.
        """
        if not assets:
            return []
        loop = asyncio.get_running_loop()
        workers = self.config.max_workers or len(assets)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="asset") as executor:
            futures = [
                loop.run_in_executor(executor, self._fetch_outcome, asset, index)
                for index, asset in enumerate(assets, start=1)
            ]
            outcomes = await asyncio.gather(*futures)
        return [self.accept(outcome) for outcome in outcomes]

    async def iter_fetch(self, assets: Sequence[ResolvedAsset]) -> AsyncIterator[AcquisitionOutcome]:
        """Fetch assets one at a time in discovery order (streaming mode)."""
        for index, asset in enumerate(assets, start=1):
            outcome = await asyncio.to_thread(self._fetch_outcome, asset, index)
            yield self.accept(outcome)
