"""Static discovery of image references in HTML, CSS and manifests."""

from __future__ import annotations

import base64
import logging
from typing import Iterable, Iterator, List, Optional, Tuple
from urllib.parse import unquote, urljoin

import requests
from bs4 import BeautifulSoup

from .config import GrabConfig
from .models import CandidateAsset, Provenance
from .rules import (
    ATTRIBUTE_RULES,
    CONVENTIONAL_FAVICON_PATHS,
    CSS_DECLARATION_PATTERN,
    CSS_IMAGE_EXTENSION_PATTERN,
    CSS_URL_PATTERN,
    MIN_DATA_URI_LENGTH,
    NEXT_IMAGE_PATTERN,
    PLACEHOLDER_VALUES,
    AttributeRule,
)

logger = logging.getLogger("asset_grabber")

SVG_NAMESPACE = "http://www.w3.org/2000/svg"


def is_placeholder(value: str) -> bool:
    """Return True for empty or blank-pixel values that never reference an asset."""
    stripped = value.strip()
    if stripped.lower() in PLACEHOLDER_VALUES:
        return True
    return stripped.startswith("data:") and len(stripped) < MIN_DATA_URI_LENGTH


def parse_srcset(value: str) -> List[str]:
    """Return the URL of every ``url descriptor`` pair in a srcset value."""
    urls = []
    for part in value.split(","):
        tokens = part.strip().split()
        if tokens:
            urls.append(tokens[0])
    return urls


def css_urls(css: str, require_image_extension: bool = False) -> List[str]:
    """Collect ``url(...)`` references from a stylesheet body."""
    urls = CSS_URL_PATTERN.findall(css)
    if require_image_extension:
        urls = [url for url in urls if CSS_IMAGE_EXTENSION_PATTERN.search(url)]
    return urls


def style_declaration_urls(style: str) -> List[str]:
    """Collect ``url(...)`` values of image-bearing properties in a declaration list."""
    urls: List[str] = []
    for _prop, value in CSS_DECLARATION_PATTERN.findall(style):
        urls.extend(CSS_URL_PATTERN.findall(value))
    return urls


def document_base_url(soup: BeautifulSoup, page_url: str) -> str:
    """Honour ``<base href>`` when the document declares one."""
    base = soup.find("base", href=True)
    if base and base["href"].strip():
        return urljoin(page_url, base["href"].strip())
    return page_url


def apply_attribute_rules(
    soup: BeautifulSoup, rules: Iterable[AttributeRule]
) -> Iterator[CandidateAsset]:
    """Yield a candidate for every non-placeholder attribute value matched by ``rules``."""
    for rule in rules:
        for node in soup.select(rule.selector):
            for attribute in rule.attributes:
                value = node.get(attribute)
                if not value:
                    continue
                if isinstance(value, list):
                    value = " ".join(value)
                source = f"{node.name}[{attribute}]"
                values = parse_srcset(value) if rule.srcset else [value.strip()]
                for item in values:
                    if not is_placeholder(item):
                        yield CandidateAsset(item, rule.provenance, source)


def _fetch_secondary(
    session: requests.Session, url: str, config: GrabConfig
) -> Optional[requests.Response]:
    try:
        response = session.get(
            url,
            headers={"User-Agent": config.user_agent},
            timeout=config.fetch_timeout,
        )
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.warning("Failed to fetch %s: %s", url, exc)
        return None
    return response


def _inline_style_candidates(soup: BeautifulSoup) -> Iterator[CandidateAsset]:
    for node in soup.select("[style]"):
        for url in style_declaration_urls(node.get("style", "")):
            if not is_placeholder(url):
                yield CandidateAsset(url, Provenance.INLINE_STYLE, f"{node.name}[style]")


def _stylesheet_candidates(
    soup: BeautifulSoup,
    base_url: str,
    session: Optional[requests.Session],
    config: GrabConfig,
) -> Iterator[CandidateAsset]:
    for block in soup.find_all("style"):
        for url in css_urls(block.get_text(), require_image_extension=True):
            yield CandidateAsset(url, Provenance.EXTERNAL_STYLESHEET, "style")

    if session is None:
        return
    for link in soup.select('link[rel~="stylesheet"][href]'):
        sheet_url = urljoin(base_url, link["href"].strip())
        response = _fetch_secondary(session, sheet_url, config)
        if response is None:
            continue
        for url in css_urls(response.text, require_image_extension=True):
            # Relative references inside a sheet resolve against the sheet itself.
            yield CandidateAsset(
                urljoin(sheet_url, url), Provenance.EXTERNAL_STYLESHEET, sheet_url
            )


def _svg_candidates(html: str, soup: BeautifulSoup) -> Iterator[CandidateAsset]:
    if soup.find("svg") is None:
        return
    # html.parser lower-cases names; html5lib restores SVG casing (viewBox, linearGradient).
    svg_soup = BeautifulSoup(html, "html5lib")
    for index, svg in enumerate(svg_soup.find_all("svg"), start=1):
        if svg.find_parent("svg") is not None:
            continue
        if not svg.get("xmlns"):
            svg["xmlns"] = SVG_NAMESPACE
        encoded = base64.b64encode(str(svg).encode("utf-8")).decode("ascii")
        yield CandidateAsset(
            f"data:image/svg+xml;base64,{encoded}", Provenance.SVG, f"svg:{index}"
        )


def _manifest_candidates(
    soup: BeautifulSoup,
    base_url: str,
    session: Optional[requests.Session],
    config: GrabConfig,
) -> Iterator[CandidateAsset]:
    if session is None:
        return
    for link in soup.select('link[rel~="manifest"][href]'):
        manifest_url = urljoin(base_url, link["href"].strip())
        response = _fetch_secondary(session, manifest_url, config)
        if response is None:
            continue
        try:
            manifest = response.json()
        except ValueError as exc:
            logger.warning("Ignoring malformed manifest %s: %s", manifest_url, exc)
            continue
        icons = manifest.get("icons") if isinstance(manifest, dict) else None
        for icon in icons or []:
            src = icon.get("src") if isinstance(icon, dict) else None
            if isinstance(src, str) and not is_placeholder(src):
                yield CandidateAsset(
                    urljoin(manifest_url, src.strip()), Provenance.MANIFEST, manifest_url
                )


def _favicon_probes(page_url: str) -> Iterator[CandidateAsset]:
    for path in CONVENTIONAL_FAVICON_PATHS:
        yield CandidateAsset(
            urljoin(page_url, path), Provenance.CONVENTIONAL_PATH, "favicon-probe"
        )


def _unwrap_next_images(candidates: List[CandidateAsset]) -> List[CandidateAsset]:
    """Add the original URL behind every Next.js image-optimizer reference."""
    unwrapped: List[CandidateAsset] = []
    for candidate in candidates:
        unwrapped.append(candidate)
        match = NEXT_IMAGE_PATTERN.search(candidate.raw_value)
        if match:
            unwrapped.append(
                CandidateAsset(unquote(match.group(1)), candidate.provenance, candidate.source)
            )
    return unwrapped


def extract_candidates(
    html: str,
    page_url: str,
    session: Optional[requests.Session] = None,
    config: Optional[GrabConfig] = None,
) -> Tuple[str, List[CandidateAsset]]:
    """Run every static heuristic pass over ``html``.

    Returns the base URL relative values must be resolved against, and the
    candidates in discovery order. Linked stylesheets and manifests are only
    fetched when ``session`` is given; their failures are logged and reduce
    coverage without aborting.
    """
    config = config or GrabConfig()
    soup = BeautifulSoup(html, "html.parser")
    base_url = document_base_url(soup, page_url)

    candidates: List[CandidateAsset] = list(apply_attribute_rules(soup, ATTRIBUTE_RULES))
    candidates.extend(_inline_style_candidates(soup))
    candidates.extend(_stylesheet_candidates(soup, base_url, session, config))
    candidates.extend(_manifest_candidates(soup, base_url, session, config))
    candidates.extend(_svg_candidates(html, soup))
    if config.probe_favicons:
        candidates.extend(_favicon_probes(page_url))

    candidates = _unwrap_next_images(candidates)
    logger.debug("Static extraction found %d candidate(s) on %s", len(candidates), page_url)
    return base_url, candidates
