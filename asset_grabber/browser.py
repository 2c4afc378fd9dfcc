"""Live-session discovery: render the page in headless Chromium and observe it."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, Dict, List

from playwright.async_api import (
    Error as PlaywrightError,
    Page,
    Request,
    Response,
    async_playwright,
)

from .config import GrabConfig
from .extractor import extract_candidates
from .json_scan import scan_json
from .models import CandidateAsset, Provenance
from .normalize import resolve_url
from .rules import DATA_ATTRIBUTES, LOAD_MORE_SELECTORS, SOURCE_ATTRIBUTES

logger = logging.getLogger("asset_grabber")

AUTO_SCROLL_SCRIPT = """
async () => {
  const distance = 300;
  const maxSteps = 100;
  let previousHeight = 0;
  let stuck = 0;
  for (let step = 0; step < maxSteps; step++) {
    window.scrollBy(0, distance);
    await new Promise((resolve) => setTimeout(resolve, 150));
    const height = document.body.scrollHeight;
    if (height === previousHeight) {
      stuck++;
    } else {
      stuck = 0;
      previousHeight = height;
    }
    if (window.innerHeight + window.scrollY >= height || stuck > 15) {
      break;
    }
  }
  window.scrollTo(0, 0);
}
"""

DOM_IMAGES_SCRIPT = """
(attributes) => {
  const found = [];
  const absolute = (value) => {
    try { return new URL(value, document.baseURI).href; } catch (e) { return null; }
  };
  document.querySelectorAll("img").forEach((img) => {
    if (img.currentSrc) found.push({url: img.currentSrc, kind: "img", selector: "img.currentSrc"});
    if (img.src) found.push({url: img.src, kind: "img", selector: "img.src"});
  });
  for (const name of attributes) {
    document.querySelectorAll(`[${name}]`).forEach((element) => {
      const url = absolute(element.getAttribute(name));
      if (url) found.push({url, kind: "img", selector: `${element.tagName.toLowerCase()}[${name}]`});
    });
  }
  document.querySelectorAll("*").forEach((element) => {
    const background = window.getComputedStyle(element).backgroundImage;
    if (!background || background === "none") return;
    for (const match of background.matchAll(/url\\(["']?([^"')]+)["']?\\)/g)) {
      found.push({url: match[1], kind: "background", selector: element.tagName.toLowerCase()});
    }
  });
  return found;
}
"""


class BrowserExtractor:
    """Discovers assets that only exist once scripts have run.

    Records image requests made by the page, scans JSON API responses,
    scrolls to trigger lazy loading, clicks "load more" controls and finally
    inspects the rendered DOM. Returned candidates carry absolute URLs.
    """

    def __init__(self, config: GrabConfig) -> None:
        self.config = config

    async def _scan_response(self, response: Response) -> List[str]:
        try:
            payload = await response.json()
        except (PlaywrightError, ValueError) as exc:
            logger.debug("Ignoring unreadable JSON from %s: %s", response.url, exc)
            return []
        return scan_json(payload)

    async def _click_load_more(self, page: Page) -> None:
        for selector in LOAD_MORE_SELECTORS:
            for handle in await page.query_selector_all(selector):
                try:
                    href = await handle.get_attribute("href")
                    # Real links would navigate away from the page being inspected.
                    if href and not href.startswith(("#", "javascript:")):
                        continue
                    if await handle.is_visible():
                        await handle.click(timeout=2000)
                        await page.wait_for_timeout(1000)
                except PlaywrightError as exc:
                    logger.debug("Could not click %s: %s", selector, exc)

    async def _render(self, url: str) -> Dict[str, Any]:
        network_images: List[str] = []
        pending: List["asyncio.Future[List[str]]"] = []

        def on_request(request: Request) -> None:
            if request.resource_type == "image":
                network_images.append(request.url)

        def on_response(response: Response) -> None:
            content_type = response.headers.get("content-type", "")
            if response.status == 200 and "application/json" in content_type:
                pending.append(asyncio.ensure_future(self._scan_response(response)))

        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(headless=True)
            try:
                context = await browser.new_context(
                    viewport={"width": 1920, "height": 1080},
                    user_agent=self.config.user_agent,
                )
                page = await context.new_page()
                page.set_default_navigation_timeout(self.config.navigation_timeout * 1000)
                page.on("request", on_request)
                page.on("response", on_response)

                logger.info("Loading %s in headless browser", url)
                await page.goto(url, wait_until="networkidle")
                if self.config.wait_after_load:
                    await page.wait_for_timeout(int(self.config.wait_after_load * 1000))
                for _ in range(self.config.scroll_passes):
                    await page.evaluate(AUTO_SCROLL_SCRIPT)
                    await page.wait_for_timeout(1000)
                await self._click_load_more(page)

                dom_images = await page.evaluate(
                    DOM_IMAGES_SCRIPT, list(SOURCE_ATTRIBUTES + DATA_ATTRIBUTES)
                )
                html = await page.content()
                final_url = page.url
                api_urls = [url for urls in await asyncio.gather(*pending) for url in urls]
            finally:
                await browser.close()

        return {
            "html": html,
            "final_url": final_url,
            "dom_images": dom_images,
            "network_images": network_images,
            "api_urls": api_urls,
        }

    async def discover(self, url: str) -> List[CandidateAsset]:
        rendered = await self._render(url)
        final_url = rendered["final_url"]

        candidates: List[CandidateAsset] = [
            CandidateAsset(image_url, Provenance.NETWORK_REQUEST, "network-request")
            for image_url in rendered["network_images"]
        ]
        for item in rendered["dom_images"]:
            provenance = (
                Provenance.INLINE_STYLE if item.get("kind") == "background" else Provenance.ELEMENT_ATTRIBUTE
            )
            candidates.append(CandidateAsset(item["url"], provenance, item.get("selector")))
        candidates.extend(
            CandidateAsset(api_url, Provenance.API_JSON, "api-response")
            for api_url in rendered["api_urls"]
        )

        # The rendered DOM gets the same static passes; linked files were
        # already fetched by the static run, so no session is passed.
        static_config = dataclasses.replace(self.config, probe_favicons=False)
        base_url, static = extract_candidates(rendered["html"], final_url, None, static_config)
        candidates.extend(static)

        absolute: List[CandidateAsset] = []
        for candidate in candidates:
            resolved = resolve_url(candidate.raw_value, base_url)
            if resolved:
                absolute.append(dataclasses.replace(candidate, raw_value=resolved))
        logger.info("Browser session surfaced %d candidate(s) on %s", len(absolute), final_url)
        return absolute
