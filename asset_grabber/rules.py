"""Declarative tables driving extraction, filtering and classification."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Tuple

from .models import Folder, Provenance


@dataclass(frozen=True)
class AttributeRule:
    """Read ``attributes`` from every node matching ``selector``."""

    selector: str
    attributes: Tuple[str, ...]
    provenance: Provenance
    srcset: bool = False


SOURCE_ATTRIBUTES = (
    "src",
    "data-src",
    "data-original",
    "data-lazy",
    "data-lazy-src",
    "data-original-src",
    "data-echo",
    "data-url",
    "data-hi-res-src",
    "data-low-res-src",
    "data-medium-res-src",
    "data-retina-src",
    "data-2x",
    "data-3x",
    "data-4x",
)

SRCSET_ATTRIBUTES = ("srcset", "data-srcset")

# Lazy-load and e-commerce attributes that may sit on any element.
DATA_ATTRIBUTES = (
    "data-image-url",
    "data-img-url",
    "data-src-large",
    "data-src-medium",
    "data-src-small",
    "data-product-image",
    "data-thumbnail",
    "data-zoom-image",
    "data-full-image",
    "data-bg",
    "data-background",
)

ICON_LINK_SELECTORS = (
    'link[rel~="icon"]',
    'link[rel~="apple-touch-icon"]',
    'link[rel~="apple-touch-icon-precomposed"]',
    'link[rel~="mask-icon"]',
    'link[rel~="fluid-icon"]',
    'link[type^="image/"]',
)

META_IMAGE_SELECTORS = (
    'meta[property="og:image"]',
    'meta[property="og:image:url"]',
    'meta[property="og:image:secure_url"]',
    'meta[name="twitter:image"]',
    'meta[name="twitter:image:src"]',
    'meta[property="twitter:image"]',
    'meta[name="thumbnail"]',
    'meta[property="article:image"]',
    'meta[name="msapplication-TileImage" i]',
)

ATTRIBUTE_RULES: Tuple[AttributeRule, ...] = (
    AttributeRule("img", SOURCE_ATTRIBUTES, Provenance.ELEMENT_ATTRIBUTE),
    AttributeRule("img, source", SRCSET_ATTRIBUTES, Provenance.SRCSET, srcset=True),
    AttributeRule("picture source[src]", ("src",), Provenance.ELEMENT_ATTRIBUTE),
    AttributeRule("video[poster]", ("poster",), Provenance.ELEMENT_ATTRIBUTE),
    AttributeRule("object[data]", ("data",), Provenance.ELEMENT_ATTRIBUTE),
    AttributeRule("embed[src]", ("src",), Provenance.ELEMENT_ATTRIBUTE),
    AttributeRule('input[type="image"]', ("src",), Provenance.ELEMENT_ATTRIBUTE),
    AttributeRule(
        ", ".join(f"[{name}]" for name in DATA_ATTRIBUTES),
        DATA_ATTRIBUTES,
        Provenance.ELEMENT_ATTRIBUTE,
    ),
    AttributeRule(", ".join(ICON_LINK_SELECTORS), ("href",), Provenance.ELEMENT_ATTRIBUTE),
    AttributeRule(", ".join(META_IMAGE_SELECTORS), ("content",), Provenance.META),
)

CONVENTIONAL_FAVICON_PATHS = (
    "/favicon.ico",
    "/favicon.png",
    "/favicon.gif",
    "/favicon.svg",
    "/apple-touch-icon.png",
    "/apple-touch-icon-precomposed.png",
    "/apple-icon.png",
    "/apple-icon-precomposed.png",
)

PLACEHOLDER_VALUES = frozenset({"", "#", "data:,", "about:blank", "null", "undefined", "none"})
# Data URIs shorter than this are blank placeholder pixels.
MIN_DATA_URI_LENGTH = 100

CSS_PROPERTIES = (
    "background-image",
    "background",
    "content",
    "list-style-image",
    "border-image",
    "cursor",
)
# A url(...) token is matched whole so a ';' inside a data URI does not end the value.
CSS_DECLARATION_PATTERN = re.compile(
    r"(?<![\w-])(" + "|".join(re.escape(name) for name in CSS_PROPERTIES) + r")\s*:\s*"
    r"""((?:url\(\s*(?:'[^']*'|"[^"]*"|[^'")]*)\s*\)|[^;{}])+)""",
    re.IGNORECASE,
)
CSS_URL_PATTERN = re.compile(r"""url\(\s*['"]?([^'")\s]+)['"]?\s*\)""", re.IGNORECASE)
CSS_IMAGE_EXTENSION_PATTERN = re.compile(
    r"\.(jpg|jpeg|png|gif|webp|svg|bmp|ico|tiff|tif|avif)", re.IGNORECASE
)

IMAGE_SUFFIX_PATTERN = re.compile(
    r"\.(jpg|jpeg|png|gif|webp|svg|bmp|ico|tiff|tif|avif|jfif|pjpeg|pjp)([?#].*)?$",
    re.IGNORECASE,
)
NEXT_IMAGE_PATTERN = re.compile(r"/_next/image/?\?(?:.*&)?url=([^&]+)")

IMAGE_URL_KEYWORDS = ("image", "img", "photo", "pic")
TRACKING_MARKERS = ("1x1", "pixel", "spacer.gif", "blank.gif", "/beacon")

# Provenances whose values are image references by construction; they skip
# the keyword/extension pre-fetch filter and rely on signature validation.
TRUSTED_PROVENANCES = frozenset(
    {
        Provenance.ELEMENT_ATTRIBUTE,
        Provenance.INLINE_STYLE,
        Provenance.SRCSET,
        Provenance.META,
        Provenance.MANIFEST,
        Provenance.SVG,
        Provenance.NETWORK_REQUEST,
        Provenance.CONVENTIONAL_PATH,
    }
)

JSON_MIN_LENGTH = 10
JSON_VALUE_KEYWORDS = ("image", "img", "photo", "pic", "thumb", "cdn")
JSON_KEY_KEYWORDS = ("image", "img", "photo", "pic", "thumb", "url", "src")
JSON_SUFFIX_PATTERN = re.compile(
    r"\.(jpg|jpeg|png|gif|webp|svg|bmp|ico|tiff|avif)(\?.*)?$", re.IGNORECASE
)

# First match wins, in this order; anything else lands in images/.
FOLDER_KEYWORDS: Tuple[Tuple[Folder, Tuple[str, ...]], ...] = (
    (
        Folder.ICONS,
        (
            "favicon",
            "icon",
            "apple-touch",
            "apple-icon",
            "mask-icon",
            "fluid-icon",
            "shortcut",
            "manifest",
        ),
    ),
    (Folder.LOGOS, ("logo", "brand")),
    (Folder.SVGS, (".svg",)),
    (Folder.BANNERS, ("banner", "hero")),
)

CONTENT_TYPE_EXTENSIONS = (
    ("png", ".png"),
    ("gif", ".gif"),
    ("webp", ".webp"),
    ("svg", ".svg"),
    ("icon", ".ico"),
    ("avif", ".avif"),
    ("bmp", ".bmp"),
    ("tiff", ".tiff"),
    ("jpeg", ".jpg"),
    ("jpg", ".jpg"),
)

IMAGE_SIGNATURES = (
    (b"\xff\xd8\xff", "jpg"),
    (b"\x89PNG", "png"),
    (b"GIF", "gif"),
    (b"RIFF", "webp"),
    (b"BM", "bmp"),
    (b"\x00\x00\x01\x00", "ico"),
    (b"II*\x00", "tiff"),
    (b"MM\x00*", "tiff"),
)

LOAD_MORE_SELECTORS = (
    'button[class*="load"]',
    'button[class*="more"]',
    'a[class*="load"]',
    'a[class*="more"]',
    ".load-more",
    ".show-more",
    '[data-testid*="load"]',
    '[data-testid*="more"]',
)
