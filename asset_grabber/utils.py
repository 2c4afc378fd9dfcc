"""Utility helpers for string normalization and path handling."""

from __future__ import annotations

import posixpath
import re
from typing import Tuple
from urllib.parse import unquote, urlparse

HOSTNAME_PATTERN = re.compile(r"[^A-Za-z0-9.-]")
ILLEGAL_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')
CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
WHITESPACE = re.compile(r"\s+")


def split_extension(filename: str) -> Tuple[str, str]:
    """Split ``name.ext`` into ``("name", ".ext")``; the extension may be empty."""
    stem, ext = posixpath.splitext(filename)
    if not stem:
        return filename, ""
    return stem, ext


def sanitize_filename(value: str, max_length: int = 120, fallback: str = "image") -> str:
    """Make ``value`` safe to use as a single archive path component."""
    name = CONTROL_CHARS.sub("", value)
    name = ILLEGAL_FILENAME_CHARS.sub("_", name)
    name = WHITESPACE.sub("_", name.strip())
    name = name.lstrip(".")
    if not name:
        return fallback
    if len(name) > max_length:
        stem, ext = split_extension(name)
        if len(ext) >= max_length:
            ext = ""
        name = stem[: max_length - len(ext)] + ext
    return name


def url_basename(url: str) -> str:
    """Return the last, percent-decoded path segment of ``url``."""
    path = urlparse(url).path
    return unquote(path.rstrip("/").rsplit("/", 1)[-1]) if path else ""


def archive_filename(page_url: str, suffix: str = "_images.zip") -> str:
    """Derive the download name for a page's archive from its hostname."""
    hostname = urlparse(page_url).hostname or "site"
    if hostname.startswith("www."):
        hostname = hostname[4:]
    return HOSTNAME_PATTERN.sub("_", hostname) + suffix
