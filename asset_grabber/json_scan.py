"""Heuristic scanner for image URLs buried in JSON payloads."""

from __future__ import annotations

from typing import Any, List, Optional

from .rules import (
    JSON_KEY_KEYWORDS,
    JSON_MIN_LENGTH,
    JSON_SUFFIX_PATTERN,
    JSON_VALUE_KEYWORDS,
)


def looks_like_image_url(value: str, key: Optional[str] = None) -> bool:
    """Return True when a JSON string value plausibly references an image."""
    if len(value) <= JSON_MIN_LENGTH:
        return False
    if not (value.startswith("http") or value.startswith("//")):
        return False
    if JSON_SUFFIX_PATTERN.search(value):
        return True
    if any(keyword in value for keyword in JSON_VALUE_KEYWORDS):
        return True
    if key:
        lowered = key.lower()
        return any(keyword in lowered for keyword in JSON_KEY_KEYWORDS)
    return False


def scan_json(payload: Any) -> List[str]:
    """Walk an arbitrary JSON value and collect strings that look like image URLs.

    False positives are fine: fetched bytes are validated later. Items of a
    list inherit the key of the object member holding the list.
    """
    found: List[str] = []

    def traverse(node: Any, key: Optional[str]) -> None:
        if isinstance(node, str):
            if looks_like_image_url(node, key):
                found.append(node)
        elif isinstance(node, list):
            for item in node:
                traverse(item, key)
        elif isinstance(node, dict):
            for child_key, child in node.items():
                traverse(child, str(child_key))

    traverse(payload, None)
    return found
