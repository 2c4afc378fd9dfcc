from __future__ import annotations

import hashlib
from typing import Dict, List, Optional, Union

import pytest
import requests

PNG_HEADER = b"\x89PNG\r\n\x1a\n"
JPEG_HEADER = b"\xff\xd8\xff\xe0"
ICO_HEADER = b"\x00\x00\x01\x00"


def image_bytes(seed: str, header: bytes = PNG_HEADER, size: int = 2048) -> bytes:
    """Deterministic, signature-valid body of ``size`` bytes unique to ``seed``."""
    digest = hashlib.sha256(seed.encode("utf-8")).digest()
    body = header + digest * (size // len(digest) + 1)
    return body[:size]


def make_response(
    url: str,
    content: Union[bytes, str] = b"",
    status: int = 200,
    content_type: Optional[str] = None,
) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.url = url
    response._content = content.encode("utf-8") if isinstance(content, str) else content
    response.encoding = "utf-8"
    if content_type:
        response.headers["Content-Type"] = content_type
    return response


class FakeSession:
    """Stands in for ``requests.Session``; unknown URLs answer 404."""

    def __init__(self) -> None:
        self.routes: Dict[str, Union[requests.Response, Exception]] = {}
        self.calls: List[str] = []
        self.headers: Dict[str, str] = {}

    def add(self, url: str, content: Union[bytes, str] = b"", status: int = 200,
            content_type: Optional[str] = None) -> None:
        self.routes[url] = make_response(url, content, status, content_type)

    def fail(self, url: str, error: Exception) -> None:
        self.routes[url] = error

    def get(self, url: str, headers=None, timeout=None, **kwargs) -> requests.Response:
        self.calls.append(url)
        route = self.routes.get(url)
        if isinstance(route, Exception):
            raise route
        if route is None:
            return make_response(url, b"not found", status=404, content_type="text/plain")
        return route


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()
