import asyncio
import base64
import hashlib

import pytest
import requests
from conftest import ICO_HEADER, JPEG_HEADER, image_bytes

from asset_grabber.config import GrabConfig
from asset_grabber.errors import AssetFetchError
from asset_grabber.images import (
    AcquisitionEngine,
    classify,
    decode_data_uri,
    detect_image_format,
    extension_for,
    is_svg_document,
    resolve_filename,
)
from asset_grabber.models import Folder, Provenance, ResolvedAsset
from asset_grabber.normalize import normalized_key

SVG_BODY = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 10 10">'
    + '<rect width="1" height="1"/>' * 60
    + "</svg>"
).encode("utf-8")


def _asset(url, provenance=Provenance.ELEMENT_ATTRIBUTE):
    return ResolvedAsset(url, normalized_key(url), provenance)


def test_detect_image_format():
    assert detect_image_format(image_bytes("a")) == "png"
    assert detect_image_format(image_bytes("a", JPEG_HEADER)) == "jpg"
    assert detect_image_format(image_bytes("a", ICO_HEADER)) == "ico"
    assert detect_image_format(b"<html><body>hi</body></html>") is None


def test_svg_documents_are_recognised_by_root_element():
    assert is_svg_document(SVG_BODY)
    assert is_svg_document(b"<!-- generator --><svg><g/></svg>")
    assert not is_svg_document(b"<!doctype html><html><svg></svg></html>")
    assert is_svg_document(b"\xef\xbb\xbf" + SVG_BODY)
    assert is_svg_document(b"\xef\xbb\xbf<svg viewBox='0 0 1 1'/>")


def test_decode_data_uri():
    raw = b"<svg xmlns='http://www.w3.org/2000/svg'/>"
    encoded = "data:image/svg+xml;base64," + base64.b64encode(raw).decode("ascii")
    assert decode_data_uri(encoded) == ("image/svg+xml", raw)
    assert decode_data_uri("data:image/svg+xml,%3Csvg%2F%3E") == ("image/svg+xml", b"<svg/>")
    with pytest.raises(ValueError):
        decode_data_uri("data:image/png;base64")


def test_extension_and_filename_resolution():
    assert extension_for("image/svg+xml", "https://x.test/a") == ".svg"
    assert extension_for("image/jpeg; charset=binary", "https://x.test/a") == ".jpg"
    assert extension_for("image/x-icon", "https://x.test/a") == ".ico"
    assert extension_for(None, "https://x.test/a.GIF?x=1") == ".gif"
    assert extension_for("application/octet-stream", "https://x.test/a") == ".jpg"
    assert resolve_filename("https://x.test/media/photo%20one.png?w=2", 1, None) == "photo one.png"
    assert resolve_filename("https://x.test/media/12345", 2, "image/webp") == "12345.webp"
    assert resolve_filename("https://x.test/", 3, "image/png") == "image_3.png"


def test_classification_priority():
    assert classify("https://x.test/brand/logo-icon.png", "logo-icon.png") is Folder.ICONS
    assert classify("https://x.test/img/site-logo.png", "site-logo.png") is Folder.LOGOS
    assert classify("https://x.test/a", "a.jpg", "image/svg+xml") is Folder.SVGS
    assert classify("https://x.test/art/shape.svg", "shape.svg") is Folder.SVGS
    assert classify("https://x.test/home/hero.jpg", "hero.jpg") is Folder.BANNERS
    assert classify("https://x.test/photos/cat.jpg", "cat.jpg") is Folder.IMAGES


def test_fetch_valid_image(session):
    body = image_bytes("cat")
    session.add("https://x.test/photos/cat", body, content_type="image/png")
    engine = AcquisitionEngine(session, GrabConfig(), referer="https://x.test/")
    fetched = engine.fetch(_asset("https://x.test/photos/cat"), 1)
    assert fetched.filename == "cat.png"
    assert fetched.folder is Folder.IMAGES
    assert fetched.content_hash == hashlib.md5(body).hexdigest()
    assert engine.headers["Referer"] == "https://x.test/"


def test_small_bodies_are_rejected_even_with_image_type(session):
    session.add("https://x.test/tiny.png", image_bytes("tiny", size=512), content_type="image/png")
    engine = AcquisitionEngine(session, GrabConfig())
    with pytest.raises(AssetFetchError) as info:
        engine.fetch(_asset("https://x.test/tiny.png"), 1)
    assert "too small" in info.value.detail


def test_bodies_without_image_signature_are_rejected(session):
    session.add("https://x.test/fake.png", b"<html>" + b"x" * 4096, content_type="image/png")
    engine = AcquisitionEngine(session, GrabConfig())
    with pytest.raises(AssetFetchError) as info:
        engine.fetch(_asset("https://x.test/fake.png"), 1)
    assert "not image data" in info.value.detail


def test_svg_bodies_are_exempt_from_signature_check(session):
    session.add("https://x.test/art/shape", SVG_BODY, content_type="image/svg+xml")
    engine = AcquisitionEngine(session, GrabConfig())
    fetched = engine.fetch(_asset("https://x.test/art/shape"), 1)
    assert fetched.filename == "shape.svg"
    assert fetched.folder is Folder.SVGS


def test_svg_bodies_with_byte_order_mark_are_accepted(session):
    session.add("https://x.test/art/mark.svg", b"\xef\xbb\xbf" + SVG_BODY, content_type="image/svg+xml")
    engine = AcquisitionEngine(session, GrabConfig())
    fetched = engine.fetch(_asset("https://x.test/art/mark.svg"), 1)
    assert fetched.folder is Folder.SVGS


def test_data_uri_assets_skip_size_checks(session):
    uri = "data:image/svg+xml;base64," + base64.b64encode(b"<svg/>").decode("ascii")
    engine = AcquisitionEngine(session, GrabConfig())
    fetched = engine.fetch(_asset(uri, Provenance.SVG), 4)
    assert fetched.filename == "inline_svg_4.svg"
    assert fetched.folder is Folder.SVGS
    assert fetched.data == b"<svg/>"
    assert session.calls == []


def test_transport_failures_become_outcomes(session):
    session.fail("https://x.test/slow.png", requests.Timeout("read timed out"))
    engine = AcquisitionEngine(session, GrabConfig())
    outcomes = asyncio.run(
        engine.fetch_all([_asset("https://x.test/slow.png"), _asset("https://x.test/gone.png")])
    )
    assert [outcome.error for outcome in outcomes] == ["timed out", "HTTP 404"]
    assert not any(outcome.ok for outcome in outcomes)


def test_fetch_all_keeps_first_copy_of_identical_content(session):
    body = image_bytes("shared")
    session.add("https://x.test/a.png", body, content_type="image/png")
    session.add("https://cdn.x.test/a-copy.png", body, content_type="image/png")
    session.add("https://x.test/b.png", image_bytes("other"), content_type="image/png")
    assets = [
        _asset("https://x.test/a.png"),
        _asset("https://cdn.x.test/a-copy.png"),
        _asset("https://x.test/b.png"),
    ]
    for _ in range(3):
        engine = AcquisitionEngine(session, GrabConfig())
        outcomes = asyncio.run(engine.fetch_all(assets))
        kept = [outcome.asset.absolute_url for outcome in outcomes if outcome.ok]
        assert kept == ["https://x.test/a.png", "https://x.test/b.png"]
        assert outcomes[1].error == "duplicate content"


def test_fetch_all_with_no_assets():
    engine = AcquisitionEngine(None, GrabConfig())
    assert asyncio.run(engine.fetch_all([])) == []


def test_iter_fetch_preserves_discovery_order(session):
    urls = [f"https://x.test/{name}.png" for name in ("c", "a", "b")]
    for url in urls:
        session.add(url, image_bytes(url), content_type="image/png")
    engine = AcquisitionEngine(session, GrabConfig())

    async def collect():
        return [outcome async for outcome in engine.iter_fetch([_asset(url) for url in urls])]

    outcomes = asyncio.run(collect())
    assert [outcome.fetched.filename for outcome in outcomes] == ["c.png", "a.png", "b.png"]
    assert session.calls == urls
