import io
import zipfile

import pytest
from conftest import image_bytes

from asset_grabber.archive import ArchiveBuilder
from asset_grabber.errors import PackagingError
from asset_grabber.models import FetchedAsset, Folder, Provenance, ResolvedAsset
from asset_grabber.utils import archive_filename, sanitize_filename, url_basename


def _fetched(url, filename, folder, data):
    asset = ResolvedAsset(url, url.lower(), Provenance.ELEMENT_ATTRIBUTE)
    return FetchedAsset(asset, data, "image/png", f"hash-{url}", filename, folder)


def test_sanitize_filename():
    assert sanitize_filename('a<b>:c"d|e?.png') == "a_b__c_d_e_.png"
    assert sanitize_filename("  my photo  one.jpg ") == "my_photo_one.jpg"
    assert sanitize_filename("..hidden.png") == "hidden.png"
    assert sanitize_filename("bad\x00name.png") == "badname.png"
    assert sanitize_filename("...") == "image"
    long_name = sanitize_filename("x" * 300 + ".webp", max_length=40)
    assert len(long_name) == 40
    assert long_name.endswith(".webp")


def test_url_basename_and_archive_filename():
    assert url_basename("https://x.test/a/b%20c.png?q=1") == "b c.png"
    assert url_basename("https://x.test") == ""
    assert archive_filename("https://www.x.test/") == "x.test_images.zip"
    assert archive_filename("http://shop.example-site.test:8080/p") == "shop.example-site.test_images.zip"


def test_colliding_names_get_numeric_suffixes():
    builder = ArchiveBuilder()
    first = builder.add(_fetched("https://a.test/logo.png", "logo.png", Folder.LOGOS, image_bytes("a")))
    second = builder.add(_fetched("https://b.test/logo.png", "logo.png", Folder.LOGOS, image_bytes("b")))
    third = builder.add(_fetched("https://c.test/LOGO.png", "LOGO.png", Folder.LOGOS, image_bytes("c")))
    other = builder.add(_fetched("https://d.test/logo.png", "logo.png", Folder.IMAGES, image_bytes("d")))
    assert [first.path, second.path, third.path, other.path] == [
        "logos/logo.png",
        "logos/logo_1.png",
        "logos/LOGO_2.png",
        "images/logo.png",
    ]


def test_build_writes_every_entry():
    builder = ArchiveBuilder()
    builder.add(_fetched("https://x.test/a.png", "a.png", Folder.IMAGES, image_bytes("a")))
    builder.add(_fetched("https://x.test/favicon.ico", "favicon.ico", Folder.ICONS, image_bytes("f")))
    with zipfile.ZipFile(io.BytesIO(builder.build())) as archive:
        assert sorted(archive.namelist()) == ["icons/favicon.ico", "images/a.png"]
        assert archive.read("images/a.png") == image_bytes("a")
        assert archive.getinfo("images/a.png").compress_type == zipfile.ZIP_DEFLATED


def test_build_failures_raise_packaging_error(monkeypatch):
    builder = ArchiveBuilder()
    builder.add(_fetched("https://x.test/a.png", "a.png", Folder.IMAGES, image_bytes("a")))

    def broken_writestr(self, *args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(zipfile.ZipFile, "writestr", broken_writestr)
    with pytest.raises(PackagingError) as info:
        builder.build()
    assert info.value.reason == "packaging_failed"
    assert info.value.status == 500
