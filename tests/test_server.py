import base64
import io
import json
import zipfile

import pytest
from conftest import FakeSession, image_bytes
from fastapi.testclient import TestClient

from asset_grabber import pipeline
from asset_grabber.server import app


@pytest.fixture
def site(monkeypatch):
    session = FakeSession()
    session.add(
        "https://x.test/",
        '<html><body><img src="/a.png"><img src="/logo.png"></body></html>',
        content_type="text/html",
    )
    session.add("https://x.test/a.png", image_bytes("a"), content_type="image/png")
    session.add("https://x.test/logo.png", image_bytes("logo"), content_type="image/png")
    monkeypatch.setattr(pipeline, "build_session", lambda config: session)
    return session


@pytest.fixture
def client():
    return TestClient(app)


def _records(body):
    return [json.loads(chunk[len("data: "):]) for chunk in body.split("\n\n") if chunk.strip()]


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_download_returns_zip(client, site):
    response = client.post("/download-images", json={"url": "https://x.test/"})
    assert response.status_code == 200
    assert response.headers["content-type"] == "application/zip"
    assert response.headers["content-disposition"] == 'attachment; filename="x.test_images.zip"'
    with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
        assert sorted(archive.namelist()) == ["images/a.png", "logos/logo.png"]


def test_missing_url_is_rejected(client, site):
    response = client.post("/download-images", json={})
    assert response.status_code == 400
    assert response.json() == {"error": "URL is required", "reason": "invalid_url"}
    assert site.calls == []


def test_page_without_images(client, site):
    site.add("https://x.test/empty", "<html><body>nothing</body></html>", content_type="text/html")
    response = client.post("/download-images", json={"url": "https://x.test/empty"})
    assert response.status_code == 404
    assert response.json()["reason"] == "no_images_found"


def test_unreachable_page(client, site):
    response = client.post("/download-images", json={"url": "https://x.test/nowhere"})
    assert response.status_code == 400
    assert response.json()["reason"] == "page_fetch_failed"


def test_stream_endpoint(client, site):
    response = client.post("/download-images-stream", json={"url": "https://x.test/"})
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.text.startswith("data: ")

    records = _records(response.text)
    progress = [record["progress"] for record in records]
    assert progress == sorted(progress)
    assert records[0] == {"progress": 0, "stage": "Validating URL...", "total": 0, "completed": 0}
    final = records[-1]
    assert final["progress"] == 100
    assert final["filename"] == "x.test_images.zip"
    with zipfile.ZipFile(io.BytesIO(base64.b64decode(final["zipData"]))) as archive:
        assert sorted(archive.namelist()) == ["images/a.png", "logos/logo.png"]


def test_stream_endpoint_reports_errors_in_band(client, site):
    response = client.post("/download-images-stream", json={"url": "mailto:someone@x.test"})
    assert response.status_code == 200
    assert _records(response.text)[-1] == {"error": "Invalid URL"}
