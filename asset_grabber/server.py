"""HTTP surface: one-shot ZIP download and a server-sent-events progress stream."""

from __future__ import annotations

import logging
from typing import Literal, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel

from .config import GrabConfig
from .errors import GrabError
from .pipeline import grab, stream
from .progress import format_record

logger = logging.getLogger("asset_grabber")

app = FastAPI(title="asset-grabber")


class DownloadRequest(BaseModel):
    url: Optional[str] = None
    dynamic: Literal["off", "auto", "always"] = "off"


def _config_for(request: DownloadRequest) -> GrabConfig:
    return GrabConfig(dynamic=request.dynamic)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/download-images")
async def download_images(request: DownloadRequest):
    """Return every image of the page as one ZIP archive."""
    try:
        result = await grab(request.url or "", _config_for(request))
    except GrabError as exc:
        return JSONResponse(exc.to_payload(), status_code=exc.status)
    except Exception:  # pylint: disable=broad-except
        logger.exception("Unexpected error grabbing %s", request.url)
        return JSONResponse(
            {"error": "Internal server error", "reason": GrabError.reason},
            status_code=500,
        )
    return Response(
        content=result.archive,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
    )


@app.post("/download-images-stream")
async def download_images_stream(request: DownloadRequest):
    """Stream progress records; the last one carries an error or the base64 archive."""

    async def event_stream():
        async for event in stream(request.url or "", _config_for(request)):
            yield format_record(event)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
