"""Incremental progress reporting for streaming runs."""

from __future__ import annotations

import json
from enum import Enum
from typing import Optional

from .models import ProgressEvent


class Stage(str, Enum):
    VALIDATING = "validating"
    FETCHING_PAGE = "fetching_page"
    ANALYZING = "analyzing"
    DISCOVERING = "discovering"
    DOWNLOADING = "downloading"
    PACKAGING = "packaging"
    DONE = "done"
    FAILED = "failed"


_STAGE_ORDER = {stage: position for position, stage in enumerate(Stage)}

DOWNLOAD_START = 30
DOWNLOAD_SPAN = 60


class ProgressReporter:
    """Builds the event sequence of one run and enforces its ordering.

    Stages only move forward, percentages never decrease, and exactly one
    terminal event (done or failed) closes the sequence. Any violation is a
    programming error and raises ``RuntimeError``.
    """

    def __init__(self) -> None:
        self.stage: Optional[Stage] = None
        self.percentage = 0
        self.total = 0
        self.completed = 0
        self.closed = False

    def _advance(self, stage: Stage, percentage: int) -> None:
        if self.closed:
            raise RuntimeError("progress stream is already closed")
        if self.stage is not None and _STAGE_ORDER[stage] < _STAGE_ORDER[self.stage]:
            raise RuntimeError(f"cannot move from {self.stage.value} back to {stage.value}")
        self.stage = stage
        self.percentage = max(self.percentage, min(100, percentage))

    def _event(self, stage: Stage, percentage: int, label: str, current_item: Optional[str] = None) -> ProgressEvent:
        self._advance(stage, percentage)
        return ProgressEvent(
            percentage=self.percentage,
            stage=label,
            total=self.total,
            completed=self.completed,
            current_item=current_item,
        )

    def validating(self) -> ProgressEvent:
        return self._event(Stage.VALIDATING, 0, "Validating URL...")

    def fetching_page(self) -> ProgressEvent:
        return self._event(Stage.FETCHING_PAGE, 5, "Fetching webpage...")

    def analyzing(self) -> ProgressEvent:
        return self._event(Stage.ANALYZING, 15, "Analyzing webpage for images...")

    def discovering(self) -> ProgressEvent:
        return self._event(Stage.DISCOVERING, 25, "Processing and filtering images...")

    def downloads_started(self, total: int) -> ProgressEvent:
        self.total = total
        self.completed = 0
        return self._event(
            Stage.DOWNLOADING, DOWNLOAD_START, f"Found {total} images. Starting downloads..."
        )

    def item_done(self, current_item: Optional[str] = None) -> ProgressEvent:
        """Record one completed or skipped item; ``current_item`` is its final filename."""
        if self.completed >= self.total:
            raise RuntimeError("more items reported than were announced")
        self.completed += 1
        percentage = DOWNLOAD_START + round(DOWNLOAD_SPAN * self.completed / self.total)
        return self._event(
            Stage.DOWNLOADING,
            percentage,
            f"Downloaded {self.completed}/{self.total} images...",
            current_item,
        )

    def packaging(self) -> ProgressEvent:
        return self._event(Stage.PACKAGING, 95, "Creating ZIP file...")

    def done(self, archive: bytes, filename: str) -> ProgressEvent:
        event = self._event(Stage.DONE, 100, "Complete! Starting download...")
        event.archive = archive
        event.filename = filename
        self.closed = True
        return event

    def failed(self, message: str) -> ProgressEvent:
        if self.closed:
            raise RuntimeError("progress stream is already closed")
        self.stage = Stage.FAILED
        self.closed = True
        return ProgressEvent(
            percentage=self.percentage,
            stage="Failed",
            total=self.total,
            completed=self.completed,
            error=message,
        )


def format_record(event: ProgressEvent) -> str:
    """Format an event as one server-sent-events record."""
    return f"data: {json.dumps(event.to_record())}\n\n"
