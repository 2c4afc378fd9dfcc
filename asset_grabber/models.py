"""Data models used throughout the asset grabbing pipeline."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Provenance(str, Enum):
    """Extraction source that produced a candidate."""

    ELEMENT_ATTRIBUTE = "element_attribute"
    INLINE_STYLE = "inline_style"
    EXTERNAL_STYLESHEET = "external_stylesheet"
    SRCSET = "srcset"
    META = "meta"
    MANIFEST = "manifest"
    SVG = "svg"
    NETWORK_REQUEST = "network_request"
    API_JSON = "api_json"
    CONVENTIONAL_PATH = "conventional_path"


class Folder(str, Enum):
    """Archive folder an asset is filed under."""

    IMAGES = "images"
    ICONS = "icons"
    LOGOS = "logos"
    SVGS = "svgs"
    BANNERS = "banners"


@dataclass(frozen=True)
class CandidateAsset:
    """Unvalidated string extracted from a page that might reference an image."""

    raw_value: str
    provenance: Provenance
    source: Optional[str] = None


@dataclass(frozen=True)
class ResolvedAsset:
    """Candidate resolved to an absolute URL and deduplication key."""

    absolute_url: str
    normalized_key: str
    provenance: Provenance
    source: Optional[str] = None

    @property
    def is_data_uri(self) -> bool:
        return self.absolute_url.startswith("data:")


@dataclass
class FetchedAsset:
    """Validated asset bytes with their derived filename and folder."""

    resolved: ResolvedAsset
    data: bytes
    content_type: Optional[str]
    content_hash: str
    filename: str
    folder: Folder


@dataclass
class ArchiveEntry:
    """File placed in the output archive."""

    folder: Folder
    filename: str
    data: bytes
    source_url: str
    content_hash: str

    @property
    def path(self) -> str:
        return f"{self.folder.value}/{self.filename}"


@dataclass
class AcquisitionOutcome:
    """Result of acquiring one resolved asset."""

    asset: ResolvedAsset
    fetched: Optional[FetchedAsset] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.fetched is not None


@dataclass
class ProgressEvent:
    """One record of the progress stream.

    Regular events carry ``percentage``/``stage``/``total``/``completed``.
    Exactly one terminal event closes a run: either ``error`` is set, or
    ``archive`` and ``filename`` are.
    """

    percentage: int = 0
    stage: str = ""
    total: int = 0
    completed: int = 0
    current_item: Optional[str] = None
    error: Optional[str] = None
    archive: Optional[bytes] = None
    filename: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.error is not None or self.archive is not None

    def to_record(self) -> Dict[str, Any]:
        """Render the event in the wire format consumed by stream clients."""
        if self.error is not None:
            return {"error": self.error}
        record: Dict[str, Any] = {
            "progress": self.percentage,
            "stage": self.stage,
            "total": self.total,
            "completed": self.completed,
        }
        if self.current_item:
            record["currentFile"] = self.current_item
        if self.archive is not None:
            record["zipData"] = base64.b64encode(self.archive).decode("ascii")
            record["filename"] = self.filename
        return record


@dataclass
class GrabResult:
    """Finished batch run."""

    source_url: str
    archive: bytes
    filename: str
    entries: List[ArchiveEntry] = field(default_factory=list)
    outcomes: List[AcquisitionOutcome] = field(default_factory=list)

    @property
    def failures(self) -> List[AcquisitionOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]
