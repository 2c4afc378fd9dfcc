"""Collision-free naming and ZIP serialization of fetched assets."""

from __future__ import annotations

import io
import logging
import zipfile
from collections import defaultdict
from typing import Dict, List, Set

from .config import MAX_FILENAME_LENGTH
from .errors import PackagingError
from .models import ArchiveEntry, FetchedAsset, Folder
from .utils import sanitize_filename, split_extension

logger = logging.getLogger("asset_grabber")


class ArchiveBuilder:
    """Accumulates archive entries for one run.

    Not thread-safe: batch runs add entries in a merge step after all
    fetches have been joined.
    """

    def __init__(self, max_filename_length: int = MAX_FILENAME_LENGTH) -> None:
        self.max_filename_length = max_filename_length
        self.entries: List[ArchiveEntry] = []
        self._taken: Dict[Folder, Set[str]] = defaultdict(set)

    def unique_name(self, folder: Folder, filename: str) -> str:
        """Return ``filename`` or the first free ``name_<n>.ext`` within ``folder``."""
        taken = self._taken[folder]
        stem, ext = split_extension(filename)
        candidate = filename
        counter = 1
        # Compared case-insensitively so archives extract cleanly on any filesystem.
        while candidate.lower() in taken:
            candidate = f"{stem}_{counter}{ext}"
            counter += 1
        taken.add(candidate.lower())
        return candidate

    def add(self, fetched: FetchedAsset) -> ArchiveEntry:
        name = sanitize_filename(fetched.filename, self.max_filename_length)
        entry = ArchiveEntry(
            folder=fetched.folder,
            filename=self.unique_name(fetched.folder, name),
            data=fetched.data,
            source_url=fetched.resolved.absolute_url,
            content_hash=fetched.content_hash,
        )
        self.entries.append(entry)
        return entry

    def build(self) -> bytes:
        """Serialize every entry under ``<folder>/<filename>`` into a deflated ZIP."""
        buffer = io.BytesIO()
        try:
            with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                for entry in self.entries:
                    archive.writestr(entry.path, entry.data)
        except (OSError, ValueError, zipfile.LargeZipFile) as exc:
            raise PackagingError(f"Failed to create archive: {exc}") from exc
        logger.debug("Packed %d file(s) into %d bytes", len(self.entries), buffer.tell())
        return buffer.getvalue()
