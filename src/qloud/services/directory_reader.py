# src/qloud/services/directory_reader.py
# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2025 AZHAR ZOUHIR / BYTEDz

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..core.constants import CHUNK_DIR_NAME, HOME_LABEL
from ..core.exceptions import EntryNotFoundError, NotDirectoryError
from ..core.utils import format_bytes
from .media_classifier import MediaClassifier, OTHER, media_classifier
from .models import Breadcrumb, Entry, FileInfo, FolderRef
from .path_codec import PathCodec

log = logging.getLogger(__name__)


def _timestamp(value: float) -> datetime:
    return datetime.fromtimestamp(value)


class DirectoryReader:
    """Directory listings, breadcrumbs and file metadata for confined paths."""

    def __init__(self, codec: PathCodec, classifier: Optional[MediaClassifier] = None):
        self.codec = codec
        self.classifier = classifier or media_classifier

    def _require_dir(self, path: Path):
        if not os.path.lexists(path):
            raise EntryNotFoundError(f"Path not found: {self.codec.relative_to_root(path)}")
        if not os.path.isdir(path):
            raise NotDirectoryError(f"Not a directory: {self.codec.relative_to_root(path)}")

    def list(self, path: Path) -> List[Entry]:
        """
        Lists the immediate children of ``path``: directories first, then
        files, each group ordered by modification time (oldest first).
        """
        self._require_dir(path)
        entries = []
        with os.scandir(path) as it:
            for dirent in it:
                if dirent.name == CHUNK_DIR_NAME or not self._link_stays_inside(dirent):
                    continue
                try:
                    entries.append(self._make_entry(Path(dirent.path)))
                except OSError as e:
                    log.warning(f"Could not access item {dirent.path}: {e}")

        # Stable sort, so ties keep enumeration order.
        entries.sort(key=lambda e: (e.type != "directory", e.modified))
        return entries

    def _link_stays_inside(self, dirent: os.DirEntry) -> bool:
        """Symlinks are listed only when their target is inside the root."""
        if not dirent.is_symlink():
            return True
        if self.codec.resolves_inside(dirent.path):
            return True
        log.warning(f"Hiding {dirent.path}: its link target is outside the storage root")
        return False

    def _make_entry(self, item_path: Path) -> Entry:
        stat = item_path.stat()
        is_dir = item_path.is_dir()
        if is_dir:
            return Entry(
                name=item_path.name,
                path=self.codec.encode_absolute(item_path),
                type="directory",
                icon=OTHER,
                modified=_timestamp(stat.st_mtime),
            )

        classification = self.classifier.classify(item_path)
        return Entry(
            name=item_path.name,
            path=self.codec.encode_absolute(item_path),
            type="file",
            icon=classification.kind,
            mime=classification.major,
            full_mime=classification.mime or "unknown",
            size=format_bytes(stat.st_size),
            size_bytes=stat.st_size,
            modified=_timestamp(stat.st_mtime),
        )

    def breadcrumbs(self, path: Path) -> List[Breadcrumb]:
        parts = [p for p in self.codec.relative_to_root(path).split("/") if p]
        crumbs = [Breadcrumb(
            name=HOME_LABEL, path="/", encoded_path=self.codec.encode("/"), active=not parts,
        )]
        acc = ""
        for i, segment in enumerate(parts):
            acc += "/" + segment
            crumbs.append(Breadcrumb(
                name=segment,
                path=acc,
                encoded_path=self.codec.encode(acc),
                active=i == len(parts) - 1,
            ))
        return crumbs

    def folder_trail(self, path: Path) -> List[FolderRef]:
        return [FolderRef(name=c.name, encoded_path=c.encoded_path) for c in self.breadcrumbs(path)]

    def subfolders(self, path: Path) -> List[FolderRef]:
        self._require_dir(path)
        folders = []
        with os.scandir(path) as it:
            for dirent in it:
                try:
                    if dirent.name == CHUNK_DIR_NAME or not dirent.is_dir():
                        continue
                    if not self._link_stays_inside(dirent):
                        continue
                except OSError:
                    continue
                folders.append(FolderRef(
                    name=dirent.name, encoded_path=self.codec.encode_absolute(dirent.path),
                ))
        folders.sort(key=lambda f: f.name.lower())
        return folders

    def file_info(self, path: Path) -> FileInfo:
        """Metadata for a single entry. Uses lstat, so symlinks are described, not followed."""
        try:
            stat = os.lstat(path)
        except FileNotFoundError:
            raise EntryNotFoundError(f"Path not found: {self.codec.relative_to_root(path)}")

        is_file = os.path.isfile(path) and not os.path.islink(path)
        mime_type = (self.classifier.guess_mime(path) or "unknown") if is_file else None
        return FileInfo(
            name=Path(path).name,
            size=stat.st_size,
            human_size=format_bytes(stat.st_size),
            birth_time=_timestamp(getattr(stat, "st_birthtime", stat.st_ctime)),
            modified_time=_timestamp(stat.st_mtime),
            accessed_time=_timestamp(stat.st_atime),
            changed_time=_timestamp(stat.st_ctime),
            mime_type=mime_type,
        )
