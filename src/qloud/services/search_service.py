# src/qloud/services/search_service.py
# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2025 AZHAR ZOUHIR / BYTEDz

"""
Lazy depth-first walks over the storage root.

The generators never cap their own output: callers stop consuming when they
have enough (``itertools.islice``). A ``threading.Event`` may be passed to
stop a walk early, e.g. when the HTTP client went away. Directories that
cannot be opened are skipped.
"""

import itertools
import logging
import os
import threading
from pathlib import Path
from typing import Iterator, List, Optional, Union

from ..core.constants import CHUNK_DIR_NAME
from .media_classifier import MediaClassifier, media_classifier
from .models import MediaFile, SearchHit
from .path_codec import PathCodec

log = logging.getLogger(__name__)


def _cancelled(cancel: Optional[threading.Event]) -> bool:
    return cancel is not None and cancel.is_set()


def _scan(directory: Union[str, Path]) -> List[os.DirEntry]:
    try:
        with os.scandir(directory) as it:
            return list(it)
    except OSError as e:
        log.debug(f"Skipping unreadable directory {directory}: {e}")
        return []


def _is_dir(dirent: os.DirEntry) -> bool:
    try:
        return dirent.is_dir(follow_symlinks=False)
    except OSError:
        return False


class SearchService:
    def __init__(self, codec: PathCodec, classifier: Optional[MediaClassifier] = None):
        self.codec = codec
        self.classifier = classifier or media_classifier

    def walk_by_kind(
        self, directory: Union[str, Path], kind: str, cancel: Optional[threading.Event] = None
    ) -> Iterator[Path]:
        """Yields files whose extension belongs to ``kind``, depth first."""
        extensions = self.classifier.extensions_for(kind)
        if not extensions:
            return
        yield from self._walk_extensions(directory, extensions, cancel)

    def _walk_extensions(self, directory, extensions, cancel) -> Iterator[Path]:
        for dirent in _scan(directory):
            if _cancelled(cancel):
                return
            if _is_dir(dirent):
                if dirent.name != CHUNK_DIR_NAME:
                    yield from self._walk_extensions(dirent.path, extensions, cancel)
            elif os.path.splitext(dirent.name)[1].lower() in extensions:
                yield Path(dirent.path)

    def search_by_name(
        self, directory: Union[str, Path], query_lc: str, cancel: Optional[threading.Event] = None
    ) -> Iterator[Path]:
        """Yields files and directories whose name contains ``query_lc``; matched directories are still descended."""
        for dirent in _scan(directory):
            if _cancelled(cancel):
                return
            if dirent.name == CHUNK_DIR_NAME:
                continue
            if query_lc in dirent.name.lower():
                yield Path(dirent.path)
            if _is_dir(dirent):
                yield from self.search_by_name(dirent.path, query_lc, cancel)

    def search_all(
        self,
        query: str,
        limit: Optional[int] = None,
        cancel: Optional[threading.Event] = None,
        directory: Optional[Path] = None,
    ) -> List[SearchHit]:
        query_lc = (query or "").lower()
        if not query_lc:
            return []
        matches = self.search_by_name(directory or self.codec.root, query_lc, cancel)
        hits = []
        for path in itertools.islice(matches, limit):
            relative = self.codec.relative_to_root(path)
            hits.append(SearchHit(name=path.name, path=relative, encoded_path=self.codec.encode(relative)))
        return hits

    def find_global_files(
        self, kind: str, limit: Optional[int] = None, cancel: Optional[threading.Event] = None
    ) -> List[MediaFile]:
        files = []
        for path in itertools.islice(self.walk_by_kind(self.codec.root, kind, cancel), limit):
            relative = self.codec.relative_to_root(path)
            files.append(MediaFile(
                name=path.name, path=relative, encoded_path=self.codec.encode(relative), type=kind,
            ))
        return files
