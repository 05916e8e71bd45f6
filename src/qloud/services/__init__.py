# src/qloud/services/__init__.py
# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2025 AZHAR ZOUHIR / BYTEDz

from .media_classifier import media_classifier, MediaClassifier
from .path_codec import PathCodec
from .directory_reader import DirectoryReader
from .search_service import SearchService
from .entry_mutator import EntryMutator
from .upload_service import ChunkedUploadAssembler
from .file_system import FileSystem

__all__ = [
    "media_classifier",
    "MediaClassifier",
    "PathCodec",
    "DirectoryReader",
    "SearchService",
    "EntryMutator",
    "ChunkedUploadAssembler",
    "FileSystem",
]
