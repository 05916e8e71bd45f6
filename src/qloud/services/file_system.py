# src/qloud/services/file_system.py
# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2025 AZHAR ZOUHIR / BYTEDz

"""
Entry point used by the HTTP layer for everything that touches the storage root.

All methods are coroutines; blocking filesystem work runs in worker threads.
Nothing raises across this boundary: failures come back as results with
``ok=False`` and a message that can be shown to the user.
"""

import asyncio
import logging
import os
import threading
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union
from urllib.parse import quote

from ..core.constants import (DEFAULT_SEARCH_LIMIT, FILE_ROUTE,
                              RELATED_FILES_LIMIT, UPLOAD_SESSION_TTL)
from ..core.exceptions import (ConfinementError, EntryNotFoundError,
                               NotFileError, QloudError)
from .directory_reader import DirectoryReader
from .entry_mutator import EntryMutator
from .media_classifier import OTHER, MediaClassifier, media_classifier
from .models import (BatchResult, ClassificationInfo, FolderRef, ItemResult,
                     MediaFile, OperationResult, ResolveResult, SearchHit,
                     SubfolderListing, UploadResult, UploadSessionInfo)
from .path_codec import PathCodec, ResolvedPath
from .search_service import SearchService
from .upload_service import ChunkedUploadAssembler

log = logging.getLogger(__name__)

FAILURES = (QloudError, OSError, ValueError)


def _message(error: Exception) -> str:
    if isinstance(error, FileNotFoundError):
        return "Path not found."
    if isinstance(error, PermissionError):
        return "Permission denied."
    if isinstance(error, (QloudError, ValueError)):
        return str(error)
    if isinstance(error, OSError):
        return f"Filesystem error: {error.strerror or error}"
    return str(error)


class FileSystem:
    """Composes the codec, reader, search, mutator and upload services over one root."""

    def __init__(
        self,
        root: Union[str, Path],
        classifier: Optional[MediaClassifier] = None,
        search_limit: int = DEFAULT_SEARCH_LIMIT,
        upload_session_ttl: float = UPLOAD_SESSION_TTL,
        related_limit: int = RELATED_FILES_LIMIT,
    ):
        self.codec = PathCodec(root)
        self.classifier = classifier or media_classifier
        self.reader = DirectoryReader(self.codec, self.classifier)
        self.searcher = SearchService(self.codec, self.classifier)
        self.mutator = EntryMutator(self.codec)
        self.uploads = ChunkedUploadAssembler(session_ttl=upload_session_ttl)
        self.search_limit = search_limit
        self.related_limit = related_limit

    @property
    def root(self) -> Path:
        return self.codec.root

    def ensure_root(self):
        self.root.mkdir(parents=True, exist_ok=True)

    def _decode_inside(self, encoded_path: Optional[str]) -> ResolvedPath:
        """Decodes a token and refuses it when a symlink on the way leads out of the root."""
        target = self.codec.decode(encoded_path or "/")
        if not self.codec.resolves_inside(target.absolute):
            log.warning(f"Refused {target.relative}: a symbolic link leads outside the storage root")
            raise ConfinementError("Path is outside of the storage root.")
        return target

    def _decode_many(self, encoded: Union[str, Sequence[str], None]) -> Tuple[List[Tuple[str, Path]], List[ItemResult]]:
        tokens = [encoded] if isinstance(encoded, str) else list(encoded or [])
        valid, rejected = [], []
        for token in tokens:
            try:
                valid.append((token, self.codec.decode(token).absolute))
            except ConfinementError as e:
                rejected.append(ItemResult(item=str(token), ok=False, error=str(e)))
        return valid, rejected

    # --- Browse ---
    async def resolve(self, encoded_path: Optional[str] = "/",
                      cancel: Optional[threading.Event] = None) -> ResolveResult:
        """
        The combined "render this path" view: a listing for folders, metadata
        for files. For media files ``related_files`` holds up to
        ``related_limit`` files of the same kind; ``cancel`` stops that walk.
        """
        try:
            await asyncio.to_thread(self.ensure_root)
            target = self.codec.decode(encoded_path or "/")
            return await asyncio.to_thread(self._resolve_sync, target, cancel)
        except FAILURES as e:
            log.warning(f"Could not resolve path: {e}")
            return ResolveResult(ok=False, message=_message(e))

    def file_url(self, relative_path: str) -> str:
        """URL the file route serves ``relative_path`` from."""
        return f"{FILE_ROUTE}?fs={quote(self.codec.encode(relative_path), safe='')}"

    def _resolve_sync(self, target: ResolvedPath, cancel: Optional[threading.Event] = None) -> ResolveResult:
        path = target.absolute
        if not os.path.exists(path):
            raise EntryNotFoundError(f"Path not found: {target.relative}")
        if not self.codec.resolves_inside(path):
            raise ConfinementError("Path is outside of the storage root.")
        breadcrumbs = self.reader.breadcrumbs(path)

        if path.is_dir():
            return ResolveResult(
                ok=True, title=target.title, type="directory",
                entries=self.reader.list(path), breadcrumbs=breadcrumbs,
            )

        classification = self.classifier.classify(path)
        related = []
        if classification.kind != OTHER:
            related = self.searcher.find_global_files(classification.kind, self.related_limit, cancel)
        return ResolveResult(
            ok=True, title=target.title, type="file", breadcrumbs=breadcrumbs,
            file_info=self.reader.file_info(path),
            classification=ClassificationInfo(type=classification.kind, mime=classification.mime),
            media_url=self.file_url(target.relative),
            related_files=related,
        )

    async def open_file(self, encoded_path: str) -> Path:
        """Resolves a token to an existing regular file, for streaming by the HTTP layer."""
        path = self.codec.decode(encoded_path).absolute
        if not await asyncio.to_thread(path.exists):
            raise EntryNotFoundError("File not found.")
        if not await asyncio.to_thread(self.codec.resolves_inside, path):
            log.warning(f"Refused to stream {path.name}: a symbolic link leads outside the storage root")
            raise ConfinementError("Path is outside of the storage root.")
        if not await asyncio.to_thread(path.is_file):
            raise NotFileError("The specified path is not a file.")
        return path

    async def list_subfolders(self, encoded_path: Optional[str] = "/") -> SubfolderListing:
        try:
            target = self._decode_inside(encoded_path)
            folders = await asyncio.to_thread(self.reader.subfolders, target.absolute)
            return SubfolderListing(
                ok=True,
                folders=folders,
                breadcrumbs=self.reader.folder_trail(target.absolute),
                current=FolderRef(name=target.title, encoded_path=self.codec.encode(target.relative)),
            )
        except FAILURES as e:
            log.warning(f"Could not list subfolders: {e}")
            return SubfolderListing(ok=False, message=_message(e))

    async def search(self, query: str, limit: Optional[int] = None,
                     cancel: Optional[threading.Event] = None) -> List[SearchHit]:
        if not query or not query.strip():
            return []
        limit = self.search_limit if limit is None else limit
        return await asyncio.to_thread(self.searcher.search_all, query.strip(), limit, cancel)

    async def find_media(self, kind: str, limit: Optional[int] = None,
                         cancel: Optional[threading.Event] = None) -> List[MediaFile]:
        return await asyncio.to_thread(self.searcher.find_global_files, kind, limit, cancel)

    # --- Mutations ---
    async def create_folder(self, name: str, parent_encoded: Optional[str] = "/") -> OperationResult:
        try:
            if not name or not parent_encoded:
                raise ValueError("Fields must not be empty.")
            parent = self._decode_inside(parent_encoded).absolute
            created = await asyncio.to_thread(self.mutator.create_folder, parent, name)
            return OperationResult(ok=True, message=f"Folder '{created.name}' created.")
        except FAILURES as e:
            log.warning(f"Failed to create folder '{name}': {e}")
            return OperationResult(ok=False, message=_message(e))

    async def delete(self, encoded: Union[str, Sequence[str]]) -> BatchResult:
        """Best-effort bulk delete; ``ok`` is false only when every item failed."""
        valid, rejected = self._decode_many(encoded)
        results = rejected + await asyncio.to_thread(self.mutator.delete, valid)
        return self._summarize(results, "Deleted")

    async def move(self, targets: Union[str, Sequence[str]], dest_encoded: str) -> BatchResult:
        try:
            dest = self._decode_inside(dest_encoded).absolute
        except ConfinementError as e:
            return BatchResult(ok=False, message=f"Invalid destination: {e}")
        valid, rejected = self._decode_many(targets)
        results = rejected + await asyncio.to_thread(self.mutator.move, valid, dest)
        return self._summarize(results, "Moved")

    async def rename(self, name: str, new_name: str, parent_encoded: Optional[str] = "/") -> OperationResult:
        try:
            if not name:
                raise ValueError("Fields must not be empty.")
            parent = self._decode_inside(parent_encoded).absolute
            await asyncio.to_thread(self.mutator.rename, parent, name, new_name)
            return OperationResult(ok=True, message="Renamed successfully.")
        except FAILURES as e:
            log.warning(f"Failed to rename '{name}': {e}")
            return OperationResult(ok=False, message=_message(e))

    @staticmethod
    def _summarize(results: List[ItemResult], verb: str) -> BatchResult:
        succeeded = sum(1 for r in results if r.ok)
        copied = sum(1 for r in results if r.copied)
        message = f"{verb} {succeeded} of {len(results)} items."
        if copied:
            message += f" {copied} moved into their own subfolder were copied, the originals were kept."
        return BatchResult(ok=succeeded > 0 or not results, message=message, results=results)

    # --- Uploads ---
    async def upload_chunk(self, parent_encoded: str, file_name: str, index: int, total: int,
                           data: bytes) -> UploadResult:
        try:
            target_dir = self._decode_inside(parent_encoded).absolute
            receipt = await self.uploads.save_chunk(target_dir, file_name, index, total, data)
            if not receipt.complete:
                return UploadResult(
                    ok=True, status="waiting", session_id=receipt.session_id,
                    received=receipt.received, total=receipt.total,
                )
            info = await asyncio.to_thread(self.reader.file_info, receipt.output_path)
            return UploadResult(
                ok=True, status="complete", session_id=receipt.session_id,
                received=receipt.received, total=receipt.total, file_info=info,
            )
        except FAILURES as e:
            log.error(f"Error writing chunk {index} of '{file_name}': {e}")
            return UploadResult(ok=False, status="failed", message=_message(e), total=total)

    async def abandon_upload(self, session_id: str) -> OperationResult:
        if await self.uploads.abandon(session_id):
            return OperationResult(ok=True, message="Upload cancelled.")
        return OperationResult(ok=False, message="Upload not found or expired.")

    async def cleanup_stale_uploads(self, max_age: Optional[float] = None) -> int:
        return await self.uploads.cleanup_stale_sessions(self.root, max_age)

    def active_uploads(self) -> List[UploadSessionInfo]:
        return self.uploads.active_sessions()
