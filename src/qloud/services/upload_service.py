# src/qloud/services/upload_service.py
# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2025 AZHAR ZOUHIR / BYTEDz

"""
Chunked upload assembly.

Each chunk is written to ``{target}/__chunks__/{session_id}/{name}.part{index}``.
The session id hashes the target directory, the sanitized file name and the
declared chunk count, so unrelated uploads never share staging files. The
assembler keeps the set of received indices itself and concatenates the parts
in index order as soon as the set is complete, whatever order they arrived in.
"""

import asyncio
import hashlib
import logging
import os
import re
import shutil
import time
from collections import defaultdict
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set

import aiofiles

from ..core.constants import CHUNK_DIR_NAME, UPLOAD_SESSION_TTL
from ..core.exceptions import StorageError
from ..core.validators import validate_filename
from .models import UploadSessionInfo

log = logging.getLogger(__name__)

COPY_BUFFER_SIZE = 1024 * 1024  # 1MB
PART_SUFFIX = re.compile(r"\.part(\d+)$")


@dataclass
class UploadSession:
    session_id: str
    target_dir: Path
    safe_name: str
    total: int
    received: Set[int] = field(default_factory=set)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    @property
    def staging_dir(self) -> Path:
        return self.target_dir / CHUNK_DIR_NAME / self.session_id

    @property
    def output_path(self) -> Path:
        return self.target_dir / self.safe_name

    @property
    def complete(self) -> bool:
        return len(self.received) == self.total

    def part_path(self, index: int) -> Path:
        return self.staging_dir / f"{self.safe_name}.part{index}"


@dataclass
class ChunkReceipt:
    session_id: str
    safe_name: str
    received: int
    total: int
    output_path: Optional[Path] = None

    @property
    def complete(self) -> bool:
        return self.output_path is not None


class ChunkedUploadAssembler:
    def __init__(self, session_ttl: float = UPLOAD_SESSION_TTL):
        self.session_ttl = session_ttl
        self.sessions: Dict[str, UploadSession] = {}
        self.locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._lock_users: Dict[str, int] = defaultdict(int)

    @asynccontextmanager
    async def lock(self, session_id: str):
        """
        Serializes work on one session. The lock is dropped once nobody holds
        or waits for it, so finished uploads leave nothing behind.
        """
        lock = self.locks[session_id]
        self._lock_users[session_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[session_id] -= 1
            if not self._lock_users[session_id]:
                del self._lock_users[session_id]
                self.locks.pop(session_id, None)

    @staticmethod
    def session_id_for(target_dir: Path, safe_name: str, total: int) -> str:
        key = f"{Path(target_dir)}:{safe_name}:{total}"
        return hashlib.sha1(key.encode("utf-8")).hexdigest()[:16]

    def _load_session(self, target_dir: Path, safe_name: str, total: int) -> UploadSession:
        session_id = self.session_id_for(target_dir, safe_name, total)
        session = self.sessions.get(session_id)
        if session is None:
            session = UploadSession(session_id, Path(target_dir), safe_name, total)
            # Parts left over from before a restart still count.
            if session.staging_dir.is_dir():
                for part in session.staging_dir.iterdir():
                    match = PART_SUFFIX.search(part.name)
                    if match and part.name[:match.start()] == safe_name and int(match.group(1)) < total:
                        session.received.add(int(match.group(1)))
                if session.received:
                    log.info(f"Recovered upload session {session_id} with {len(session.received)}/{total} chunks")
            self.sessions[session_id] = session
        return session

    async def save_chunk(self, target_dir: Path, file_name: str, index: int, total: int, data: bytes) -> ChunkReceipt:
        """
        Stores one chunk (replacing an earlier copy of the same index) and
        assembles the file once every index in ``0..total-1`` is present.
        """
        if total < 1:
            raise ValueError("Total chunk count must be at least 1.")
        if not 0 <= index < total:
            raise ValueError(f"Chunk index {index} is out of range for {total} chunks.")
        safe_name = validate_filename(file_name)
        target_dir = Path(target_dir)
        if not target_dir.is_dir():
            raise StorageError(f"Upload destination is not a directory: {target_dir.name}")

        session_id = self.session_id_for(target_dir, safe_name, total)
        async with self.lock(session_id):
            session = self._load_session(target_dir, safe_name, total)
            await asyncio.to_thread(session.staging_dir.mkdir, parents=True, exist_ok=True)
            async with aiofiles.open(session.part_path(index), "wb") as f:
                await f.write(data)
            session.received.add(index)
            session.updated_at = time.time()
            log.debug(f"Upload {session_id}: chunk {index + 1}/{total} for {safe_name}")

            if not session.complete:
                return ChunkReceipt(session_id, safe_name, len(session.received), total)

            try:
                output_path = await self._assemble(session)
            finally:
                self.sessions.pop(session_id, None)
        return ChunkReceipt(session_id, safe_name, total, total, output_path=output_path)

    async def _assemble(self, session: UploadSession) -> Path:
        staging_output = session.staging_dir / f"{session.safe_name}.assembling"
        try:
            async with aiofiles.open(staging_output, "wb") as out:
                for index in range(session.total):
                    part = session.part_path(index)
                    try:
                        async with aiofiles.open(part, "rb") as f:
                            while chunk := await f.read(COPY_BUFFER_SIZE):
                                await out.write(chunk)
                    except FileNotFoundError:
                        raise StorageError(
                            f"Chunk {index} of '{session.safe_name}' is missing, restart the upload."
                        )
                    await asyncio.to_thread(part.unlink)
            await asyncio.to_thread(os.replace, staging_output, session.output_path)
        except BaseException:
            with suppress(OSError):
                staging_output.unlink()
            raise

        self._remove_staging(session.staging_dir)
        log.info(f"Assembled upload {session.session_id} into {session.output_path.name} ({session.total} chunks)")
        return session.output_path

    @staticmethod
    def _remove_staging(staging_dir: Path):
        # The shared __chunks__ folder may still hold other sessions.
        with suppress(OSError):
            staging_dir.rmdir()
        with suppress(OSError):
            staging_dir.parent.rmdir()

    async def abandon(self, session_id: str) -> bool:
        """Drops a tracked session and its staged chunks."""
        async with self.lock(session_id):
            session = self.sessions.pop(session_id, None)
            if session is None:
                return False
            await asyncio.to_thread(shutil.rmtree, session.staging_dir, ignore_errors=True)
            self._remove_staging(session.staging_dir)
        log.info(f"Abandoned upload session {session_id} for {session.safe_name}")
        return True

    async def cleanup_stale_sessions(self, root: Path, max_age: Optional[float] = None) -> int:
        """
        Removes sessions idle for longer than ``max_age`` seconds: tracked
        ones by their last chunk time, untracked staging folders found under
        ``root`` by their modification time.
        """
        max_age = self.session_ttl if max_age is None else max_age
        now = time.time()
        removed = 0

        for session_id, session in list(self.sessions.items()):
            if now - session.updated_at > max_age and await self.abandon(session_id):
                removed += 1

        def _sweep_disk() -> int:
            count = 0
            for dirpath, dirnames, _ in os.walk(root):
                if CHUNK_DIR_NAME not in dirnames:
                    continue
                chunk_root = Path(dirpath) / CHUNK_DIR_NAME
                for staging in list(chunk_root.iterdir()):
                    try:
                        if staging.name in self.sessions or now - staging.stat().st_mtime <= max_age:
                            continue
                        if staging.is_dir():
                            shutil.rmtree(staging)
                        else:
                            staging.unlink()
                        count += 1
                    except OSError as e:
                        log.warning(f"Error cleaning up stale upload {staging}: {e}")
                with suppress(OSError):
                    chunk_root.rmdir()
                dirnames.remove(CHUNK_DIR_NAME)
            return count

        removed += await asyncio.to_thread(_sweep_disk)
        if removed:
            log.info(f"Cleaned up {removed} stale upload sessions")
        return removed

    def active_sessions(self) -> List[UploadSessionInfo]:
        return [
            UploadSessionInfo(
                session_id=s.session_id,
                file_name=s.safe_name,
                target_dir=str(s.target_dir),
                received=len(s.received),
                total=s.total,
                updated_at=s.updated_at,
            )
            for s in self.sessions.values()
        ]
