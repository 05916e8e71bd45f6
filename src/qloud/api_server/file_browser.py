# Qloud - Personal Media Server - File Browser API Module
# Copyright (C) 2025 AZHAR ZOUHIR / BYTEDz
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.


import asyncio
import logging
import threading
import urllib.parse
from typing import Awaitable, Callable, List, Optional, TypeVar, Union

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field

from ..core.exceptions import ConfinementError, EntryNotFoundError, NotFileError
from ..services.file_system import FileSystem
from ..services.models import (BatchResult, MediaFile, OperationResult,
                               ResolveResult, SearchHit, SubfolderListing,
                               UploadResult, UploadSessionInfo)

log = logging.getLogger(__name__)

T = TypeVar("T")

DISCONNECT_POLL_INTERVAL = 0.25


# --- Pydantic Models ---
class CreateFolderPayload(BaseModel):
    name: str = Field(..., min_length=1)
    url: str = "/"


class DeletePayload(BaseModel):
    paths: Union[str, List[str]]


class MovePayload(BaseModel):
    targets: Union[str, List[str]]
    dest: str


class RenamePayload(BaseModel):
    name: str = Field(..., min_length=1)
    new_name: str = Field(..., min_length=1)
    path: str = "/"


# --- API Routers ---
# Read-only routes are open to guests; the mutating ones are mounted with the
# admin dependencies supplied to create_api_app.
router = APIRouter()
admin_router = APIRouter()


# --- Utility Functions ---
def get_file_system(request: Request) -> FileSystem:
    return request.app.state.file_system


def _content_disposition(filename: str) -> str:
    try:
        filename.encode("ascii")
        return f'inline; filename="{filename}"'
    except UnicodeEncodeError:
        encoded_filename = urllib.parse.quote(filename, safe="")
        return f"inline; filename*=UTF-8''{encoded_filename}"


async def _run_until_disconnect(request: Request, work: Callable[[threading.Event], Awaitable[T]]) -> T:
    """Runs a walk-backed coroutine, signalling it to stop if the client goes away."""
    cancel = threading.Event()
    task = asyncio.create_task(work(cancel))
    try:
        while not task.done():
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_INTERVAL)
            if not done and await request.is_disconnected():
                log.debug("Client disconnected, stopping walk.")
                cancel.set()
        return task.result()
    finally:
        cancel.set()


# --- Browsing Endpoints ---
@router.get("/current-path", response_model=ResolveResult)
async def current_path(request: Request, fs: str = Query("/"),
                       file_system: FileSystem = Depends(get_file_system)):
    return await _run_until_disconnect(request, lambda cancel: file_system.resolve(fs, cancel=cancel))


@router.get("/search", response_model=List[SearchHit])
async def search_path(request: Request, fs: Optional[str] = Query(None),
                      file_system: FileSystem = Depends(get_file_system)):
    if not fs:
        return []
    return await _run_until_disconnect(request, lambda cancel: file_system.search(fs, cancel=cancel))


@router.get("/get-sub-directory", response_model=SubfolderListing)
async def get_sub_directory(fs: str = Query("/"), file_system: FileSystem = Depends(get_file_system)):
    return await file_system.list_subfolders(fs)


@router.get("/media", response_model=List[MediaFile])
async def list_media(request: Request, kind: str = Query(...),
                     file_system: FileSystem = Depends(get_file_system)):
    return await _run_until_disconnect(request, lambda cancel: file_system.find_media(kind, cancel=cancel))


@router.get("/file")
async def stream_file(fs: str = Query(...), file_system: FileSystem = Depends(get_file_system)):
    try:
        path = await file_system.open_file(fs)
    except ConfinementError:
        raise HTTPException(status_code=403, detail="Access to the specified path is denied.")
    except EntryNotFoundError:
        raise HTTPException(status_code=404, detail="File not found.")
    except NotFileError:
        raise HTTPException(status_code=400, detail="The specified path is not a file.")

    mime_type = file_system.classifier.guess_mime(path) or "application/octet-stream"
    headers = {"Content-Disposition": _content_disposition(path.name)}
    return FileResponse(path, media_type=mime_type, headers=headers)


# --- Management Endpoints ---
@admin_router.post("/create-folder", response_model=OperationResult)
async def create_folder(payload: CreateFolderPayload, file_system: FileSystem = Depends(get_file_system)):
    return await file_system.create_folder(payload.name, payload.url)


@admin_router.post("/upload-chunk", response_model=UploadResult)
async def upload_chunk(request: Request, path: str = Query("/"), file_name: str = Query(...),
                       index: int = Query(...), total: int = Query(...),
                       file_system: FileSystem = Depends(get_file_system)):
    buffer = bytearray()
    async for chunk in request.stream():
        buffer.extend(chunk)
    return await file_system.upload_chunk(path, file_name, index, total, bytes(buffer))


@admin_router.get("/uploads", response_model=List[UploadSessionInfo])
async def list_active_uploads(file_system: FileSystem = Depends(get_file_system)):
    return file_system.active_uploads()


@admin_router.delete("/uploads/{session_id}", response_model=OperationResult)
async def cancel_upload(session_id: str, file_system: FileSystem = Depends(get_file_system)):
    return await file_system.abandon_upload(session_id)


@admin_router.delete("/delete-fs", response_model=BatchResult)
async def delete_items(payload: DeletePayload, file_system: FileSystem = Depends(get_file_system)):
    return await file_system.delete(payload.paths)


@admin_router.put("/move-fs", response_model=BatchResult)
async def move_items(payload: MovePayload, file_system: FileSystem = Depends(get_file_system)):
    return await file_system.move(payload.targets, payload.dest)


@admin_router.patch("/rename-fs", response_model=OperationResult)
async def rename_item(payload: RenamePayload, file_system: FileSystem = Depends(get_file_system)):
    return await file_system.rename(payload.name, payload.new_name, payload.path)
