# src/qloud/services/models.py
# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2025 AZHAR ZOUHIR / BYTEDz

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


# --- Listing ---
class Entry(BaseModel):
    name: str
    path: str
    type: Literal["directory", "file"]
    icon: str
    mime: Optional[str] = None
    full_mime: Optional[str] = None
    size: Optional[str] = None
    size_bytes: Optional[int] = None
    modified: datetime


class Breadcrumb(BaseModel):
    name: str
    path: str
    encoded_path: str
    active: bool = False


class FileInfo(BaseModel):
    name: str
    size: int
    human_size: str
    birth_time: datetime
    modified_time: datetime
    accessed_time: datetime
    changed_time: datetime
    mime_type: Optional[str] = None


class ClassificationInfo(BaseModel):
    type: str
    mime: Optional[str] = None


class FolderRef(BaseModel):
    name: str
    encoded_path: str


class SearchHit(BaseModel):
    name: str
    path: str
    encoded_path: str


class MediaFile(SearchHit):
    type: str


# --- Operation results ---
class OperationResult(BaseModel):
    ok: bool
    message: Optional[str] = None


class ResolveResult(OperationResult):
    title: str = ""
    type: Optional[Literal["directory", "file"]] = None
    entries: List[Entry] = Field(default_factory=list)
    breadcrumbs: List[Breadcrumb] = Field(default_factory=list)
    file_info: Optional[FileInfo] = None
    classification: Optional[ClassificationInfo] = None
    media_url: Optional[str] = None
    related_files: List[MediaFile] = Field(default_factory=list)


class SubfolderListing(OperationResult):
    folders: List[FolderRef] = Field(default_factory=list)
    breadcrumbs: List[FolderRef] = Field(default_factory=list)
    current: Optional[FolderRef] = None


class UploadResult(OperationResult):
    status: Literal["waiting", "complete", "failed"] = "waiting"
    session_id: Optional[str] = None
    received: int = 0
    total: int = 0
    file_info: Optional[FileInfo] = None


class ItemResult(BaseModel):
    item: str
    ok: bool
    error: Optional[str] = None
    destination: Optional[str] = None
    copied: bool = False
    source_kept: bool = False


class BatchResult(OperationResult):
    results: List[ItemResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> List[ItemResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> List[ItemResult]:
        return [r for r in self.results if not r.ok]


class UploadSessionInfo(BaseModel):
    session_id: str
    file_name: str
    target_dir: str
    received: int
    total: int
    updated_at: float
