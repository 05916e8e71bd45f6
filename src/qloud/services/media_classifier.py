# src/qloud/services/media_classifier.py
# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2025 AZHAR ZOUHIR / BYTEDz

import mimetypes
import os
from pathlib import Path
from typing import Dict, FrozenSet, NamedTuple, Optional, Union

VIDEO = "video"
AUDIO = "audio"
IMAGE = "image"
PREVIEW = "preview"
OTHER = "other"

MEDIA_KINDS = (VIDEO, AUDIO, IMAGE, PREVIEW)

VIDEO_EXTENSIONS = frozenset({
    ".3gp", ".3g2", ".avi", ".flv", ".mkv", ".mov", ".mp4", ".m4v", ".mpeg", ".mpg",
    ".ogv", ".webm", ".ts", ".mts", ".m2ts", ".rm", ".rmvb", ".vob", ".wmv", ".asf",
    ".divx", ".xvid",
})
AUDIO_EXTENSIONS = frozenset({
    ".mp3", ".wav", ".flac", ".aac", ".m4a", ".wma", ".ogg", ".oga", ".alac", ".aiff",
    ".ape", ".amr", ".ac3", ".dts", ".opus", ".ra", ".ram", ".mid", ".midi", ".au",
    ".pcm", ".spx", ".caf", ".tta",
})
IMAGE_EXTENSIONS = frozenset({
    ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp", ".tiff", ".tif", ".svg", ".ico",
    ".heic", ".heif", ".raw", ".psd", ".ai", ".eps", ".apng", ".avif", ".jfif",
    ".pjpeg", ".pjp", ".emf", ".wmf", ".dds", ".xbm", ".jxl", ".exr",
})
PREVIEW_EXTENSIONS = frozenset({".pdf"})


class Classification(NamedTuple):
    kind: str
    mime: Optional[str]

    @property
    def major(self) -> Optional[str]:
        return self.mime.split("/", 1)[0] if self.mime else None


class MediaClassifier:
    """
    Sorts files into video/audio/image/preview/other by extension.

    The kind comes only from the extension tables; generic MIME tables are
    unreliable for several of these formats and are used for the
    informational ``mime`` field alone.
    """

    def __init__(self):
        self._tables: Dict[str, FrozenSet[str]] = {
            VIDEO: VIDEO_EXTENSIONS,
            AUDIO: AUDIO_EXTENSIONS,
            IMAGE: IMAGE_EXTENSIONS,
            PREVIEW: PREVIEW_EXTENSIONS,
        }

    @staticmethod
    def extension(path: Union[str, Path]) -> str:
        return os.path.splitext(str(path))[1].lower()

    @staticmethod
    def guess_mime(path: Union[str, Path]) -> Optional[str]:
        mime_type, _ = mimetypes.guess_type(str(path), strict=False)
        return mime_type

    def extensions_for(self, kind: str) -> FrozenSet[str]:
        return self._tables.get(kind, frozenset())

    def classify(self, path: Union[str, Path]) -> Classification:
        ext = self.extension(path)
        mime_type = self.guess_mime(path)
        for kind in MEDIA_KINDS:
            if ext in self._tables[kind]:
                return Classification(kind, mime_type)
        return Classification(OTHER, mime_type)

    def has_kind(self, path: Union[str, Path], kind: str) -> bool:
        return self.extension(path) in self.extensions_for(kind)


# Global instance
media_classifier = MediaClassifier()
