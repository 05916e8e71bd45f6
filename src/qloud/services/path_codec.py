# src/qloud/services/path_codec.py
# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2025 AZHAR ZOUHIR / BYTEDz

"""
Translation between client path tokens and real paths under the storage root.

Clients only ever see a percent-encoded, root-relative POSIX path such as
``%2Fmovies%2FInception%20(2010)``. Every other service receives paths that
went through ``PathCodec.decode`` (or ``PathCodec.child``), so this is the one
place where confinement to the root is enforced. Decoding is purely lexical
and never touches the disk; ``resolves_inside`` is the one check that follows
symbolic links, for callers about to read or write through a path.
"""

import logging
import os
import posixpath
from pathlib import Path
from typing import NamedTuple, Optional, Union
from urllib.parse import quote, unquote

from ..core.constants import HOME_LABEL
from ..core.exceptions import ConfinementError

log = logging.getLogger(__name__)

# Characters left untouched by JavaScript's encodeURIComponent.
URI_COMPONENT_SAFE = "-_.!~*'()"


class ResolvedPath(NamedTuple):
    absolute: Path
    relative: str
    title: str


class PathCodec:
    """Encodes root-relative paths for clients and decodes them back, confined to ``root``."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).expanduser().resolve()
        self._root_str = str(self.root)

    @staticmethod
    def normalize(relative_path: str) -> str:
        """Lexical POSIX normalization with exactly one leading slash."""
        rel = posixpath.normpath(str(relative_path).replace("\\", "/") or "/")
        if rel in (".", "/"):
            return "/"
        return "/" + rel.lstrip("/")

    def encode(self, relative_path: str) -> str:
        return quote(self.normalize(relative_path), safe=URI_COMPONENT_SAFE)

    def decode(self, encoded_path: Optional[str]) -> ResolvedPath:
        """
        Decodes a client token into an absolute path inside the root.

        Raises ConfinementError for anything that would land outside the
        root, including malformed percent-escapes and NUL bytes.
        """
        if encoded_path is None:
            encoded_path = "/"
        try:
            decoded = unquote(str(encoded_path), errors="strict")
        except UnicodeDecodeError:
            log.warning("Rejected path token with invalid encoding: %r", encoded_path)
            raise ConfinementError("Invalid path encoding.")

        if "\x00" in decoded:
            log.warning("Rejected path token containing a NUL byte: %r", encoded_path)
            raise ConfinementError("Invalid path.")

        stripped = decoded.replace("\\", "/").lstrip("/")
        normalized = posixpath.normpath(stripped) if stripped else "."
        if normalized == ".." or normalized.startswith("../"):
            log.warning("Rejected path escaping the storage root: %r", encoded_path)
            raise ConfinementError("Path is outside of the storage root.")

        absolute = self.confine(os.path.join(self._root_str, normalized))
        relative = self.relative_to_root(absolute)
        parts = [p for p in relative.split("/") if p]
        title = parts[-1] if parts else HOME_LABEL
        return ResolvedPath(absolute=absolute, relative=relative, title=title)

    def confine(self, path: Union[str, Path]) -> Path:
        """Lexically normalizes ``path`` and checks that it is the root or below it."""
        candidate = os.path.normpath(os.path.join(self._root_str, str(path)))
        try:
            relative = os.path.relpath(candidate, self._root_str)
        except ValueError:
            # Different drive on Windows.
            raise ConfinementError("Path is outside of the storage root.")
        if relative == os.pardir or relative.startswith(os.pardir + os.sep) or os.path.isabs(relative):
            raise ConfinementError("Path is outside of the storage root.")
        return Path(candidate)

    def resolves_inside(self, path: Union[str, Path]) -> bool:
        """True when ``path``, with every symlink followed, still lands at or below the root."""
        real = os.path.realpath(str(path))
        try:
            relative = os.path.relpath(real, self._root_str)
        except ValueError:
            return False
        return not (relative == os.pardir or relative.startswith(os.pardir + os.sep) or os.path.isabs(relative))

    def child(self, parent: Union[str, Path], name: str) -> Path:
        """Joins a user supplied name onto ``parent`` without leaving the root."""
        return self.confine(os.path.join(str(parent), str(name).replace("\\", "/")))

    def relative_to_root(self, path: Union[str, Path]) -> str:
        relative = os.path.relpath(str(self.confine(path)), self._root_str)
        if relative == os.curdir:
            return "/"
        return "/" + relative.replace(os.sep, "/")

    def encode_absolute(self, path: Union[str, Path]) -> str:
        return self.encode(self.relative_to_root(path))

    def is_root(self, path: Union[str, Path]) -> bool:
        return self.relative_to_root(path) == "/"
