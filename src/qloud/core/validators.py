# src/qloud/core/validators.py
# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2025 AZHAR ZOUHIR / BYTEDz

import posixpath
import re

UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_.\-]")
RESERVED_NAMES = {"", ".", ".."}


def validate_filename(file_name: str) -> str:
    """
    Reduces an uploaded file name to its basename over a safe charset.
    Raises ValueError when nothing usable is left.
    """
    if not file_name:
        raise ValueError("File name cannot be empty.")
    base = posixpath.basename(file_name.replace("\\", "/"))
    safe_name = UNSAFE_FILENAME_CHARS.sub("", base)
    if safe_name in RESERVED_NAMES:
        raise ValueError(f"File name '{file_name}' has no usable characters.")
    return safe_name


def validate_entry_name(name: str) -> str:
    """
    Checks a user supplied folder or rename target. Nested segments are
    allowed, confinement is enforced later by the path codec.
    """
    if name is None or not name.strip():
        raise ValueError("Name cannot be empty.")
    if "\x00" in name:
        raise ValueError("Name contains invalid characters.")
    name = name.strip()
    if name.replace("\\", "/").strip("/") in RESERVED_NAMES:
        raise ValueError(f"'{name}' is not a valid name.")
    return name
