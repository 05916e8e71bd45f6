# src/qloud/core/utils.py
# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2025 AZHAR ZOUHIR / BYTEDz

import os
import sys
from pathlib import Path
from typing import Union


SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def get_app_data_path(app_name: str) -> Path:
    """
    Returns the per-user directory used for configuration and logs.
    Honours QLOUD_DATA_DIR so tests and portable installs can relocate it.
    """
    override = os.environ.get("QLOUD_DATA_DIR")
    if override:
        return Path(override).expanduser()

    if sys.platform == "win32":
        base = os.environ.get("APPDATA") or str(Path.home() / "AppData" / "Roaming")
        return Path(base) / app_name
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / app_name

    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / app_name.lower()


def format_bytes(size: Union[int, float]) -> str:
    """Human readable size, e.g. 1536 -> '1.5 KB'."""
    if size <= 0:
        return "0 B"
    value, unit = float(size), 0
    while value >= 1024 and unit < len(SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{value:.1f} {SIZE_UNITS[unit]}"
