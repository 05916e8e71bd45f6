# filename: src/qloud/core/constants.py
"""
Qloud - Personal Media Server - Constants Module
Copyright (C) 2025 AZHAR ZOUHIR / BYTEDz

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU Affero General Public License as published
by the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
GNU Affero General Public License for more details.

You should have received a copy of the GNU Affero General Public License
along with this program. If not, see <https://www.gnu.org/licenses/>.
"""

from pathlib import Path

from .utils import get_app_data_path
from .version import __app_name__

# --- Application Metadata ---
APP_NAME = __app_name__

# --- Core Application Settings ---
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
DEFAULT_SEARCH_LIMIT = 10
UPLOAD_SESSION_TTL = 7 * 24 * 60 * 60  # in seconds
UPLOAD_SWEEP_INTERVAL = 60 * 60  # in seconds

# --- Virtual Filesystem ---
HOME_LABEL = "Home"
CHUNK_DIR_NAME = "__chunks__"
FILE_ROUTE = "/api/file"  # streams one file, addressed by ?fs=<encoded path>
RELATED_FILES_LIMIT = 500

# --- File Names ---
CONFIG_FILENAME = "config.json"
LOG_FILENAME = "qloud.log"

# --- Application Paths ---
# Base directory for all application data and configuration.
APP_DATA_PATH = get_app_data_path(APP_NAME)
CONFIG_FILE = APP_DATA_PATH / CONFIG_FILENAME

# Storage root used when no custom path is configured, relative to the
# working directory the server was started from.
APP_ROOT_PATH = Path.cwd() / APP_NAME


def initialize_app_directories():
    """
    Creates required application directories.
    This function should be called once at the application's entry point
    to ensure all necessary folders exist before they are accessed.
    """
    APP_DATA_PATH.mkdir(parents=True, exist_ok=True)
