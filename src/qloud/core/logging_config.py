"""
Qloud - Personal Media Server - Logging Configuration
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

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional, Union

from . import constants

LOG_FORMAT = "%(asctime)s - %(name)-22s - %(levelname)-8s - %(message)s"
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 5

# uvicorn installs its own handlers unless told otherwise; its records are
# routed through the root logger instead so they land in the log file too.
SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def _build_handlers(log_file: Path, formatter: logging.Formatter) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    try:
        file_handler = RotatingFileHandler(
            log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8"
        )
        handlers.append(file_handler)
    except OSError as e:
        sys.stderr.write(f"Qloud: cannot write log file {log_file}: {e}\n")

    # Frozen builds run without a console.
    if not getattr(sys, "frozen", False):
        handlers.append(logging.StreamHandler(sys.stdout))

    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging(level: Union[int, str] = logging.INFO, log_dir: Optional[Path] = None) -> Path:
    """
    Sends every Qloud and uvicorn record to ``<log_dir>/qloud.log`` and, when
    running from source, to stdout. Meant to be called once at startup;
    calling it again replaces the previous handlers.
    """
    log_dir = Path(log_dir or constants.APP_DATA_PATH)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / constants.LOG_FILENAME

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(level)
    for handler in _build_handlers(log_file, logging.Formatter(LOG_FORMAT)):
        root_logger.addHandler(handler)

    for name in SERVER_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.handlers.clear()
        server_logger.propagate = True

    logging.getLogger(__name__).info(
        f"{constants.APP_NAME} logging to {log_file} at level {logging.getLevelName(root_logger.level)}"
    )
    return log_file
