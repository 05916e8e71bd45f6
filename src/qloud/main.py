# filename: src/qloud/main.py
#!/usr/bin/env python3
"""
Qloud - Personal Media Server
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

import argparse
import logging
import sys
from typing import List, Optional

import uvicorn

from .api_server.api import create_api_app
from .core import constants
from .core.config import get_config_manager
from .core.exceptions import ConfigurationError
from .core.logging_config import setup_logging
from .core.version import __app_name__, __version__
from .services.file_system import FileSystem


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog=__app_name__.lower(),
        description="Personal media server with a sandboxed file browser.",
    )
    parser.add_argument("--root", help="Directory to serve (overrides the configured root).")
    parser.add_argument("--host", help="Interface to bind to.")
    parser.add_argument("--port", type=int, help="Port to listen on.")
    parser.add_argument("--version", action="version", version=f"{__app_name__} v{__version__}")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for Qloud."""
    args = parse_args(argv)

    constants.initialize_app_directories()
    try:
        config = get_config_manager()
    except ConfigurationError as e:
        print(f"ERROR: {e}")
        return 1

    level = getattr(logging, str(config.get("log_level", "INFO")).upper(), logging.INFO)
    setup_logging(level)
    log = logging.getLogger(__name__)
    log.info(f"Starting {__app_name__} v{__version__}")

    root = args.root or config.get_root_path()
    host = args.host or config.get("host", constants.DEFAULT_HOST)
    port = args.port or config.get("server_port", constants.DEFAULT_PORT)

    try:
        file_system = FileSystem(
            root,
            search_limit=config.get("search_limit", constants.DEFAULT_SEARCH_LIMIT),
            upload_session_ttl=config.get("upload_session_ttl", constants.UPLOAD_SESSION_TTL),
        )
        file_system.ensure_root()
        app = create_api_app(file_system)
        uvicorn.run(app, host=host, port=port, log_config=None)
        return 0
    except Exception as e:
        log.critical(f"Failed to start {__app_name__}: {e}")
        print(f"ERROR: Could not start {__app_name__}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
