"""
=============================================================================
STATICHTTPD CLI ENTRY POINT
=============================================================================

    # Serve ./config.json if present, else HTTPD_* environment variables
    python -m statichttpd

    # Explicit config file
    python -m statichttpd --config /etc/statichttpd.json

    # Quick local preview of a directory
    python -m statichttpd --http 127.0.0.1:8000 --root ./public

    # Compress text assets, log to a file
    python -m statichttpd --gzip html,css,js,svg --access-log access.log

Command-line flags override whatever the file or environment provided.

Exit codes:
    0  clean shutdown (SIGINT/SIGTERM)
    1  a listener failed
    2  invalid configuration

=============================================================================
"""

import argparse
import os
import sys
from dataclasses import replace
from typing import List, Optional

from . import __version__
from .config import ServerConfig, normalize_extensions
from .server import HTTPServer, ListenerError

DEFAULT_CONFIG_FILE = "config.json"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="statichttpd",
        description="Static HTTP(S) server with gzip, virtual host filter and access log",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m statichttpd                                   # config.json or HTTPD_* env
  python -m statichttpd --config site.json                # Explicit config file
  python -m statichttpd --http :8000 --root ./public      # Serve a directory
  python -m statichttpd --gzip html,css,js                # Compress text assets
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # CONFIGURATION SOURCE
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--config", "-c",
        default=None,
        help=f"JSON config file (default: ./{DEFAULT_CONFIG_FILE} if it exists)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LISTENERS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--http", help="Plain-HTTP listen address, e.g. :8080 or 127.0.0.1:8080")
    parser.add_argument("--https", help="HTTPS listen address (used when TLS is enabled)")

    # ─────────────────────────────────────────────────────────────────────
    # SITE
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--root", "-r", help="Document root")
    parser.add_argument("--hostname", help="Only serve requests whose Host contains this")
    parser.add_argument("--gzip", help="Comma-separated extensions to compress, e.g. html,css,js")
    parser.add_argument(
        "--no-directory-listing",
        action="store_true",
        help="Answer 403 for directories without index.html"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--access-log", help="Access log file (default: stdout)")
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Diagnostic logging level (default: INFO)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"statichttpd {__version__}"
    )

    return parser


def build_config(args: argparse.Namespace) -> ServerConfig:
    """
    File (or environment) first, then command-line overrides.

    Raises:
        ValueError: If the config file is invalid.
        OSError: If the config file cannot be read.
    """
    if args.config:
        config = ServerConfig.from_file(args.config)
    elif os.path.isfile(DEFAULT_CONFIG_FILE):
        config = ServerConfig.from_file(DEFAULT_CONFIG_FILE)
    else:
        config = ServerConfig.from_env()

    overrides = {}
    if args.http:
        overrides["http_address"] = args.http
    if args.https:
        overrides["https_address"] = args.https
    if args.root:
        overrides["root"] = args.root
    if args.hostname is not None:
        overrides["hostname"] = args.hostname
    if args.gzip is not None:
        overrides["gzip"] = normalize_extensions(args.gzip.split(","))
    if args.no_directory_listing:
        overrides["directory_listing"] = False
    if args.access_log:
        overrides["access_log"] = args.access_log
    if args.log_level:
        overrides["log_level"] = args.log_level

    return replace(config, **overrides)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        server = HTTPServer(build_config(args))
    except (ValueError, OSError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    try:
        server.run()
    except ListenerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        # TLS certificate/key could not be loaded
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    return 0


if __name__ == "__main__":
    sys.exit(main())
