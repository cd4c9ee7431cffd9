"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized, read-only configuration for the static server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m statichttpd --http :8080                        │
    │                                                                      │
    │   2. Configuration file (config.json)                               │
    │      └── {"Httpd": {"Http": ":80", "Root": "/srv/www", ...}}       │
    │                                                                      │
    │   3. Environment variables (when no file is present)                │
    │      └── HTTPD_HTTP=:8080 python -m statichttpd                    │
    │                                                                      │
    │   4. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The config is loaded ONCE at startup and is frozen afterwards. Every
component receives it (or the values it needs) at construction time, so
nothing on the request path ever has to synchronize on it.

=============================================================================
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple


def parse_address(address: str) -> Tuple[str, int]:
    """
    Split a listen address into (host, port).

    Accepted forms:
        ":8080"          → ("", 8080)         all interfaces
        "127.0.0.1:80"   → ("127.0.0.1", 80)
        "[::1]:443"      → ("::1", 443)

    Raises:
        ValueError: If the address has no port or the port is not a number.
    """
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ValueError(f"Invalid listen address {address!r}: missing port")

    try:
        port_number = int(port)
    except ValueError:
        raise ValueError(f"Invalid listen address {address!r}: bad port") from None

    if not 0 <= port_number < 65536:
        raise ValueError(f"Invalid port in {address!r}. Must be 0-65535.")

    return host.strip("[]"), port_number


def _lookup(section: Dict[str, Any], key: str, default: Any = None) -> Any:
    """Case-insensitive key lookup, matching how config.json was always read."""
    for name, value in section.items():
        if name.lower() == key.lower():
            return value
    return default


def normalize_extensions(extensions) -> Tuple[str, ...]:
    """Strip leading dots and blanks from a list of file extensions."""
    return tuple(
        ext.strip().lstrip(".")
        for ext in extensions
        if ext and ext.strip().lstrip(".")
    )


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration for the static HTTP server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    LISTENERS
    - http_address, https_address

    TLS
    - ssl_enabled, ssl_cert, ssl_key

    SITE
    - hostname, root, directory_listing, gzip

    ACCESS LOG
    - access_log

    TRANSPORT
    - backlog, buffer_size, timeout, keep_alive, keep_alive_timeout,
      max_request_size, server_name

    DIAGNOSTICS
    - log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # LISTENERS
    # ─────────────────────────────────────────────────────────────────────

    http_address: str = ":8080"
    """
    Plain-HTTP listen address. With TLS enabled this listener only
    redirects to HTTPS.
    """

    https_address: str = ":8443"
    """HTTPS listen address (used only when ssl_enabled is set)."""

    # ─────────────────────────────────────────────────────────────────────
    # TLS
    # ─────────────────────────────────────────────────────────────────────

    ssl_enabled: bool = False
    ssl_cert: Optional[str] = None
    ssl_key: Optional[str] = None

    # ─────────────────────────────────────────────────────────────────────
    # SITE
    # ─────────────────────────────────────────────────────────────────────

    hostname: str = ""
    """
    Virtual host filter. Requests whose Host header does not CONTAIN
    this string get a 404. Empty string accepts every host.
    """

    root: str = "."
    """Document root served by the file server."""

    directory_listing: bool = True
    """List directory contents when no index.html is present."""

    gzip: Tuple[str, ...] = field(default_factory=tuple)
    """
    File extensions (no leading dot, case-insensitive) whose responses are
    gzip-compressed for clients that accept it. Example: ("html", "css", "js")
    """

    # ─────────────────────────────────────────────────────────────────────
    # ACCESS LOG
    # ─────────────────────────────────────────────────────────────────────

    access_log: Optional[str] = None
    """
    Path of the append-only access log. None (or an unwritable path)
    means standard output.
    """

    # ─────────────────────────────────────────────────────────────────────
    # TRANSPORT
    # ─────────────────────────────────────────────────────────────────────

    backlog: int = 128
    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive: bool = True
    keep_alive_timeout: float = 5.0
    max_request_size: int = 1024 * 1024  # Requests to a static server are headers only
    server_name: str = "statichttpd/1.0"

    # ─────────────────────────────────────────────────────────────────────
    # DIAGNOSTICS
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"

    # =========================================================================
    # DERIVED VALUES
    # =========================================================================

    @property
    def http_bind(self) -> Tuple[str, int]:
        return parse_address(self.http_address)

    @property
    def https_bind(self) -> Tuple[str, int]:
        return parse_address(self.https_address)

    # =========================================================================
    # LOADERS
    # =========================================================================

    @classmethod
    def from_file(cls, path: str) -> "ServerConfig":
        """
        Load configuration from a JSON file.

        =====================================================================
        FILE LAYOUT
        =====================================================================

            {
              "Httpd": {
                "Http": ":80",
                "Https": ":443",
                "Ssl": {"Key": "key.pem", "Cert": "cert.pem", "Enabled": true},
                "Hostname": "example.com",
                "Root": "/srv/www",
                "AccessLog": "/var/log/httpd/access.log",
                "Gzip": ["html", "css", "js", "svg"]
              }
            }

        Key lookup is case-insensitive ("http" and "Http" both work).
        Keys that are missing keep their dataclass defaults.

        =====================================================================

        Raises:
            ValueError: If the file is not valid JSON or lacks the
                        "Httpd" section.
            OSError: If the file cannot be read.
        """
        with open(path, "r", encoding="utf-8") as f:
            try:
                document = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid config file {path}: {e}") from e

        if not isinstance(document, dict):
            raise ValueError(f"Invalid config file {path}: expected an object")

        httpd = _lookup(document, "Httpd")
        if not isinstance(httpd, dict):
            raise ValueError(f"Invalid config file {path}: missing 'Httpd' section")

        ssl_section = _lookup(httpd, "Ssl") or {}
        defaults = cls()

        return cls(
            http_address=_lookup(httpd, "Http", defaults.http_address),
            https_address=_lookup(httpd, "Https", defaults.https_address),
            ssl_enabled=bool(_lookup(ssl_section, "Enabled", False)),
            ssl_cert=_lookup(ssl_section, "Cert"),
            ssl_key=_lookup(ssl_section, "Key"),
            hostname=_lookup(httpd, "Hostname", defaults.hostname),
            root=_lookup(httpd, "Root", defaults.root),
            access_log=_lookup(httpd, "AccessLog") or None,
            gzip=normalize_extensions(_lookup(httpd, "Gzip", ()) or ()),
            log_level=_lookup(httpd, "LogLevel", defaults.log_level),
        )

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        HTTPD_HTTP          Plain-HTTP address      (default: :8080)
        HTTPD_HTTPS         HTTPS address           (default: :8443)
        HTTPD_SSL_ENABLED   "1"/"true" enables TLS  (default: off)
        HTTPD_SSL_CERT      Certificate chain file
        HTTPD_SSL_KEY       Private key file
        HTTPD_HOSTNAME      Virtual host filter     (default: accept all)
        HTTPD_ROOT          Document root           (default: .)
        HTTPD_ACCESS_LOG    Access log file         (default: stdout)
        HTTPD_GZIP          Comma-separated extensions, e.g. "html,css,js"
        HTTPD_LOG_LEVEL     Logging level           (default: INFO)

        =====================================================================
        """
        return cls(
            http_address=os.getenv("HTTPD_HTTP", ":8080"),
            https_address=os.getenv("HTTPD_HTTPS", ":8443"),
            ssl_enabled=os.getenv("HTTPD_SSL_ENABLED", "").lower() in ("1", "true", "yes"),
            ssl_cert=os.getenv("HTTPD_SSL_CERT"),
            ssl_key=os.getenv("HTTPD_SSL_KEY"),
            hostname=os.getenv("HTTPD_HOSTNAME", ""),
            root=os.getenv("HTTPD_ROOT", "."),
            access_log=os.getenv("HTTPD_ACCESS_LOG") or None,
            gzip=normalize_extensions(os.getenv("HTTPD_GZIP", "").split(",")),
            log_level=os.getenv("HTTPD_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        We validate at startup, not at first use: a bad address or a
        missing certificate should stop the process before it accepts
        a single connection.
        """
        parse_address(self.http_address)

        if not Path(self.root).is_dir():
            raise ValueError(f"Document root is not a directory: {self.root}")

        if self.ssl_enabled:
            parse_address(self.https_address)
            if not self.ssl_cert or not self.ssl_key:
                raise ValueError("ssl_cert and ssl_key are required when TLS is enabled")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.keep_alive_timeout <= 0:
            raise ValueError("keep_alive_timeout must be > 0")
