"""
=============================================================================
HTTP PROTOCOL COMPONENTS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │ REQUEST (request.py)                                                │
    │   raw bytes → HTTPRequest (method, uri, path, headers, remote_addr) │
    ├─────────────────────────────────────────────────────────────────────┤
    │ RESPONSE (response.py)                                              │
    │   ResponseWriter contract + ConnectionResponseWriter (the socket    │
    │   end of every writer stack) + error / not_found / redirect         │
    ├─────────────────────────────────────────────────────────────────────┤
    │ WRITERS (writers.py)                                                │
    │   ResponseRecorder (status + byte accounting)                       │
    │   CompressingWriter (streaming gzip)                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │ STATUS CODES / MIME TYPES                                           │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, format_remote_addr
from .response import (
    ResponseWriter,
    ConnectionResponseWriter,
    error,
    not_found,
    redirect,
    format_http_date,
)
from .writers import ResponseRecorder, CompressingWriter
from .status_codes import HTTPStatus
from .mime_types import get_mime_type, get_content_type

__all__ = [
    # Requests
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "format_remote_addr",

    # Writers
    "ResponseWriter",
    "ConnectionResponseWriter",
    "ResponseRecorder",
    "CompressingWriter",

    # Canned responses
    "error",
    "not_found",
    "redirect",
    "format_http_date",

    # Status codes
    "HTTPStatus",

    # MIME types
    "get_mime_type",
    "get_content_type",
]
