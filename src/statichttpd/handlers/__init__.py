"""
=============================================================================
HANDLERS
=============================================================================

Terminal handlers: the stage at the bottom of a chain that actually
answers the request on the writer.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ Handler           │ Use                                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │ FileServer        │ files, directory indexes and listings below    │
    │                   │ the document root                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │ RedirectMiddleware│ (lives in middleware/) every request → https    │
    └─────────────────────────────────────────────────────────────────────┘

    from statichttpd.handlers import FileServer

    handler = FileServer("/srv/www", directory_listing=False)
    handler(request, writer)

=============================================================================
"""

from .static import FileServer

__all__ = [
    "FileServer",
]
