"""HTTP status API: JSON snapshot and SSE stream over the state store."""

from .server import ApiServer, create_app
