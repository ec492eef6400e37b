"""HTTP sync server for mind map replicas.

Exposes the fetch and fetch-merge-store cycles over a small JSON API
using FastAPI.
"""

from .app import create_app

__all__ = ["create_app"]
