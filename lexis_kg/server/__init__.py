"""
HTTP Control Surface

Modules:
    app: FastAPI application factory (POST /start, GET /progress, GET /stats)
"""

from lexis_kg.server.app import create_app

__all__ = ["create_app"]
