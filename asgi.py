"""
asgi.py -- ASGI entry point for the IDAM-PAM platform.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
