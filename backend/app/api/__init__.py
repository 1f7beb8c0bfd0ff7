"""HTTP API for the toilet finder backend."""

from .routes import router

__all__ = ["router"]
