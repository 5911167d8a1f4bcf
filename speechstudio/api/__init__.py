"""API module."""
from .routes import router, get_gateway

__all__ = ["router", "get_gateway"]
