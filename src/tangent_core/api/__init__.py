"""Tangent ingest API for server-side event and entitlement delivery."""
from .auth import get_sdk, require_api_key
from .routes import router

__all__ = ["get_sdk", "require_api_key", "router"]
