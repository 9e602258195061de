"""
API Layer.

Flask HTTP endpoints, request validation and the 200-only response mapping.
"""

# The blueprint is registered in slot_booker.app via:
#   from slot_booker.api import api_bp

__all__ = ["api_bp"]


def __getattr__(name: str):
    """Lazy import to avoid circular dependencies."""
    if name == "api_bp":
        from slot_booker.api.routes import api_bp
        return api_bp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
