"""Route registration helpers."""

from .health import register_health_routes
from .history import register_history_routes

__all__ = [
    "register_health_routes",
    "register_history_routes",
]
