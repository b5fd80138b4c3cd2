"""
API Module
"""
from .errors import register_exception_handlers
from .middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from .responses import GraphResponse

__all__ = [
    "register_exception_handlers",
    "RequestLoggingMiddleware",
    "SecurityHeadersMiddleware",
    "GraphResponse",
]
