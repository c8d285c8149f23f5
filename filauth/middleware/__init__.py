"""HTTP middleware: verification, request logging, deadlines and throttling"""
from filauth.middleware.auth_mux import AuthMux, caller_from_request
from filauth.middleware.monitoring import DeadlineMiddleware, MonitoringMiddleware
from filauth.middleware.rate_limit import build_limiter, get_identifier

__all__ = [
    "AuthMux",
    "caller_from_request",
    "DeadlineMiddleware",
    "MonitoringMiddleware",
    "build_limiter",
    "get_identifier",
]
