from __future__ import annotations

from .client import PingClient, PingResult, ProgressOptions
from .config import ClientSettings, ConfigError, load_client_settings
from .errors import ApiError, ApiErrorCode, ValidationError
from .http_client import ClosableTransport, HttpResponse, HttpTransport, HttpxTransport

__all__ = [
    "ApiError",
    "ApiErrorCode",
    "ClientSettings",
    "ClosableTransport",
    "ConfigError",
    "HttpResponse",
    "HttpTransport",
    "HttpxTransport",
    "PingClient",
    "PingResult",
    "ProgressOptions",
    "ValidationError",
    "load_client_settings",
]
