"""Base types and errors shared by feed connectors."""

from dataclasses import dataclass
from typing import Any


@dataclass
class ConnectorResponse:
    """Standardized response from connector API calls."""

    data: Any
    status_code: int
    headers: dict[str, str]


class FeedError(Exception):
    """Base exception for upstream feed failures."""


class NetworkError(FeedError):
    """Raised when the feed cannot be reached (timeouts, connection errors)."""


class DecodeError(FeedError):
    """Raised when the feed response is not a well-formed envelope."""

    def __init__(self, message: str, payload: Any = None):
        super().__init__(message)
        self.payload = payload


class UpstreamError(FeedError):
    """Raised when the feed answers with an error status."""

    def __init__(self, code: str | int, message: str):
        super().__init__(f"Upstream error {code}: {message}")
        self.code = code
        self.message = message
