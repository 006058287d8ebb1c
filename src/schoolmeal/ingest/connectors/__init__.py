"""Connector interfaces for the upstream meal feed."""

from schoolmeal.ingest.connectors.base import (
    ConnectorResponse,
    DecodeError,
    FeedError,
    NetworkError,
    UpstreamError,
)
from schoolmeal.ingest.connectors.neis import NeisConnector, extract_rows, parse_rows

__all__ = [
    "ConnectorResponse",
    "DecodeError",
    "FeedError",
    "NeisConnector",
    "NetworkError",
    "UpstreamError",
    "extract_rows",
    "parse_rows",
]
