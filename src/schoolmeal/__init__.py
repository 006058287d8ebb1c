"""School meal ingestion and normalization service."""

__version__ = "0.1.0"
