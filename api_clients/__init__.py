"""API clients and helpers for external services."""

from .readings_client import (
    ReadingsClient,
    convert_reading_batch,
    fetch_reading_batch,
    fetch_reading_batch_sync,
)

__all__ = [
    "ReadingsClient",
    "convert_reading_batch",
    "fetch_reading_batch",
    "fetch_reading_batch_sync",
]
