"""Pluggable metadata persistence behind Protocol interfaces."""

from __future__ import annotations

from chunkwise.core.config import AppSettings
from chunkwise.persistence.dynamodb_backend import (
    DynamoDBExecutionMetadataStore,
    DynamoDBSequenceAllocator,
)
from chunkwise.persistence.memory_backend import (
    MemoryExecutionMetadataStore,
    MemorySequenceAllocator,
)


def create_persistence(settings: AppSettings | None = None):
    """Create wired-up metadata backends from application settings.

    Returns:
        Tuple of (sequences, store).
    """
    if settings is None:
        settings = AppSettings()

    if settings.backend == "memory":
        sequences = MemorySequenceAllocator()
        return sequences, MemoryExecutionMetadataStore(sequences)

    sequences = DynamoDBSequenceAllocator(
        table_suffix=settings.dynamodb.table_suffix,
        region=settings.dynamodb.region,
        endpoint_url=settings.dynamodb.endpoint_url,
    )

    store = DynamoDBExecutionMetadataStore(
        sequences,
        table_suffix=settings.dynamodb.table_suffix,
        region=settings.dynamodb.region,
        endpoint_url=settings.dynamodb.endpoint_url,
    )

    return sequences, store
