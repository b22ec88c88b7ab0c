"""In-memory governance service for tests."""

from .client import (
    MUTATING_METHODS,
    ListingFailure,
    MockGovernanceClient,
    RecordedCall,
    async_items,
)

__all__ = [
    "MUTATING_METHODS",
    "ListingFailure",
    "MockGovernanceClient",
    "RecordedCall",
    "async_items",
]
