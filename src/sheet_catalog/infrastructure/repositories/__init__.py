"""
Repository Implementations - Infrastructure Layer

In-process implementations of the backend ports.
"""

from .memory_store import (
    InMemoryBlobStore,
    InMemoryIdentityProvider,
    InMemoryRelationalStore,
)

__all__ = [
    "InMemoryRelationalStore",
    "InMemoryBlobStore",
    "InMemoryIdentityProvider",
]
