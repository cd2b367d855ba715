"""
External Services - Infrastructure Layer

Adapters for the hosted backend, implementing the Anti-Corruption Layer
pattern so the catalog only sees its own ports.
"""

from .supabase_adapter import (
    SupabaseBackend,
    SupabaseBlobStore,
    SupabaseClient,
    SupabaseIdentityProvider,
    SupabaseRelationalStore,
    create_supabase_backend,
)

__all__ = [
    "SupabaseBackend",
    "SupabaseBlobStore",
    "SupabaseClient",
    "SupabaseIdentityProvider",
    "SupabaseRelationalStore",
    "create_supabase_backend",
]
