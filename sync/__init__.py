"""
Sync package - remote storage for sessions, topic segments and focus records.

Provides the RemoteStore protocol, its Supabase and in-memory
implementations, and the ordered StoreWriter queue.
"""

from sync.memory_store import InMemoryRemoteStore
from sync.supabase_store import SupabaseStore
from sync.writer import StoreWriter

__all__ = ["InMemoryRemoteStore", "SupabaseStore", "StoreWriter"]
