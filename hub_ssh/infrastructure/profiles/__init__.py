"""
Stored connection profile backends.
"""

from .stores import (
    FileProfileStore, NullProfileStore, SQLiteProfileStore,
    create_profile_store, profile_from_record
)

__all__ = [
    'FileProfileStore',
    'NullProfileStore',
    'SQLiteProfileStore',
    'create_profile_store',
    'profile_from_record',
]
