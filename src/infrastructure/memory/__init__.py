"""
In-memory record store.

Used when SNOWFLAKE_MOCK_MODE is enabled and throughout the test suite.
"""

from .store import InMemoryRecordStore

__all__ = ["InMemoryRecordStore"]
