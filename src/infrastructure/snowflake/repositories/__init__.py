"""
Repository pattern implementations for Snowflake.

Repositories translate between documents and database representations.
"""

from .documents import SnowflakeConfig, SnowflakeDocumentStore

__all__ = ["SnowflakeConfig", "SnowflakeDocumentStore"]
