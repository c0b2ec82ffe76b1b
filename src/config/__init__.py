"""
Configuration for the tracking API.

Everything is read from environment variables (or .env). With
SNOWFLAKE_MOCK_MODE on, the API runs against an in-memory store.
"""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
