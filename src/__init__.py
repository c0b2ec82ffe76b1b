"""
Coach Portal Tracking - client tracking backend for a coaching portal.

This package contains the complete application:
- core: Framework-agnostic tracking rules and services
- infrastructure: Record store implementations (Snowflake, in-memory)
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
