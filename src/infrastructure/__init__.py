"""
Infrastructure layer - external service integrations.

Each subdirectory provides a RecordStore implementation:
- snowflake: Document persistence in a Snowflake VARIANT table
- memory: In-memory store for mock mode and tests

These wrappers translate between the store's documents and what the
database actually holds.
"""
