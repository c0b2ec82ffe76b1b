"""
Core business logic for client tracking.

This module is framework-agnostic - it doesn't import FastAPI, Snowflake,
or any infrastructure concerns. Storage is reached through the RecordStore
protocol, so the tracking rules can be tested against an in-memory store.
"""
