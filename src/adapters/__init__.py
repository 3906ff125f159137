"""Adapters that connect the core pipeline to SQLite, HTTP and raw records."""
