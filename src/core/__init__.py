"""Core domain package for notifyrelay.

Core contains routing, filtering, deduplication, rate control, aggregation and
rendering logic without any HTTP or storage-specific code, keeping the
dispatch decisions portable and easy to test.
"""
