"""
Centralized mock objects for testing.

This package provides reusable mock factories for subscriber WebSockets and
the connection manager, reducing code duplication across test files.
"""
