"""Chainview: queryable mirror and REST gateway for a blockchain node."""

__version__ = "1.0.0"
