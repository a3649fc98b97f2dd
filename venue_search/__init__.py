"""Filtering, pagination and geo-aware search for facility and court listings."""

__version__ = "0.1.0"
