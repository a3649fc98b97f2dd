"""Elasticsearch-backed facility search and index maintenance."""
