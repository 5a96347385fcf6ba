"""Ingestion layer.

This package contains adapters that turn provider pulls, push batches and
manual edits into normalized domain objects/events.
"""

__all__: list[str] = []
