"""Ingestion core for commercial real-estate listings."""

__version__ = "0.1.0"
