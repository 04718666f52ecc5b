"""Keepsake media ingest pipeline."""

__version__ = "0.1.0"
