"""Context database generation pipeline for events."""

__version__ = "0.1.0"
