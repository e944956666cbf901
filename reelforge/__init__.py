"""Idea-to-vertical-video job pipeline."""

__version__ = "0.1.0"
