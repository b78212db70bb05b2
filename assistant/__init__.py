"""Conversational calendar assistant with streaming agent runs."""

__version__ = "0.1.0"
