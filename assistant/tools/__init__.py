"""Tools for the conversational AI assistant."""

from assistant.tools.registry import ToolsRegistry

__all__ = ["ToolsRegistry"]
