"""Tools registry for managing AI assistant tools."""

from typing import Any

from assistant.models.llm import LLMTool
from assistant.services.calendar import CalendarService
from assistant.tools.base import ToolCallable, ToolDefinition
from assistant.tools.calendar_events import (
    create_create_event_tool,
    create_delete_event_tool,
    create_get_events_tool,
    create_update_event_tool,
)


class ToolsRegistry:
    """Registry for managing AI assistant tools."""

    def __init__(self, calendar_service: CalendarService):
        """Initialize tools registry with service dependencies."""
        self.calendar_service = calendar_service
        self._tools: dict[str, ToolDefinition] = {}
        self._register_default_tools()

    def _register_default_tools(self) -> None:
        """Register the default set of calendar tools."""
        tools = [
            create_get_events_tool(self.calendar_service),
            create_create_event_tool(self.calendar_service),
            create_update_event_tool(self.calendar_service),
            create_delete_event_tool(self.calendar_service),
        ]

        for tool in tools:
            self.register_tool(tool)

    def register_tool(self, tool: ToolDefinition) -> None:
        """Register a new tool in the registry."""
        self._tools[tool.name] = tool

    def get_llm_tools(self, user_id: str) -> dict[str, LLMTool]:
        """Get LLM tools with both schemas and callables bound to a user."""

        def create_tool_callable(tool: ToolDefinition) -> ToolCallable:
            async def tool_callable(params: dict[str, Any]) -> str:
                parsed_params = tool.parse_input(params)
                return await tool.handler(parsed_params, user_id)

            return tool_callable

        return {
            name: LLMTool(
                name=tool.name,
                description=tool.description,
                input_schema=tool.get_json_schema(),
                callable=create_tool_callable(tool),
                requires_approval=tool.requires_approval,
            )
            for name, tool in self._tools.items()
        }

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())
