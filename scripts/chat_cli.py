#!/usr/bin/env python3
"""Interactive chat CLI for testing the calendar assistant service."""

import sys

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Confirm, Prompt

from assistant.models.thread import (
    ClientToolCallItem,
    EndOfTurnItem,
    ErrorEvent,
    ProgressUpdateEvent,
    ThreadCreatedEvent,
    ThreadItemAddedEvent,
    ThreadItemDoneEvent,
    ThreadItemUpdatedEvent,
    ToolApprovalRequestedEvent,
)
from assistant.services.protocol import parse_stream_event


class ChatCLI:
    """Interactive chat interface for the calendar assistant service."""

    def __init__(self, base_url: str = "http://localhost:8000", user_id: str = "cli-user"):
        """Initialize chat CLI."""
        self.base_url = base_url
        self.conversation_id: str | None = None
        self.console = Console()
        self.client = httpx.Client(timeout=httpx.Timeout(60.0, read=None), headers={"X-User-Id": user_id})

    def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]📅 Calendar Assistant - Interactive Chat[/bold blue]\n"
                "Type your messages to chat with the AI assistant.\n"
                "Commands: /help, /clear, /quit",
                border_style="blue",
            )
        )

        if not self._test_connection():
            self.console.print(f"[red]❌ Cannot connect to the service at {self.base_url}.[/red]")
            return

        self.console.print("[green]✅ Connected to calendar assistant service[/green]\n")

        try:
            while True:
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]")

                if user_input.lower() in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif user_input.lower() == "/help":
                    self._show_help()
                    continue
                elif user_input.lower() == "/clear":
                    self.conversation_id = None
                    self.console.print("[yellow]🔄 Conversation cleared[/yellow]")
                    continue
                elif user_input.strip() == "":
                    continue

                self._send_message(user_input)

        except KeyboardInterrupt:
            pass
        finally:
            self.console.print("\n[yellow]👋 Goodbye![/yellow]")
            self.client.close()

    def _test_connection(self) -> bool:
        """Test connection to the service."""
        try:
            response = self.client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    def _send_message(self, message: str) -> None:
        """Send a turn and render its event stream."""
        payload = {"message": message}
        if self.conversation_id:
            payload["conversationId"] = self.conversation_id

        try:
            with self.client.stream("POST", f"{self.base_url}/turn", json=payload) as response:
                if response.status_code != 200:
                    response.read()
                    self.console.print(f"[red]❌ API Error: {response.status_code} - {response.text}[/red]")
                    return

                for line in response.iter_lines():
                    if line.startswith("data:"):
                        self._handle_frame(line[len("data:") :].strip())

        except httpx.HTTPError as e:
            self.console.print(f"[red]❌ Connection error: {e}[/red]")

    def _handle_frame(self, payload: str) -> None:
        event = parse_stream_event(payload)

        match event:
            case ThreadCreatedEvent(thread=thread):
                self.conversation_id = thread.id
                self.console.print(f"[dim]🧵 New conversation: {thread.title}[/dim]")
            case ThreadItemAddedEvent(item=ClientToolCallItem() as item):
                self.console.print(f"[dim]🔧 {item.name} {item.arguments}[/dim]")
            case ThreadItemAddedEvent(item=EndOfTurnItem()):
                pass
            case ThreadItemUpdatedEvent():
                self.console.print("[dim].[/dim]", end="")
            case ProgressUpdateEvent(icon=icon, text=text):
                self.console.print(f"\n[dim]{icon or ''} {text}[/dim]")
            case ToolApprovalRequestedEvent():
                self._answer_approval(event)
            case ThreadItemDoneEvent(item=item):
                text = "".join(part.text for part in getattr(item, "content", []))
                self.console.print()
                self.console.print(
                    Panel(
                        Markdown(text or "_No response_"),
                        title="[bold green]🤖 Assistant[/bold green]",
                        border_style="green",
                        padding=(1, 2),
                    )
                )
            case ErrorEvent(message=error_message):
                self.console.print(f"\n[red]❌ {error_message}[/red]")

    def _answer_approval(self, event: ToolApprovalRequestedEvent) -> None:
        """Ask the user to approve a tool call and post the decision."""
        self.console.print(
            Panel(
                f"[bold]{event.tool_name}[/bold]\n{event.tool_arguments}\n\n"
                f"[dim]Auto-rejects in {event.timeout_ms // 1000}s[/dim]",
                title="[yellow]⚠️ Approval required[/yellow]",
                border_style="yellow",
            )
        )
        approved = Confirm.ask("Allow this action?", default=False)

        response = self.client.post(
            f"{self.base_url}/approvals",
            json={"approval_id": event.approval_id, "approved": approved},
        )
        if response.status_code != 200:
            self.console.print(f"[red]❌ Failed to send approval: {response.status_code} - {response.text}[/red]")

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /clear - Start a new conversation
• /quit or /exit - Exit the chat

[bold]Example Conversation:[/bold]
1. "What's on my calendar tomorrow?"
2. "Schedule a meeting with Alex on Friday at 2pm"
3. "Delete the dentist appointment"
4. "What is the capital of France?"

[bold]Tips:[/bold]
• Calendar requests run the calendar agent, everything else is answered directly
• Deleting an event asks for your approval before anything is removed
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]❓ Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

    chat = ChatCLI(base_url)
    chat.start()


if __name__ == "__main__":
    main()
