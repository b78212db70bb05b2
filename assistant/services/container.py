"""Service wiring for the application.

Stores, the approval store and the mutation serializer are created once per
app instance and shared by every request served by it.
"""

from dataclasses import dataclass, field

from assistant.clients.anthropic import AnthropicClient, AnthropicConfig
from assistant.config import Settings
from assistant.models.llm import AgentModel
from assistant.services.agent_runner import AgentRunner
from assistant.services.approvals import ApprovalBroker, ApprovalStore, InMemoryApprovalStore
from assistant.services.auth import AuthResolver, HeaderAuthResolver
from assistant.services.calendar import CalendarService, InMemoryCalendarService
from assistant.services.conversation_store import ConversationStore, InMemoryConversationStore
from assistant.services.intent import Intent
from assistant.services.mutex import InMemoryMutationSerializer, MutationSerializer
from assistant.services.router import TurnRouter
from assistant.services.turns import TurnService
from assistant.tools.registry import ToolsRegistry
from assistant.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class AppServices:
    """Collaborators shared by the HTTP layer."""

    settings: Settings
    conversations: ConversationStore
    approval_store: ApprovalStore
    serializer: MutationSerializer
    calendar: CalendarService
    auth: AuthResolver
    model: AgentModel | None = None
    _router: TurnRouter | None = field(default=None, init=False, repr=False)

    def get_model(self) -> AgentModel:
        """Return the agent model, creating the Anthropic client on first use.

        Raises:
            ConfigurationError: If no model was injected and no API key is configured
        """
        if self.model is None:
            logger.info(f"Creating Anthropic client for model {self.settings.model}")
            self.model = AnthropicClient(
                api_key=self.settings.anthropic_api_key,
                config=AnthropicConfig(model=self.settings.model, max_tokens=self.settings.max_tokens),
            )
        return self.model

    def approval_broker(self) -> ApprovalBroker:
        return ApprovalBroker(
            store=self.approval_store,
            timeout_ms=self.settings.approval_timeout_ms,
            poll_interval_ms=self.settings.approval_poll_interval_ms,
        )

    def calendar_turns(self) -> TurnService:
        """Turn handler for the calendar agent, with tools and approvals."""
        return self.router().handlers[Intent.CALENDAR]

    def qa_turns(self) -> TurnService:
        """Turn handler for plain question answering."""
        return self.router().handlers[Intent.QA]

    def router(self) -> TurnRouter:
        """Return the turn router, building both paths on first use."""
        if self._router is None:
            model = self.get_model()
            calendar = TurnService(
                "calendar",
                self.conversations,
                AgentRunner(model, ToolsRegistry(self.calendar), max_turns=self.settings.agent_max_turns),
                approvals=self.approval_broker(),
                max_message_chars=self.settings.max_message_chars,
            )
            qa = TurnService(
                "qa",
                self.conversations,
                AgentRunner(model, max_turns=self.settings.agent_max_turns, text_only=True),
                max_message_chars=self.settings.max_message_chars,
                progress_icon="💬",
            )
            self._router = TurnRouter(calendar=calendar, qa=qa)
        return self._router


def build_services(
    settings: Settings,
    *,
    conversations: ConversationStore | None = None,
    approval_store: ApprovalStore | None = None,
    serializer: MutationSerializer | None = None,
    calendar: CalendarService | None = None,
    auth: AuthResolver | None = None,
    model: AgentModel | None = None,
) -> AppServices:
    """Build the service container, using in-memory implementations by default."""
    if serializer is None:
        serializer = InMemoryMutationSerializer()
    if approval_store is None:
        approval_store = InMemoryApprovalStore(ttl_seconds=settings.approval_ttl_ms / 1000)

    return AppServices(
        settings=settings,
        conversations=conversations if conversations is not None else InMemoryConversationStore(),
        approval_store=approval_store,
        serializer=serializer,
        calendar=calendar if calendar is not None else InMemoryCalendarService(serializer),
        auth=auth if auth is not None else HeaderAuthResolver(settings.auth_header),
        model=model,
    )
