"""Human-in-the-loop approval handshake for sensitive tool calls.

The streaming turn (producer) registers a pending approval, emits a
``tool_approval_requested`` frame and waits. A separate request from the client
UI (consumer) posts the decision to ``/approvals``. A decision that never
arrives is treated as a rejection.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from cuid2 import cuid_wrapper

from assistant.models.thread import ThreadStreamEvent, ToolApprovalRequestedEvent
from assistant.utils.logging import get_logger
from assistant.utils.redaction import redact_pii_from_object

logger = get_logger(__name__)

cuid = cuid_wrapper()

DEFAULT_APPROVAL_TIMEOUT_MS = 30_000
DEFAULT_POLL_INTERVAL_MS = 500
DEFAULT_APPROVAL_TTL_MS = 60_000


def new_approval_id() -> str:
    """Return a fresh approval id, unique per tool-call instance."""
    return f"approval-{cuid()}"


class ApprovalStore(ABC):
    """Rendezvous store mapping approval ids to decisions."""

    @abstractmethod
    async def create(self, approval_id: str) -> None:
        """Register a pending (undecided) approval."""
        ...

    @abstractmethod
    async def get(self, approval_id: str) -> bool | None:
        """Return the stored decision, or None if pending, unknown or expired."""
        ...

    @abstractmethod
    async def set(self, approval_id: str, approved: bool) -> None:
        """Store a decision with a fresh timestamp.

        Decisions for resolved or expired ids are dropped.
        """
        ...

    @abstractmethod
    async def mark_resolved(self, approval_id: str) -> None:
        """Freeze the stored decision once the waiting turn has consumed it."""
        ...

    @abstractmethod
    async def sweep(self) -> int:
        """Remove expired records. Returns the number removed."""
        ...

    async def wait_for_decision(self, approval_id: str, timeout: float, poll_interval: float) -> bool | None:
        """Poll for a decision until one appears or ``timeout`` seconds elapse.

        Backends with a push mechanism should override this.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            decision = await self.get(approval_id)
            if decision is not None:
                await self.mark_resolved(approval_id)
                return decision

            remaining = deadline - loop.time()
            if remaining <= 0:
                return None
            await asyncio.sleep(min(poll_interval, remaining))

    async def sweep_forever(self, interval: float) -> None:
        """Sweep expired records every ``interval`` seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            removed = await self.sweep()
            if removed:
                logger.debug(f"Swept {removed} expired approvals")


@dataclass
class ApprovalRecord:
    """Stored approval state."""

    approval_id: str
    approved: bool | None
    created_at: float
    resolved: bool = False


class InMemoryApprovalStore(ApprovalStore):
    """Process-local approval store for single-instance deployments.

    Expired records leave a tombstone behind for one more TTL window, so a
    decision posted after expiry is dropped instead of reviving the id.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_APPROVAL_TTL_MS / 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the store.

        Args:
            ttl_seconds: Age after which a record is dropped, whatever its state
            clock: Monotonic time source in seconds
        """
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._records: dict[str, ApprovalRecord] = {}
        self._tombstones: dict[str, float] = {}
        self._waiters: dict[str, asyncio.Event] = {}

    async def create(self, approval_id: str) -> None:
        self._tombstones.pop(approval_id, None)
        self._records[approval_id] = ApprovalRecord(approval_id=approval_id, approved=None, created_at=self.clock())

    async def get(self, approval_id: str) -> bool | None:
        record = self._live_record(approval_id)
        return record.approved if record else None

    async def set(self, approval_id: str, approved: bool) -> None:
        record = self._live_record(approval_id)
        if record is None and approval_id in self._tombstones:
            logger.info(f"Dropping decision for expired approval {approval_id}")
            return
        if record is not None and record.resolved:
            logger.info(f"Ignoring decision for already resolved approval {approval_id}")
            return

        self._records[approval_id] = ApprovalRecord(approval_id=approval_id, approved=approved, created_at=self.clock())

        waiter = self._waiters.get(approval_id)
        if waiter is not None:
            waiter.set()

    async def mark_resolved(self, approval_id: str) -> None:
        record = self._live_record(approval_id)
        if record is not None:
            record.resolved = True

    async def sweep(self) -> int:
        now = self.clock()
        expired = [approval_id for approval_id, record in self._records.items() if self._is_expired(record)]
        for approval_id in expired:
            self._expire(approval_id)

        for approval_id, expired_at in list(self._tombstones.items()):
            if now - expired_at >= self.ttl_seconds:
                del self._tombstones[approval_id]
        return len(expired)

    async def wait_for_decision(self, approval_id: str, timeout: float, poll_interval: float) -> bool | None:
        decision = await self.get(approval_id)
        if decision is None:
            waiter = self._waiters.setdefault(approval_id, asyncio.Event())
            try:
                await asyncio.wait_for(waiter.wait(), timeout=timeout)
            except TimeoutError:
                return None
            finally:
                self._waiters.pop(approval_id, None)
            decision = await self.get(approval_id)

        if decision is not None:
            await self.mark_resolved(approval_id)
        return decision

    def __len__(self) -> int:
        return len(self._records)

    def _live_record(self, approval_id: str) -> ApprovalRecord | None:
        record = self._records.get(approval_id)
        if record is None:
            return None
        if self._is_expired(record):
            self._expire(approval_id)
            return None
        return record

    def _expire(self, approval_id: str) -> None:
        del self._records[approval_id]
        self._tombstones[approval_id] = self.clock()

    def _is_expired(self, record: ApprovalRecord) -> bool:
        return self.clock() - record.created_at >= self.ttl_seconds


@dataclass
class ApprovalBroker:
    """Runs the producer side of the approval handshake for a turn."""

    store: ApprovalStore
    timeout_ms: int = DEFAULT_APPROVAL_TIMEOUT_MS
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    id_factory: Callable[[], str] = new_approval_id

    async def request_approval(
        self,
        tool_name: str,
        tool_arguments: dict[str, Any],
        emit: Callable[[ThreadStreamEvent], None],
    ) -> bool:
        """Ask the client to approve a tool call and wait for the decision.

        Args:
            tool_name: Tool the agent wants to run
            tool_arguments: Raw tool input, redacted before it is emitted
            emit: Writes an event to the turn's stream

        Returns:
            True only if the user approved before the timeout
        """
        approval_id = self.id_factory()
        redacted_arguments = redact_pii_from_object(tool_arguments)

        await self.store.create(approval_id)
        logger.info(f"Tool approval required: {tool_name}, id: {approval_id}, input: {redacted_arguments}")

        emit(
            ToolApprovalRequestedEvent(
                approval_id=approval_id,
                tool_name=tool_name,
                tool_arguments=redacted_arguments,
                timeout_ms=self.timeout_ms,
            )
        )

        decision = await self.store.wait_for_decision(
            approval_id,
            timeout=self.timeout_ms / 1000,
            poll_interval=self.poll_interval_ms / 1000,
        )

        if decision is None:
            logger.warning(f"Approval {approval_id} timed out, auto-rejecting {tool_name}")
            return False

        logger.info(f"Approval decision received for {approval_id}: {decision}")
        return decision
