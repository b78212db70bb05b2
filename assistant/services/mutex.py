"""Per-user serialization of external-API mutations.

Every calendar write for a user goes through ``MutationSerializer.run`` so that
two mutations issued at nearly the same time (a UI action and an agent tool
call, say) cannot interleave against the same downstream account.
"""

import asyncio
import itertools
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import partial
from typing import TypeVar

from assistant.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class MutationSerializer(ABC):
    """Interface for per-user FIFO execution of operations."""

    @abstractmethod
    def run(self, user_id: str, operation: Callable[[], Awaitable[T]]) -> Awaitable[T]:
        """Queue ``operation`` behind every earlier operation for ``user_id``.

        The operation is enqueued when ``run`` is called, not when the returned
        awaitable is awaited, so call order is execution order.

        Args:
            user_id: Owner of the downstream account being mutated
            operation: Zero-argument coroutine function to execute

        Returns:
            Awaitable resolving to the operation's result, or raising its error
        """
        ...


@dataclass
class _ChainTail:
    """Last queued operation for a user and the version that queued it."""

    task: asyncio.Task
    version: int


class InMemoryMutationSerializer(MutationSerializer):
    """Single-process serializer keeping one task chain per user.

    Chain entries exist only while a user has queued work: when a tail task
    settles, its entry is removed if and only if its version is still the
    current one, so a slow early operation never evicts a newer tail.
    """

    def __init__(self):
        self._tails: dict[str, _ChainTail] = {}
        self._versions = itertools.count(1)

    def run(self, user_id: str, operation: Callable[[], Awaitable[T]]) -> "asyncio.Task[T]":
        previous = self._tails.get(user_id)
        version = next(self._versions)

        task = asyncio.ensure_future(self._run_after(previous.task if previous else None, operation))
        self._tails[user_id] = _ChainTail(task=task, version=version)
        task.add_done_callback(partial(self._evict, user_id, version))

        logger.debug(f"Queued mutation v{version} for user {user_id} (waiting: {previous is not None})")
        return task

    @property
    def active_users(self) -> list[str]:
        """User ids that currently have queued or running operations."""
        return list(self._tails)

    @staticmethod
    async def _run_after(previous: asyncio.Task | None, operation: Callable[[], Awaitable[T]]) -> T:
        if previous is not None:
            # Wait for the previous operation to settle, whatever its outcome
            await asyncio.wait([previous])
        return await operation()

    def _evict(self, user_id: str, version: int, _task: asyncio.Task) -> None:
        tail = self._tails.get(user_id)
        if tail is not None and tail.version == version:
            del self._tails[user_id]
            logger.debug(f"Mutation chain for user {user_id} drained at v{version}")
