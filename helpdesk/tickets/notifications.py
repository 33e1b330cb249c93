"""Outbound notification intents and their fire-and-forget dispatcher.

Services publish intents after their transaction commits. Delivery happens on
a separate consumer task, so a slow or failing sink never affects the
mutation that produced the intent.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Protocol

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    TICKET_CREATED = "ticket_created"
    ASSIGNED = "assigned"
    UNASSIGNED = "unassigned"
    NEW_REPLY = "new_reply"
    CUSTOMER_REPLY = "customer_reply"
    STATUS_CHANGED = "status_changed"
    TICKET_RESOLVED = "ticket_resolved"
    TICKET_CLOSED = "ticket_closed"


class RecipientKind(str, Enum):
    CUSTOMER = "customer"
    AGENT = "agent"


@dataclass(frozen=True, slots=True)
class Recipient:
    kind: RecipientKind
    actor_id: str | None = None
    email: str | None = None
    name: str | None = None

    @classmethod
    def customer(cls, email: str, name: str | None = None) -> "Recipient":
        return cls(kind=RecipientKind.CUSTOMER, email=email, name=name)

    @classmethod
    def agent(cls, actor_id: str) -> "Recipient":
        return cls(kind=RecipientKind.AGENT, actor_id=actor_id)


@dataclass(frozen=True, slots=True)
class NotificationIntent:
    kind: NotificationKind
    ticket_id: str
    ticket_number: str
    recipient: Recipient
    actor_id: str | None = None
    payload: Mapping[str, Any] = field(default_factory=dict)


class NotificationSink(Protocol):
    async def send(self, intent: NotificationIntent) -> None:
        ...


class LoggingNotificationSink:
    """Default sink: records intents in the log for an external mailer to pick up."""

    def __init__(self, logger_name: str = "helpdesk.notifications.outbox") -> None:
        self._logger = logging.getLogger(logger_name)

    async def send(self, intent: NotificationIntent) -> None:
        self._logger.info(
            "notify kind=%s ticket=%s recipient=%s:%s",
            intent.kind.value,
            intent.ticket_number,
            intent.recipient.kind.value,
            intent.recipient.email or intent.recipient.actor_id,
        )


class NotificationDispatcher:
    """Bounded queue drained by a single consumer task."""

    def __init__(
        self,
        sink: NotificationSink | None = None,
        *,
        max_queue: int = 1000,
        timeout: float = 10.0,
    ) -> None:
        self._sink = sink or LoggingNotificationSink()
        self._queue: asyncio.Queue[NotificationIntent] = asyncio.Queue(maxsize=max_queue)
        self._timeout = timeout
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def publish(self, intents: Iterable[NotificationIntent]) -> None:
        """Enqueue intents without blocking; overflow is dropped and logged."""

        for intent in intents:
            try:
                self._queue.put_nowait(intent)
            except asyncio.QueueFull:
                logger.warning(
                    "Notification queue full, dropping %s for ticket %s",
                    intent.kind.value,
                    intent.ticket_number,
                )

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="notification-dispatcher")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def drain(self) -> None:
        """Wait until every queued intent has been handed to the sink."""

        await self._queue.join()

    async def _run(self) -> None:
        while True:
            intent = await self._queue.get()
            try:
                await self._deliver(intent)
            finally:
                self._queue.task_done()

    async def _deliver(self, intent: NotificationIntent) -> None:
        try:
            await asyncio.wait_for(self._sink.send(intent), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.error(
                "Notification %s for ticket %s timed out after %.1fs",
                intent.kind.value,
                intent.ticket_number,
                self._timeout,
            )
        except Exception:
            logger.exception(
                "Notification %s for ticket %s failed",
                intent.kind.value,
                intent.ticket_number,
            )
