"""
devcrew Message Bus

In-process publish/subscribe channel keyed by recipient name.

Every subscription owns an unbounded queue, so ``publish`` only enqueues and
never waits for a subscriber to process anything. Messages for one
subscription are delivered in publish order.

Usage:
    bus = MessageBus()

    inbox = bus.subscribe("Analyst")        # recipient == "Analyst" or "broadcast"
    observer = bus.subscribe_all()          # every message

    await bus.publish(Message(sender="User", recipient="Analyst", content="..."))

    async for message in inbox:
        ...
"""

import asyncio
from typing import Callable, Dict, List, Optional

from .types import Message, BROADCAST
from ..utils.logger import get_logger

logger = get_logger(__name__)


_CLOSED = object()

MessageFilter = Callable[[Message], bool]


class Subscription:
    """
    Live stream of messages for one subscriber.

    Iterate it with ``async for``; iteration ends once the subscription is
    closed and the messages already queued have been drained.
    """

    def __init__(self, bus: "MessageBus", name: Optional[str], accepts: MessageFilter):
        self.name = name
        self._bus = bus
        self._accepts = accepts
        self._queue: "asyncio.Queue" = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        """Return number of undelivered messages."""
        return self._queue.qsize()

    def _offer(self, message: Message) -> bool:
        if self._closed or not self._accepts(message):
            return False
        self._queue.put_nowait(message)
        return True

    async def get(self) -> Message:
        """Wait for the next message. Raises StopAsyncIteration once closed and drained."""
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    def close(self) -> None:
        """Detach from the bus and end iteration."""
        if self._closed:
            return
        self._closed = True
        self._bus._remove(self)
        self._queue.put_nowait(_CLOSED)
        logger.debug("Subscription closed", subscriber=self.name or "*")

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Message:
        return await self.get()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class MessageBus:
    """
    Message bus shared by all agents.

    Features:
    - Recipient-keyed subscriptions with a reserved "broadcast" wildcard
    - Observer subscriptions that see every message
    - Fire-and-forget publishing; a slow subscriber never blocks others
    - Publishing to a recipient nobody listens to is a silent drop
    """

    def __init__(self):
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._observers: List[Subscription] = []
        self._closed = False

    async def publish(self, message: Message) -> int:
        """
        Publish a message to the bus.

        Args:
            message: Message to deliver

        Returns:
            Number of recipient subscriptions the message was delivered to
            (observers are not counted)
        """
        if self._closed:
            logger.debug("Bus closed, dropping message", message_id=message.id)
            return 0

        delivered = 0
        if message.recipient == BROADCAST:
            targets = [sub for subs in self._subscriptions.values() for sub in subs]
        else:
            targets = list(self._subscriptions.get(message.recipient, []))

        for sub in targets:
            if sub._offer(message):
                delivered += 1
        for observer in list(self._observers):
            observer._offer(message)

        if not targets:
            logger.debug(
                "No subscriber for recipient, message dropped",
                recipient=message.recipient,
                message_id=message.id,
            )
        else:
            logger.debug(
                "Published message",
                sender=message.sender,
                recipient=message.recipient,
                type=message.type.value,
            )
        return delivered

    def subscribe(self, agent_name: str) -> Subscription:
        """
        Subscribe to messages addressed to ``agent_name`` or to "broadcast".

        Args:
            agent_name: Recipient name to listen for

        Returns:
            Subscription stream
        """
        if self._closed:
            raise RuntimeError("MessageBus is closed")

        sub = Subscription(
            self,
            agent_name,
            lambda m: m.recipient == agent_name or m.recipient == BROADCAST,
        )
        self._subscriptions.setdefault(agent_name, []).append(sub)
        logger.debug("Subscribed", subscriber=agent_name)
        return sub

    def subscribe_all(self) -> Subscription:
        """Subscribe as an observer receiving every published message."""
        if self._closed:
            raise RuntimeError("MessageBus is closed")

        sub = Subscription(self, None, lambda m: True)
        self._observers.append(sub)
        logger.debug("Observer subscribed")
        return sub

    def subscriber_count(self, agent_name: Optional[str] = None) -> int:
        """Count subscriptions for a recipient, or observers when name is None."""
        if agent_name is None:
            return len(self._observers)
        return len(self._subscriptions.get(agent_name, []))

    def close(self) -> None:
        """Close every subscription and refuse further traffic."""
        if self._closed:
            return
        for sub in [s for subs in self._subscriptions.values() for s in subs] + list(self._observers):
            sub.close()
        self._closed = True
        logger.debug("MessageBus closed")

    def is_closed(self) -> bool:
        return self._closed

    def _remove(self, sub: Subscription) -> None:
        if sub.name is None:
            if sub in self._observers:
                self._observers.remove(sub)
            return
        subs = self._subscriptions.get(sub.name)
        if subs and sub in subs:
            subs.remove(sub)
            if not subs:
                del self._subscriptions[sub.name]
