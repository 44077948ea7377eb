"""
devcrew Agent Runtime

BaseAgent owns the plumbing every agent shares: the bus subscription, one
handler task per delivered message, message-type dispatch, an in-memory
transcript, observability hooks and the recurring session sweep.

ConfiguredAgent adds the behaviour defined by an AgentConfig:

    message ──► allowlist ──► session ──► prompt ──► tool-call loop
                                                          │
        sender ◄── task_response ◄── confirmation ◄── router ──► User / next agent
"""

import asyncio
import inspect
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set

from .agent_config import AgentConfig
from .message_bus import MessageBus, Subscription
from .prompt_builder import PromptBuilder
from .response_router import ResponseRouter
from .session_store import DEFAULT_SESSION_TTL, SessionStore
from .tool_loop import DEFAULT_MAX_ITERATIONS, ToolCallLoop
from .types import Message, MessageType, RouteState, SessionStatus, ToolCallResponse, USER
from ..llm.base import CompletionService
from ..tools.base import ToolExecutor
from ..utils.logger import get_logger

logger = get_logger(__name__)


DEFAULT_SWEEP_INTERVAL = timedelta(minutes=5)

MessageHandler = Callable[[Message], Awaitable[None]]
MessageHook = Callable[[Message], Any]


# =============================================================================
# Confirmation Policy
# =============================================================================


class ConfirmationPolicy:
    """Decides whether a final response is asking the user to confirm something."""

    def requires_confirmation(self, response: ToolCallResponse) -> bool:
        return False


class MarkerConfirmationPolicy(ConfirmationPolicy):
    """Case-insensitive substring match against a set of marker phrases."""

    def __init__(self, markers: Sequence[str]):
        self.markers = tuple(m.lower() for m in markers if m)

    def requires_confirmation(self, response: ToolCallResponse) -> bool:
        content = (response.content or "").lower()
        return any(marker in content for marker in self.markers)


# =============================================================================
# Base Agent
# =============================================================================


class BaseAgent:
    """
    Bus-connected agent shell.

    Features:
    - One handler task per message, so slow handling never blocks the pump
    - MessageType → coroutine dispatch; unsupported types are ignored
    - Optional single-flight handling
    - Cancellable sweep task for expired sessions
    """

    def __init__(
        self,
        name: str,
        role: str,
        bus: MessageBus,
        *,
        shutdown_event: Optional[asyncio.Event] = None,
        single_flight: bool = False,
        session_ttl: timedelta = DEFAULT_SESSION_TTL,
        sweep_interval: timedelta = DEFAULT_SWEEP_INTERVAL,
    ):
        self.name = name
        self.role = role
        self.bus = bus
        self.sessions = SessionStore(name, ttl=session_ttl)
        self.sweep_interval = sweep_interval
        self.single_flight = single_flight

        self._shutdown_event = shutdown_event
        self._handlers: Dict[MessageType, MessageHandler] = {}
        self._received_hooks: List[MessageHook] = []
        self._sent_hooks: List[MessageHook] = []
        self._transcript: List[Message] = []
        self._lock = asyncio.Lock() if single_flight else None

        self._subscription: Optional[Subscription] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._sweep_task: Optional[asyncio.Task] = None
        self._shutdown_task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()
        self._logger = logger.bind(agent=name)

    # ============================================
    # Lifecycle
    # ============================================

    @property
    def is_running(self) -> bool:
        return self._pump_task is not None

    async def start(self) -> None:
        """Subscribe to the bus and start the pump and sweep tasks."""
        if self.is_running:
            self._logger.warning("Agent already running")
            return

        self._subscription = self.bus.subscribe(self.name)
        self._pump_task = asyncio.create_task(self._pump(), name=f"{self.name}-pump")
        self._sweep_task = asyncio.create_task(self._sweep_loop(), name=f"{self.name}-sweep")
        if self._shutdown_event is not None:
            self._shutdown_task = asyncio.create_task(self._watch_shutdown())
        self._logger.info("Agent started", role=self.role)

    async def stop(self) -> None:
        """
        Stop listening and clear in-memory state.

        Handler tasks already running are left to finish.
        """
        if not self.is_running:
            return

        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

        current = asyncio.current_task()
        tasks = [t for t in (self._pump_task, self._sweep_task, self._shutdown_task) if t is not None]
        for task in tasks:
            if task is not current:
                task.cancel()
        await asyncio.gather(*(t for t in tasks if t is not current), return_exceptions=True)

        self._pump_task = self._sweep_task = self._shutdown_task = None
        self._transcript.clear()
        self.sessions.clear()
        self._logger.info("Agent stopped")

    async def join(self) -> None:
        """Wait for in-flight handler tasks to finish."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def _watch_shutdown(self) -> None:
        await self._shutdown_event.wait()
        self._logger.info("Shutdown requested")
        await self.stop()

    # ============================================
    # Message pump & dispatch
    # ============================================

    def register_handler(self, message_type: MessageType, handler: MessageHandler) -> None:
        self._handlers[message_type] = handler

    async def _pump(self) -> None:
        async for message in self._subscription:
            task = asyncio.create_task(self._dispatch(message))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

    async def _dispatch(self, message: Message) -> None:
        handler = self._handlers.get(message.type)
        if handler is None:
            self._logger.debug(
                "Unsupported message type ignored", type=message.type.value, sender=message.sender
            )
            return

        try:
            if self._lock is not None:
                async with self._lock:
                    await handler(message)
            else:
                await handler(message)
        except Exception as e:
            self._logger.exception("Message handler failed", message_id=message.id, error=str(e))

    async def _sweep_loop(self) -> None:
        interval = self.sweep_interval.total_seconds()
        while True:
            await asyncio.sleep(interval)
            removed = self.sessions.sweep_expired()
            if removed:
                self._logger.debug("Swept sessions", count=len(removed))

    # ============================================
    # Transcript & hooks
    # ============================================

    @property
    def transcript(self) -> List[Message]:
        return list(self._transcript)

    def on_message_received(self, hook: MessageHook) -> Callable[[], None]:
        """Register a hook called with every accepted message. Returns unsubscribe."""
        self._received_hooks.append(hook)
        return lambda: self._received_hooks.remove(hook) if hook in self._received_hooks else None

    def on_message_sent(self, hook: MessageHook) -> Callable[[], None]:
        """Register a hook called with every response this agent sends. Returns unsubscribe."""
        self._sent_hooks.append(hook)
        return lambda: self._sent_hooks.remove(hook) if hook in self._sent_hooks else None

    async def _fire(self, hooks: List[MessageHook], message: Message) -> None:
        for hook in list(hooks):
            try:
                result = hook(message)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self._logger.error("Error in message hook", error=str(e), exc_info=True)

    def _record(self, message: Message) -> None:
        self._transcript.append(message)

    async def send(self, message: Message) -> None:
        """Record an outgoing message, fire sent hooks and publish it."""
        self._record(message)
        await self._fire(self._sent_hooks, message)
        await self.bus.publish(message)


# =============================================================================
# Configured Agent
# =============================================================================


class ConfiguredAgent(BaseAgent):
    """
    Agent whose behaviour comes entirely from an AgentConfig.

    Every accepted message is answered with a ``task_response`` to its
    sender, or with an outcome message to ``report_to``, including
    rejections and failures.
    """

    def __init__(
        self,
        config: AgentConfig,
        bus: MessageBus,
        completion: CompletionService,
        tools: ToolExecutor,
        *,
        session_ttl: timedelta = DEFAULT_SESSION_TTL,
        sweep_interval: timedelta = DEFAULT_SWEEP_INTERVAL,
        confirmation_policy: Optional[ConfirmationPolicy] = None,
        max_iterations: Optional[int] = None,
        shutdown_event: Optional[asyncio.Event] = None,
    ):
        super().__init__(
            config.name,
            config.description,
            bus,
            shutdown_event=shutdown_event,
            single_flight=config.single_flight,
            session_ttl=session_ttl,
            sweep_interval=sweep_interval,
        )
        self.config = config
        self.prompts = PromptBuilder(config, self.sessions)
        self.tool_loop = ToolCallLoop(
            config.name,
            completion,
            tools,
            config.tools,
            self.sessions,
            max_iterations=config.max_iterations or max_iterations or DEFAULT_MAX_ITERATIONS,
        )
        self.router = ResponseRouter(config.name, config.response_handlers, self.sessions, bus)
        self.confirmation = confirmation_policy or MarkerConfirmationPolicy(config.confirmation_markers)

        for message_type in config.accepted_message_types:
            self.register_handler(message_type, self._handle_request)

    @property
    def is_first(self) -> bool:
        return self.config.is_first

    async def _handle_request(self, message: Message) -> None:
        try:
            response = await self.process(message)
        except Exception as e:
            self._logger.exception("Processing failed", message_id=message.id, error=str(e))
            response = ToolCallResponse(
                content=f"{self.name} failed to process the request: {e}",
                success=False,
                metadata={"Error": str(e)},
                session_id=message.session_id,
            )
            if message.session_id:
                response.metadata["SessionId"] = message.session_id

        await self._reply(message, response)

    async def process(self, message: Message) -> ToolCallResponse:
        """
        Handle one request and return the response for its sender.

        The response is not published here; see ``_reply``.
        """
        if not self.config.allows_sender(message.sender):
            self._logger.warning("Sender not allowed", sender=message.sender)
            return ToolCallResponse(
                content=f"{self.name} does not accept messages from {message.sender}.",
                success=False,
                metadata={
                    "Error": "SenderNotAllowed",
                    "AllowedSenders": list(self.config.allowed_senders),
                },
                session_id=message.session_id,
            )

        self._record(message)
        await self._fire(self._received_hooks, message)

        self.sessions.sweep_expired()
        session = self.sessions.get_or_create(message)
        session_id = session.session_id

        conversation = self.prompts.build(message, self._transcript)
        response = await self.tool_loop.run(
            conversation,
            self.config.tool_api_services,
            session_id=session_id,
            sender=message.sender,
        )

        if self.config.response_handlers:
            response = await self.router.route(response, message, session_id)

        response.session_id = session_id
        response.metadata["SessionId"] = session_id
        response.metadata["SessionStatus"] = session.status.value

        if session.status == SessionStatus.ACTIVE and self.confirmation.requires_confirmation(response):
            self.sessions.mark_awaiting_confirmation(session_id)
            if "RouteState" in response.metadata:
                state = self.router.route_state(session_id)
                response.metadata["RouteState"] = state.value
                response.is_complete = state == RouteState.COMPLETE

        return response

    async def _reply(self, request: Message, response: ToolCallResponse) -> None:
        """
        Publish the outcome of one request.

        Normally a ``task_response`` to the sender. Agents configured with
        ``report_to`` send a ``folder_refresh`` (success) or ``help_request``
        (failure) to that recipient instead.
        """
        metadata = dict(response.metadata)
        metadata["Success"] = response.success
        recipient = request.sender
        message_type = MessageType.TASK_RESPONSE
        if self.config.report_to:
            recipient = self.config.report_to
            message_type = MessageType.FOLDER_REFRESH if response.success else MessageType.HELP_REQUEST
            metadata.setdefault("RequestSender", request.sender)
        reply = Message(
            sender=self.name,
            recipient=recipient,
            content=response.content,
            type=message_type,
            metadata=metadata,
        )

        if response.metadata.get("NextAgent") == USER and recipient == USER:
            # Router already delivered this content to the user.
            self._record(reply)
            await self._fire(self._sent_hooks, reply)
            return

        await self.send(reply)
