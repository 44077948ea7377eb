"""
devcrew Transcript Store

Records every message published on the bus into a SQL database and
answers transcript queries.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base, BusMessageModel
from ..runtime.message_bus import MessageBus, Subscription
from ..runtime.types import Message, MessageType
from ..utils.logger import get_logger

logger = get_logger(__name__)


def _engine_options(database_url: str) -> Dict[str, Any]:
    # Records are written from a worker thread
    if not database_url.startswith("sqlite"):
        return {}
    options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        options["poolclass"] = StaticPool
    return options


def _json_safe(metadata: Dict[str, Any]) -> Dict[str, Any]:
    return json.loads(json.dumps(metadata, ensure_ascii=False, default=str))


class TranscriptStore:
    """
    Persistent transcript of bus traffic.

    Features:
    - SQLAlchemy ORM, any database URL SQLAlchemy supports
    - Observer subscription so agents are unaware of persistence
    - Queries by session id, in publish order
    """

    def __init__(self, database_url: str, echo: bool = False):
        """
        Initialize transcript store.

        Args:
            database_url: SQLAlchemy database URL
            echo: Log emitted SQL
        """
        self.database_url = database_url
        self.engine = create_engine(database_url, echo=echo, **_engine_options(database_url))
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

        # Create tables if they don't exist
        Base.metadata.create_all(bind=self.engine)

        self._subscription: Optional[Subscription] = None
        self._task: Optional[asyncio.Task] = None
        logger.info("TranscriptStore initialized", database_url=database_url)

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.SessionLocal()

    # ============================================
    # Bus attachment
    # ============================================

    @property
    def attached(self) -> bool:
        return self._task is not None

    def attach(self, bus: MessageBus) -> None:
        """Start recording every message published on ``bus``."""
        if self.attached:
            raise RuntimeError("TranscriptStore is already attached")
        self._subscription = bus.subscribe_all()
        self._task = asyncio.create_task(self._record_loop(self._subscription))
        logger.debug("TranscriptStore attached")

    async def detach(self) -> None:
        """Stop recording; messages already delivered are still written."""
        if not self.attached:
            return
        self._subscription.close()
        await self._task
        self._subscription = None
        self._task = None
        logger.debug("TranscriptStore detached")

    async def _record_loop(self, subscription: Subscription) -> None:
        async for message in subscription:
            try:
                await asyncio.to_thread(self.record, message)
            except SQLAlchemyError:
                # Already logged; keep recording later messages
                continue

    # ============================================
    # Messages
    # ============================================

    def record(self, message: Message) -> None:
        """
        Persist one message.

        Args:
            message: Bus message
        """
        db = self.get_session()
        try:
            db.add(
                BusMessageModel(
                    message_id=message.id,
                    sender=message.sender,
                    recipient=message.recipient,
                    type=message.type.value,
                    content=message.content or "",
                    timestamp=message.timestamp,
                    session_id=message.session_id,
                    message_metadata=_json_safe(message.metadata),
                )
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to record message", message_id=message.id, error=str(e))
            raise
        finally:
            db.close()

    def get_messages(self, session_id: Optional[str] = None, limit: Optional[int] = None) -> List[Message]:
        """
        Get recorded messages in publish order.

        Args:
            session_id: Only messages carrying this SessionId
            limit: Only the most recent ``limit`` messages

        Returns:
            List of messages
        """
        db = self.get_session()
        try:
            query = db.query(BusMessageModel)
            if session_id is not None:
                query = query.filter(BusMessageModel.session_id == session_id)

            if limit is not None:
                models = query.order_by(BusMessageModel.seq.desc()).limit(limit).all()
                models.reverse()
            else:
                models = query.order_by(BusMessageModel.seq).all()

            return [self._to_domain(m) for m in models]
        finally:
            db.close()

    def count(self) -> int:
        db = self.get_session()
        try:
            return db.query(BusMessageModel).count()
        finally:
            db.close()

    def _to_domain(self, model: BusMessageModel) -> Message:
        return Message(
            id=model.message_id,
            sender=model.sender,
            recipient=model.recipient,
            content=model.content,
            type=MessageType(model.type),
            timestamp=model.timestamp,
            metadata=dict(model.message_metadata or {}),
        )

    def close(self) -> None:
        """Dispose of the engine."""
        self.engine.dispose()
        logger.info("TranscriptStore closed")
