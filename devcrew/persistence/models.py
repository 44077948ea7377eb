"""
devcrew SQLAlchemy Models

Database model for the bus transcript.
"""

from sqlalchemy import Column, DateTime, Index, Integer, JSON, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class BusMessageModel(Base):
    """One message published on the bus"""

    __tablename__ = "bus_messages"

    # Insertion order; message timestamps can tie
    seq = Column(Integer, primary_key=True, autoincrement=True)
    message_id = Column(String(36), nullable=False, unique=True)

    sender = Column(String(255), nullable=False)
    recipient = Column(String(255), nullable=False)
    type = Column(String(64), nullable=False)
    content = Column(Text, nullable=False, default="")
    timestamp = Column(DateTime, nullable=False)

    # SessionId copied out of metadata for filtering
    session_id = Column(String(255), index=True)
    message_metadata = Column("metadata", JSON, nullable=False, default=dict)

    __table_args__ = (
        Index("idx_bus_messages_session_seq", "session_id", "seq"),
        Index("idx_bus_messages_recipient", "recipient"),
    )

    def __repr__(self):
        return f"<BusMessage(id={self.message_id}, {self.sender}->{self.recipient}, type={self.type})>"
