"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for SLA module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.

Conversations and messages are written by the ingestion pipeline; this
service only reads them. SLA results live in their own table, keyed by
conversation id, so a recalculation is a plain upsert.
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import String, DateTime, Boolean, Float, ForeignKey, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from chat_sla.infrastructure.database import Base
from chat_sla.config import MessageRole


class ConversationModel(Base):
    """
    Database model for a chat conversation.

    Maps to the 'conversations' table.
    """
    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)

    agent_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    channel: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)

    # Lifecycle timestamps
    opened_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    first_agent_assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    messages: Mapped[List["MessageModel"]] = relationship(
        back_populates="conversation",
        order_by="MessageModel.timestamp",
        lazy="selectin",
    )
    sla_metrics: Mapped[Optional["SLAMetricsModel"]] = relationship(
        back_populates="conversation",
        uselist=False,
    )


class MessageModel(Base):
    """
    Database model for a chat message.

    Maps to the 'messages' table.
    """
    __tablename__ = "messages"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    conversation_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[MessageRole] = mapped_column(String(20), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    conversation: Mapped["ConversationModel"] = relationship(back_populates="messages")


class SLAMetricsModel(Base):
    """
    Database model for a conversation's SLA results.

    Maps to the 'conversation_sla_metrics' table. Metric columns are all
    nullable: a null duration or flag means unknown. A row with every
    metric column null and `error` set means the calculation failed.
    """
    __tablename__ = "conversation_sla_metrics"

    conversation_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("conversations.id", ondelete="CASCADE"), primary_key=True
    )

    # Wall-clock metrics (seconds)
    time_to_pickup: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    first_response_time: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    avg_response_time: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    resolution_time: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    pickup_sla: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    first_response_sla: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    avg_response_sla: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    resolution_sla: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    overall_sla: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True, index=True)

    # Business-hours metrics (seconds)
    time_to_pickup_bh: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    first_response_time_bh: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    avg_response_time_bh: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    resolution_time_bh: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    pickup_sla_bh: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    first_response_sla_bh: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    avg_response_sla_bh: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    resolution_sla_bh: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    overall_sla_bh: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True, index=True)

    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    conversation: Mapped["ConversationModel"] = relationship(back_populates="sla_metrics")
