"""
convo_mcp/models/user.py

Purpose: User table

- Identity keyed by (channel, external_id)
- Optional phone and document number
- Owns the user's conversations
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from convo_mcp.db.base import Base, BigIntPK, utcnow
from convo_mcp.flow.states import Channel


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("channel", "external_id", name="uq_users_channel_external_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    channel: Mapped[Channel] = mapped_column(
        Enum(Channel, name="channel", values_callable=lambda enum: [item.value for item in enum]),
        nullable=False,
    )
    external_id: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    doc_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    conversations: Mapped[list["Conversation"]] = relationship(  # noqa: F821
        "Conversation", back_populates="user", lazy="raise", order_by="Conversation.id"
    )

    def __repr__(self):
        return f"<User id={self.id} channel={self.channel} external_id={self.external_id}>"
