"""
convo_mcp/models/consent.py

Purpose: Data-policy consent log

- Append-only; one row per accept/decline event
- accepted_at is set only when the policy was accepted
- The latest row (by creation order) is the current answer
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from convo_mcp.db.base import Base, BigIntPK, JSONType, utcnow


class Consent(Base):
    __tablename__ = "consents"
    __table_args__ = (
        Index("ix_consents_conversation_created", "conversation_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    conversation_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    policy_version: Mapped[str] = mapped_column(String(64), nullable=False)
    accepted: Mapped[bool] = mapped_column(Boolean, nullable=False)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    meta: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
