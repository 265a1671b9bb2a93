#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
SQLAlchemy ORM Models for quick roll persistence
================================================

Defines database schema using SQLAlchemy 2.0 ORM with type hints.

Models:
- ChatMessage: A chat card with its quick roll flags and roll data

Usage:
    from common.models import Base, ChatMessage

    # Create engine
    engine = create_async_engine('sqlite+aiosqlite:///quickroll.db')

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Query
    async with AsyncSession(engine) as session:
        message = await session.get(ChatMessage, 1)
        flags = message.get_flags()
"""

import json
from typing import Any, Dict, Optional

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# ============================================================================
# Base Class
# ============================================================================

class Base(AsyncAttrs, DeclarativeBase):
    """
    Base class for all ORM models.

    Attributes:
        AsyncAttrs: Enables async attribute loading (SQLAlchemy 2.0)
        DeclarativeBase: Base for declarative model definitions
    """
    pass


# ============================================================================
# Chat Messages
# ============================================================================

class ChatMessage(Base):
    """
    A chat card carrying a quick roll.

    The flag record is the durable source of truth for the card: it is
    always written as a whole, never merged. Full roll data lives next to
    it in rolls_json, keyed by "<field index>:<payload key>".
    """
    __tablename__ = 'chat_messages'

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment="Auto-increment message ID"
    )

    user: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="User who posted the card"
    )

    speaker: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Actor the card speaks as"
    )

    content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default='',
        comment="Rendered card content"
    )

    flags_json: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default='{}',
        comment="JSON-serialized quick roll flag record"
    )

    rolls_json: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default='{}',
        comment="JSON-serialized roll data keyed by field and slot"
    )

    created_at: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="When the card was posted (Unix epoch)"
    )

    updated_at: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="When the card was last updated (Unix epoch)"
    )

    __table_args__ = (
        Index('idx_chat_messages_created', 'created_at'),
        {'comment': 'Chat cards with persisted quick roll state'}
    )

    def get_flags(self) -> Dict[str, Any]:
        """Deserialize the flag record."""
        return json.loads(self.flags_json) if self.flags_json else {}

    def get_rolls(self) -> Dict[str, Dict[str, Any]]:
        """Deserialize the roll data."""
        return json.loads(self.rolls_json) if self.rolls_json else {}

    def __repr__(self) -> str:
        return f"<ChatMessage(id={self.id}, speaker={self.speaker!r})>"
