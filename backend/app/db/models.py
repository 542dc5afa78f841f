"""
SQLAlchemy ORM Models
"""

from __future__ import annotations

import enum
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship

from app.db.database import Base
from app.utils.helpers import utcnow

# JSONB on PostgreSQL, plain JSON elsewhere (local SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")

# ============================================================================
# Enums
# ============================================================================

class UserRole(str, enum.Enum):
    """User roles"""
    client = "client"
    lawyer = "lawyer"

class ConversationStatus(str, enum.Enum):
    """Conversation (case request) status"""
    pending = "pending"
    active = "active"
    archived = "archived"

class CaseStatus(str, enum.Enum):
    """Case status enum"""
    pending = "pending"
    active = "active"
    won = "won"
    lost = "lost"
    closed = "closed"


# ============================================================================
# Models
# ============================================================================

class User(Base):
    """Client or lawyer; mirrors an identity from the auth provider"""
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)

    role = Column(SQLEnum(UserRole, name="user_role"), nullable=False, default=UserRole.client)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")

    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)


class Case(Base):
    """Legal matter created when a lawyer accepts a case request"""
    __tablename__ = "cases"
    __table_args__ = (
        Index("ix_cases_lawyer_status", "lawyer_id", "status"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    lawyer_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(SQLEnum(CaseStatus, name="case_status"), nullable=False, default=CaseStatus.pending)
    attachments = Column(JSONType, nullable=False, default=list)

    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=utcnow, onupdate=utcnow)
    accepted_at = Column(TIMESTAMP, nullable=True)
    closed_at = Column(TIMESTAMP, nullable=True)

    lawyer = relationship("User", foreign_keys=[lawyer_id])
    client = relationship("User", foreign_keys=[client_id])
    conversation = relationship("Conversation", back_populates="case", uselist=False)


class Conversation(Base):
    """One thread per (client, lawyer) pair"""
    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("client_id", "lawyer_id", name="uq_conversations_client_lawyer"),
        Index("ix_conversations_lawyer_status", "lawyer_id", "status"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    client_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    lawyer_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    case_id = Column(UUID(as_uuid=True), ForeignKey("cases.id", ondelete="SET NULL"), nullable=True)

    status = Column(
        SQLEnum(ConversationStatus, name="conversation_status"),
        nullable=False,
        default=ConversationStatus.pending,
    )
    last_message_at = Column(TIMESTAMP, nullable=False, default=utcnow, index=True)
    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)
    # Bumped on every status change so realtime subscribers can pick it up
    updated_at = Column(TIMESTAMP, nullable=False, default=utcnow)

    client = relationship("User", foreign_keys=[client_id])
    lawyer = relationship("User", foreign_keys=[lawyer_id])
    case = relationship("Case", back_populates="conversation")
    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.created_at",
    )


class Message(Base):
    """Single chat entry; immutable apart from the read flag"""
    __tablename__ = "messages"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    conversation_id = Column(
        UUID(as_uuid=True), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    text = Column(Text, nullable=False, default="")
    attachments = Column(JSONType, nullable=False, default=list)  # [{name, url, type}]
    is_case_request = Column(Boolean, nullable=False, default=False)
    delivered = Column(Boolean, nullable=False, default=False)
    read = Column(Boolean, nullable=False, default=False)

    created_at = Column(TIMESTAMP, nullable=False, default=utcnow, index=True)

    conversation = relationship("Conversation", back_populates="messages")


class IdempotencyRecord(Base):
    """First successful response of a send/decide call, keyed by (user, Idempotency-Key)"""
    __tablename__ = "idempotency_records"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    idempotency_key = Column(String(255), nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    endpoint = Column(String(255), nullable=False)  # "POST /api/v1/conversations/decide"
    request_hash = Column(String(64), nullable=False)  # sha256 of the request body
    status_code = Column(Integer, nullable=False, default=200)
    response_body = Column(JSONType, nullable=False, default=dict)

    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)
    expires_at = Column(TIMESTAMP, nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("idempotency_key", "user_id", name="uq_idempotency_key_user"),
    )
