"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from app.storage import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PurchaseStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class DeliveryMethod(str, enum.Enum):
    EMAIL = "email"
    SMS = "sms"
    BOTH = "both"


class Message(Base):
    """
    A generated birthday message and the recipient description it came from.

    Table: messages
    Rows are written once by the message generation service and never updated.
    """
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipient_name = Column(String, nullable=False)
    relationship_role = Column(String, nullable=False)
    personality = Column(Text, nullable=False)
    quirks = Column(Text, nullable=True)
    recipient_gender = Column(String, nullable=True)
    recipient_email = Column(String, nullable=True)
    recipient_phone = Column(String, nullable=True)
    content = Column(Text, nullable=False)
    image_url = Column(Text, nullable=True)
    sender_email = Column(String, nullable=True)
    sender_phone = Column(String, nullable=True)
    delivery_method = Column(String, nullable=False, default=DeliveryMethod.EMAIL.value)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Purchase(Base):
    """
    Payment/access grant for the premium bundle of one message.

    Table: purchases
    Status moves pending -> completed | failed and is updated in place.
    """
    __tablename__ = "purchases"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, nullable=False)
    original_message_id = Column(
        Integer, ForeignKey("messages.id"), nullable=True, index=True
    )
    payment_intent_id = Column(String, nullable=True, unique=True)
    status = Column(String, nullable=False, default=PurchaseStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class PremiumMessage(Base):
    """
    One of the bonus message variants unlocked by a completed purchase.

    Table: premium_messages
    (purchase_id, order_index) is unique, so a purchase can only ever hold a
    single batch; a second concurrent insert fails as a whole.
    """
    __tablename__ = "premium_messages"
    __table_args__ = (
        UniqueConstraint("purchase_id", "order_index", name="uq_premium_purchase_order"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    purchase_id = Column(
        Integer, ForeignKey("purchases.id"), nullable=False, index=True
    )
    content = Column(Text, nullable=False)
    order_index = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
