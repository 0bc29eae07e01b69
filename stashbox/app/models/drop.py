# stashbox/app/models/drop.py
from sqlalchemy import Column, Integer, String, Text, Boolean, ForeignKey, DateTime
from sqlalchemy.sql import func
from stashbox.app.db.base import Base


class DropToken(Base):
    """Single-use invitation allowing one message to be dropped to ``user_id``."""
    __tablename__ = "drop_tokens"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String(64), unique=True, index=True, nullable=False)

    # Recipient of the drop
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Flipped exactly once, by a conditional UPDATE
    is_used = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Drop(Base):
    __tablename__ = "drops"

    id = Column(Integer, primary_key=True, index=True)
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    # EncryptedField
    content = Column(Text, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
