# stashbox/app/models/secret.py
import uuid

from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func
from stashbox.app.db.base import Base


def _new_secret_id() -> str:
    return uuid.uuid4().hex


class Secret(Base):
    """
    A burn-after-reading payload.

    The row is deleted by the reveal that reaches ``max_views``, or by the
    first reveal after ``expires_at``.
    """
    __tablename__ = "secrets"

    id = Column(String(32), primary_key=True, default=_new_secret_id)

    # EncryptedField (iv:ciphertext)
    content = Column(Text, nullable=False)

    view_count = Column(Integer, nullable=False, default=0)
    max_views = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
