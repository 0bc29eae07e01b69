# stashbox/app/models/user.py
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from stashbox.app.db.base import Base


class User(Base):
    """
    Local mirror of an identity-provider account.

    Only what sharing needs: the id that grants point at and the username
    that owners type when they share something.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)

    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
