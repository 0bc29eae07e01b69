# stashbox/app/models/collection.py
"""
Per-owner arenas of shareable sub-items.

Each owner has one Collection per kind. Grantees never get a copy: they
read and write the owner's SubItem rows, guarded by the permission engine.
"""
import uuid

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    JSON,
    ForeignKey,
    DateTime,
    UniqueConstraint,
)
from sqlalchemy.sql import func
from stashbox.app.db.base import Base


def new_item_id() -> str:
    return str(uuid.uuid4())


class Collection(Base):
    __tablename__ = "collections"
    __table_args__ = (UniqueConstraint("owner_id", "kind", name="uq_collection_owner_kind"),)

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    kind = Column(String(32), nullable=False)

    # Single-value content from before collections held several items.
    # Moved into a real item by the normalization step, then cleared.
    legacy_content = Column(Text, nullable=True)

    # Bumped by every bulk save with a conditional UPDATE
    version = Column(Integer, nullable=False, default=1)

    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )


class SubItem(Base):
    __tablename__ = "sub_items"

    id = Column(String(36), primary_key=True, default=new_item_id)
    collection_id = Column(Integer, ForeignKey("collections.id"), nullable=False, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    kind = Column(String(32), nullable=False)

    # Commands point at their command category
    parent_id = Column(String(36), nullable=True, index=True)

    position = Column(Integer, nullable=False, default=0)

    # --- ENCRYPTED FIELDS (iv:ciphertext) ---
    name = Column(Text, nullable=False)
    content = Column(Text, nullable=True)
    # Nested entries (todo items, links, command steps). Each entry has a
    # plain "id" and its sensitive fields stored as EncryptedFields.
    entries = Column(JSON, nullable=False, default=list)

    # --- PLAIN METADATA ---
    attributes = Column(JSON, nullable=False, default=dict)
    is_hidden = Column(Boolean, nullable=False, default=False)

    # --- PUBLIC LINK ---
    is_public = Column(Boolean, nullable=False, default=False)
    # Generated on first publish, kept across toggles
    public_token = Column(String(64), unique=True, nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )


class SubItemGrant(Base):
    """One row per (sub-item, grantee): the item's ``sharedWith`` set."""
    __tablename__ = "sub_item_grants"
    __table_args__ = (UniqueConstraint("sub_item_id", "user_id", name="uq_grant_item_user"),)

    id = Column(Integer, primary_key=True, index=True)
    sub_item_id = Column(String(36), ForeignKey("sub_items.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
