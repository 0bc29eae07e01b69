# stashbox/app/models/trash.py
from sqlalchemy import Column, Integer, String, JSON, ForeignKey, DateTime
from sqlalchemy.sql import func
from stashbox.app.db.base import Base


class TrashEntry(Base):
    __tablename__ = "trash_entries"

    id = Column(Integer, primary_key=True, index=True)

    # The user who deleted the item. For a grantee editing a shared
    # category this is the grantee, not the category owner.
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    original_id = Column(String(64), nullable=False)
    type = Column(String(32), nullable=False)

    # Decrypted snapshot, readable without the field cipher
    content = Column(JSON, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
