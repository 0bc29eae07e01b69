# stashbox/app/services/trash.py
"""
Trash relay: every owned item that is deleted, explicitly or by being left
out of a bulk save, is snapshotted here in decrypted form first.

``capture`` only stages the row. The caller commits it together with the
deletion so a snapshot never exists without its deletion, or vice versa.
"""
import logging
from typing import Any, Dict, List

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from stashbox.app.core.errors import NotFoundError
from stashbox.app.models.trash import TrashEntry

logger = logging.getLogger(__name__)


async def capture(
    db: AsyncSession,
    deleter_id: int,
    original_id: str,
    item_type: str,
    snapshot: Dict[str, Any],
) -> TrashEntry:
    entry = TrashEntry(
        owner_id=deleter_id,
        original_id=original_id,
        type=item_type,
        content=snapshot,
    )
    db.add(entry)
    await db.flush()
    logger.info("Captured %s %s into trash of user %s", item_type, original_id, deleter_id)
    return entry


async def list_trash(db: AsyncSession, user_id: int) -> List[TrashEntry]:
    result = await db.execute(
        select(TrashEntry)
        .where(TrashEntry.owner_id == user_id)
        .order_by(TrashEntry.created_at.desc(), TrashEntry.id.desc())
    )
    return list(result.scalars().all())


async def purge_trash_entry(db: AsyncSession, user_id: int, entry_id: int) -> None:
    result = await db.execute(
        delete(TrashEntry)
        .where(TrashEntry.id == entry_id, TrashEntry.owner_id == user_id)
        .returning(TrashEntry.id)
        .execution_options(synchronize_session=False)
    )
    if result.scalar_one_or_none() is None:
        await db.rollback()
        raise NotFoundError("Item not found")
    await db.commit()
