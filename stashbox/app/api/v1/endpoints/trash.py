# stashbox/app/api/v1/endpoints/trash.py
from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stashbox.app.api import deps
from stashbox.app.db.base import get_db
from stashbox.app.models.user import User
from stashbox.app.schemas.trash import TrashEntryResponse
from stashbox.app.services import trash as trash_service

router = APIRouter()


@router.get("", response_model=List[TrashEntryResponse])
async def read_trash(
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(deps.get_current_user)
):
    return await trash_service.list_trash(db, current_user.id)


@router.delete("/{entry_id}")
async def purge_trash_entry(
        entry_id: int,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(deps.get_current_user)
):
    await trash_service.purge_trash_entry(db, current_user.id, entry_id)
    return {"message": "Item permanently deleted"}
