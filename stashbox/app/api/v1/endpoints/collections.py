# stashbox/app/api/v1/endpoints/collections.py
from typing import Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from stashbox.app.api import deps
from stashbox.app.db.base import get_db
from stashbox.app.models.user import User
from stashbox.app.schemas.collection import (
    CollectionResponse,
    CollectionSaveRequest,
    PublicItemResponse,
    ShareRequest,
    ShareResponse,
    SubItemIn,
    SubItemResponse,
)
from stashbox.app.security.cipher import FieldCipher
from stashbox.app.services import collections as collection_service
from stashbox.app.services import sharing
from stashbox.app.services.kinds import SubItemKind

router = APIRouter()
items_router = APIRouter()
public_router = APIRouter()


async def _listing(db: AsyncSession, cipher: FieldCipher, user: User, kind: SubItemKind) -> dict:
    items, version = await collection_service.list_collection(db, cipher, user.id, kind)
    for item in items:
        if item["is_owner"]:
            item["owner_username"] = user.username
    return {"kind": kind.value, "version": version, "items": items}


# 1. OWNED + SHARED ITEMS OF ONE KIND
@router.get("/{kind}", response_model=CollectionResponse)
async def read_collection(
        kind: SubItemKind,
        db: AsyncSession = Depends(get_db),
        cipher: FieldCipher = Depends(deps.get_cipher),
        current_user: User = Depends(deps.get_current_user)
):
    return await _listing(db, cipher, current_user, kind)


# 2. BULK SAVE (items left out go to the trash)
@router.put("/{kind}", response_model=CollectionResponse)
async def save_collection(
        kind: SubItemKind,
        save_in: CollectionSaveRequest,
        db: AsyncSession = Depends(get_db),
        cipher: FieldCipher = Depends(deps.get_cipher),
        current_user: User = Depends(deps.get_current_user)
):
    await collection_service.save_collection(
        db, cipher, current_user.id, kind, save_in.items, expected_version=save_in.version
    )
    return await _listing(db, cipher, current_user, kind)


@items_router.post("/{kind}", response_model=SubItemResponse, status_code=status.HTTP_201_CREATED)
async def create_item(
        kind: SubItemKind,
        item_in: SubItemIn,
        db: AsyncSession = Depends(get_db),
        cipher: FieldCipher = Depends(deps.get_cipher),
        current_user: User = Depends(deps.get_current_user)
):
    item = await collection_service.create_item(db, cipher, current_user.id, kind, item_in)
    return collection_service.item_view(
        cipher, item, current_user.id, [], owner_username=current_user.username
    )


# owner_id defaults to the caller; grantees pass the owner's id
@items_router.get("/{kind}/{item_id}", response_model=SubItemResponse)
async def read_item(
        kind: SubItemKind,
        item_id: str,
        owner_id: Optional[int] = None,
        db: AsyncSession = Depends(get_db),
        cipher: FieldCipher = Depends(deps.get_cipher),
        current_user: User = Depends(deps.get_current_user)
):
    return await sharing.get_item(
        db, cipher, current_user.id, kind, item_id,
        owner_id if owner_id is not None else current_user.id,
    )


@items_router.put("/{kind}/{item_id}", response_model=SubItemResponse)
async def update_item(
        kind: SubItemKind,
        item_id: str,
        item_in: SubItemIn,
        owner_id: Optional[int] = None,
        db: AsyncSession = Depends(get_db),
        cipher: FieldCipher = Depends(deps.get_cipher),
        current_user: User = Depends(deps.get_current_user)
):
    return await sharing.update_item(
        db, cipher, current_user.id, kind, item_id,
        owner_id if owner_id is not None else current_user.id,
        item_in,
    )


@items_router.delete("/{kind}/{item_id}")
async def delete_item(
        kind: SubItemKind,
        item_id: str,
        db: AsyncSession = Depends(get_db),
        cipher: FieldCipher = Depends(deps.get_cipher),
        current_user: User = Depends(deps.get_current_user)
):
    await sharing.delete_item(db, cipher, current_user.id, kind, item_id)
    return {"message": "Item moved to trash"}


@items_router.post("/{kind}/{item_id}/share", response_model=ShareResponse)
async def share_item(
        kind: SubItemKind,
        item_id: str,
        share_in: ShareRequest,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(deps.get_current_user)
):
    owner_id = share_in.owner_id if share_in.owner_id is not None else current_user.id

    if share_in.action == "add":
        await sharing.add_grantee(db, current_user.id, kind, item_id, owner_id, share_in.username)
        return {"success": True, "message": f"Shared with {share_in.username}"}

    if share_in.action == "remove":
        await sharing.remove_grantee(db, current_user.id, kind, item_id, owner_id, share_in.username)
        return {"success": True, "message": f"Removed {share_in.username}"}

    if share_in.action == "leave":
        await sharing.leave(db, current_user.id, kind, item_id, share_in.owner_id)
        return {"success": True, "message": "Left shared item"}

    is_public, public_token = await sharing.toggle_public(db, current_user.id, kind, item_id, owner_id)
    return {
        "success": True,
        "message": "Public link enabled" if is_public else "Public link disabled",
        "is_public": is_public,
        "public_token": public_token,
    }


# Anonymous read-only view of a published item
@public_router.get("/{kind}/{token}", response_model=PublicItemResponse)
async def read_public_item(
        kind: SubItemKind,
        token: str,
        db: AsyncSession = Depends(get_db),
        cipher: FieldCipher = Depends(deps.get_cipher)
):
    return await sharing.resolve_public(db, cipher, kind, token)
