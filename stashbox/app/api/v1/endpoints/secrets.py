# stashbox/app/api/v1/endpoints/secrets.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from stashbox.app.api import deps
from stashbox.app.db.base import get_db
from stashbox.app.schemas.secret import SecretCreate, SecretCreated, SecretReveal
from stashbox.app.security.cipher import FieldCipher
from stashbox.app.services import secrets as secret_service

router = APIRouter()


# Anonymous: the link itself is the capability
@router.post("", response_model=SecretCreated, status_code=status.HTTP_201_CREATED)
async def create_secret(
        secret_in: SecretCreate,
        db: AsyncSession = Depends(get_db),
        cipher: FieldCipher = Depends(deps.get_cipher)
):
    secret_id = await secret_service.create_secret(
        db,
        cipher,
        content=secret_in.content,
        max_views=secret_in.max_views,
        expires_in_minutes=secret_in.expires_in_minutes,
    )
    return {"id": secret_id}


# 404 when unknown or burned, 410 when expired
@router.get("/{secret_id}", response_model=SecretReveal)
async def reveal_secret(
        secret_id: str,
        db: AsyncSession = Depends(get_db),
        cipher: FieldCipher = Depends(deps.get_cipher)
):
    result = await secret_service.reveal_secret(db, cipher, secret_id)
    return {"content": result.content, "burned": result.burned, "views_left": result.views_left}
