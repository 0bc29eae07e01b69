# stashbox/app/api/v1/endpoints/drops.py
from typing import List
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from stashbox.app.api import deps
from stashbox.app.core.errors import GoneError, NotFoundError
from stashbox.app.db.base import get_db
from stashbox.app.models.user import User
from stashbox.app.schemas.drop import (
    DropCreate,
    DropDelivered,
    DropResponse,
    DropTokenCheck,
    DropTokenResponse,
)
from stashbox.app.security.cipher import FieldCipher
from stashbox.app.services import drops as drop_service

router = APIRouter()
public_router = APIRouter()


@router.post("/token", response_model=DropTokenResponse)
async def create_drop_token(
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(deps.get_current_user)
):
    token = await drop_service.issue_drop_token(db, current_user.id)
    return {"token": token}


@router.get("", response_model=List[DropResponse])
async def read_drops(
        db: AsyncSession = Depends(get_db),
        cipher: FieldCipher = Depends(deps.get_cipher),
        current_user: User = Depends(deps.get_current_user)
):
    return await drop_service.list_drops(db, cipher, current_user.id)


@router.delete("/{drop_id}")
async def delete_drop(
        drop_id: int,
        db: AsyncSession = Depends(get_db),
        cipher: FieldCipher = Depends(deps.get_cipher),
        current_user: User = Depends(deps.get_current_user)
):
    await drop_service.delete_drop(db, cipher, current_user.id, drop_id)
    return {"message": "Drop moved to trash"}


# Polled by the drop page before showing the form; never consumes the token
@public_router.get("/check/{token}", response_model=DropTokenCheck)
async def check_drop_token(token: str, db: AsyncSession = Depends(get_db)):
    result = await drop_service.check_drop_token(db, token)
    if result.valid:
        return {"valid": True}

    if result.reason == drop_service.REASON_NOT_FOUND:
        exc = NotFoundError("Link invalid")
    else:
        exc = GoneError("This drop link is invalid or has already been used.")
    return JSONResponse(
        status_code=exc.status_code,
        content={"valid": False, "reason": result.reason, "error": exc.error, "message": exc.message},
    )


@public_router.post("/{token}", response_model=DropDelivered, status_code=status.HTTP_201_CREATED)
async def redeem_drop_token(
        token: str,
        drop_in: DropCreate,
        db: AsyncSession = Depends(get_db),
        cipher: FieldCipher = Depends(deps.get_cipher),
        current_user: User = Depends(deps.get_current_user)
):
    await drop_service.redeem_drop_token(db, cipher, token, current_user.id, drop_in.content)
    return {"success": True, "message": "Message dropped successfully"}
