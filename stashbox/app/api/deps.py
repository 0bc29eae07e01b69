# stashbox/app/api/deps.py
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from pydantic import ValidationError as PayloadError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from stashbox.app.core.config import settings
from stashbox.app.db.base import get_db
from stashbox.app.models.user import User
from stashbox.app.schemas.user import TokenPayload
from stashbox.app.security.cipher import FieldCipher
from stashbox.app.security.jwt import decode_access_token

reusable_oauth2 = OAuth2PasswordBearer(tokenUrl=settings.AUTH_TOKEN_URL)


def get_cipher(request: Request) -> FieldCipher:
    # Built once in the lifespan handler
    return request.app.state.cipher


async def get_current_user(
        db: AsyncSession = Depends(get_db),
        token: str = Depends(reusable_oauth2)
) -> User:
    try:
        payload = decode_access_token(token)
        token_data = TokenPayload(**payload)
    except (JWTError, PayloadError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not token_data.sub:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    result = await db.execute(select(User).where(User.username == token_data.sub))
    user = result.scalars().first()

    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Inactive user")

    return user
