# stashbox/app/services/drops.py
"""
Drop tokens: single-use links that let one signed-in user leave one
message for the token's owner.

- ``check_drop_token`` is read-only, so polling it never burns a link.
- ``redeem_drop_token`` flips ``is_used`` with a conditional UPDATE and
  commits that before delivering. A failed delivery leaves the token used.
"""
import logging
import secrets
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select, update, delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from stashbox.app.core.config import settings
from stashbox.app.core.errors import (
    DeliveryError,
    GoneError,
    NotFoundError,
    TokenGenerationError,
    ValidationError,
)
from stashbox.app.models.drop import Drop, DropToken
from stashbox.app.models.user import User
from stashbox.app.security.cipher import FieldCipher
from stashbox.app.services import trash

logger = logging.getLogger(__name__)

TOKEN_BYTES = 16
MAX_ISSUE_ATTEMPTS = 3

REASON_GONE = "gone"
REASON_NOT_FOUND = "not_found"


@dataclass
class DropTokenStatus:
    valid: bool
    reason: Optional[str] = None


def generate_drop_token() -> str:
    """128 bits from the OS CSPRNG, url-safe."""
    return secrets.token_urlsafe(TOKEN_BYTES)


async def issue_drop_token(db: AsyncSession, owner_id: int) -> str:
    for _ in range(MAX_ISSUE_ATTEMPTS):
        token = generate_drop_token()
        db.add(DropToken(token=token, user_id=owner_id, is_used=False))
        try:
            await db.commit()
        except IntegrityError:
            # Unique constraint on token: collision, draw again
            await db.rollback()
            continue
        logger.info("Drop token issued for user %s", owner_id)
        return token

    raise TokenGenerationError("Failed to generate a unique drop token")


async def _find_token(db: AsyncSession, token: str):
    result = await db.execute(
        select(DropToken.user_id, DropToken.is_used).where(DropToken.token == token)
    )
    return result.first()


async def check_drop_token(db: AsyncSession, token: str) -> DropTokenStatus:
    row = await _find_token(db, token)
    if row is None:
        return DropTokenStatus(valid=False, reason=REASON_NOT_FOUND)
    if row.is_used:
        return DropTokenStatus(valid=False, reason=REASON_GONE)
    return DropTokenStatus(valid=True)


async def redeem_drop_token(
    db: AsyncSession,
    cipher: FieldCipher,
    token: str,
    sender_id: int,
    content: str,
) -> int:
    """
    Use ``token`` to deliver ``content`` from ``sender_id``.

    Returns:
        The recipient's user id

    Raises:
        NotFoundError: unknown token or recipient
        GoneError: token already used, including by a concurrent redeemer
        ValidationError: empty content, or sending to yourself
        DeliveryError: token consumed but the drop could not be stored
    """
    if not content:
        raise ValidationError("Content is required")
    if len(content) > settings.MAX_CONTENT_LENGTH:
        raise ValidationError("Content is too large")

    row = await _find_token(db, token)
    if row is None:
        raise NotFoundError("Link invalid")
    if row.is_used:
        raise GoneError("This drop link is invalid or has already been used.")

    recipient_id = row.user_id
    if recipient_id == sender_id:
        raise ValidationError("You cannot drop a message to yourself.")

    recipient = await db.get(User, recipient_id)
    if recipient is None or not recipient.is_active:
        raise NotFoundError("Recipient not found")

    encrypted = cipher.encrypt(content)

    result = await db.execute(
        update(DropToken)
        .where(DropToken.token == token, DropToken.is_used == False)  # noqa: E712
        .values(is_used=True)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise GoneError("This drop link is invalid or has already been used.")
    await db.commit()

    try:
        db.add(Drop(recipient_id=recipient_id, sender_id=sender_id, content=encrypted))
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Drop token consumed but delivery to user %s failed", recipient_id)
        raise DeliveryError() from exc

    logger.info("Drop delivered to user %s from user %s", recipient_id, sender_id)
    return recipient_id


async def list_drops(db: AsyncSession, cipher: FieldCipher, recipient_id: int) -> List[dict]:
    result = await db.execute(
        select(Drop, User.username)
        .outerjoin(User, User.id == Drop.sender_id)
        .where(Drop.recipient_id == recipient_id)
        .order_by(Drop.created_at.desc(), Drop.id.desc())
    )
    return [
        {
            "id": drop.id,
            "content": cipher.decrypt(drop.content),
            "sender": username or "Anonymous",
            "created_at": drop.created_at,
        }
        for drop, username in result.all()
    ]


async def delete_drop(db: AsyncSession, cipher: FieldCipher, user_id: int, drop_id: int) -> None:
    result = await db.execute(
        select(Drop).where(Drop.id == drop_id, Drop.recipient_id == user_id)
    )
    drop = result.scalars().first()
    if drop is None:
        raise NotFoundError("Drop not found")

    await trash.capture(
        db,
        deleter_id=user_id,
        original_id=str(drop.id),
        item_type="drop",
        snapshot={
            "content": cipher.decrypt(drop.content),
            "sender_id": drop.sender_id,
            "created_at": drop.created_at.isoformat() if drop.created_at else None,
        },
    )
    await db.execute(
        delete(Drop).where(Drop.id == drop.id).execution_options(synchronize_session=False)
    )
    await db.commit()
