# stashbox/app/services/secrets.py
"""
Burn-after-reading secrets.

Reveal semantics:
- Unknown id (or already burned)        -> NotFoundError (404)
- expires_at in the past                -> row deleted, ExpiredError (410)
- view that reaches max_views           -> DELETE ... RETURNING, content returned
- any earlier view                      -> UPDATE ... WHERE view_count + 1 < max_views

The increment is tried first. When it matches no row the view is the last
one, and the find-and-delete statement runs instead, so when several
requests race for the last view exactly one of them gets a row back.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from stashbox.app.core.config import settings
from stashbox.app.core.errors import (
    DecryptionError,
    ExpiredError,
    NotFoundError,
    ValidationError,
)
from stashbox.app.models.secret import Secret
from stashbox.app.security.cipher import FieldCipher

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Secret not found or already viewed"


@dataclass
class RevealResult:
    content: str
    burned: bool
    views_left: int = 0


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def create_secret(
    db: AsyncSession,
    cipher: FieldCipher,
    content: str,
    max_views: int = 1,
    expires_in_minutes: Optional[int] = None,
) -> str:
    if not content:
        raise ValidationError("Content is required")
    if len(content) > settings.MAX_CONTENT_LENGTH:
        raise ValidationError("Content is too large")
    if not 1 <= max_views <= settings.MAX_SECRET_VIEWS:
        raise ValidationError(f"max_views must be between 1 and {settings.MAX_SECRET_VIEWS}")

    secret = Secret(
        id=uuid.uuid4().hex,
        content=cipher.encrypt(content),
        view_count=0,
        max_views=max_views,
    )

    if expires_in_minutes is not None:
        if not 1 <= expires_in_minutes <= settings.MAX_SECRET_TTL_MINUTES:
            raise ValidationError("Invalid expiration")
        secret.expires_at = datetime.now(timezone.utc) + timedelta(minutes=expires_in_minutes)

    db.add(secret)
    await db.commit()

    logger.info("Secret %s created (max_views=%s)", secret.id, max_views)
    return secret.id


async def _decrypt_or_abort(db: AsyncSession, cipher: FieldCipher, secret_id: str, value: str) -> str:
    # A secret that cannot be decrypted must survive the failed reveal
    try:
        return cipher.decrypt(value)
    except DecryptionError:
        await db.rollback()
        logger.error("Secret %s could not be decrypted; reveal aborted", secret_id)
        raise


async def reveal_secret(db: AsyncSession, cipher: FieldCipher, secret_id: str) -> RevealResult:
    # Column query: bypasses the identity map
    result = await db.execute(
        select(Secret.expires_at).where(Secret.id == secret_id)
    )
    row = result.first()
    if row is None:
        raise NotFoundError(NOT_FOUND_MESSAGE)

    if row.expires_at is not None and datetime.now(timezone.utc) > _as_utc(row.expires_at):
        await db.execute(
            delete(Secret)
            .where(Secret.id == secret_id)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        logger.info("Secret %s expired and was removed", secret_id)
        raise ExpiredError()

    # Non-terminal view: the database does the increment, so concurrent
    # viewers never invalidate each other
    result = await db.execute(
        update(Secret)
        .where(Secret.id == secret_id, Secret.view_count + 1 < Secret.max_views)
        .values(view_count=Secret.view_count + 1)
        .returning(Secret.content, Secret.view_count, Secret.max_views)
        .execution_options(synchronize_session=False)
    )
    updated = result.first()
    if updated is not None:
        content = await _decrypt_or_abort(db, cipher, secret_id, updated.content)
        await db.commit()
        return RevealResult(
            content=content,
            burned=False,
            views_left=updated.max_views - updated.view_count,
        )

    # Terminal view: exactly one racer gets the row back
    result = await db.execute(
        delete(Secret)
        .where(Secret.id == secret_id, Secret.view_count + 1 >= Secret.max_views)
        .returning(Secret.content)
        .execution_options(synchronize_session=False)
    )
    stored = result.scalar_one_or_none()
    if stored is None:
        await db.rollback()
        raise NotFoundError(NOT_FOUND_MESSAGE)

    content = await _decrypt_or_abort(db, cipher, secret_id, stored)
    await db.commit()
    logger.info("Secret %s burned", secret_id)
    return RevealResult(content=content, burned=True, views_left=0)


async def purge_expired_secrets(db: AsyncSession) -> int:
    """
    Delete every expired secret. Optional: reveal already checks expiry.

    Returns:
        Number of rows removed
    """
    result = await db.execute(
        delete(Secret)
        .where(Secret.expires_at.is_not(None), Secret.expires_at < datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount or 0
