# stashbox/app/services/sharing.py
"""
Permission engine for shared sub-items.

Every operation names the item by (kind, item id, owner id). The item must
exist under that owner before any rule is applied, and the caller's access
level is decided before anything is written:

    OWNER    caller is the item's owner
    GRANTEE  caller has a grant row on the item
    DENIED   anything else

Owners and grantees may edit; only owners may change grants, publish or
delete. Public links are a separate anonymous, read-only path.
"""
import logging
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, update, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stashbox.app.core.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from stashbox.app.models.collection import SubItem, SubItemGrant
from stashbox.app.models.user import User
from stashbox.app.schemas.collection import SubItemIn
from stashbox.app.security.cipher import FieldCipher
from stashbox.app.services import collections
from stashbox.app.services.kinds import SubItemKind

logger = logging.getLogger(__name__)


class Access(str, Enum):
    OWNER = "owner"
    GRANTEE = "grantee"
    DENIED = "denied"


def generate_public_token() -> str:
    return str(uuid.uuid4())


async def access_for(db: AsyncSession, caller_id: int, item: SubItem) -> Access:
    if caller_id == item.owner_id:
        return Access.OWNER

    result = await db.execute(
        select(SubItemGrant.id).where(
            SubItemGrant.sub_item_id == item.id,
            SubItemGrant.user_id == caller_id,
        )
    )
    if result.first() is not None:
        return Access.GRANTEE
    return Access.DENIED


async def locate_item(db: AsyncSession, kind: SubItemKind, item_id: str, owner_id: int) -> SubItem:
    result = await db.execute(
        select(SubItem)
        .where(
            SubItem.id == item_id,
            SubItem.owner_id == owner_id,
            SubItem.kind == kind.value,
        )
        .execution_options(populate_existing=True)
    )
    item = result.scalars().first()
    if item is None:
        raise NotFoundError(f"{kind.value.replace('_', ' ').capitalize()} not found")
    return item


async def authorize(
    db: AsyncSession,
    caller_id: int,
    kind: SubItemKind,
    item_id: str,
    owner_id: int,
    *allowed: Access,
) -> Tuple[SubItem, Access]:
    item = await locate_item(db, kind, item_id, owner_id)
    access = await access_for(db, caller_id, item)
    if access not in allowed:
        raise PermissionDeniedError()
    return item, access


async def resolve_username(db: AsyncSession, username: Optional[str]) -> User:
    if not username:
        raise ValidationError("Username required")
    result = await db.execute(select(User).where(User.username == username))
    user = result.scalars().first()
    if user is None or not user.is_active:
        raise NotFoundError("User not found")
    return user


async def _children(db: AsyncSession, item: SubItem) -> List[SubItem]:
    # Commands filed under a command category share its grants
    if item.kind != SubItemKind.COMMAND_CATEGORY.value:
        return []
    result = await db.execute(
        select(SubItem)
        .where(SubItem.parent_id == item.id, SubItem.owner_id == item.owner_id)
        .order_by(SubItem.position, SubItem.created_at)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


# ─────────────────────────────────────────────────────────────────────────────
# Read / edit / delete
# ─────────────────────────────────────────────────────────────────────────────

async def get_item(
    db: AsyncSession,
    cipher: FieldCipher,
    caller_id: int,
    kind: SubItemKind,
    item_id: str,
    owner_id: int,
) -> Dict[str, Any]:
    item, _ = await authorize(db, caller_id, kind, item_id, owner_id, Access.OWNER, Access.GRANTEE)
    grantees = await collections.grantees_by_item(db, [item.id])
    owner = await db.get(User, item.owner_id)
    return collections.item_view(
        cipher, item, caller_id, grantees[item.id],
        owner_username=owner.username if owner else None,
    )


async def update_item(
    db: AsyncSession,
    cipher: FieldCipher,
    caller_id: int,
    kind: SubItemKind,
    item_id: str,
    owner_id: int,
    data: SubItemIn,
) -> Dict[str, Any]:
    """
    Rename / edit an item as its owner or a grantee.

    Only the fields present in the request are written. When ``entries`` is
    sent, nested entries missing from it go to the caller's trash. Only the
    owner may move a command to another category.
    """
    item, access = await authorize(db, caller_id, kind, item_id, owner_id, Access.OWNER, Access.GRANTEE)

    sent = set(data.model_fields_set) & collections.EDITABLE_FIELDS
    if access != Access.OWNER:
        sent.discard("parent_id")
    if "parent_id" in sent:
        await collections.check_parent(db, owner_id, kind, data.parent_id)
    if "entries" in sent:
        await collections.trash_vanished_entries(db, cipher, caller_id, item, data.entries)

    collections.apply_input(cipher, item, data, fields=sent)
    await db.commit()
    await db.refresh(item)

    logger.info(
        "User %s updated %s %s (%s): %s",
        caller_id, kind.value, item.id, access.value, ", ".join(sorted(sent)) or "no fields",
    )
    grantees = await collections.grantees_by_item(db, [item.id])
    owner = await db.get(User, item.owner_id)
    return collections.item_view(
        cipher, item, caller_id, grantees[item.id],
        owner_username=owner.username if owner else None,
    )


async def delete_item(
    db: AsyncSession,
    cipher: FieldCipher,
    caller_id: int,
    kind: SubItemKind,
    item_id: str,
    owner_id: Optional[int] = None,
) -> None:
    owner_id = caller_id if owner_id is None else owner_id
    item, _ = await authorize(db, caller_id, kind, item_id, owner_id, Access.OWNER)

    await collections.trash_and_delete(db, cipher, caller_id, item)
    await db.commit()
    logger.info("User %s deleted %s %s", caller_id, kind.value, item_id)


# ─────────────────────────────────────────────────────────────────────────────
# Grants
# ─────────────────────────────────────────────────────────────────────────────

async def add_grantee(
    db: AsyncSession,
    caller_id: int,
    kind: SubItemKind,
    item_id: str,
    owner_id: int,
    username: Optional[str],
) -> None:
    item, _ = await authorize(db, caller_id, kind, item_id, owner_id, Access.OWNER)

    target = await resolve_username(db, username)
    if target.id == caller_id:
        raise ValidationError("Cannot share with yourself")

    targets = [item] + await _children(db, item)
    result = await db.execute(
        select(SubItemGrant.sub_item_id).where(
            SubItemGrant.user_id == target.id,
            SubItemGrant.sub_item_id.in_([t.id for t in targets]),
        )
    )
    already = set(result.scalars().all())
    for t in targets:
        if t.id not in already:
            db.add(SubItemGrant(sub_item_id=t.id, user_id=target.id))

    try:
        await db.commit()
    except IntegrityError as exc:
        # A concurrent add inserted one of the same grants
        await db.rollback()
        if len(targets) == 1:
            return
        raise ConflictError("Sharing changed concurrently, try again") from exc

    logger.info("User %s shared %s %s with user %s", caller_id, kind.value, item.id, target.id)


async def _revoke(db: AsyncSession, item: SubItem, user_id: int) -> None:
    item_ids = [item.id] + [child.id for child in await _children(db, item)]
    await db.execute(
        delete(SubItemGrant)
        .where(SubItemGrant.sub_item_id.in_(item_ids), SubItemGrant.user_id == user_id)
        .execution_options(synchronize_session=False)
    )
    await db.commit()


async def remove_grantee(
    db: AsyncSession,
    caller_id: int,
    kind: SubItemKind,
    item_id: str,
    owner_id: int,
    username: Optional[str],
) -> None:
    item, _ = await authorize(db, caller_id, kind, item_id, owner_id, Access.OWNER)
    target = await resolve_username(db, username)
    await _revoke(db, item, target.id)
    logger.info("User %s unshared %s %s from user %s", caller_id, kind.value, item.id, target.id)


async def leave(
    db: AsyncSession,
    caller_id: int,
    kind: SubItemKind,
    item_id: str,
    owner_id: Optional[int],
) -> None:
    """
    Remove the caller's own grant. ``owner_id`` is required because the
    item lives in the owner's collection. Nothing goes to the trash.
    """
    if owner_id is None:
        raise ValidationError("Owner ID required")
    if owner_id == caller_id:
        raise ValidationError("Owners cannot leave their own items")

    item, _ = await authorize(db, caller_id, kind, item_id, owner_id, Access.GRANTEE)
    await _revoke(db, item, caller_id)
    logger.info("User %s left %s %s", caller_id, kind.value, item.id)


# ─────────────────────────────────────────────────────────────────────────────
# Public links
# ─────────────────────────────────────────────────────────────────────────────

async def toggle_public(
    db: AsyncSession,
    caller_id: int,
    kind: SubItemKind,
    item_id: str,
    owner_id: int,
) -> Tuple[bool, Optional[str]]:
    """
    Flip ``is_public``. The first publish assigns a token that is then kept,
    so re-publishing brings back the same link.

    Returns:
        (is_public, public_token)
    """
    item, _ = await authorize(db, caller_id, kind, item_id, owner_id, Access.OWNER)

    result = await db.execute(
        update(SubItem)
        .where(SubItem.id == item.id)
        .values(is_public=~SubItem.is_public)
        .returning(SubItem.is_public, SubItem.public_token)
        .execution_options(synchronize_session=False)
    )
    is_public, public_token = result.one()

    if is_public and public_token is None:
        await db.execute(
            update(SubItem)
            .where(SubItem.id == item.id, SubItem.public_token.is_(None))
            .values(public_token=generate_public_token())
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(select(SubItem.public_token).where(SubItem.id == item.id))
        public_token = result.scalar_one()

    await db.commit()
    logger.info("User %s set %s %s public=%s", caller_id, kind.value, item.id, is_public)
    return bool(is_public), public_token


def _public_view(cipher: FieldCipher, item: SubItem, author: Optional[str]) -> Dict[str, Any]:
    view = collections.item_view(cipher, item, caller_id=item.owner_id)
    return {
        "id": view["id"],
        "kind": view["kind"],
        "name": view["name"],
        "content": view["content"],
        "entries": view["entries"],
        "attributes": view["attributes"],
        "author": author,
        "children": [],
        "updated_at": view["updated_at"],
    }


async def resolve_public(db: AsyncSession, cipher: FieldCipher, kind: SubItemKind, token: str) -> Dict[str, Any]:
    """
    Anonymous read of a published item.

    A revoked link and one that never existed both raise NotFoundError.
    """
    result = await db.execute(
        select(SubItem, User.username)
        .join(User, User.id == SubItem.owner_id)
        .where(
            SubItem.public_token == token,
            SubItem.is_public == True,  # noqa: E712
            SubItem.kind == kind.value,
        )
        .execution_options(populate_existing=True)
    )
    row = result.first()
    if row is None:
        raise NotFoundError("Not found or no longer public")

    item, author = row
    view = _public_view(cipher, item, author)
    view["children"] = [_public_view(cipher, child, author) for child in await _children(db, item)]
    return view
