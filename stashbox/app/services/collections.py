# stashbox/app/services/collections.py
"""
Storage adapter for per-owner collections of shareable sub-items.

Responsibilities:
- Seal (encrypt) every sensitive field on the way in, open it on the way out
- Normalize legacy single-value collections into item lists, once
- Bulk save with a diff, so anything missing from the new set goes to trash
- Create owned items and list owned + shared items
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stashbox.app.core.errors import ConflictError, ValidationError
from stashbox.app.models.collection import Collection, SubItem, SubItemGrant, new_item_id
from stashbox.app.models.user import User
from stashbox.app.schemas.collection import SubItemIn
from stashbox.app.security.cipher import FieldCipher
from stashbox.app.services import trash
from stashbox.app.services.kinds import KindProfile, SubItemKind, profile_for

logger = logging.getLogger(__name__)

LEGACY_ITEM_NAME = "Main"


# ─────────────────────────────────────────────────────────────────────────────
# Sealing / opening
# ─────────────────────────────────────────────────────────────────────────────

def _seal_fields(cipher: FieldCipher, data: Dict[str, Any], fields: Iterable[str]) -> Dict[str, Any]:
    sealed = dict(data)
    for field in fields:
        value = sealed.get(field)
        if value is None:
            continue
        if not isinstance(value, str):
            raise ValidationError(f"Field '{field}' must be a string")
        sealed[field] = cipher.encrypt(value)
    return sealed


def _open_fields(cipher: FieldCipher, data: Dict[str, Any], fields: Iterable[str]) -> Dict[str, Any]:
    opened = dict(data)
    for field in fields:
        if opened.get(field) is not None:
            opened[field] = cipher.decrypt(opened[field])
    return opened


def seal_entries(cipher: FieldCipher, profile: KindProfile, entries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Encrypt entry fields and give every entry a unique id."""
    sealed = []
    seen = set()
    for entry in entries:
        entry_id = entry.get("id")
        if not entry_id or str(entry_id) in seen:
            entry_id = new_item_id()
        entry_id = str(entry_id)
        seen.add(entry_id)
        data = _seal_fields(cipher, entry, profile.entry_fields)
        data["id"] = entry_id
        sealed.append(data)
    return sealed


def open_entries(cipher: FieldCipher, profile: KindProfile, entries: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    return [_open_fields(cipher, entry, profile.entry_fields) for entry in entries or []]


def seal_attributes(cipher: FieldCipher, profile: KindProfile, attributes: Dict[str, Any]) -> Dict[str, Any]:
    sealed = _seal_fields(cipher, attributes, profile.sealed_attributes)
    variables = sealed.get("variables")
    if not profile.sealed_variable_fields or variables is None:
        return sealed
    if not isinstance(variables, list) or not all(isinstance(v, dict) for v in variables):
        raise ValidationError("Field 'variables' must be a list of objects")
    sealed["variables"] = [
        _seal_fields(cipher, variable, profile.sealed_variable_fields) for variable in variables
    ]
    return sealed


def open_attributes(cipher: FieldCipher, profile: KindProfile, attributes: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    opened = _open_fields(cipher, attributes or {}, profile.sealed_attributes)
    variables = opened.get("variables")
    if profile.sealed_variable_fields and isinstance(variables, list):
        opened["variables"] = [
            _open_fields(cipher, variable, profile.sealed_variable_fields) for variable in variables
        ]
    return opened


EDITABLE_FIELDS = frozenset({"name", "content", "entries", "attributes", "is_hidden", "parent_id"})


def apply_input(
    cipher: FieldCipher,
    item: SubItem,
    data: SubItemIn,
    fields: Optional[Iterable[str]] = None,
) -> None:
    """
    Write the editable fields of ``data`` onto ``item``, sealed.

    With ``fields`` only those are written (a partial edit); otherwise every
    editable field is replaced, falling back to the kind's defaults.
    """
    profile = profile_for(item.kind)
    fields = EDITABLE_FIELDS if fields is None else frozenset(fields)

    if "name" in fields:
        item.name = cipher.encrypt(data.name if data.name is not None else profile.default_name)
    if "content" in fields and profile.has_content:
        item.content = cipher.encrypt(data.content or "")
    if "entries" in fields:
        item.entries = seal_entries(cipher, profile, data.entries) if profile.entry_fields else []
    if "attributes" in fields:
        item.attributes = seal_attributes(cipher, profile, data.attributes)
    if "is_hidden" in fields:
        item.is_hidden = data.is_hidden
    if "parent_id" in fields:
        item.parent_id = data.parent_id


def snapshot_item(cipher: FieldCipher, item: SubItem) -> Dict[str, Any]:
    """Fully decrypted copy of an item, for the trash."""
    profile = profile_for(item.kind)
    return {
        "kind": item.kind,
        "name": cipher.decrypt(item.name),
        "content": cipher.decrypt_optional(item.content),
        "entries": open_entries(cipher, profile, item.entries),
        "attributes": open_attributes(cipher, profile, item.attributes),
        "is_hidden": item.is_hidden,
        "parent_id": item.parent_id,
        "owner_id": item.owner_id,
    }


def item_view(
    cipher: FieldCipher,
    item: SubItem,
    caller_id: int,
    grantees: Optional[List[Dict[str, Any]]] = None,
    owner_username: Optional[str] = None,
) -> Dict[str, Any]:
    profile = profile_for(item.kind)
    is_owner = item.owner_id == caller_id
    return {
        "id": item.id,
        "kind": item.kind,
        "name": cipher.decrypt(item.name),
        "content": cipher.decrypt_optional(item.content),
        "entries": open_entries(cipher, profile, item.entries),
        "attributes": open_attributes(cipher, profile, item.attributes),
        "is_hidden": item.is_hidden,
        "parent_id": item.parent_id,
        "is_owner": is_owner,
        "owner_id": item.owner_id,
        "owner_username": owner_username,
        "shared_with": (grantees or []) if is_owner else [],
        "is_public": item.is_public if is_owner else False,
        "public_token": item.public_token if is_owner else None,
        "updated_at": item.updated_at,
    }


# ─────────────────────────────────────────────────────────────────────────────
# Loading
# ─────────────────────────────────────────────────────────────────────────────

async def get_or_create_collection(db: AsyncSession, owner_id: int, kind: SubItemKind) -> Collection:
    query = (
        select(Collection)
        .where(Collection.owner_id == owner_id, Collection.kind == kind.value)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(query)
    collection = result.scalars().first()
    if collection is not None:
        return collection

    collection = Collection(owner_id=owner_id, kind=kind.value, version=1)
    db.add(collection)
    try:
        await db.flush()
    except IntegrityError:
        # Created by a concurrent request
        await db.rollback()
        result = await db.execute(query)
        collection = result.scalars().one()
    return collection


async def load_items(db: AsyncSession, collection_id: int) -> List[SubItem]:
    result = await db.execute(
        select(SubItem)
        .where(SubItem.collection_id == collection_id)
        .order_by(SubItem.position, SubItem.created_at)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def normalize_collection(db: AsyncSession, cipher: FieldCipher, collection: Collection) -> bool:
    """
    Upgrade a legacy single-clipboard record into an item list.

    Idempotent: once the collection has an item nothing happens. Returns
    True when something was written (the caller commits).
    """
    if collection.kind != SubItemKind.CLIPBOARD.value:
        return False

    result = await db.execute(
        select(func.count(SubItem.id)).where(SubItem.collection_id == collection.id)
    )
    if result.scalar_one() > 0:
        return False

    content = collection.legacy_content or cipher.encrypt("")
    db.add(SubItem(
        id=new_item_id(),
        collection_id=collection.id,
        owner_id=collection.owner_id,
        kind=collection.kind,
        position=0,
        name=cipher.encrypt(LEGACY_ITEM_NAME),
        content=content,
        entries=[],
        attributes={},
    ))
    collection.legacy_content = None
    await db.flush()
    logger.info("Normalized %s collection of user %s", collection.kind, collection.owner_id)
    return True


async def grantees_by_item(db: AsyncSession, item_ids: List[str]) -> Dict[str, List[Dict[str, Any]]]:
    grants: Dict[str, List[Dict[str, Any]]] = {item_id: [] for item_id in item_ids}
    if not item_ids:
        return grants

    result = await db.execute(
        select(SubItemGrant.sub_item_id, User.id, User.username)
        .join(User, User.id == SubItemGrant.user_id)
        .where(SubItemGrant.sub_item_id.in_(item_ids))
        .order_by(SubItemGrant.id)
    )
    for item_id, user_id, username in result.all():
        grants[item_id].append({"user_id": user_id, "username": username})
    return grants


async def list_collection(
    db: AsyncSession,
    cipher: FieldCipher,
    caller_id: int,
    kind: SubItemKind,
) -> Tuple[List[Dict[str, Any]], int]:
    """
    Everything of ``kind`` the caller can see: their own items first,
    then items other users shared with them.

    Returns:
        (item views, version of the caller's own collection)
    """
    collection = await get_or_create_collection(db, caller_id, kind)
    await normalize_collection(db, cipher, collection)
    await db.commit()

    owned = await load_items(db, collection.id)
    owned_grants = await grantees_by_item(db, [item.id for item in owned])

    result = await db.execute(
        select(SubItem, User.username)
        .join(SubItemGrant, SubItemGrant.sub_item_id == SubItem.id)
        .join(User, User.id == SubItem.owner_id)
        .where(SubItemGrant.user_id == caller_id, SubItem.kind == kind.value)
        .order_by(SubItem.owner_id, SubItem.position, SubItem.created_at)
        .execution_options(populate_existing=True)
    )
    shared = result.all()

    views = [item_view(cipher, item, caller_id, owned_grants[item.id]) for item in owned]
    views.extend(
        item_view(cipher, item, caller_id, owner_username=owner_username)
        for item, owner_username in shared
    )
    return views, collection.version


# ─────────────────────────────────────────────────────────────────────────────
# Writing
# ─────────────────────────────────────────────────────────────────────────────

async def check_parent(db: AsyncSession, owner_id: int, kind: SubItemKind, parent_id: Optional[str]) -> None:
    """Only commands have a parent, and it must be one of the owner's command categories."""
    if parent_id is None:
        return
    if kind != SubItemKind.COMMAND:
        raise ValidationError("Only commands can belong to a category")

    result = await db.execute(
        select(SubItem.id).where(
            SubItem.id == parent_id,
            SubItem.owner_id == owner_id,
            SubItem.kind == SubItemKind.COMMAND_CATEGORY.value,
        )
    )
    if result.first() is None:
        raise ValidationError("Command category not found")


async def trash_and_delete(db: AsyncSession, cipher: FieldCipher, deleter_id: int, item: SubItem) -> None:
    """Snapshot ``item`` into the trash, then remove it with its grants. Does not commit."""
    if item.kind == SubItemKind.COMMAND_CATEGORY.value:
        result = await db.execute(select(SubItem).where(SubItem.parent_id == item.id))
        for child in result.scalars().all():
            await trash_and_delete(db, cipher, deleter_id, child)

    profile = profile_for(item.kind)
    await trash.capture(
        db,
        deleter_id=deleter_id,
        original_id=item.id,
        item_type=profile.item_trash_type,
        snapshot=snapshot_item(cipher, item),
    )
    await db.execute(
        delete(SubItemGrant)
        .where(SubItemGrant.sub_item_id == item.id)
        .execution_options(synchronize_session=False)
    )
    await db.delete(item)


async def trash_vanished_entries(
    db: AsyncSession,
    cipher: FieldCipher,
    deleter_id: int,
    item: SubItem,
    incoming: List[Dict[str, Any]],
) -> int:
    """Capture the entries of ``item`` whose ids are missing from ``incoming``."""
    profile = profile_for(item.kind)
    if profile.entry_trash_type is None:
        return 0

    kept_ids = {str(entry["id"]) for entry in incoming if entry.get("id")}
    vanished = [entry for entry in item.entries or [] if str(entry.get("id")) not in kept_ids]
    for entry in vanished:
        snapshot = _open_fields(cipher, entry, profile.entry_fields)
        snapshot["category_id"] = item.id
        snapshot["category_owner_id"] = item.owner_id
        await trash.capture(
            db,
            deleter_id=deleter_id,
            original_id=str(entry["id"]),
            item_type=profile.entry_trash_type,
            snapshot=snapshot,
        )
    return len(vanished)


async def create_item(
    db: AsyncSession,
    cipher: FieldCipher,
    owner_id: int,
    kind: SubItemKind,
    data: SubItemIn,
) -> SubItem:
    await check_parent(db, owner_id, kind, data.parent_id)
    collection = await get_or_create_collection(db, owner_id, kind)

    result = await db.execute(
        select(func.max(SubItem.position)).where(SubItem.collection_id == collection.id)
    )
    last_position = result.scalar_one()

    item = SubItem(
        id=new_item_id(),
        collection_id=collection.id,
        owner_id=owner_id,
        kind=kind.value,
        position=0 if last_position is None else last_position + 1,
        is_public=False,
    )
    apply_input(cipher, item, data)
    db.add(item)
    await db.commit()
    await db.refresh(item)

    logger.info("User %s created %s %s", owner_id, kind.value, item.id)
    return item


async def save_collection(
    db: AsyncSession,
    cipher: FieldCipher,
    owner_id: int,
    kind: SubItemKind,
    items: List[SubItemIn],
    expected_version: Optional[int] = None,
) -> int:
    """
    Replace the owner's collection with ``items``.

    Items owned by someone else are skipped. Items and nested entries that
    disappear are captured into the owner's trash before removal. Grants and
    public links of surviving items are left untouched.

    Returns:
        The new collection version

    Raises:
        ConflictError: another save won the race for this version
    """
    collection = await get_or_create_collection(db, owner_id, kind)
    version = collection.version if expected_version is None else expected_version

    result = await db.execute(
        update(Collection)
        .where(Collection.id == collection.id, Collection.version == version)
        .values(version=version + 1)
        .returning(Collection.version)
        .execution_options(synchronize_session=False)
    )
    new_version = result.scalar_one_or_none()
    if new_version is None:
        await db.rollback()
        raise ConflictError()

    owned_input = [
        data for data in items
        if not (data.owner_id is not None and data.owner_id != owner_id) and data.is_owner is not False
    ]
    for data in owned_input:
        await check_parent(db, owner_id, kind, data.parent_id)

    current = {item.id: item for item in await load_items(db, collection.id)}
    kept = set()

    for position, data in enumerate(owned_input):
        existing = current.get(data.id) if data.id else None
        if existing is not None and existing.id not in kept:
            await trash_vanished_entries(db, cipher, owner_id, existing, data.entries)
            apply_input(cipher, existing, data)
            existing.position = position
            kept.add(existing.id)
            continue

        item = SubItem(
            id=new_item_id(),
            collection_id=collection.id,
            owner_id=owner_id,
            kind=kind.value,
            position=position,
            is_public=False,
        )
        apply_input(cipher, item, data)
        db.add(item)

    for item_id, item in current.items():
        if item_id not in kept:
            await trash_and_delete(db, cipher, owner_id, item)

    await db.commit()
    logger.info(
        "User %s saved %s collection v%s (%s items)",
        owner_id, kind.value, new_version, len(owned_input),
    )
    return new_version
