"""
Tests for the permission engine: grants, leave, public links.
"""
import pytest
from sqlalchemy import select

from stashbox.app.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from stashbox.app.models.collection import SubItem, SubItemGrant
from stashbox.app.models.trash import TrashEntry
from stashbox.app.schemas.collection import SubItemIn
from stashbox.app.services import sharing
from stashbox.app.services.collections import create_item, list_collection
from stashbox.app.services.kinds import SubItemKind

TODO = SubItemKind.TODO_CATEGORY


@pytest.fixture
async def todo_list(db, cipher, alice):
    return await create_item(db, cipher, alice.id, TODO, SubItemIn(
        name="Groceries",
        entries=[{"id": "t1", "title": "milk"}, {"id": "t2", "title": "eggs"}],
    ))


async def _grants(db, item_id):
    result = await db.execute(select(SubItemGrant.user_id).where(SubItemGrant.sub_item_id == item_id))
    return set(result.scalars().all())


class TestAccess:

    async def test_access_levels(self, db, todo_list, alice, bob, carol):
        await sharing.add_grantee(db, alice.id, TODO, todo_list.id, alice.id, "bob")

        assert await sharing.access_for(db, alice.id, todo_list) == sharing.Access.OWNER
        assert await sharing.access_for(db, bob.id, todo_list) == sharing.Access.GRANTEE
        assert await sharing.access_for(db, carol.id, todo_list) == sharing.Access.DENIED

    async def test_wrong_owner_is_not_found(self, db, cipher, todo_list, bob):
        with pytest.raises(NotFoundError):
            await sharing.get_item(db, cipher, bob.id, TODO, todo_list.id, bob.id)

    async def test_wrong_kind_is_not_found(self, db, cipher, todo_list, alice):
        with pytest.raises(NotFoundError):
            await sharing.get_item(db, cipher, alice.id, SubItemKind.LINK_CATEGORY, todo_list.id, alice.id)

    async def test_stranger_is_denied(self, db, cipher, todo_list, alice, carol):
        with pytest.raises(PermissionDeniedError):
            await sharing.get_item(db, cipher, carol.id, TODO, todo_list.id, alice.id)


class TestGrants:

    async def test_grantee_can_edit(self, db, cipher, todo_list, alice, bob):
        await sharing.add_grantee(db, alice.id, TODO, todo_list.id, alice.id, "bob")

        view = await sharing.update_item(
            db, cipher, bob.id, TODO, todo_list.id, alice.id,
            SubItemIn(name="Groceries!", entries=[{"id": "t1", "title": "oat milk"}]),
        )
        assert view["name"] == "Groceries!"
        assert view["is_owner"] is False
        assert view["owner_username"] == "alice"
        assert view["shared_with"] == []

        owner_view = await sharing.get_item(db, cipher, alice.id, TODO, todo_list.id, alice.id)
        assert owner_view["entries"][0]["title"] == "oat milk"
        assert [g["username"] for g in owner_view["shared_with"]] == ["bob"]

    async def test_grantee_entry_removal_goes_to_grantee_trash(self, db, cipher, todo_list, alice, bob):
        await sharing.add_grantee(db, alice.id, TODO, todo_list.id, alice.id, "bob")
        await sharing.update_item(
            db, cipher, bob.id, TODO, todo_list.id, alice.id,
            SubItemIn(name="Groceries", entries=[{"id": "t1", "title": "milk"}]),
        )

        result = await db.execute(select(TrashEntry))
        entries = result.scalars().all()
        assert len(entries) == 1
        assert entries[0].owner_id == bob.id
        assert entries[0].type == "todo"
        assert entries[0].original_id == "t2"
        assert entries[0].content["title"] == "eggs"

    async def test_content_only_edit_keeps_other_fields(self, db, cipher, alice, bob):
        command = await create_item(db, cipher, alice.id, SubItemKind.COMMAND, SubItemIn(
            name="Restart",
            content="systemctl restart app",
            attributes={"description": "bounce the service", "language": "bash"},
            is_hidden=True,
        ))
        await sharing.add_grantee(db, alice.id, SubItemKind.COMMAND, command.id, alice.id, "bob")

        view = await sharing.update_item(
            db, cipher, bob.id, SubItemKind.COMMAND, command.id, alice.id,
            SubItemIn(content="systemctl reload app"),
        )
        assert view["content"] == "systemctl reload app"
        assert view["name"] == "Restart"
        assert view["attributes"] == {"description": "bounce the service", "language": "bash"}
        assert view["is_hidden"] is True

    async def test_name_only_edit_keeps_entries(self, db, cipher, todo_list, alice, bob):
        await sharing.add_grantee(db, alice.id, TODO, todo_list.id, alice.id, "bob")

        await sharing.update_item(db, cipher, bob.id, TODO, todo_list.id, alice.id, SubItemIn(name="Food"))

        owner_view = await sharing.get_item(db, cipher, alice.id, TODO, todo_list.id, alice.id)
        assert owner_view["name"] == "Food"
        assert [e["title"] for e in owner_view["entries"]] == ["milk", "eggs"]
        result = await db.execute(select(TrashEntry))
        assert result.scalars().all() == []

    async def test_explicit_empty_entries_are_trashed(self, db, cipher, todo_list, alice):
        await sharing.update_item(db, cipher, alice.id, TODO, todo_list.id, alice.id, SubItemIn(entries=[]))

        view = await sharing.get_item(db, cipher, alice.id, TODO, todo_list.id, alice.id)
        assert view["name"] == "Groceries"
        assert view["entries"] == []
        result = await db.execute(select(TrashEntry.original_id))
        assert sorted(result.scalars().all()) == ["t1", "t2"]

    async def test_grantee_cannot_manage_sharing(self, db, todo_list, alice, bob):
        await sharing.add_grantee(db, alice.id, TODO, todo_list.id, alice.id, "bob")

        with pytest.raises(PermissionDeniedError):
            await sharing.add_grantee(db, bob.id, TODO, todo_list.id, alice.id, "carol")
        with pytest.raises(PermissionDeniedError):
            await sharing.remove_grantee(db, bob.id, TODO, todo_list.id, alice.id, "bob")
        with pytest.raises(PermissionDeniedError):
            await sharing.toggle_public(db, bob.id, TODO, todo_list.id, alice.id)

    async def test_grantee_cannot_delete(self, db, cipher, todo_list, alice, bob):
        await sharing.add_grantee(db, alice.id, TODO, todo_list.id, alice.id, "bob")
        with pytest.raises(PermissionDeniedError):
            await sharing.delete_item(db, cipher, bob.id, TODO, todo_list.id, alice.id)

    async def test_removed_grantee_is_denied(self, db, cipher, todo_list, alice, bob):
        await sharing.add_grantee(db, alice.id, TODO, todo_list.id, alice.id, "bob")
        await sharing.remove_grantee(db, alice.id, TODO, todo_list.id, alice.id, "bob")

        with pytest.raises(PermissionDeniedError):
            await sharing.update_item(
                db, cipher, bob.id, TODO, todo_list.id, alice.id, SubItemIn(name="mine now"),
            )

    async def test_add_is_idempotent(self, db, todo_list, alice, bob):
        await sharing.add_grantee(db, alice.id, TODO, todo_list.id, alice.id, "bob")
        await sharing.add_grantee(db, alice.id, TODO, todo_list.id, alice.id, "bob")
        assert await _grants(db, todo_list.id) == {bob.id}

    async def test_unknown_username(self, db, todo_list, alice):
        with pytest.raises(NotFoundError):
            await sharing.add_grantee(db, alice.id, TODO, todo_list.id, alice.id, "nobody")

    async def test_cannot_share_with_self(self, db, todo_list, alice):
        with pytest.raises(ValidationError):
            await sharing.add_grantee(db, alice.id, TODO, todo_list.id, alice.id, "alice")

    async def test_shared_item_appears_in_grantee_listing(self, db, cipher, todo_list, alice, bob):
        await sharing.add_grantee(db, alice.id, TODO, todo_list.id, alice.id, "bob")

        items, _ = await list_collection(db, cipher, bob.id, TODO)
        assert len(items) == 1
        assert items[0]["id"] == todo_list.id
        assert items[0]["is_owner"] is False
        assert items[0]["owner_id"] == alice.id
        assert items[0]["owner_username"] == "alice"
        assert items[0]["public_token"] is None


class TestLeave:

    async def test_leave_removes_grant_without_trash(self, db, cipher, todo_list, alice, bob):
        await sharing.add_grantee(db, alice.id, TODO, todo_list.id, alice.id, "bob")
        await sharing.leave(db, bob.id, TODO, todo_list.id, alice.id)

        assert await _grants(db, todo_list.id) == set()
        result = await db.execute(select(TrashEntry))
        assert result.scalars().all() == []

        items, _ = await list_collection(db, cipher, bob.id, TODO)
        assert items == []

    async def test_owner_cannot_leave(self, db, todo_list, alice):
        with pytest.raises(ValidationError):
            await sharing.leave(db, alice.id, TODO, todo_list.id, alice.id)

    async def test_leave_requires_owner_id(self, db, todo_list, bob):
        with pytest.raises(ValidationError):
            await sharing.leave(db, bob.id, TODO, todo_list.id, None)

    async def test_stranger_cannot_leave(self, db, todo_list, alice, carol):
        with pytest.raises(PermissionDeniedError):
            await sharing.leave(db, carol.id, TODO, todo_list.id, alice.id)


class TestPublicLinks:

    async def test_toggle_reuses_token(self, db, cipher, todo_list, alice):
        is_public, token = await sharing.toggle_public(db, alice.id, TODO, todo_list.id, alice.id)
        assert is_public is True
        assert token

        view = await sharing.resolve_public(db, cipher, TODO, token)
        assert view["name"] == "Groceries"
        assert view["author"] == "alice"
        assert [e["title"] for e in view["entries"]] == ["milk", "eggs"]

        is_public, same_token = await sharing.toggle_public(db, alice.id, TODO, todo_list.id, alice.id)
        assert is_public is False
        assert same_token == token
        with pytest.raises(NotFoundError):
            await sharing.resolve_public(db, cipher, TODO, token)

        is_public, again = await sharing.toggle_public(db, alice.id, TODO, todo_list.id, alice.id)
        assert is_public is True
        assert again == token
        assert (await sharing.resolve_public(db, cipher, TODO, token))["id"] == todo_list.id

    async def test_unknown_token_and_wrong_kind(self, db, cipher, todo_list, alice):
        _, token = await sharing.toggle_public(db, alice.id, TODO, todo_list.id, alice.id)

        with pytest.raises(NotFoundError):
            await sharing.resolve_public(db, cipher, TODO, "not-a-token")
        with pytest.raises(NotFoundError):
            await sharing.resolve_public(db, cipher, SubItemKind.LINK_CATEGORY, token)

    async def test_public_command_category_lists_commands(self, db, cipher, alice):
        category = await create_item(
            db, cipher, alice.id, SubItemKind.COMMAND_CATEGORY, SubItemIn(name="Deploy"),
        )
        await create_item(db, cipher, alice.id, SubItemKind.COMMAND, SubItemIn(
            name="Restart",
            content="systemctl restart app",
            parent_id=category.id,
            entries=[{"instruction": "restart", "command": "systemctl restart app"}],
            attributes={"description": "bounce the service", "language": "bash"},
        ))

        _, token = await sharing.toggle_public(
            db, alice.id, SubItemKind.COMMAND_CATEGORY, category.id, alice.id,
        )
        view = await sharing.resolve_public(db, cipher, SubItemKind.COMMAND_CATEGORY, token)

        assert view["name"] == "Deploy"
        assert len(view["children"]) == 1
        child = view["children"][0]
        assert child["content"] == "systemctl restart app"
        assert child["attributes"] == {"description": "bounce the service", "language": "bash"}
        assert child["entries"][0]["command"] == "systemctl restart app"


@pytest.fixture
async def category(db, cipher, alice):
    category = await create_item(
        db, cipher, alice.id, SubItemKind.COMMAND_CATEGORY, SubItemIn(name="Ops"),
    )
    for name in ("tail logs", "restart"):
        await create_item(db, cipher, alice.id, SubItemKind.COMMAND, SubItemIn(
            name=name, content=name, parent_id=category.id,
        ))
    return category


async def _commands(db, category):
    result = await db.execute(select(SubItem).where(SubItem.parent_id == category.id))
    return result.scalars().all()


class TestCommandCategories:

    async def test_share_fans_out_to_commands(self, db, category, alice, bob):
        await sharing.add_grantee(db, alice.id, SubItemKind.COMMAND_CATEGORY, category.id, alice.id, "bob")
        for command in await _commands(db, category):
            assert await _grants(db, command.id) == {bob.id}

        await sharing.remove_grantee(db, alice.id, SubItemKind.COMMAND_CATEGORY, category.id, alice.id, "bob")
        for command in await _commands(db, category):
            assert await _grants(db, command.id) == set()

    async def test_delete_category_trashes_commands(self, db, cipher, category, alice):
        await sharing.delete_item(db, cipher, alice.id, SubItemKind.COMMAND_CATEGORY, category.id)

        assert await _commands(db, category) == []
        result = await db.execute(select(TrashEntry.type).where(TrashEntry.owner_id == alice.id))
        assert sorted(result.scalars().all()) == ["command", "command", "command_category"]

    async def test_rename_keeps_category(self, db, cipher, category, alice):
        command = (await _commands(db, category))[0]

        view = await sharing.update_item(
            db, cipher, alice.id, SubItemKind.COMMAND, command.id, alice.id, SubItemIn(name="renamed"),
        )
        assert view["name"] == "renamed"
        assert view["parent_id"] == category.id

    async def test_grantee_cannot_move_command(self, db, cipher, category, alice, bob):
        await sharing.add_grantee(db, alice.id, SubItemKind.COMMAND_CATEGORY, category.id, alice.id, "bob")
        command = (await _commands(db, category))[0]

        view = await sharing.update_item(
            db, cipher, bob.id, SubItemKind.COMMAND, command.id, alice.id,
            SubItemIn(name="moved?", parent_id=None),
        )
        assert view["name"] == "moved?"
        assert view["parent_id"] == category.id

    async def test_parent_must_be_owned_category(self, db, cipher, category, bob):
        with pytest.raises(ValidationError):
            await create_item(db, cipher, bob.id, SubItemKind.COMMAND, SubItemIn(
                name="sneaky", parent_id=category.id,
            ))
