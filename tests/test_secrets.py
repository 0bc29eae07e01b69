"""
Tests for burn-after-reading secrets.
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select, update

from stashbox.app.core.errors import DecryptionError, ExpiredError, NotFoundError, ValidationError
from stashbox.app.models.secret import Secret
from stashbox.app.services.secrets import (
    create_secret,
    purge_expired_secrets,
    reveal_secret,
)


async def _exists(db, secret_id):
    result = await db.execute(select(Secret.id).where(Secret.id == secret_id))
    return result.first() is not None


async def _expire(db, secret_id):
    await db.execute(
        update(Secret)
        .where(Secret.id == secret_id)
        .values(expires_at=datetime.now(timezone.utc) - timedelta(minutes=1))
    )
    await db.commit()


class TestCreateSecret:

    async def test_content_is_stored_encrypted(self, db, cipher):
        secret_id = await create_secret(db, cipher, "launch codes")
        result = await db.execute(select(Secret.content).where(Secret.id == secret_id))
        stored = result.scalar_one()
        assert "launch codes" not in stored
        assert cipher.decrypt(stored) == "launch codes"

    async def test_empty_content_rejected(self, db, cipher):
        with pytest.raises(ValidationError):
            await create_secret(db, cipher, "")

    @pytest.mark.parametrize("max_views", [0, -1, 101])
    async def test_max_views_out_of_range(self, db, cipher, max_views):
        with pytest.raises(ValidationError):
            await create_secret(db, cipher, "x", max_views=max_views)

    async def test_invalid_expiration(self, db, cipher):
        with pytest.raises(ValidationError):
            await create_secret(db, cipher, "x", expires_in_minutes=0)

    async def test_expiration_is_set(self, db, cipher):
        secret_id = await create_secret(db, cipher, "x", expires_in_minutes=10)
        result = await db.execute(select(Secret.expires_at).where(Secret.id == secret_id))
        assert result.scalar_one() is not None


class TestRevealSecret:

    async def test_single_view_burns(self, db, cipher):
        secret_id = await create_secret(db, cipher, "only once")

        result = await reveal_secret(db, cipher, secret_id)
        assert result.content == "only once"
        assert result.burned is True
        assert not await _exists(db, secret_id)

        with pytest.raises(NotFoundError):
            await reveal_secret(db, cipher, secret_id)

    async def test_multi_view_countdown(self, db, cipher):
        secret_id = await create_secret(db, cipher, "three times", max_views=3)

        first = await reveal_secret(db, cipher, secret_id)
        second = await reveal_secret(db, cipher, secret_id)
        third = await reveal_secret(db, cipher, secret_id)

        assert (first.burned, first.views_left) == (False, 2)
        assert (second.burned, second.views_left) == (False, 1)
        assert third.burned is True
        assert {first.content, second.content, third.content} == {"three times"}

        with pytest.raises(NotFoundError):
            await reveal_secret(db, cipher, secret_id)

    async def test_unknown_id(self, db, cipher):
        with pytest.raises(NotFoundError):
            await reveal_secret(db, cipher, "0" * 32)

    async def test_expired_secret_is_removed(self, db, cipher):
        secret_id = await create_secret(db, cipher, "stale", max_views=5, expires_in_minutes=10)
        await _expire(db, secret_id)

        with pytest.raises(ExpiredError):
            await reveal_secret(db, cipher, secret_id)
        assert not await _exists(db, secret_id)

        # Gone for good: the next attempt sees nothing at all
        with pytest.raises(NotFoundError):
            await reveal_secret(db, cipher, secret_id)

    async def test_expiry_wins_over_remaining_views(self, db, cipher):
        secret_id = await create_secret(db, cipher, "stale", max_views=3, expires_in_minutes=10)
        await reveal_secret(db, cipher, secret_id)
        await _expire(db, secret_id)

        with pytest.raises(ExpiredError):
            await reveal_secret(db, cipher, secret_id)

    async def test_concurrent_reveals_single_winner(self, sessionmaker, cipher):
        async with sessionmaker() as session:
            secret_id = await create_secret(session, cipher, "race me")

        async def attempt():
            async with sessionmaker() as session:
                try:
                    return await reveal_secret(session, cipher, secret_id)
                except NotFoundError:
                    return None

        results = await asyncio.gather(*(attempt() for _ in range(50)))
        winners = [r for r in results if r is not None]

        assert len(winners) == 1
        assert winners[0].content == "race me"
        assert winners[0].burned is True

    async def test_concurrent_early_views_all_succeed(self, sessionmaker, cipher):
        async with sessionmaker() as session:
            secret_id = await create_secret(session, cipher, "popular", max_views=100)

        async def attempt():
            async with sessionmaker() as session:
                return await reveal_secret(session, cipher, secret_id)

        results = await asyncio.gather(*(attempt() for _ in range(50)))

        assert {r.content for r in results} == {"popular"}
        assert not any(r.burned for r in results)
        # Every view was counted exactly once
        assert sorted(r.views_left for r in results) == list(range(50, 100))
        async with sessionmaker() as session:
            result = await session.execute(select(Secret.view_count).where(Secret.id == secret_id))
            assert result.scalar_one() == 50

    async def test_undecryptable_last_view_keeps_secret(self, db, cipher):
        secret_id = await create_secret(db, cipher, "written with another key")
        await db.execute(
            update(Secret).where(Secret.id == secret_id).values(content="not-a-ciphertext")
        )
        await db.commit()

        with pytest.raises(DecryptionError):
            await reveal_secret(db, cipher, secret_id)
        assert await _exists(db, secret_id)

    async def test_undecryptable_early_view_is_not_counted(self, db, cipher):
        secret_id = await create_secret(db, cipher, "x", max_views=3)
        await db.execute(
            update(Secret).where(Secret.id == secret_id).values(content="00:00")
        )
        await db.commit()

        with pytest.raises(DecryptionError):
            await reveal_secret(db, cipher, secret_id)
        result = await db.execute(select(Secret.view_count).where(Secret.id == secret_id))
        assert result.scalar_one() == 0


class TestPurgeExpired:

    async def test_only_expired_rows_removed(self, db, cipher):
        stale = await create_secret(db, cipher, "stale", expires_in_minutes=10)
        fresh = await create_secret(db, cipher, "fresh", expires_in_minutes=10)
        forever = await create_secret(db, cipher, "no expiry")
        await _expire(db, stale)

        assert await purge_expired_secrets(db) == 1
        assert not await _exists(db, stale)
        assert await _exists(db, fresh)
        assert await _exists(db, forever)
