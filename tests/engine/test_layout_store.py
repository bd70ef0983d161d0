"""Tests for the in-memory and SQL layout stores."""

import asyncio

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from grcdash.engine.layout_config import GridItem, LayoutConfig
from grcdash.engine.layout_store import InMemoryLayoutStore, SqlLayoutStore
from grcdash.models.base import Base
from grcdash.models.dashboard_layout import DashboardLayout


@pytest_asyncio.fixture
async def sql_store():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield SqlLayoutStore(async_sessionmaker(engine, expire_on_commit=False))
    await engine.dispose()


@pytest_asyncio.fixture
async def file_store(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'layouts.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield SqlLayoutStore(async_sessionmaker(engine, expire_on_commit=False))
    await engine.dispose()


def _document(**overrides):
    fields = {
        "section_order": ["reports", "welcome"],
        "hidden_sections": ["horizon-scanning"],
        "layout_grid": [GridItem(key="welcome", x=0, y=0, width=12, height=4)],
        "element_order": {"priority-actions": ["card-p3", "card-p1", "card-p2"]},
        "hidden_elements": ["risk-summary:stat-low"],
        "pinned_sections": None,
    }
    fields.update(overrides)
    return LayoutConfig(**fields)


class TestInMemoryLayoutStore:
    @pytest.mark.asyncio
    async def test_missing_user_returns_none(self):
        store = InMemoryLayoutStore()
        assert await store.get("nobody") is None

    @pytest.mark.asyncio
    async def test_put_then_get(self):
        store = InMemoryLayoutStore()
        await store.put("u1", _document(), configured_by="admin")
        stored = await store.get("u1")
        assert stored.user_id == "u1"
        assert stored.configured_by == "admin"
        assert stored.section_order == ["reports", "welcome"]
        assert stored.hidden_sections == ["horizon-scanning"]
        assert stored.updated_at is not None

    @pytest.mark.asyncio
    async def test_put_replaces_whole_document(self):
        store = InMemoryLayoutStore()
        await store.put("u1", _document())
        await store.put("u1", LayoutConfig(section_order=["welcome"]))
        stored = await store.get("u1")
        assert stored.section_order == ["welcome"]
        assert stored.hidden_sections is None
        assert stored.layout_grid is None

    @pytest.mark.asyncio
    async def test_returned_copies_are_isolated(self):
        store = InMemoryLayoutStore()
        await store.put("u1", _document())
        stored = await store.get("u1")
        stored.section_order.append("mutated")
        assert (await store.get("u1")).section_order == ["reports", "welcome"]

    @pytest.mark.asyncio
    async def test_save_without_pins_keeps_existing_pins(self):
        store = InMemoryLayoutStore()
        await store.put("u1", _document(pinned_sections=["welcome"]), configured_by="admin")
        await store.put("u1", _document(hidden_sections=[]), configured_by="u1")
        stored = await store.get("u1")
        assert stored.pinned_sections == ["welcome"]
        assert stored.hidden_sections == []

    @pytest.mark.asyncio
    async def test_explicit_pins_replace_existing(self):
        store = InMemoryLayoutStore()
        await store.put("u1", _document(pinned_sections=["welcome"]))
        await store.put("u1", _document(pinned_sections=[]))
        assert (await store.get("u1")).pinned_sections == []


class TestSqlLayoutStore:
    @pytest.mark.asyncio
    async def test_missing_user_returns_none(self, sql_store):
        assert await sql_store.get("nobody") is None

    @pytest.mark.asyncio
    async def test_insert_and_read_back(self, sql_store):
        stored = await sql_store.put("u1", _document(), configured_by="admin")
        assert stored.user_id == "u1"
        assert stored.updated_at is not None

        fetched = await sql_store.get("u1")
        assert fetched.section_order == ["reports", "welcome"]
        assert fetched.layout_grid == [GridItem(key="welcome", x=0, y=0, width=12, height=4)]
        assert fetched.element_order == {"priority-actions": ["card-p3", "card-p1", "card-p2"]}
        assert fetched.hidden_elements == ["risk-summary:stat-low"]
        assert fetched.configured_by == "admin"

    @pytest.mark.asyncio
    async def test_update_overwrites(self, sql_store):
        await sql_store.put("u1", _document(), configured_by="admin")
        await sql_store.put("u1", LayoutConfig(hidden_sections=[]), configured_by="u1")
        fetched = await sql_store.get("u1")
        assert fetched.section_order is None
        assert fetched.hidden_sections == []
        assert fetched.configured_by == "u1"

    @pytest.mark.asyncio
    async def test_pins_carried_over(self, sql_store):
        await sql_store.put("u1", _document(pinned_sections=["reports"]), configured_by="admin")
        await sql_store.put("u1", _document(pinned_sections=None), configured_by="u1")
        assert (await sql_store.get("u1")).pinned_sections == ["reports"]

    @pytest.mark.asyncio
    async def test_users_are_independent(self, sql_store):
        await sql_store.put("u1", _document())
        await sql_store.put("u2", LayoutConfig(section_order=["welcome"]))
        assert (await sql_store.get("u1")).section_order == ["reports", "welcome"]
        assert (await sql_store.get("u2")).section_order == ["welcome"]

    @pytest.mark.asyncio
    async def test_concurrent_first_saves_leave_one_row(self, file_store):
        first = LayoutConfig(section_order=["welcome"])
        second = LayoutConfig(section_order=["reports"])
        results = await asyncio.gather(
            file_store.put("u1", first, configured_by="a"),
            file_store.put("u1", second, configured_by="b"),
        )
        assert [r.user_id for r in results] == ["u1", "u1"]

        stored = await file_store.get("u1")
        assert stored.section_order in (["welcome"], ["reports"])
        winner = next(r for r in results if r.configured_by == stored.configured_by)
        assert winner.section_order == stored.section_order

        async with file_store._session_factory() as session:
            count = await session.scalar(
                select(func.count()).select_from(DashboardLayout).where(DashboardLayout.user_id == "u1")
            )
        assert count == 1
