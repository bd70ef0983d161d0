"""Layout persistence boundary.

The engine needs exactly two operations from a store: fetch one user's
layout and replace it wholesale. Writes are last-writer-wins for the whole
document; there is no field-level merge. The only exception is pins: a
document saved with ``pinned_sections=None`` keeps whatever pins are
already stored, so non-administrator saves never clear them.
"""

from datetime import datetime, timezone
from typing import Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models.dashboard_layout import DashboardLayout
from ..utils.logging import get_logger
from .layout_config import LayoutConfig, StoredLayout

logger = get_logger("engine.layout_store")


class LayoutStore(Protocol):
    async def get(self, user_id: str) -> Optional[StoredLayout]: ...

    async def put(
        self,
        user_id: str,
        layout: LayoutConfig,
        configured_by: Optional[str] = None,
    ) -> StoredLayout: ...


def _carry_pins(incoming: LayoutConfig, existing: Optional[LayoutConfig]) -> LayoutConfig:
    if incoming.pinned_sections is not None or existing is None:
        return incoming
    return incoming.model_copy(update={"pinned_sections": existing.pinned_sections})


class InMemoryLayoutStore:
    """Dict-backed store for tests and single-process use."""

    def __init__(self) -> None:
        self._layouts: dict[str, StoredLayout] = {}

    async def get(self, user_id: str) -> Optional[StoredLayout]:
        stored = self._layouts.get(user_id)
        return stored.model_copy(deep=True) if stored is not None else None

    async def put(
        self,
        user_id: str,
        layout: LayoutConfig,
        configured_by: Optional[str] = None,
    ) -> StoredLayout:
        document = _carry_pins(layout, self._layouts.get(user_id))
        stored = StoredLayout(
            **document.model_dump(),
            user_id=user_id,
            configured_by=configured_by,
            updated_at=datetime.now(timezone.utc),
        )
        self._layouts[user_id] = stored
        logger.info("layout_saved", user_id=user_id, configured_by=configured_by, backend="memory")
        return stored.model_copy(deep=True)


class SqlLayoutStore:
    """Layouts persisted one row per user in ``dashboard_layouts``."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @staticmethod
    def _to_stored(row: DashboardLayout) -> StoredLayout:
        document = LayoutConfig.model_validate_json(row.layout_json)
        return StoredLayout(
            **document.model_dump(),
            user_id=row.user_id,
            configured_by=row.configured_by,
            updated_at=row.updated_at,
        )

    async def get(self, user_id: str) -> Optional[StoredLayout]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(DashboardLayout).where(DashboardLayout.user_id == user_id)
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None
            return self._to_stored(row)

    async def put(
        self,
        user_id: str,
        layout: LayoutConfig,
        configured_by: Optional[str] = None,
    ) -> StoredLayout:
        """Upsert on ``user_id`` so concurrent first saves resolve to the later writer."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(DashboardLayout.layout_json).where(DashboardLayout.user_id == user_id)
            )
            existing_json = result.scalar_one_or_none()
            existing = LayoutConfig.model_validate_json(existing_json) if existing_json is not None else None
            payload = _carry_pins(layout, existing).model_dump_json()

            stmt = sqlite_insert(DashboardLayout).values(
                user_id=user_id, layout_json=payload, configured_by=configured_by
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[DashboardLayout.user_id],
                set_={
                    "layout_json": stmt.excluded.layout_json,
                    "configured_by": stmt.excluded.configured_by,
                    "updated_at": func.now(),
                },
            )
            await session.execute(stmt)
            await session.commit()

            result = await session.execute(
                select(DashboardLayout).where(DashboardLayout.user_id == user_id)
            )
            row = result.scalar_one()

        logger.info("layout_saved", user_id=user_id, configured_by=configured_by, backend="sql")
        return self._to_stored(row)
