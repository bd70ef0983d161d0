"""Dashboard layout edit session.

A ``LayoutEditor`` holds two layouts for one viewer: the effective layout
shown in view mode and, while editing, a separate edit buffer scoped to a
target user. Buffer mutations never touch the store; ``save`` writes the
whole buffer at once.
"""

from typing import Optional

from ..auth.capabilities import Viewer
from ..utils.logging import get_logger
from .layout_config import GridItem, LayoutConfig, ResolvedLayout, element_key
from .layout_resolver import default_layout, resolve
from .layout_store import LayoutStore
from .registry import DEFAULT_REGISTRY, SectionRegistry

logger = get_logger("engine.layout_editor")


class LayoutEditorError(Exception):
    """Base class for edit session errors."""


class LayoutAccessDenied(LayoutEditorError):
    """Raised when a non-administrator reaches for another user's layout or for pins."""


class CopyNotConfirmed(LayoutEditorError):
    """Raised when copy-from is attempted without explicit confirmation."""


class NoEditSession(LayoutEditorError):
    """Raised when a buffer operation runs outside an edit session."""


class LayoutSaveError(LayoutEditorError):
    """Raised when the store rejects a save. The edit buffer is left as it was."""


class LayoutEditor:
    def __init__(
        self,
        store: LayoutStore,
        viewer: Viewer,
        registry: SectionRegistry = DEFAULT_REGISTRY,
    ):
        self.store = store
        self.viewer = viewer
        self.registry = registry
        self.effective: ResolvedLayout = default_layout(viewer.role, registry)
        self.buffer: Optional[ResolvedLayout] = None
        self.target_user_id: Optional[str] = None
        self.target_role: Optional[str] = None

    @property
    def editing(self) -> bool:
        return self.buffer is not None

    # --- View mode ---

    async def load_effective(self) -> ResolvedLayout:
        """Resolve the viewer's own layout; a failed fetch falls back to defaults."""
        try:
            saved = await self.store.get(self.viewer.user_id)
        except Exception as exc:
            logger.warning(
                "layout_fetch_failed",
                user_id=self.viewer.user_id,
                role=self.viewer.role,
                error=str(exc),
            )
            saved = None
        self.effective = resolve(saved, self.viewer.role, self.registry)
        return self.effective

    # --- Edit session ---

    def _check_access(self, user_id: str) -> None:
        if user_id != self.viewer.user_id and not self.viewer.is_administrator:
            logger.info("layout_access_denied", viewer=self.viewer.user_id, target=user_id)
            raise LayoutAccessDenied(f"Cannot access the layout of user {user_id}")

    def _require_buffer(self) -> ResolvedLayout:
        if self.buffer is None:
            raise NoEditSession("No edit session in progress")
        return self.buffer

    async def begin_edit(
        self,
        target_user_id: Optional[str] = None,
        target_role: Optional[str] = None,
    ) -> ResolvedLayout:
        """Seed the edit buffer from the target user's stored layout.

        Without a target the viewer edits their own dashboard. Administrators
        may target any user; ``target_role`` picks the role defaults used when
        that user has never saved a layout.
        """
        target = target_user_id or self.viewer.user_id
        self._check_access(target)
        role = self.viewer.role
        if target != self.viewer.user_id and target_role:
            role = target_role

        try:
            saved = await self.store.get(target)
        except Exception as exc:
            logger.warning("layout_fetch_failed", user_id=target, role=role, error=str(exc))
            saved = None

        self.buffer = resolve(saved, role, self.registry)
        self.target_user_id = target
        self.target_role = role
        logger.debug("edit_session_started", viewer=self.viewer.user_id, target=target)
        return self.buffer

    async def copy_from(self, source_user_id: str, confirmed: bool = False) -> ResolvedLayout:
        """Replace the whole edit buffer with another user's stored layout.

        Nothing is merged and nothing is written: the source layout stays as
        it is and the target is only written by a later ``save``.
        """
        self._require_buffer()
        if not confirmed:
            raise CopyNotConfirmed("Copying a layout discards unsaved edits and must be confirmed")
        self._check_access(source_user_id)

        saved = await self.store.get(source_user_id)
        self.buffer = resolve(saved, self.target_role, self.registry)
        logger.info(
            "layout_copied",
            source=source_user_id,
            target=self.target_user_id,
            found=saved is not None,
        )
        return self.buffer

    async def replace(
        self,
        target_user_id: str,
        document: LayoutConfig,
        target_role: Optional[str] = None,
    ) -> ResolvedLayout:
        """Save a complete layout document for ``target_user_id`` in one step.

        The document is normalised against the registry before it is written.
        Pins in a document sent by a non-administrator are ignored.
        """
        self._check_access(target_user_id)
        if not self.viewer.is_administrator:
            document = document.model_copy(update={"pinned_sections": None})
        role = self.viewer.role
        if target_user_id != self.viewer.user_id and target_role:
            role = target_role

        self.buffer = resolve(document, role, self.registry)
        self.target_user_id = target_user_id
        self.target_role = role
        try:
            return await self.save()
        except LayoutSaveError:
            self.cancel_edit()
            raise

    def cancel_edit(self) -> None:
        self.buffer = None
        self.target_user_id = None
        self.target_role = None

    # --- Buffer mutations ---

    def move_section(self, key: str, index: int) -> None:
        buffer = self._require_buffer()
        if key not in buffer.order:
            raise ValueError(f"Unknown section: {key}")
        buffer.order.remove(key)
        index = max(0, min(index, len(buffer.order)))
        buffer.order.insert(index, key)

    def set_section_hidden(self, key: str, hidden: bool) -> None:
        buffer = self._require_buffer()
        if not self.registry.has_section(key):
            raise ValueError(f"Unknown section: {key}")
        if hidden:
            buffer.hidden.add(key)
        else:
            buffer.hidden.discard(key)

    def set_pinned(self, key: str, pinned: bool) -> None:
        buffer = self._require_buffer()
        if not self.viewer.is_administrator:
            raise LayoutAccessDenied("Only administrators can pin sections")
        if not self.registry.has_section(key):
            raise ValueError(f"Unknown section: {key}")
        if pinned:
            buffer.pinned.add(key)
        else:
            buffer.pinned.discard(key)

    def set_element_order(self, section_key: str, order: list[str]) -> None:
        buffer = self._require_buffer()
        known = self.registry.element_ids(section_key)
        if not known:
            raise ValueError(f"Section has no orderable elements: {section_key}")
        kept: list[str] = []
        for element_id in order:
            if element_id in known and element_id not in kept:
                kept.append(element_id)
        buffer.element_order[section_key] = kept + [e for e in known if e not in kept]

    def set_element_hidden(self, section_key: str, element_id: str, hidden: bool) -> None:
        buffer = self._require_buffer()
        if element_id not in self.registry.element_ids(section_key):
            raise ValueError(f"Unknown element {element_id} in section {section_key}")
        composite = element_key(section_key, element_id)
        if hidden:
            buffer.hidden_elements.add(composite)
        else:
            buffer.hidden_elements.discard(composite)

    def update_grid(self, items: list[GridItem]) -> None:
        """Apply new geometry for the given keys; other keys keep theirs."""
        buffer = self._require_buffer()
        updates = {item.key: item for item in items if self.registry.has_section(item.key)}
        buffer.grid = [updates.get(g.key, g).model_copy() for g in buffer.grid]

    # --- Save ---

    async def save(self) -> ResolvedLayout:
        """Write the complete buffer for its target user.

        Pins are only written by administrators. On failure the buffer and
        the effective layout are left exactly as they were.
        """
        buffer = self._require_buffer()
        document = buffer.as_config()
        if not self.viewer.is_administrator:
            document.pinned_sections = None

        try:
            stored = await self.store.put(
                self.target_user_id, document, configured_by=self.viewer.user_id
            )
        except Exception as exc:
            logger.error(
                "layout_save_failed",
                viewer=self.viewer.user_id,
                target=self.target_user_id,
                error=str(exc),
            )
            raise LayoutSaveError(f"Failed to save layout for {self.target_user_id}") from exc

        target, role = self.target_user_id, self.target_role
        resolved = resolve(stored, role, self.registry)
        if target == self.viewer.user_id:
            self.effective = resolved
        self.cancel_edit()
        return resolved
