"""Layout resolver: merges a saved layout with role defaults and the registry.

Every field is resolved through explicit tiers: the user's saved value,
then the role default, then the system default from the registry. Keys the
registry no longer knows are dropped; keys the saved layout predates are
appended in registry order. Pinned sections are never hidden.
"""

from typing import Iterable, Optional

from ..utils.logging import get_logger
from .layout_config import GridItem, LayoutConfig, ResolvedLayout
from .registry import DEFAULT_REGISTRY, SectionRegistry

logger = get_logger("engine.layout_resolver")


def _dedupe_known(keys: Iterable[str], known: list[str]) -> tuple[list[str], list[str]]:
    """Keep first occurrences of known keys; report the unknown ones."""
    known_set = set(known)
    seen: set[str] = set()
    kept: list[str] = []
    dropped: list[str] = []
    for key in keys:
        if key not in known_set:
            dropped.append(key)
            continue
        if key in seen:
            continue
        seen.add(key)
        kept.append(key)
    return kept, dropped


def _append_missing(ordered: list[str], known: list[str]) -> tuple[list[str], list[str]]:
    present = set(ordered)
    appended = [k for k in known if k not in present]
    return ordered + appended, appended


# --- Section order ---

def system_default_order(registry: SectionRegistry) -> list[str]:
    return registry.keys


def role_default_order(role: str, registry: SectionRegistry) -> Optional[list[str]]:
    order = registry.role_default_order.get(role)
    return list(order) if order is not None else None


def resolve_section_order(
    saved: Optional[LayoutConfig],
    role: str,
    registry: SectionRegistry,
) -> list[str]:
    if saved is not None and saved.section_order is not None:
        tier, base = "saved", saved.section_order
    elif (role_order := role_default_order(role, registry)) is not None:
        tier, base = "role", role_order
    else:
        tier, base = "system", system_default_order(registry)

    kept, dropped = _dedupe_known(base, registry.keys)
    order, appended = _append_missing(kept, registry.keys)
    if dropped or appended:
        logger.debug(
            "schema_drift_resolved",
            field="section_order",
            tier=tier,
            dropped=dropped,
            appended=appended,
        )
    return order


# --- Hidden sections ---

def role_default_hidden(role: str, registry: SectionRegistry) -> set[str]:
    return set(registry.role_default_hidden.get(role, frozenset()))


def resolve_hidden_sections(
    saved: Optional[LayoutConfig],
    role: str,
    registry: SectionRegistry,
) -> set[str]:
    """Saved hidden set verbatim (even when empty), else the role default."""
    known = set(registry.keys)
    if saved is not None and saved.hidden_sections is not None:
        return {k for k in saved.hidden_sections if k in known}
    return {k for k in role_default_hidden(role, registry) if k in known}


def resolve_pinned_sections(saved: Optional[LayoutConfig], registry: SectionRegistry) -> set[str]:
    if saved is None or not saved.pinned_sections:
        return set()
    known = set(registry.keys)
    return {k for k in saved.pinned_sections if k in known}


# --- Grid ---

def _default_grid_item(key: str, registry: SectionRegistry, bottom: int) -> GridItem:
    default = registry.grid_default(key)
    if default is None:
        return GridItem(key=key, x=0, y=bottom, width=12, height=4)
    return GridItem(
        key=default.key,
        x=default.x,
        y=default.y,
        width=default.width,
        height=default.height,
        min_width=default.min_width,
        min_height=default.min_height,
    )


def resolve_grid(saved: Optional[LayoutConfig], registry: SectionRegistry) -> list[GridItem]:
    known = set(registry.keys)
    grid: list[GridItem] = []
    seen: set[str] = set()

    if saved is not None and saved.layout_grid is not None:
        for item in saved.layout_grid:
            if item.key in known and item.key not in seen:
                seen.add(item.key)
                grid.append(item.model_copy())

    for key in registry.keys:
        if key in seen:
            continue
        bottom = max((g.y + g.height for g in grid), default=0)
        grid.append(_default_grid_item(key, registry, bottom))
        seen.add(key)
    return grid


# --- Elements ---

def resolve_element_order(saved: Optional[LayoutConfig], registry: SectionRegistry) -> dict[str, list[str]]:
    saved_orders = (saved.element_order if saved is not None else None) or {}
    resolved: dict[str, list[str]] = {}
    for section_key in registry.elements:
        known = registry.element_ids(section_key)
        base = saved_orders.get(section_key)
        if base is None:
            resolved[section_key] = known
            continue
        kept, _ = _dedupe_known(base, known)
        resolved[section_key], _ = _append_missing(kept, known)
    return resolved


def resolve_hidden_elements(saved: Optional[LayoutConfig]) -> set[str]:
    if saved is None or saved.hidden_elements is None:
        return set()
    return set(saved.hidden_elements)


def resolve(
    saved: Optional[LayoutConfig],
    role: str,
    registry: SectionRegistry = DEFAULT_REGISTRY,
) -> ResolvedLayout:
    """Produce the effective layout for a viewer of ``role``."""
    return ResolvedLayout(
        order=resolve_section_order(saved, role, registry),
        hidden=resolve_hidden_sections(saved, role, registry),
        grid=resolve_grid(saved, registry),
        element_order=resolve_element_order(saved, registry),
        hidden_elements=resolve_hidden_elements(saved),
        pinned=resolve_pinned_sections(saved, registry),
    )


def default_layout(role: str, registry: SectionRegistry = DEFAULT_REGISTRY) -> ResolvedLayout:
    """The layout a user of ``role`` sees before ever saving one."""
    return resolve(None, role, registry)
