"""Pending-change collector.

Flattens the proposed field-level edits embedded in risks, actions and
controls into one review queue, newest first. Reads the collections it is
given on every call and keeps nothing between calls.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from .entities import CHANGE_PENDING, Action, Control, EntityChange, Risk
from .temporal import as_utc

ENTITY_RISK = "risk"
ENTITY_ACTION = "action"
ENTITY_CONTROL = "control"


@dataclass
class PendingChange:
    """One pending edit tagged with the entity it belongs to."""
    id: str
    entity_type: str
    parent_id: str
    parent_title: str
    parent_reference: str
    proposed_at: datetime
    status: str
    field_changed: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    proposed_by: Optional[str] = None
    is_update: bool = False


def _pending(
    changes: Iterable[EntityChange],
    entity_type: str,
    parent_id: str,
    parent_title: str,
    parent_reference: str,
) -> list[PendingChange]:
    return [
        PendingChange(
            id=change.id,
            entity_type=entity_type,
            parent_id=parent_id,
            parent_title=parent_title,
            parent_reference=parent_reference,
            proposed_at=change.proposed_at,
            status=change.status,
            field_changed=change.field_changed,
            old_value=change.old_value,
            new_value=change.new_value,
            proposed_by=change.proposed_by,
            is_update=change.is_update,
        )
        for change in changes
        if change.status == CHANGE_PENDING
    ]


def collect_pending_changes(
    risks: Iterable[Risk],
    actions: Iterable[Action],
    controls: Iterable[Control],
) -> list[PendingChange]:
    """All pending changes across the three entity types, most recent first.

    Changes proposed at the same instant keep their collection order:
    risks, then actions, then controls.
    """
    collected: list[PendingChange] = []
    for risk in risks:
        collected.extend(_pending(risk.changes, ENTITY_RISK, risk.id, risk.name, risk.reference))
    for action in actions:
        collected.extend(_pending(action.changes, ENTITY_ACTION, action.id, action.title, action.reference))
    for control in controls:
        collected.extend(
            _pending(control.changes, ENTITY_CONTROL, control.id, control.control_name, control.control_ref)
        )
    return sorted(collected, key=lambda c: as_utc(c.proposed_at), reverse=True)


def pending_change_count(
    risks: Iterable[Risk],
    actions: Iterable[Action],
    controls: Iterable[Control],
) -> int:
    return len(collect_pending_changes(risks, actions, controls))
