"""Dashboard routes: render plans, analytics and the pending-change queue.

Each request carries the entity snapshot for one render pass; nothing
derived from it is cached between requests.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...auth.capabilities import (
    PERM_APPROVE_ENTITIES,
    PERM_VIEW_ACTIONS,
    PERM_VIEW_CONSUMER_DUTY,
    PERM_VIEW_DASHBOARD,
    PERM_VIEW_PENDING,
    PERM_VIEW_RISK_REGISTER,
    Viewer,
)
from ...auth.rbac import require_permission
from ...dependencies import get_dashboard_settings, get_layout_store
from ...engine import analytics
from ...engine.dashboard import DashboardSettings, build_dashboard
from ...engine.entities import EntitySnapshot
from ...engine.layout_editor import LayoutEditor
from ...engine.layout_store import LayoutStore
from ...engine.pending_changes import collect_pending_changes
from ...utils.logging import get_logger

logger = get_logger("api.dashboard")

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


@router.post("/render")
async def render_dashboard(
    snapshot: EntitySnapshot,
    now: Optional[datetime] = Query(default=None, description="Evaluation time; defaults to the current time"),
    store: LayoutStore = Depends(get_layout_store),
    settings: DashboardSettings = Depends(get_dashboard_settings),
    viewer: Viewer = Depends(require_permission(PERM_VIEW_DASHBOARD)),
):
    """The caller's dashboard for the given snapshot, in their effective layout."""
    editor = LayoutEditor(store, viewer)
    layout = await editor.load_effective()
    plan = build_dashboard(snapshot, viewer, layout, _now(now), settings)
    logger.info("dashboard_rendered", user_id=viewer.user_id, sections=len(plan.sections))
    return plan


@router.post("/analytics")
async def dashboard_analytics(
    snapshot: EntitySnapshot,
    now: Optional[datetime] = Query(default=None),
    settings: DashboardSettings = Depends(get_dashboard_settings),
    viewer: Viewer = Depends(require_permission(PERM_VIEW_DASHBOARD)),
):
    """Every analytics record for the snapshot, independent of layout.

    Records are gated on the same capabilities as their dashboard sections;
    a record the viewer may not see is returned as ``None``.
    """
    at = _now(now)
    s = snapshot
    compliance = analytics.compliance_health(s.regulations, s.certified_persons, viewer.capabilities, at)
    insights = analytics.cross_entity_insights(s.risks, s.controls, s.policies, settings.insight_list_cap)
    return {
        "generated_at": at,
        "risk_acceptances": analytics.risk_acceptance_stats(
            s.risk_acceptances, at, settings.urgent_acceptance_cap, settings.due_soon_horizon_days
        ),
        "compliance_health": compliance,
        "controls_library": analytics.controls_library_stats(s.controls, s.policies),
        "cross_entity": {
            "risks_with_failing_controls": insights.risks_with_failing_controls,
            "policies_with_gaps": insights.policies_with_gaps,
            "key_controls": insights.key_controls,
            "has_data": insights.has_data,
        },
        "priority": analytics.priority_stats(s.actions, viewer),
        "actions": (
            analytics.action_stats(s.actions, at, settings.due_soon_horizon_days)
            if viewer.can(PERM_VIEW_ACTIONS) else None
        ),
        "policy_health": analytics.policy_health(s.policies, at),
        "risk_summary": analytics.risk_summary(s.risks) if viewer.can(PERM_VIEW_RISK_REGISTER) else None,
        "risks_needing_review": (
            analytics.risks_needing_review(
                s.risks, at, settings.default_review_frequency_days, settings.review_due_window_days
            )
            if viewer.can(PERM_VIEW_PENDING) else None
        ),
        "focus_risks": analytics.focus_risks(s.risks),
        "pending_new_entities": (
            analytics.pending_new_entities(s.risks, s.actions, s.controls)
            if viewer.can(PERM_APPROVE_ENTITIES) else None
        ),
        "overdue_metrics": (
            analytics.overdue_metrics(s.outcomes, at, settings.metric_stale_days)
            if viewer.can(PERM_VIEW_CONSUMER_DUTY) else None
        ),
        "programme_health": analytics.programme_health(s.risks, s.actions, s.outcomes, compliance, at),
    }


@router.post("/pending-changes")
async def pending_changes(
    snapshot: EntitySnapshot,
    viewer: Viewer = Depends(require_permission(PERM_VIEW_PENDING)),
):
    """Pending field-level changes across risks, actions and controls, newest first."""
    changes = collect_pending_changes(snapshot.risks, snapshot.actions, snapshot.controls)
    return {"count": len(changes), "changes": changes}
