"""Dashboard composition: one render pass over an entity snapshot.

Runs the classifiers, aggregator and pending-change collector once, then
walks the viewer's visible section order and hands each section to its
builder. A builder returns the section's data, or None when the section
has nothing to show for this viewer.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from ..auth.capabilities import (
    PERM_APPROVE_ENTITIES,
    PERM_VIEW_ACTIONS,
    PERM_VIEW_AUDIT,
    PERM_VIEW_CONSUMER_DUTY,
    PERM_VIEW_PENDING,
    PERM_VIEW_REPORTS,
    PERM_VIEW_RISK_REGISTER,
    Viewer,
)
from ..utils.logging import get_logger
from . import analytics
from .entities import RAG_GOOD, RAG_HARM, RAG_WARNING, EntitySnapshot, Risk
from .layout_config import GridItem, ResolvedLayout
from .pending_changes import PendingChange, collect_pending_changes
from .registry import SectionKind
from .temporal import (
    DEFAULT_DUE_SOON_DAYS,
    DEFAULT_REVIEW_FREQUENCY_DAYS,
    DEFAULT_REVIEW_WINDOW_DAYS,
)

logger = get_logger("engine.dashboard")


@dataclass(frozen=True)
class DashboardSettings:
    due_soon_horizon_days: int = DEFAULT_DUE_SOON_DAYS
    review_due_window_days: int = DEFAULT_REVIEW_WINDOW_DAYS
    default_review_frequency_days: int = DEFAULT_REVIEW_FREQUENCY_DAYS
    metric_stale_days: int = analytics.DEFAULT_METRIC_STALE_DAYS
    insight_list_cap: int = analytics.DEFAULT_INSIGHT_CAP
    urgent_acceptance_cap: int = analytics.DEFAULT_URGENT_CAP

    @classmethod
    def from_config(cls, config) -> "DashboardSettings":
        return cls(
            due_soon_horizon_days=config.due_soon_horizon_days,
            review_due_window_days=config.review_due_window_days,
            default_review_frequency_days=config.default_review_frequency_days,
            metric_stale_days=config.metric_stale_days,
            insight_list_cap=config.insight_list_cap,
            urgent_acceptance_cap=config.urgent_acceptance_cap,
        )


@dataclass
class RenderedSection:
    key: str
    grid: Optional[GridItem]
    elements: list[str]
    data: dict[str, Any]


@dataclass
class DashboardPlan:
    generated_at: datetime
    sections: list[RenderedSection] = field(default_factory=list)
    pending_change_count: int = 0

    @property
    def keys(self) -> list[str]:
        return [s.key for s in self.sections]


@dataclass
class RenderContext:
    """Inputs and shared derived values for one render pass."""
    snapshot: EntitySnapshot
    viewer: Viewer
    layout: ResolvedLayout
    now: datetime
    settings: DashboardSettings
    pending_changes: list[PendingChange]
    pending_entities: list[analytics.PendingEntity]
    review_due: list[Risk]
    compliance: Optional[analytics.ComplianceHealth]

    @classmethod
    def prepare(
        cls,
        snapshot: EntitySnapshot,
        viewer: Viewer,
        layout: ResolvedLayout,
        now: datetime,
        settings: DashboardSettings,
    ) -> "RenderContext":
        return cls(
            snapshot=snapshot,
            viewer=viewer,
            layout=layout,
            now=now,
            settings=settings,
            pending_changes=collect_pending_changes(snapshot.risks, snapshot.actions, snapshot.controls),
            pending_entities=analytics.pending_new_entities(snapshot.risks, snapshot.actions, snapshot.controls),
            review_due=analytics.risks_needing_review(
                snapshot.risks,
                now,
                settings.default_review_frequency_days,
                settings.review_due_window_days,
            ),
            compliance=analytics.compliance_health(
                snapshot.regulations, snapshot.certified_persons, viewer.capabilities, now
            ),
        )

    @property
    def my_review_due(self) -> list[Risk]:
        return [r for r in self.review_due if r.owner_id == self.viewer.user_id]

    def elements(self, section_key: str, values: dict[str, Any]) -> dict[str, Any]:
        """Element values in the viewer's order, hidden elements left out."""
        return {e: values[e] for e in self.layout.visible_elements(section_key) if e in values}


SectionBuilder = Callable[[RenderContext], Optional[dict[str, Any]]]


# --- Section builders ---

def _welcome(ctx: RenderContext) -> dict[str, Any]:
    s, v, now = ctx.snapshot, ctx.viewer, ctx.now
    pills = {
        "my_overdue_actions": len(analytics.my_overdue_actions(s.actions, v.user_id, now)),
        "my_due_soon_actions": len(
            analytics.my_due_soon_actions(s.actions, v.user_id, now, ctx.settings.due_soon_horizon_days)
        ),
        "my_risks_due_for_review": len(ctx.my_review_due),
    }
    if v.can(PERM_VIEW_PENDING):
        pills["risks_due_for_review"] = len(ctx.review_due)
        pills["pending_changes"] = len(ctx.pending_changes)
    if v.can(PERM_VIEW_CONSUMER_DUTY):
        pills["overdue_metrics"] = len(analytics.overdue_metrics(s.outcomes, now, ctx.settings.metric_stale_days))
    return {"user_id": v.user_id, "role": v.role, "pills": pills}


def _notifications(ctx: RenderContext) -> Optional[dict[str, Any]]:
    active = analytics.active_notifications(ctx.snapshot.notifications, ctx.viewer.role, ctx.now)
    return {"notifications": active} if active else None


def _action_required(ctx: RenderContext) -> Optional[dict[str, Any]]:
    groups = analytics.action_required(
        ctx.viewer,
        ctx.snapshot.actions,
        ctx.snapshot.risks,
        ctx.pending_entities,
        ctx.pending_changes,
        ctx.now,
        ctx.settings.default_review_frequency_days,
        ctx.settings.review_due_window_days,
    )
    if not groups:
        return None
    return {"total": sum(g.count for g in groups), "groups": groups}


def _priority_actions(ctx: RenderContext) -> dict[str, Any]:
    stats = analytics.priority_stats(ctx.snapshot.actions, ctx.viewer)
    cards = {
        card: {"count": len(stats.for_card(card)), "actions": stats.for_card(card)}
        for card in ("card-p1", "card-p2", "card-p3")
    }
    return {"cards": ctx.elements(SectionKind.PRIORITY_ACTIONS.value, cards)}


def _risk_acceptances(ctx: RenderContext) -> Optional[dict[str, Any]]:
    if not ctx.snapshot.risk_acceptances:
        return None
    stats = analytics.risk_acceptance_stats(
        ctx.snapshot.risk_acceptances,
        ctx.now,
        urgent_cap=ctx.settings.urgent_acceptance_cap,
        horizon_days=ctx.settings.due_soon_horizon_days,
    )
    return {"stats": stats}


def _compliance_health(ctx: RenderContext) -> Optional[dict[str, Any]]:
    health = ctx.compliance
    if health is None:
        return None
    stats = {
        "stat-compliant": health.compliant_pct,
        "stat-applicable": health.total,
        "stat-gaps": health.gaps,
        "stat-assessments": health.overdue_assessments,
        "stat-certs": health.pending_certs,
    }
    return {
        "stats": ctx.elements(SectionKind.COMPLIANCE_HEALTH.value, stats),
        "status_counts": health.status_counts,
    }


def _controls_library(ctx: RenderContext) -> Optional[dict[str, Any]]:
    stats = analytics.controls_library_stats(ctx.snapshot.controls, ctx.snapshot.policies)
    if stats is None:
        return None
    values = {
        "stat-total": stats.total,
        "stat-preventative": stats.preventative,
        "stat-detective": stats.detective,
        "stat-directive": stats.directive,
        "stat-corrective": stats.corrective,
        "stat-policies": stats.policies_with_controls,
    }
    return {
        "stats": ctx.elements(SectionKind.CONTROLS_LIBRARY.value, values),
        "total_policies": stats.total_policies,
        "test_outcomes": stats.test_outcomes,
    }


def _cross_entity(ctx: RenderContext) -> Optional[dict[str, Any]]:
    insights = analytics.cross_entity_insights(
        ctx.snapshot.risks, ctx.snapshot.controls, ctx.snapshot.policies, ctx.settings.insight_list_cap
    )
    if not insights.has_data:
        return None
    return {
        "risks_with_failing_controls": insights.risks_with_failing_controls,
        "policies_with_gaps": insights.policies_with_gaps,
        "key_controls": insights.key_controls,
    }


def _policy_health(ctx: RenderContext) -> Optional[dict[str, Any]]:
    health = analytics.policy_health(ctx.snapshot.policies, ctx.now)
    if health is None:
        return None
    values = {
        "stat-total": health.total,
        "stat-overdue": health.overdue,
        "stat-requirements": health.requirements,
        "stat-links": health.control_links,
    }
    return {"stats": ctx.elements(SectionKind.POLICY_HEALTH.value, values)}


def _risks_in_focus(ctx: RenderContext) -> Optional[dict[str, Any]]:
    risks = analytics.focus_risks(ctx.snapshot.risks)
    return {"risks": risks} if risks else None


def _pending_approvals(ctx: RenderContext) -> Optional[dict[str, Any]]:
    if not ctx.viewer.can(PERM_APPROVE_ENTITIES) or not ctx.pending_entities:
        return None
    return {"entities": ctx.pending_entities}


def _proposed_changes(ctx: RenderContext) -> Optional[dict[str, Any]]:
    if not ctx.viewer.can(PERM_VIEW_PENDING) or not ctx.pending_changes:
        return None
    return {"changes": ctx.pending_changes}


def _action_tracking(ctx: RenderContext) -> Optional[dict[str, Any]]:
    if not ctx.viewer.can(PERM_VIEW_ACTIONS):
        return None
    return {"stats": analytics.action_stats(ctx.snapshot.actions, ctx.now, ctx.settings.due_soon_horizon_days)}


def _overdue_metrics(ctx: RenderContext) -> Optional[dict[str, Any]]:
    if not ctx.viewer.can(PERM_VIEW_CONSUMER_DUTY):
        return None
    stale = analytics.overdue_metrics(ctx.snapshot.outcomes, ctx.now, ctx.settings.metric_stale_days)
    return {"measures": stale} if stale else None


def _tasks_reviews(ctx: RenderContext) -> Optional[dict[str, Any]]:
    s, v = ctx.snapshot, ctx.viewer
    tasks = {
        "risks_due_for_review": ctx.review_due if v.can(PERM_VIEW_PENDING) else ctx.my_review_due,
        "my_overdue_actions": analytics.my_overdue_actions(s.actions, v.user_id, ctx.now),
        "my_risks": analytics.my_risks(s.risks, v.user_id),
        "my_actions": analytics.my_open_actions(s.actions, v.user_id),
        "my_metrics": analytics.my_metrics(s.outcomes, s.assigned_measure_ids),
    }
    if not any(tasks.values()):
        return None
    return tasks


def _consumer_duty(ctx: RenderContext) -> Optional[dict[str, Any]]:
    if not ctx.viewer.can(PERM_VIEW_CONSUMER_DUTY):
        return None
    outcomes = ctx.snapshot.outcomes
    rag_counts = {rag: sum(1 for o in outcomes if o.rag_status == rag) for rag in (RAG_GOOD, RAG_WARNING, RAG_HARM)}
    return {
        "outcomes": [{"id": o.id, "name": o.name, "rag_status": o.rag_status} for o in outcomes],
        "rag_counts": rag_counts,
    }


def _risk_summary(ctx: RenderContext) -> Optional[dict[str, Any]]:
    if not ctx.viewer.can(PERM_VIEW_RISK_REGISTER):
        return None
    summary = analytics.risk_summary(ctx.snapshot.risks)
    values = {
        "stat-total": summary.total,
        "stat-low": summary.low,
        "stat-medium": summary.medium,
        "stat-high": summary.high,
    }
    return {"stats": ctx.elements(SectionKind.RISK_SUMMARY.value, values)}


def _programme_health(ctx: RenderContext) -> dict[str, Any]:
    s = ctx.snapshot
    return {"scorecard": analytics.programme_health(s.risks, s.actions, s.outcomes, ctx.compliance, ctx.now)}


def _reports(ctx: RenderContext) -> Optional[dict[str, Any]]:
    if not ctx.viewer.can(PERM_VIEW_REPORTS):
        return None
    return {"reports": analytics.visible_reports(ctx.snapshot.reports, ctx.viewer)}


def _recent_activity(ctx: RenderContext) -> Optional[dict[str, Any]]:
    if not ctx.viewer.can(PERM_VIEW_AUDIT) or not ctx.snapshot.audit_logs:
        return None
    return {"entries": analytics.recent_activity(ctx.snapshot.audit_logs)}


def _horizon_scanning(ctx: RenderContext) -> Optional[dict[str, Any]]:
    summary = analytics.horizon_summary(ctx.snapshot.horizon_items, ctx.now)
    return {"summary": summary} if summary is not None else None


SECTION_BUILDERS: dict[SectionKind, SectionBuilder] = {
    SectionKind.WELCOME: _welcome,
    SectionKind.NOTIFICATIONS: _notifications,
    SectionKind.ACTION_REQUIRED: _action_required,
    SectionKind.PRIORITY_ACTIONS: _priority_actions,
    SectionKind.RISK_ACCEPTANCES: _risk_acceptances,
    SectionKind.COMPLIANCE_HEALTH: _compliance_health,
    SectionKind.CONTROLS_LIBRARY: _controls_library,
    SectionKind.CROSS_ENTITY: _cross_entity,
    SectionKind.POLICY_HEALTH: _policy_health,
    SectionKind.RISKS_IN_FOCUS: _risks_in_focus,
    SectionKind.PENDING_APPROVALS: _pending_approvals,
    SectionKind.PROPOSED_CHANGES: _proposed_changes,
    SectionKind.ACTION_TRACKING: _action_tracking,
    SectionKind.OVERDUE_METRICS: _overdue_metrics,
    SectionKind.TASKS_REVIEWS: _tasks_reviews,
    SectionKind.CONSUMER_DUTY: _consumer_duty,
    SectionKind.RISK_SUMMARY: _risk_summary,
    SectionKind.PROGRAMME_HEALTH: _programme_health,
    SectionKind.REPORTS: _reports,
    SectionKind.RECENT_ACTIVITY: _recent_activity,
    SectionKind.HORIZON_SCANNING: _horizon_scanning,
}

_missing_builders = set(SectionKind) - set(SECTION_BUILDERS)
if _missing_builders:
    raise RuntimeError(f"No builder for sections: {sorted(k.value for k in _missing_builders)}")


def build_dashboard(
    snapshot: EntitySnapshot,
    viewer: Viewer,
    layout: ResolvedLayout,
    now: datetime,
    settings: Optional[DashboardSettings] = None,
) -> DashboardPlan:
    """Compose the viewer's dashboard from one consistent snapshot."""
    ctx = RenderContext.prepare(snapshot, viewer, layout, now, settings or DashboardSettings())
    plan = DashboardPlan(generated_at=now, pending_change_count=len(ctx.pending_changes))

    for key in layout.visible_order:
        try:
            kind = SectionKind(key)
        except ValueError:
            logger.debug("section_without_builder", key=key)
            continue
        data = SECTION_BUILDERS[kind](ctx)
        if data is None:
            continue
        plan.sections.append(
            RenderedSection(
                key=key,
                grid=layout.grid_for(key),
                elements=layout.visible_elements(key),
                data=data,
            )
        )

    logger.debug("dashboard_built", user_id=viewer.user_id, role=viewer.role, sections=len(plan.sections))
    return plan
