"""Tests for dashboard composition."""

from datetime import timedelta

from grcdash.auth.capabilities import ROLE_CCRO_TEAM, ROLE_OWNER, ROLE_VIEWER
from grcdash.config import GrcDashConfig
from grcdash.engine.dashboard import SECTION_BUILDERS, DashboardSettings, build_dashboard
from grcdash.engine.entities import (
    Action,
    AuditLogEntry,
    ConsumerDutyMeasure,
    ConsumerDutyOutcome,
    EntityChange,
    EntitySnapshot,
    Regulation,
    Report,
    Risk,
)
from grcdash.engine.layout_config import LayoutConfig, element_key
from grcdash.engine.layout_resolver import default_layout, resolve
from grcdash.engine.registry import DEFAULT_REGISTRY, SectionKind


def _snapshot(now):
    return EntitySnapshot(
        risks=[
            Risk(id="r1", reference="R001", name="Conduct", owner_id="u-owner", residual_likelihood=5,
                 residual_impact=5, in_focus=True, last_reviewed=now - timedelta(days=120),
                 changes=[EntityChange(id="ch1", field_changed="name", proposed_at=now)]),
            Risk(id="r2", reference="R002", name="Ops", owner_id="u-other", last_reviewed=now,
                 approval_status="PENDING_APPROVAL"),
        ],
        actions=[
            Action(id="a1", reference="ACT-1", title="Fix", priority="P1", assigned_to="u-owner",
                   due_date=now - timedelta(days=1)),
            Action(id="a2", reference="ACT-2", title="Plan", priority="P2", assigned_to="u-other"),
        ],
        regulations=[Regulation(id="g1", reference="PRIN 2A", name="Consumer Duty", compliance_status="COMPLIANT")],
        outcomes=[ConsumerDutyOutcome(id="o1", name="Price & value", measures=[
            ConsumerDutyMeasure(id="m1", measure_id="1.1", name="Fair value"),
        ])],
        reports=[Report(id="rep1", title="Q1", status="PUBLISHED")],
        audit_logs=[AuditLogEntry(id="l1", user_id="u-ccro", action="update", timestamp=now)],
    )


class TestBuilders:
    def test_every_section_kind_has_a_builder(self):
        assert set(SECTION_BUILDERS) == set(SectionKind)

    def test_every_registry_key_is_a_section_kind(self):
        for key in DEFAULT_REGISTRY.keys:
            assert SectionKind(key) in SECTION_BUILDERS


class TestBuildDashboard:
    def test_follows_visible_order(self, ccro, now):
        layout = default_layout(ROLE_CCRO_TEAM)
        plan = build_dashboard(_snapshot(now), ccro, layout, now)
        positions = [layout.order.index(k) for k in plan.keys]
        assert positions == sorted(positions)
        assert plan.keys[0] == "welcome"
        assert plan.pending_change_count == 1

    def test_hidden_sections_skipped(self, ccro, now):
        layout = resolve(LayoutConfig(hidden_sections=["welcome", "risk-summary"]), ROLE_CCRO_TEAM)
        plan = build_dashboard(_snapshot(now), ccro, layout, now)
        assert "welcome" not in plan.keys
        assert "risk-summary" not in plan.keys

    def test_unknown_layout_keys_ignored(self, ccro, now):
        layout = default_layout(ROLE_CCRO_TEAM)
        layout.order.append("retired-section")
        plan = build_dashboard(_snapshot(now), ccro, layout, now)
        assert "retired-section" not in plan.keys

    def test_empty_sections_omitted(self, ccro, now):
        plan = build_dashboard(EntitySnapshot(), ccro, default_layout(ROLE_CCRO_TEAM), now)
        assert "risks-in-focus" not in plan.keys
        assert "cross-entity" not in plan.keys
        assert "welcome" in plan.keys
        assert "programme-health" in plan.keys
        scorecard = next(s for s in plan.sections if s.key == "programme-health").data["scorecard"]
        assert scorecard.risk_health is None

    def test_sections_carry_grid_and_elements(self, ccro, now):
        plan = build_dashboard(_snapshot(now), ccro, default_layout(ROLE_CCRO_TEAM), now)
        section = next(s for s in plan.sections if s.key == "priority-actions")
        assert section.grid.width == 12
        assert section.elements == ["card-p1", "card-p2", "card-p3"]
        assert section.data["cards"]["card-p1"]["count"] == 1

    def test_hidden_elements_left_out(self, ccro, now):
        layout = resolve(
            LayoutConfig(
                hidden_elements=[element_key("priority-actions", "card-p2")],
                element_order={"priority-actions": ["card-p3", "card-p1"]},
            ),
            ROLE_CCRO_TEAM,
        )
        plan = build_dashboard(_snapshot(now), ccro, layout, now)
        cards = next(s for s in plan.sections if s.key == "priority-actions").data["cards"]
        assert list(cards) == ["card-p3", "card-p1"]


class TestCapabilityGating:
    def test_administrator_sees_approval_sections(self, ccro, now):
        plan = build_dashboard(_snapshot(now), ccro, default_layout(ROLE_CCRO_TEAM), now)
        for key in ("pending-approvals", "proposed-changes", "compliance-health", "recent-activity", "action-tracking"):
            assert key in plan.keys

    def test_viewer_is_gated(self, viewer, now):
        layout = resolve(LayoutConfig(hidden_sections=[]), ROLE_VIEWER)
        plan = build_dashboard(_snapshot(now), viewer, layout, now)
        for key in (
            "pending-approvals", "proposed-changes", "compliance-health", "recent-activity",
            "action-tracking", "risk-summary", "consumer-duty", "overdue-metrics",
        ):
            assert key not in plan.keys
        assert "reports" in plan.keys
        assert "priority-actions" in plan.keys

    def test_owner_sees_only_own_work(self, owner, now):
        layout = resolve(LayoutConfig(hidden_sections=[]), ROLE_OWNER)
        plan = build_dashboard(_snapshot(now), owner, layout, now)
        welcome = next(s for s in plan.sections if s.key == "welcome").data
        assert welcome["pills"]["my_overdue_actions"] == 1
        assert welcome["pills"]["my_risks_due_for_review"] == 1
        assert "pending_changes" not in welcome["pills"]

        cards = next(s for s in plan.sections if s.key == "priority-actions").data["cards"]
        assert cards["card-p2"]["count"] == 0

        tasks = next(s for s in plan.sections if s.key == "tasks-reviews").data
        assert [r.id for r in tasks["risks_due_for_review"]] == ["r1"]

    def test_reports_filtered_for_non_admins(self, viewer, now):
        snapshot = _snapshot(now)
        snapshot.reports.append(Report(id="draft", title="Draft"))
        plan = build_dashboard(snapshot, viewer, default_layout(ROLE_VIEWER), now)
        reports = next(s for s in plan.sections if s.key == "reports").data["reports"]
        assert [r.id for r in reports] == ["rep1"]


class TestSettings:
    def test_from_config(self):
        config = GrcDashConfig(due_soon_horizon_days=14, insight_list_cap=2)
        settings = DashboardSettings.from_config(config)
        assert settings.due_soon_horizon_days == 14
        assert settings.insight_list_cap == 2
        assert settings.review_due_window_days == 7

    def test_horizon_setting_applies(self, ccro, now):
        snapshot = EntitySnapshot(actions=[
            Action(id="a", reference="A", title="t", due_date=now + timedelta(days=20)),
        ])
        layout = default_layout(ROLE_CCRO_TEAM)
        wide = build_dashboard(snapshot, ccro, layout, now)
        narrow = build_dashboard(snapshot, ccro, layout, now, DashboardSettings(due_soon_horizon_days=10))

        def tracking(plan):
            return next(s for s in plan.sections if s.key == "action-tracking").data["stats"]

        assert tracking(wide).due_this_month == 1
        assert tracking(narrow).due_this_month == 0
