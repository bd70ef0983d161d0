"""Dashboard section registry.

Each section has a stable key, a label and a description. Sections that
render several independently orderable parts (stat cards) also register
their element ids in SECTION_ELEMENTS. The registry is versioned
externally: saved layouts may mention keys that no longer exist, and new
keys may appear after a layout was saved.
"""

from dataclasses import dataclass, field
from enum import Enum

from ..auth.capabilities import ROLE_CCRO_TEAM, ROLE_OWNER, ROLE_REVIEWER


class SectionKind(str, Enum):
    WELCOME = "welcome"
    NOTIFICATIONS = "notifications"
    ACTION_REQUIRED = "action-required"
    PRIORITY_ACTIONS = "priority-actions"
    RISK_ACCEPTANCES = "risk-acceptances"
    COMPLIANCE_HEALTH = "compliance-health"
    CONTROLS_LIBRARY = "controls-library"
    CROSS_ENTITY = "cross-entity"
    POLICY_HEALTH = "policy-health"
    RISKS_IN_FOCUS = "risks-in-focus"
    PENDING_APPROVALS = "pending-approvals"
    PROPOSED_CHANGES = "proposed-changes"
    ACTION_TRACKING = "action-tracking"
    OVERDUE_METRICS = "overdue-metrics"
    TASKS_REVIEWS = "tasks-reviews"
    CONSUMER_DUTY = "consumer-duty"
    RISK_SUMMARY = "risk-summary"
    PROGRAMME_HEALTH = "programme-health"
    REPORTS = "reports"
    RECENT_ACTIVITY = "recent-activity"
    HORIZON_SCANNING = "horizon-scanning"


@dataclass(frozen=True)
class SectionDef:
    key: str
    label: str
    description: str


@dataclass(frozen=True)
class ElementDef:
    id: str
    label: str


@dataclass(frozen=True)
class GridDefault:
    key: str
    x: int
    y: int
    width: int
    height: int
    min_width: int = 1
    min_height: int = 1


DASHBOARD_SECTIONS: list[SectionDef] = [
    SectionDef("welcome", "Welcome Banner", "Personalised greeting with notification pills and quick actions"),
    SectionDef("notifications", "Notification Banners", "Active system notifications and alerts"),
    SectionDef("action-required", "Action Required", "Overdue reviews, pending approvals and proposed changes in one list"),
    SectionDef("priority-actions", "Priority Action Cards", "P1/P2/P3 action breakdown with counts"),
    SectionDef("risk-acceptances", "Risk Acceptances", "Risk acceptance status summary and review timelines"),
    SectionDef("compliance-health", "Compliance Health", "Regulatory compliance status and gap analysis"),
    SectionDef("controls-library", "Controls Library", "Control type breakdown and policy coverage"),
    SectionDef("cross-entity", "Cross-Entity Insights", "Risks with failing controls and policy coverage gaps"),
    SectionDef("policy-health", "Policy Health Summary", "Policy status overview and overdue reviews"),
    SectionDef("risks-in-focus", "Risks in Focus", "Starred risks for board-level visibility"),
    SectionDef("pending-approvals", "Pending Approvals", "New entities awaiting CCRO approval"),
    SectionDef("proposed-changes", "Proposed Changes", "Pending field-level changes requiring review"),
    SectionDef("action-tracking", "Action Tracking", "Open, overdue, and completed action statistics"),
    SectionDef("overdue-metrics", "Overdue Metrics", "Consumer Duty measures not updated in 30+ days"),
    SectionDef("tasks-reviews", "Tasks & Reviews", "Risk reviews, personal actions, and assigned metrics"),
    SectionDef("consumer-duty", "Consumer Duty Overview", "RAG status summary for Consumer Duty outcomes"),
    SectionDef("risk-summary", "Risk Summary", "Risk register summary with heatmap indicators"),
    SectionDef("programme-health", "Programme Health", "Scorecard for Risk, Actions, Consumer Duty and Compliance health"),
    SectionDef("reports", "Reports", "Recent and published reports"),
    SectionDef("recent-activity", "Recent Activity", "Latest audit log entries"),
    SectionDef("horizon-scanning", "Horizon Scanning", "Regulatory and business environment monitor"),
]

SECTION_ELEMENTS: dict[str, list[ElementDef]] = {
    "priority-actions": [
        ElementDef("card-p1", "P1 — Critical"),
        ElementDef("card-p2", "P2 — Important"),
        ElementDef("card-p3", "P3 — Routine"),
    ],
    "compliance-health": [
        ElementDef("stat-compliant", "Compliant"),
        ElementDef("stat-applicable", "Applicable"),
        ElementDef("stat-gaps", "Open Gaps"),
        ElementDef("stat-assessments", "Overdue Assessments"),
        ElementDef("stat-certs", "Pending Certs"),
    ],
    "controls-library": [
        ElementDef("stat-total", "Total"),
        ElementDef("stat-preventative", "Preventative"),
        ElementDef("stat-detective", "Detective"),
        ElementDef("stat-directive", "Directive"),
        ElementDef("stat-corrective", "Corrective"),
        ElementDef("stat-policies", "Policies Covered"),
    ],
    "policy-health": [
        ElementDef("stat-total", "Total Policies"),
        ElementDef("stat-overdue", "Overdue Reviews"),
        ElementDef("stat-requirements", "Requirements"),
        ElementDef("stat-links", "Control Links"),
    ],
    "risk-summary": [
        ElementDef("stat-total", "Total Risks"),
        ElementDef("stat-low", "Low"),
        ElementDef("stat-medium", "Medium"),
        ElementDef("stat-high", "High"),
    ],
}

DEFAULT_SECTION_ORDER: list[str] = [s.key for s in DASHBOARD_SECTIONS]

# Highest-priority CCRO sections above the fold
_CCRO_PRIORITY = [
    "welcome",
    "notifications",
    "action-required",
    "proposed-changes",
    "compliance-health",
    "risks-in-focus",
    "pending-approvals",
    "programme-health",
]
CCRO_DEFAULT_SECTION_ORDER: list[str] = _CCRO_PRIORITY + [
    k for k in DEFAULT_SECTION_ORDER if k not in _CCRO_PRIORITY
]

ROLE_DEFAULT_ORDER: dict[str, list[str]] = {
    ROLE_CCRO_TEAM: CCRO_DEFAULT_SECTION_ORDER,
}

# Sections hidden on first visit for roles that have no saved layout.
ROLE_DEFAULT_HIDDEN: dict[str, list[str]] = {
    ROLE_OWNER: [
        "pending-approvals",
        "proposed-changes",
        "cross-entity",
        "policy-health",
        "overdue-metrics",
        "programme-health",
    ],
    ROLE_REVIEWER: [
        "pending-approvals",
        "proposed-changes",
        "cross-entity",
        "overdue-metrics",
        "programme-health",
    ],
}

# 12-column grid
DEFAULT_GRID_LAYOUT: list[GridDefault] = [
    GridDefault("welcome", 0, 0, 12, 4, 4, 2),
    GridDefault("notifications", 0, 4, 6, 3, 3, 2),
    GridDefault("action-required", 6, 4, 6, 4, 3, 2),
    GridDefault("priority-actions", 0, 8, 12, 6, 4, 3),
    GridDefault("risk-acceptances", 0, 14, 8, 6, 4, 3),
    GridDefault("compliance-health", 8, 14, 4, 6, 3, 3),
    GridDefault("controls-library", 0, 20, 6, 4, 3, 2),
    GridDefault("policy-health", 6, 20, 6, 4, 3, 2),
    GridDefault("cross-entity", 0, 24, 12, 7, 4, 3),
    GridDefault("risks-in-focus", 0, 31, 6, 8, 3, 3),
    GridDefault("pending-approvals", 6, 31, 6, 7, 3, 3),
    GridDefault("proposed-changes", 0, 39, 6, 8, 3, 3),
    GridDefault("action-tracking", 0, 47, 8, 9, 4, 3),
    GridDefault("overdue-metrics", 8, 47, 4, 7, 3, 3),
    GridDefault("tasks-reviews", 0, 56, 12, 10, 4, 4),
    GridDefault("consumer-duty", 0, 66, 4, 8, 3, 3),
    GridDefault("risk-summary", 4, 66, 8, 10, 4, 4),
    GridDefault("programme-health", 0, 76, 6, 6, 3, 3),
    GridDefault("reports", 6, 76, 6, 7, 3, 3),
    GridDefault("recent-activity", 0, 83, 6, 7, 3, 3),
    GridDefault("horizon-scanning", 0, 90, 12, 6, 4, 3),
]


@dataclass(frozen=True)
class SectionRegistry:
    """Everything the layout resolver needs to know about the sections."""
    sections: tuple[SectionDef, ...]
    elements: dict[str, tuple[ElementDef, ...]] = field(default_factory=dict)
    default_grid: tuple[GridDefault, ...] = ()
    role_default_order: dict[str, tuple[str, ...]] = field(default_factory=dict)
    role_default_hidden: dict[str, frozenset[str]] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        sections: list[SectionDef],
        elements: dict[str, list[ElementDef]] | None = None,
        default_grid: list[GridDefault] | None = None,
        role_default_order: dict[str, list[str]] | None = None,
        role_default_hidden: dict[str, list[str]] | None = None,
    ) -> "SectionRegistry":
        keys = [s.key for s in sections]
        if len(set(keys)) != len(keys):
            raise ValueError("duplicate section keys in registry")
        return cls(
            sections=tuple(sections),
            elements={k: tuple(v) for k, v in (elements or {}).items()},
            default_grid=tuple(default_grid or ()),
            role_default_order={r: tuple(o) for r, o in (role_default_order or {}).items()},
            role_default_hidden={r: frozenset(h) for r, h in (role_default_hidden or {}).items()},
        )

    @property
    def keys(self) -> list[str]:
        return [s.key for s in self.sections]

    def has_section(self, key: str) -> bool:
        return any(s.key == key for s in self.sections)

    def element_ids(self, section_key: str) -> list[str]:
        return [e.id for e in self.elements.get(section_key, ())]

    def grid_default(self, key: str) -> GridDefault | None:
        for item in self.default_grid:
            if item.key == key:
                return item
        return None


DEFAULT_REGISTRY = SectionRegistry.build(
    sections=DASHBOARD_SECTIONS,
    elements=SECTION_ELEMENTS,
    default_grid=DEFAULT_GRID_LAYOUT,
    role_default_order=ROLE_DEFAULT_ORDER,
    role_default_hidden=ROLE_DEFAULT_HIDDEN,
)

# Every registered key must have a renderer variant
for _section in DASHBOARD_SECTIONS:
    SectionKind(_section.key)
