"""Role and capability definitions.

Authorization decisions are made upstream; the engine only ever sees a
resolved set of capability names for the current viewer.
"""

from dataclasses import dataclass, field

# Roles
ROLE_CCRO_TEAM = "CCRO_TEAM"
ROLE_CEO = "CEO"
ROLE_OWNER = "OWNER"
ROLE_REVIEWER = "REVIEWER"
ROLE_VIEWER = "VIEWER"

ALL_ROLES = [ROLE_CCRO_TEAM, ROLE_CEO, ROLE_OWNER, ROLE_REVIEWER, ROLE_VIEWER]

# Permission constants
PERM_VIEW_DASHBOARD = "view_dashboard"
PERM_VIEW_COMPLIANCE = "view_compliance"
PERM_VIEW_ACTIONS = "view_actions"
PERM_VIEW_CONSUMER_DUTY = "view_consumer_duty"
PERM_VIEW_REPORTS = "view_reports"
PERM_VIEW_AUDIT = "view_audit"
PERM_VIEW_RISK_REGISTER = "view_risk_register"
PERM_VIEW_PENDING = "view_pending"
PERM_APPROVE_ENTITIES = "approve_entities"
PERM_CONFIGURE_LAYOUTS = "configure_layouts"

ALL_PERMISSIONS = [
    PERM_VIEW_DASHBOARD, PERM_VIEW_COMPLIANCE, PERM_VIEW_ACTIONS,
    PERM_VIEW_CONSUMER_DUTY, PERM_VIEW_REPORTS, PERM_VIEW_AUDIT,
    PERM_VIEW_RISK_REGISTER, PERM_VIEW_PENDING, PERM_APPROVE_ENTITIES,
    PERM_CONFIGURE_LAYOUTS,
]

DEFAULT_ROLES = {
    ROLE_CCRO_TEAM: {
        "description": "Chief risk office, full oversight and layout administration",
        "permissions": ALL_PERMISSIONS,
    },
    ROLE_CEO: {
        "description": "Executive read access across every register",
        "permissions": [
            PERM_VIEW_DASHBOARD, PERM_VIEW_COMPLIANCE, PERM_VIEW_ACTIONS,
            PERM_VIEW_CONSUMER_DUTY, PERM_VIEW_REPORTS, PERM_VIEW_RISK_REGISTER,
            PERM_VIEW_PENDING,
        ],
    },
    ROLE_OWNER: {
        "description": "Risk, action and control owners",
        "permissions": [
            PERM_VIEW_DASHBOARD, PERM_VIEW_ACTIONS, PERM_VIEW_CONSUMER_DUTY,
            PERM_VIEW_REPORTS, PERM_VIEW_RISK_REGISTER,
        ],
    },
    ROLE_REVIEWER: {
        "description": "Second-line reviewers",
        "permissions": [
            PERM_VIEW_DASHBOARD, PERM_VIEW_COMPLIANCE, PERM_VIEW_ACTIONS,
            PERM_VIEW_REPORTS, PERM_VIEW_RISK_REGISTER,
        ],
    },
    ROLE_VIEWER: {
        "description": "Read-only dashboard access",
        "permissions": [PERM_VIEW_DASHBOARD, PERM_VIEW_REPORTS],
    },
}


def capabilities_for_role(role: str) -> frozenset[str]:
    """Default capability set for a role; unknown roles get viewer access."""
    role_def = DEFAULT_ROLES.get(role, DEFAULT_ROLES[ROLE_VIEWER])
    return frozenset(role_def["permissions"])


@dataclass(frozen=True)
class Viewer:
    """The user a dashboard is being rendered or edited for."""
    user_id: str
    role: str
    capabilities: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def for_role(cls, user_id: str, role: str) -> "Viewer":
        return cls(user_id=user_id, role=role, capabilities=capabilities_for_role(role))

    def can(self, permission: str) -> bool:
        return permission in self.capabilities

    @property
    def is_administrator(self) -> bool:
        return self.can(PERM_CONFIGURE_LAYOUTS)
