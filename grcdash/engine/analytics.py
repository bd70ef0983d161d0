"""Cross-entity analytics aggregator.

Stateless summaries over whole entity collections. Every function takes
its inputs as arguments, never mutates them, and returns a fresh record.
Date logic is delegated to ``temporal``; ratios over an empty denominator
yield ``None`` rather than a misleading 0% or 100%.

Sorting rule throughout: stable sort on the stated numeric key,
descending, so ties keep the order of the input collection.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional

from ..auth.capabilities import (
    PERM_APPROVE_ENTITIES,
    PERM_VIEW_COMPLIANCE,
    PERM_VIEW_PENDING,
    ROLE_OWNER,
    Viewer,
)
from .entities import (
    ACTION_COMPLETED,
    ACTION_IN_PROGRESS,
    ACTION_OPEN,
    APPROVAL_PENDING,
    CERT_DUE,
    CERT_OVERDUE,
    COMPLIANCE_STATUSES,
    COMPLIANT,
    CONTROL_TYPES,
    GAP_IDENTIFIED,
    NON_COMPLIANT,
    POLICY_ARCHIVED,
    RA_APPROVED,
    RA_AWAITING_APPROVAL,
    RA_CCRO_REVIEW,
    RA_EXPIRED,
    RA_PROPOSED,
    RAG_GOOD,
    RAG_HARM,
    RAG_WARNING,
    TEST_FAIL,
    TEST_NOT_DUE,
    TEST_NOT_TESTED,
    TEST_PARTIALLY,
    TEST_PASS,
    Action,
    AuditLogEntry,
    CertifiedPerson,
    ConsumerDutyMeasure,
    ConsumerDutyOutcome,
    Control,
    ControlTestResult,
    DashboardNotification,
    HorizonItem,
    Policy,
    Regulation,
    Report,
    Risk,
    RiskAcceptance,
)
from .pending_changes import PendingChange
from .temporal import (
    DEFAULT_DUE_SOON_DAYS,
    DEFAULT_REVIEW_FREQUENCY_DAYS,
    DEFAULT_REVIEW_WINDOW_DAYS,
    as_utc,
    days_until,
    is_due_soon,
    is_overdue,
    is_review_due,
)

DEFAULT_INSIGHT_CAP = 5
DEFAULT_URGENT_CAP = 3
DEFAULT_ATTENTION_ITEMS = 3
DEFAULT_METRIC_STALE_DAYS = 30

LOW_RISK_MAX_SCORE = 4
MEDIUM_RISK_MAX_SCORE = 12

ACTION_TERMINAL = frozenset({ACTION_COMPLETED})
POLICY_TERMINAL = frozenset({POLICY_ARCHIVED})
HORIZON_CLOSED = frozenset({"DISMISSED", "COMPLETED"})
REPORT_PUBLISHED = "PUBLISHED"


def _percent(part: int, whole: int) -> Optional[int]:
    if whole == 0:
        return None
    return round(part / whole * 100)


def _top(items: list, key, cap: int) -> list:
    return sorted(items, key=key, reverse=True)[:cap]


# --- Risk acceptances ---

@dataclass
class DatedAcceptance:
    acceptance: RiskAcceptance
    days_until: int


@dataclass
class RiskAcceptanceStats:
    expired: int
    awaiting: int
    ccro_review: int
    accepted: int
    urgent: list[RiskAcceptance] = field(default_factory=list)
    overdue: list[DatedAcceptance] = field(default_factory=list)
    due30: list[DatedAcceptance] = field(default_factory=list)
    beyond30: list[DatedAcceptance] = field(default_factory=list)


def risk_acceptance_stats(
    acceptances: Iterable[RiskAcceptance],
    now: datetime,
    urgent_cap: int = DEFAULT_URGENT_CAP,
    horizon_days: int = DEFAULT_DUE_SOON_DAYS,
) -> RiskAcceptanceStats:
    """Partition acceptances by status and bucket approved ones by review date."""
    acceptances = list(acceptances)
    expired = [ra for ra in acceptances if ra.status == RA_EXPIRED]
    awaiting = [ra for ra in acceptances if ra.status == RA_AWAITING_APPROVAL]
    in_review = [ra for ra in acceptances if ra.status in (RA_CCRO_REVIEW, RA_PROPOSED)]
    approved = [ra for ra in acceptances if ra.status == RA_APPROVED]

    dated = [
        DatedAcceptance(acceptance=ra, days_until=days_until(ra.review_date, now))
        for ra in approved
        if ra.review_date is not None
    ]
    dated.sort(key=lambda d: d.days_until)

    return RiskAcceptanceStats(
        expired=len(expired),
        awaiting=len(awaiting),
        ccro_review=len(in_review),
        accepted=len(approved),
        urgent=(expired + awaiting)[:urgent_cap],
        overdue=[d for d in dated if d.days_until < 0],
        due30=[d for d in dated if 0 <= d.days_until <= horizon_days],
        beyond30=[d for d in dated if d.days_until > horizon_days],
    )


# --- Compliance ---

@dataclass
class ComplianceHealth:
    total: int
    compliant_pct: int
    gaps: int
    overdue_assessments: int
    pending_certs: int
    status_counts: dict[str, int]


def compliance_health(
    regulations: Iterable[Regulation],
    certified_persons: Iterable[CertifiedPerson],
    capabilities: Iterable[str],
    now: datetime,
) -> Optional[ComplianceHealth]:
    """Compliance posture over applicable regulations.

    Returns None when the viewer lacks the compliance capability or no
    regulation is applicable.
    """
    if PERM_VIEW_COMPLIANCE not in set(capabilities):
        return None
    applicable = [r for r in regulations if r.is_applicable]
    if not applicable:
        return None

    counts = Counter(r.compliance_status for r in applicable)
    status_counts = {status: counts.get(status, 0) for status in COMPLIANCE_STATUSES}
    for status, count in counts.items():
        status_counts.setdefault(status, count)

    return ComplianceHealth(
        total=len(applicable),
        compliant_pct=_percent(counts[COMPLIANT], len(applicable)),
        gaps=counts[NON_COMPLIANT] + counts[GAP_IDENTIFIED],
        overdue_assessments=sum(
            1 for r in applicable
            if r.next_review_date is not None and as_utc(r.next_review_date) < as_utc(now)
        ),
        pending_certs=sum(1 for p in certified_persons if p.status in (CERT_DUE, CERT_OVERDUE)),
        status_counts=status_counts,
    )


# --- Controls ---

def latest_test_result(control: Control) -> Optional[ControlTestResult]:
    """Most recently tested result; equal dates keep recording order."""
    if not control.test_results:
        return None
    return sorted(control.test_results, key=lambda t: as_utc(t.tested_date), reverse=True)[0]


@dataclass
class ControlsLibraryStats:
    total: int
    preventative: int
    detective: int
    directive: int
    corrective: int
    policies_with_controls: int
    total_policies: int
    test_outcomes: dict[str, int]


def controls_library_stats(
    controls: Iterable[Control],
    policies: Iterable[Policy],
) -> Optional[ControlsLibraryStats]:
    """Type breakdown of active controls; None when none are active.

    ``test_outcomes`` counts each control's latest result, with an
    untested control in the ``NOT_TESTED`` bucket.
    """
    active = [c for c in controls if c.is_active]
    if not active:
        return None
    policies = list(policies)

    by_type = Counter(c.control_type for c in active)
    outcomes = {result: 0 for result in (TEST_PASS, TEST_FAIL, TEST_PARTIALLY, TEST_NOT_TESTED, TEST_NOT_DUE)}
    for control in active:
        latest = latest_test_result(control)
        outcome = latest.result if latest is not None else TEST_NOT_TESTED
        outcomes[outcome] = outcomes.get(outcome, 0) + 1

    preventative, detective, directive, corrective = (by_type[t] for t in CONTROL_TYPES)
    return ControlsLibraryStats(
        total=len(active),
        preventative=preventative,
        detective=detective,
        directive=directive,
        corrective=corrective,
        policies_with_controls=sum(1 for p in policies if p.control_links),
        total_policies=len(policies),
        test_outcomes=outcomes,
    )


# --- Cross-entity insights ---

@dataclass
class RiskControlFailure:
    risk_ref: str
    risk_name: str
    risk_id: str
    fail_count: int
    total_controls: int


@dataclass
class PolicyGap:
    ref: str
    name: str
    id: str
    uncovered: int
    total: int

    @property
    def ratio(self) -> float:
        return self.uncovered / self.total


@dataclass
class KeyControl:
    id: str
    ref: str
    name: str
    policy_count: int


@dataclass
class CrossEntityInsights:
    risks_with_failing_controls: list[RiskControlFailure] = field(default_factory=list)
    policies_with_gaps: list[PolicyGap] = field(default_factory=list)
    key_controls: list[KeyControl] = field(default_factory=list)

    @property
    def has_data(self) -> bool:
        return bool(self.risks_with_failing_controls or self.policies_with_gaps or self.key_controls)


def _is_failing(control: Control) -> bool:
    # Untested counts as failing here
    latest = latest_test_result(control)
    return latest is None or latest.result == TEST_FAIL


def risks_with_failing_controls(
    risks: Iterable[Risk],
    controls_by_id: dict[str, Control],
    cap: int = DEFAULT_INSIGHT_CAP,
) -> list[RiskControlFailure]:
    failures: list[RiskControlFailure] = []
    for risk in risks:
        linked = [controls_by_id[link.control_id] for link in risk.control_links if link.control_id in controls_by_id]
        if not linked:
            continue
        fail_count = sum(1 for control in linked if _is_failing(control))
        if fail_count > 0:
            failures.append(
                RiskControlFailure(
                    risk_ref=risk.reference,
                    risk_name=risk.name,
                    risk_id=risk.id,
                    fail_count=fail_count,
                    total_controls=len(linked),
                )
            )
    return _top(failures, lambda f: f.fail_count, cap)


def policies_with_gaps(policies: Iterable[Policy], cap: int = DEFAULT_INSIGHT_CAP) -> list[PolicyGap]:
    gaps: list[PolicyGap] = []
    for policy in policies:
        total = len(policy.obligations)
        if total == 0:
            continue
        covered = sum(
            1 for obligation in policy.obligations
            if obligation.control_refs or any(s.control_refs for s in obligation.sections)
        )
        if covered < total:
            gaps.append(
                PolicyGap(ref=policy.reference, name=policy.name, id=policy.id, uncovered=total - covered, total=total)
            )
    return _top(gaps, lambda g: g.ratio, cap)


def key_controls(
    controls: Iterable[Control],
    policies: Iterable[Policy],
    cap: int = DEFAULT_INSIGHT_CAP,
) -> list[KeyControl]:
    """Controls linked from at least two distinct policies."""
    policy_counts: Counter = Counter()
    for policy in policies:
        for control_id in {link.control_id for link in policy.control_links}:
            policy_counts[control_id] += 1

    keyed = [
        KeyControl(id=c.id, ref=c.control_ref, name=c.control_name, policy_count=policy_counts[c.id])
        for c in controls
        if policy_counts[c.id] >= 2
    ]
    return _top(keyed, lambda k: k.policy_count, cap)


def cross_entity_insights(
    risks: Iterable[Risk],
    controls: Iterable[Control],
    policies: Iterable[Policy],
    cap: int = DEFAULT_INSIGHT_CAP,
) -> CrossEntityInsights:
    controls = list(controls)
    policies = list(policies)
    controls_by_id = {c.id: c for c in controls}
    return CrossEntityInsights(
        risks_with_failing_controls=risks_with_failing_controls(risks, controls_by_id, cap),
        policies_with_gaps=policies_with_gaps(policies, cap),
        key_controls=key_controls(controls, policies, cap),
    )


# --- Actions ---

@dataclass
class PriorityStats:
    p1: list[Action] = field(default_factory=list)
    p2: list[Action] = field(default_factory=list)
    p3: list[Action] = field(default_factory=list)

    def for_card(self, element_id: str) -> list[Action]:
        return {"card-p1": self.p1, "card-p2": self.p2, "card-p3": self.p3}.get(element_id, [])


def priority_stats(actions: Iterable[Action], viewer: Viewer) -> PriorityStats:
    """Open actions by priority; owners only see their own."""
    pool = [a for a in actions if a.status != ACTION_COMPLETED]
    if viewer.role == ROLE_OWNER:
        pool = [a for a in pool if a.assigned_to == viewer.user_id]
    return PriorityStats(
        p1=[a for a in pool if a.priority == "P1"],
        p2=[a for a in pool if a.priority == "P2"],
        p3=[a for a in pool if a.priority == "P3"],
    )


@dataclass
class ActionStats:
    open: int
    overdue: int
    due_this_month: int
    completed: int


def _action_overdue(action: Action, now: datetime) -> bool:
    return is_overdue(action.due_date, now, action.status, ACTION_TERMINAL)


def _action_due_soon(action: Action, now: datetime, horizon_days: int) -> bool:
    return is_due_soon(action.due_date, now, action.status, horizon_days, ACTION_TERMINAL)


def action_stats(
    actions: Iterable[Action],
    now: datetime,
    horizon_days: int = DEFAULT_DUE_SOON_DAYS,
) -> ActionStats:
    actions = list(actions)
    return ActionStats(
        open=sum(1 for a in actions if a.status in (ACTION_OPEN, ACTION_IN_PROGRESS)),
        overdue=sum(1 for a in actions if _action_overdue(a, now)),
        due_this_month=sum(1 for a in actions if _action_due_soon(a, now, horizon_days)),
        completed=sum(1 for a in actions if a.status == ACTION_COMPLETED),
    )


def overdue_actions(actions: Iterable[Action], now: datetime) -> list[Action]:
    return [a for a in actions if _action_overdue(a, now)]


def my_overdue_actions(actions: Iterable[Action], user_id: str, now: datetime) -> list[Action]:
    return [a for a in actions if a.assigned_to == user_id and _action_overdue(a, now)]


def my_due_soon_actions(
    actions: Iterable[Action],
    user_id: str,
    now: datetime,
    horizon_days: int = DEFAULT_DUE_SOON_DAYS,
) -> list[Action]:
    return [a for a in actions if a.assigned_to == user_id and _action_due_soon(a, now, horizon_days)]


def my_open_actions(actions: Iterable[Action], user_id: str) -> list[Action]:
    """The user's unfinished actions, earliest due first, undated last."""
    mine = [a for a in actions if a.assigned_to == user_id and a.status != ACTION_COMPLETED]
    dated = sorted((a for a in mine if a.due_date is not None), key=lambda a: as_utc(a.due_date))
    return dated + [a for a in mine if a.due_date is None]


# --- Risks ---

def residual_score(risk: Risk) -> int:
    return risk.residual_likelihood * risk.residual_impact


def risk_band(score: int) -> str:
    if score <= LOW_RISK_MAX_SCORE:
        return "low"
    if score <= MEDIUM_RISK_MAX_SCORE:
        return "medium"
    return "high"


def risks_needing_review(
    risks: Iterable[Risk],
    now: datetime,
    default_frequency_days: int = DEFAULT_REVIEW_FREQUENCY_DAYS,
    window_days: int = DEFAULT_REVIEW_WINDOW_DAYS,
) -> list[Risk]:
    return [
        r for r in risks
        if is_review_due(
            r.last_reviewed,
            now,
            frequency_days=r.review_frequency_days or default_frequency_days,
            review_requested=r.review_requested,
            window_days=window_days,
        )
    ]


def my_risks(risks: Iterable[Risk], user_id: str) -> list[Risk]:
    return [r for r in risks if r.owner_id == user_id]


def focus_risks(risks: Iterable[Risk]) -> list[Risk]:
    return [r for r in risks if r.in_focus]


@dataclass
class RiskSummary:
    total: int
    low: int
    medium: int
    high: int


def risk_summary(risks: Iterable[Risk]) -> RiskSummary:
    bands = Counter(risk_band(residual_score(r)) for r in risks)
    return RiskSummary(
        total=sum(bands.values()),
        low=bands["low"],
        medium=bands["medium"],
        high=bands["high"],
    )


# --- Approvals ---

@dataclass
class PendingEntity:
    type: str
    id: str
    reference: str
    name: str
    created_by: Optional[str]
    created_at: Optional[datetime]


def pending_new_entities(
    risks: Iterable[Risk],
    actions: Iterable[Action],
    controls: Iterable[Control],
) -> list[PendingEntity]:
    """Newly created entities still awaiting approval."""
    pending = [
        PendingEntity("risk", r.id, r.reference, r.name, r.created_by, r.created_at)
        for r in risks if r.approval_status == APPROVAL_PENDING
    ]
    pending += [
        PendingEntity("action", a.id, a.reference, a.title, a.created_by, a.created_at)
        for a in actions if a.approval_status == APPROVAL_PENDING
    ]
    pending += [
        PendingEntity("control", c.id, c.control_ref, c.control_name, c.created_by, c.created_at)
        for c in controls if c.approval_status == APPROVAL_PENDING
    ]
    return pending


# --- Consumer duty ---

def _measures(outcomes: Iterable[ConsumerDutyOutcome]) -> list[ConsumerDutyMeasure]:
    return [m for o in outcomes for m in o.measures]


def overdue_metrics(
    outcomes: Iterable[ConsumerDutyOutcome],
    now: datetime,
    stale_days: int = DEFAULT_METRIC_STALE_DAYS,
) -> list[ConsumerDutyMeasure]:
    """Measures not updated within ``stale_days``; never-updated ones included."""
    stale = []
    for measure in _measures(outcomes):
        if measure.last_updated_at is None:
            stale.append(measure)
        elif is_overdue(as_utc(measure.last_updated_at) + timedelta(days=stale_days), now):
            stale.append(measure)
    return stale


def my_metrics(outcomes: Iterable[ConsumerDutyOutcome], assigned_measure_ids: Iterable[str]) -> list[ConsumerDutyMeasure]:
    assigned = set(assigned_measure_ids)
    if not assigned:
        return []
    return [m for m in _measures(outcomes) if m.measure_id in assigned]


# --- Policies ---

@dataclass
class PolicyHealth:
    total: int
    overdue: int
    requirements: int
    control_links: int


def policy_health(policies: Iterable[Policy], now: datetime) -> Optional[PolicyHealth]:
    policies = list(policies)
    if not policies:
        return None
    return PolicyHealth(
        total=len(policies),
        overdue=sum(
            1 for p in policies
            if is_overdue(p.next_review_date, now, p.status, POLICY_TERMINAL)
        ),
        requirements=sum(len(p.obligations) for p in policies),
        control_links=sum(len(p.control_links) for p in policies),
    )


# --- Programme health ---

@dataclass
class ProgrammeHealth:
    risk_health: Optional[int]
    total_risks: int
    high_risks: int
    action_health: Optional[int]
    open_actions: int
    overdue_actions: int
    consumer_duty_health: Optional[int]
    good_measures: int
    warning_measures: int
    harm_measures: int
    compliance_health: Optional[int]
    compliance_gaps: Optional[int]


def programme_health(
    risks: Iterable[Risk],
    actions: Iterable[Action],
    outcomes: Iterable[ConsumerDutyOutcome],
    compliance: Optional[ComplianceHealth],
    now: datetime,
) -> ProgrammeHealth:
    """Four scorecard gauges; a gauge is None when it has nothing to measure."""
    scores = [residual_score(r) for r in risks]
    open_actions = [a for a in actions if a.status != ACTION_COMPLETED]
    overdue = sum(1 for a in open_actions if _action_overdue(a, now))
    rag = Counter(m.rag_status for m in _measures(outcomes))
    measure_count = sum(rag.values())

    return ProgrammeHealth(
        risk_health=_percent(sum(1 for s in scores if s <= LOW_RISK_MAX_SCORE), len(scores)),
        total_risks=len(scores),
        high_risks=sum(1 for s in scores if s > MEDIUM_RISK_MAX_SCORE),
        action_health=_percent(len(open_actions) - overdue, len(open_actions)),
        open_actions=len(open_actions),
        overdue_actions=overdue,
        consumer_duty_health=_percent(rag[RAG_GOOD], measure_count),
        good_measures=rag[RAG_GOOD],
        warning_measures=rag[RAG_WARNING],
        harm_measures=rag[RAG_HARM],
        compliance_health=compliance.compliant_pct if compliance is not None else None,
        compliance_gaps=compliance.gaps if compliance is not None else None,
    )


# --- Notifications, reports, activity, horizon ---

def active_notifications(
    notifications: Iterable[DashboardNotification],
    role: str,
    now: datetime,
) -> list[DashboardNotification]:
    """Active, unexpired notifications aimed at ``role`` or at everyone."""
    return [
        n for n in notifications
        if n.active
        and (n.expires_at is None or not is_overdue(n.expires_at, now))
        and (not n.target_roles or role in n.target_roles)
    ]


def visible_reports(reports: Iterable[Report], viewer: Viewer) -> list[Report]:
    """Administrators see every report, everyone else only published ones."""
    if viewer.is_administrator:
        return list(reports)
    return [r for r in reports if r.status == REPORT_PUBLISHED]


def recent_activity(audit_logs: Iterable[AuditLogEntry], limit: int = 10) -> list[AuditLogEntry]:
    return sorted(audit_logs, key=lambda e: as_utc(e.timestamp), reverse=True)[:limit]


@dataclass
class HorizonSummary:
    active: int
    high: int
    medium: int
    low: int
    action_required: int
    in_focus: Optional[HorizonItem] = None
    nearest: Optional[HorizonItem] = None
    nearest_days: Optional[int] = None


def horizon_summary(items: Iterable[HorizonItem], now: datetime) -> Optional[HorizonSummary]:
    items = list(items)
    active = [h for h in items if h.status not in HORIZON_CLOSED]
    if not active:
        return None
    urgency = Counter(h.urgency for h in active)
    with_deadline = sorted((h for h in active if h.deadline is not None), key=lambda h: as_utc(h.deadline))
    nearest = with_deadline[0] if with_deadline else None
    return HorizonSummary(
        active=len(active),
        high=urgency["HIGH"],
        medium=urgency["MEDIUM"],
        low=urgency["LOW"],
        action_required=sum(1 for h in active if h.status == "ACTION_REQUIRED"),
        in_focus=next((h for h in items if h.in_focus), None),
        nearest=nearest,
        nearest_days=days_until(nearest.deadline, now) if nearest is not None else None,
    )


# --- Action required ---

@dataclass
class AttentionItem:
    label: str
    sub: Optional[str]
    entity_type: str
    entity_id: str


@dataclass
class AttentionGroup:
    kind: str
    label: str
    count: int
    items: list[AttentionItem]


def action_required(
    viewer: Viewer,
    actions: Iterable[Action],
    risks: Iterable[Risk],
    pending_entities: list[PendingEntity],
    pending_changes: list[PendingChange],
    now: datetime,
    default_frequency_days: int = DEFAULT_REVIEW_FREQUENCY_DAYS,
    window_days: int = DEFAULT_REVIEW_WINDOW_DAYS,
    item_cap: int = DEFAULT_ATTENTION_ITEMS,
) -> list[AttentionGroup]:
    """Everything needing the viewer's attention, grouped by kind.

    Viewers with the pending capability see the whole register; everyone
    else sees only what they own or are assigned.
    """
    sees_all = viewer.can(PERM_VIEW_PENDING)
    actions = list(actions)
    review = risks_needing_review(risks, now, default_frequency_days, window_days)
    if sees_all:
        overdue = overdue_actions(actions, now)
    else:
        overdue = my_overdue_actions(actions, viewer.user_id, now)
        review = [r for r in review if r.owner_id == viewer.user_id]

    groups: list[AttentionGroup] = []
    if overdue:
        groups.append(AttentionGroup(
            kind="overdue-actions",
            label="Overdue Actions",
            count=len(overdue),
            items=[
                AttentionItem(a.title, f"Due {as_utc(a.due_date):%d %b}" if a.due_date else None, "action", a.id)
                for a in overdue[:item_cap]
            ],
        ))
    if review:
        groups.append(AttentionGroup(
            kind="risk-reviews",
            label="Risks Due for Review",
            count=len(review),
            items=[AttentionItem(r.name, r.reference, "risk", r.id) for r in review[:item_cap]],
        ))
    if viewer.can(PERM_APPROVE_ENTITIES) and pending_entities:
        groups.append(AttentionGroup(
            kind="pending-approvals",
            label="Pending Approvals",
            count=len(pending_entities),
            items=[AttentionItem(e.name, e.reference, e.type, e.id) for e in pending_entities[:item_cap]],
        ))
    if sees_all and pending_changes:
        groups.append(AttentionGroup(
            kind="proposed-changes",
            label="Proposed Changes",
            count=len(pending_changes),
            items=[
                AttentionItem(c.parent_title, c.field_changed, c.entity_type, c.parent_id)
                for c in pending_changes[:item_cap]
            ],
        ))
    return groups
