"""
Policy Engine

Pure authorization decisions over (principal, resource snapshot, action).

Precedence, first match wins:
    1. admin principals are allowed every action on every resource
    2. owner / self rules
    3. the resource's visibility predicate
    4. default deny

"Is admin" is read from the materialized `Principal` only. Nothing in this
module touches a session, so no rule can recurse into the resource type it is
protecting.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from database.models import QuestionStatus
from schemas.common import ensure_utc
from schemas.principal import Principal
from schemas.resources import (
    Action,
    ResourceKind,
    Snapshot,
    ProfileSnapshot,
    RFPSnapshot,
    ComponentSnapshot,
    DocumentSnapshot,
    NDASnapshot,
    CompanyNDASnapshot,
    AccessGrantSnapshot,
    NotificationSnapshot,
    CompanySnapshot,
    QuestionSnapshot,
    SubmissionSnapshot,
    GrantFacts,
    Decision,
)
from services import visibility


logger = logging.getLogger("rfp_marketplace.services.policy")

# Contact fields a principal may change on its own profile
SELF_PROFILE_FIELDS = frozenset({"first_name", "last_name", "title", "phone", "company"})

NOT_VISIBLE = "not_visible"

# Forward client clock drift accepted on a notification read marker
READ_MARKER_SKEW = timedelta(minutes=5)


# ============================================================================
# PER-RESOURCE RULES
# ============================================================================

def _profile(
    principal: Optional[Principal],
    resource: ProfileSnapshot,
    action: Action,
    facts: GrantFacts,
    changes: Optional[dict],
    now: Optional[datetime],
) -> Decision:
    if principal is None:
        return Decision.deny("anonymous")

    if resource.id == principal.id:
        if action == Action.READ:
            return Decision.allow("self")
        if action == Action.UPDATE:
            if set(changes or {}) <= SELF_PROFILE_FIELDS:
                return Decision.allow("self")
            return Decision.deny("field_not_allowed")
        return Decision.deny("admin_only")

    if action == Action.READ and visibility.shares_company_as_admin(principal, resource):
        return Decision.allow("company_admin")

    return Decision.deny("forbidden")


def _rfp(principal, resource: RFPSnapshot, action, facts, changes, now) -> Decision:
    reason = visibility.rfp_read_reason(principal, resource, facts)
    if action == Action.READ:
        return Decision.allow(reason) if reason else Decision.deny(NOT_VISIBLE)
    return Decision.deny("admin_only" if reason else NOT_VISIBLE)


def _component(principal, resource: ComponentSnapshot, action, facts, changes, now) -> Decision:
    reason = visibility.component_read_reason(principal, resource, facts)
    if action == Action.READ:
        return Decision.allow(reason) if reason else Decision.deny(NOT_VISIBLE)
    return Decision.deny("admin_only" if reason else NOT_VISIBLE)


def _document(principal, resource: DocumentSnapshot, action, facts, changes, now) -> Decision:
    reason = visibility.document_read_reason(principal, resource, facts)
    if action == Action.READ:
        return Decision.allow(reason) if reason else Decision.deny(NOT_VISIBLE)
    return Decision.deny("admin_only" if reason else NOT_VISIBLE)


def _hidden_or(principal, rfp: Optional[RFPSnapshot], facts: GrantFacts, reason: str) -> Decision:
    """Deny with `reason`, or as `not_visible` when the parent RFP is unreadable."""
    if rfp is not None and visibility.rfp_read_reason(principal, rfp, facts) is None:
        return Decision.deny(NOT_VISIBLE)
    return Decision.deny("anonymous" if principal is None else reason)


def _nda(principal, resource: NDASnapshot, action, facts, changes, now) -> Decision:
    if principal is None or resource.user_id != principal.id:
        return _hidden_or(principal, resource.rfp, facts, "forbidden")

    if action == Action.READ:
        return Decision.allow("self")
    if action == Action.CREATE:
        if visibility.rfp_read_reason(principal, resource.rfp, facts) is None:
            return Decision.deny(NOT_VISIBLE)
        return Decision.allow("self")
    return Decision.deny("admin_only")


def _company_nda(principal, resource: CompanyNDASnapshot, action, facts, changes, now) -> Decision:
    if action == Action.CREATE:
        if principal is None or visibility.rfp_read_reason(principal, resource.rfp, facts) is None:
            return _hidden_or(principal, resource.rfp, facts, "forbidden")
        if resource.signed_by != principal.id or not principal.is_company_admin(resource.company_id):
            return Decision.deny("forbidden")
        return Decision.allow("company_admin")

    if principal is None:
        return _hidden_or(principal, resource.rfp, facts, "anonymous")
    if resource.signed_by == principal.id:
        if action == Action.READ:
            return Decision.allow("self")
    elif principal.belongs_to(resource.company_id):
        if action == Action.READ:
            return Decision.allow("company_member")
    else:
        return _hidden_or(principal, resource.rfp, facts, "forbidden")
    return Decision.deny("admin_only")


def _access_grant(principal, resource: AccessGrantSnapshot, action, facts, changes, now) -> Decision:
    if principal is None or resource.user_id != principal.id:
        return _hidden_or(principal, resource.rfp, facts, "admin_only")
    if action == Action.READ:
        return Decision.allow("self")
    return Decision.deny("admin_only")


def _notification(principal, resource: NotificationSnapshot, action, facts, changes, now) -> Decision:
    if principal is None:
        return Decision.deny("anonymous")
    if resource.user_id != principal.id:
        return Decision.deny("forbidden")

    if action == Action.READ:
        return Decision.allow("owner")
    if action == Action.UPDATE:
        return _read_marker_update(resource, changes, now)
    return Decision.deny("forbidden")


def _read_marker_update(
    resource: NotificationSnapshot,
    changes: Optional[dict],
    now: Optional[datetime],
) -> Decision:
    """read_at moves once from null to now; forward clock drift up to `READ_MARKER_SKEW`."""
    changes = changes or {}
    if set(changes) != {"read_at"}:
        return Decision.deny("field_not_allowed")
    if resource.read_at is not None:
        return Decision.deny("already_read")

    read_at = ensure_utc(changes["read_at"])
    if read_at is None or now is None:
        return Decision.deny("read_at_invalid")
    if resource.created_at is not None and read_at < resource.created_at:
        return Decision.deny("read_at_invalid")
    now = ensure_utc(now)
    if read_at < now or read_at > now + READ_MARKER_SKEW:
        return Decision.deny("read_at_invalid")
    return Decision.allow("owner")


def _company(principal, resource: CompanySnapshot, action, facts, changes, now) -> Decision:
    if principal is None:
        return Decision.deny("anonymous")

    if action == Action.CREATE:
        if resource.created_by == principal.id:
            return Decision.allow("self")
        return Decision.deny("forbidden")
    if action == Action.READ:
        if principal.belongs_to(resource.id):
            return Decision.allow("company_member")
        return Decision.deny("forbidden")
    if action == Action.UPDATE:
        if principal.is_company_admin(resource.id):
            return Decision.allow("company_admin")
        return Decision.deny("forbidden")
    return Decision.deny("admin_only")


def _question(principal, resource: QuestionSnapshot, action, facts, changes, now) -> Decision:
    rfp_reason = visibility.rfp_read_reason(principal, resource.rfp, facts)

    if action == Action.READ:
        if principal is not None and resource.user_id == principal.id:
            return Decision.allow("self")
        if rfp_reason is None:
            return Decision.deny(NOT_VISIBLE)
        if resource.status == QuestionStatus.PUBLISHED:
            return Decision.allow("published")
        return Decision.deny("forbidden")

    if action == Action.CREATE:
        if principal is None:
            return Decision.deny("anonymous")
        if resource.user_id != principal.id:
            return Decision.deny("forbidden")
        if rfp_reason is None:
            return Decision.deny(NOT_VISIBLE)
        return Decision.allow("self")

    return Decision.deny("admin_only")


def _submission(principal, resource: SubmissionSnapshot, action, facts, changes, now) -> Decision:
    if action == Action.CREATE:
        if principal is None or visibility.rfp_read_reason(principal, resource.rfp, facts) is None:
            return _hidden_or(principal, resource.rfp, facts, "forbidden")
        if resource.user_id != principal.id:
            return Decision.deny("forbidden")
        if resource.company_id is not None and resource.company_id != principal.company_id:
            return Decision.deny("forbidden")
        return Decision.allow("self")

    if principal is None:
        return _hidden_or(principal, resource.rfp, facts, "anonymous")
    if resource.user_id == principal.id:
        if action == Action.READ:
            return Decision.allow("self")
    elif principal.belongs_to(resource.company_id):
        if action == Action.READ:
            return Decision.allow("company_member")
    else:
        return _hidden_or(principal, resource.rfp, facts, "forbidden")
    return Decision.deny("admin_only")


def _system(principal, resource, action, facts, changes, now) -> Decision:
    return Decision.deny("admin_only")


Rule = Callable[..., Decision]

_RULES: dict[ResourceKind, Rule] = {
    ResourceKind.PROFILE: _profile,
    ResourceKind.RFP: _rfp,
    ResourceKind.RFP_COMPONENT: _component,
    ResourceKind.DOCUMENT: _document,
    ResourceKind.NDA: _nda,
    ResourceKind.COMPANY_NDA: _company_nda,
    ResourceKind.ACCESS_GRANT: _access_grant,
    ResourceKind.NOTIFICATION: _notification,
    ResourceKind.COMPANY: _company,
    ResourceKind.QUESTION: _question,
    ResourceKind.SUBMISSION: _submission,
    ResourceKind.SYSTEM: _system,
}


# ============================================================================
# ENTRY POINT
# ============================================================================

def authorize(
    principal: Optional[Principal],
    resource: Snapshot,
    action: Action,
    facts: Optional[GrantFacts] = None,
    changes: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> Decision:
    """
    Decide whether `principal` may perform `action` on `resource`.

    Args:
        principal: Materialized principal, or None for anonymous callers
        resource: Frozen snapshot of the protected row
        action: Requested action
        facts: Grant facts for the (principal, RFP) pair the resource belongs to
        changes: Field changes for update actions
        now: Reference time for time-sensitive rules

    Returns:
        Decision with the matching rule's reason
    """
    action = Action(action)

    if principal is not None and principal.is_admin:
        return Decision.allow("admin")

    rule = _RULES[resource.kind]
    decision = rule(principal, resource, action, facts or GrantFacts(), changes, now)

    if not decision.allowed:
        logger.debug(f"Denied {action.value} on {resource.kind.value}: {decision.reason}")
    return decision
