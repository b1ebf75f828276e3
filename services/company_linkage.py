"""
Company Linkage Resolver

Links profiles to companies: deterministic name matching for legacy
free-text company names, batch reconciliation, de-duplicated member counts,
admin assignment, secondary memberships, e-mail domain auto-join, join
requests and company invitations.

Writes here change profile company facts; callers re-resolve the acting
principal afterwards.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Iterable, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from database.models import (
    CompanyRole,
    InvitationStatus,
    ReviewStatus,
    Company,
    CompanyMembership,
    CompanyJoinAudit,
    CompanyJoinRequest,
    CompanyInvitation,
    Profile,
    AnalyticsEvent,
    new_token,
)
from schemas.common import ensure_utc, utcnow
from schemas.events import CompanyMemberCount, LinkFailure, ReconcileResult
from schemas.principal import Principal
from schemas.resources import Action, CompanySnapshot, Decision, ProfileSnapshot
from schemas.rfp import CompanyCreate
from services.errors import (
    ConstraintViolation,
    IneligibleTarget,
    InvalidStateTransition,
    NotPermitted,
    ReferenceNotFound,
    constraint_guard,
)
from services.policy import authorize
from services.principals import sync_role


logger = logging.getLogger("rfp_marketplace.services.company_linkage")

# Match ranks, best first
RANK_EXACT = 1
RANK_PREFIX = 2
RANK_CONTAINS = 3      # company name contains the text
RANK_CONTAINED = 4     # text contains the company name


# ============================================================================
# NAME MATCHING
# ============================================================================

def _rank(text: str, name: str) -> Optional[int]:
    if name == text:
        return RANK_EXACT
    if name.startswith(text):
        return RANK_PREFIX
    if text in name:
        return RANK_CONTAINS
    if name in text:
        return RANK_CONTAINED
    return None


def match_company(
    text: Optional[str],
    candidates: Iterable[Tuple[uuid.UUID, str]],
) -> Optional[uuid.UUID]:
    """
    Pick the company a free-text name refers to.

    Case-insensitive; exact beats prefix beats substring (company name
    containing the text, then text containing the company name). Ties go to
    the closest length, then the name, then the id, so the result never
    depends on candidate order.
    """
    needle = (text or "").strip().lower()
    if not needle:
        return None

    best = None
    for company_id, name in candidates:
        haystack = (name or "").strip().lower()
        if not haystack:
            continue
        rank = _rank(needle, haystack)
        if rank is None:
            continue
        key = (rank, abs(len(haystack) - len(needle)), haystack, str(company_id))
        if best is None or key < best[0]:
            best = (key, company_id)

    return best[1] if best else None


async def _candidates(db: AsyncSession) -> list[Tuple[uuid.UUID, str]]:
    result = await db.execute(select(Company.id, Company.name))
    return [(row.id, row.name) for row in result.all()]


async def link_by_name(db: AsyncSession, text: Optional[str]) -> Optional[uuid.UUID]:
    """Resolve free-text company name to a company id, or None."""
    return match_company(text, await _candidates(db))


async def reconcile_all(db: AsyncSession, performed_by: Optional[uuid.UUID] = None) -> ReconcileResult:
    """
    Link every profile that has free-text company but no company id.

    Each attempt is recorded in `analytics_events` (`company_auto_linked` or
    `company_link_failed`). A failing link is rolled back to its savepoint,
    recorded and skipped; the batch carries on. The profile's existing
    company role is kept, defaulting to member.
    """
    candidates = await _candidates(db)
    result = await db.execute(
        select(Profile.id, Profile.email, Profile.company, Profile.company_role)
        .where(
            Profile.company.is_not(None),
            Profile.company != "",
            Profile.company_id.is_(None)
        )
        .order_by(Profile.id)
    )
    pending = result.all()

    outcome = ReconcileResult()
    for user_id, email, company_text, company_role in pending:
        outcome.attempted += 1
        company_id = match_company(company_text, candidates)

        if company_id is None:
            reason = "no_matching_company_found"
        else:
            role = company_role or CompanyRole.MEMBER.value
            try:
                async with db.begin_nested():
                    profile = await db.get(Profile, user_id)
                    profile.company_id = company_id
                    profile.company_role = role
                    db.add(CompanyJoinAudit(
                        user_id=user_id,
                        company_id=company_id,
                        action="joined",
                        join_method="name_match",
                        to_role=role,
                        performed_by=performed_by,
                        details={"company_text": company_text},
                    ))
                    db.add(AnalyticsEvent(
                        event_type="company_auto_linked",
                        user_id=user_id,
                        details={
                            "user_email": email,
                            "company_text": company_text,
                            "matched_company_id": str(company_id),
                            "preserved_role": role,
                            "linked_at": utcnow().isoformat(),
                        },
                    ))
                outcome.linked_count += 1
                continue
            except SQLAlchemyError as e:
                reason = f"link_failed: {e.__class__.__name__}"
                logger.warning(f"Linking {user_id} to company {company_id} failed: {e}")

        outcome.failures.append(LinkFailure(user_id=user_id, company_text=company_text, reason=reason))
        db.add(AnalyticsEvent(
            event_type="company_link_failed",
            user_id=user_id,
            details={
                "user_email": email,
                "company_text": company_text,
                "reason": reason,
                "attempted_at": utcnow().isoformat(),
            },
        ))

    await db.flush()
    logger.info(
        f"Company reconciliation: {outcome.linked_count} linked, "
        f"{len(outcome.failures)} failed of {outcome.attempted}"
    )
    return outcome


# ============================================================================
# MEMBER COUNTS
# ============================================================================

async def member_counts(db: AsyncSession) -> list[CompanyMemberCount]:
    """
    Member counts per company, each principal counted once.

    A principal linked by foreign key counts as primary only. Text-only
    principals count toward the company their text best matches. Active
    secondary memberships add principals not already counted.
    """
    candidates = await _candidates(db)

    primary: dict[uuid.UUID, set] = {company_id: set() for company_id, _ in candidates}
    text: dict[uuid.UUID, set] = {company_id: set() for company_id, _ in candidates}
    secondary: dict[uuid.UUID, set] = {company_id: set() for company_id, _ in candidates}

    profiles = await db.execute(select(Profile.id, Profile.company_id, Profile.company))
    for user_id, company_id, company_text in profiles.all():
        if company_id is not None:
            if company_id in primary:
                primary[company_id].add(user_id)
            continue
        matched = match_company(company_text, candidates)
        if matched is not None:
            text[matched].add(user_id)

    memberships = await db.execute(
        select(CompanyMembership.company_id, CompanyMembership.user_id)
        .where(CompanyMembership.status == "active")
    )
    for company_id, user_id in memberships.all():
        if company_id in secondary:
            secondary[company_id].add(user_id)

    counts = []
    for company_id, name in sorted(candidates, key=lambda c: ((c[1] or "").lower(), str(c[0]))):
        direct = primary[company_id]
        by_text = text[company_id] - direct
        extra = secondary[company_id] - direct - by_text
        counts.append(CompanyMemberCount(
            company_id=company_id,
            name=name,
            total=len(direct) + len(by_text) + len(extra),
            primary=len(direct),
            text_matched=len(by_text),
            secondary=len(extra),
        ))
    return counts


# ============================================================================
# COMPANY WRITES
# ============================================================================

def email_domain(email: Optional[str]) -> str:
    if not email or "@" not in email:
        return ""
    return email.rsplit("@", 1)[1].strip().lower()


def is_corporate_domain(domain: Optional[str]) -> bool:
    """Free-mail domains never identify a company."""
    domain = (domain or "").strip().lower()
    return bool(domain) and domain not in settings.consumer_domains_set


async def create_company(db: AsyncSession, principal: Principal, data: CompanyCreate) -> Company:
    """
    Register a company with the principal as its creator and company admin.

    A corporate creator e-mail domain becomes the verified auto-join domain.
    """
    authorize(principal, CompanySnapshot(created_by=principal.id), Action.CREATE).require()

    profile = await db.get(Profile, principal.id)
    if profile is None:
        raise ReferenceNotFound("profile", principal.id)

    domain = email_domain(principal.email)
    corporate = is_corporate_domain(domain)

    company = Company(
        id=uuid.uuid4(),
        name=data.name,
        website=data.website,
        industry=data.industry,
        description=data.description,
        created_by=principal.id,
        email_domain=data.email_domain or domain or None,
        verified_domain=domain if corporate else None,
        auto_join_enabled=corporate,
        blocked_domains=[],
        verification_status="admin_confirmed" if corporate else "unverified",
    )
    async with constraint_guard(db, "Company"):
        db.add(company)
        profile.company_id = company.id
        profile.company_role = CompanyRole.ADMIN.value
        profile.company = company.name
        db.add(CompanyJoinAudit(
            user_id=principal.id,
            company_id=company.id,
            action="joined",
            join_method="admin_action",
            to_role=CompanyRole.ADMIN.value,
            performed_by=principal.id,
            details={"company_created": True, "is_corporate_domain": corporate},
        ))

    await sync_role(db, principal.id)
    logger.info(f"Company {company.id} created by {principal.id}")
    return company


async def assign_user_to_company(
    db: AsyncSession,
    principal: Principal,
    user_id: uuid.UUID,
    company_id: uuid.UUID,
    role: str = CompanyRole.MEMBER.value,
    membership_type: str = "primary",
):
    """
    Assign a profile to a company (admin only).

    `primary` sets the profile's company and company role; `secondary` adds
    a collaborator membership instead.
    """
    role = CompanyRole(role).value
    if membership_type == "secondary":
        return await add_secondary_membership(db, principal, user_id, company_id)
    if membership_type != "primary":
        raise ValueError(f"Unknown membership type: {membership_type}")

    profile = await db.get(Profile, user_id)
    if profile is not None:
        snapshot = ProfileSnapshot(id=profile.id, role=profile.role, company_id=profile.company_id)
        authorize(
            principal,
            snapshot,
            Action.UPDATE,
            changes={"company_id": company_id, "company_role": role},
        ).require()
    elif principal.is_admin:
        raise ReferenceNotFound("profile", user_id)
    else:
        raise NotPermitted(Decision.deny("forbidden"))

    company = await db.get(Company, company_id)
    if company is None:
        raise ReferenceNotFound("company", company_id)

    previous_company, previous_role = profile.company_id, profile.company_role
    if previous_company != company_id:
        action = "joined"
    elif role == CompanyRole.ADMIN.value and previous_role != role:
        action = "promoted"
    elif previous_role == CompanyRole.ADMIN.value and role != previous_role:
        action = "demoted"
    else:
        action = None

    async with constraint_guard(db, "Company assignment"):
        profile.company_id = company.id
        profile.company_role = role
        profile.company = company.name
        if action is not None:
            db.add(CompanyJoinAudit(
                user_id=user_id,
                company_id=company.id,
                action=action,
                join_method="admin_added",
                from_role=previous_role if previous_company == company_id else None,
                to_role=role,
                performed_by=principal.id,
            ))

    await sync_role(db, user_id)
    logger.info(f"Assigned {user_id} to company {company_id} as {role}")
    return profile


async def add_secondary_membership(
    db: AsyncSession,
    principal: Principal,
    user_id: uuid.UUID,
    company_id: uuid.UUID,
) -> CompanyMembership:
    """Add a collaborator membership (platform admin or that company's admin)."""
    authorize(principal, CompanySnapshot(id=company_id), Action.UPDATE).require()

    if await db.get(Profile, user_id) is None:
        raise ReferenceNotFound("profile", user_id)
    if await db.get(Company, company_id) is None:
        raise ReferenceNotFound("company", company_id)

    membership = CompanyMembership(
        user_id=user_id,
        company_id=company_id,
        role=CompanyRole.COLLABORATOR.value,
        status="active",
        joined_via="admin_added",
        invited_by=principal.id,
    )
    async with constraint_guard(db, "Company membership"):
        db.add(membership)
        db.add(CompanyJoinAudit(
            user_id=user_id,
            company_id=company_id,
            action="joined",
            join_method="admin_added",
            to_role=CompanyRole.COLLABORATOR.value,
            performed_by=principal.id,
        ))

    logger.info(f"Added {user_id} to company {company_id} as collaborator")
    return membership


async def find_autojoin_companies(db: AsyncSession, email: str) -> list[Company]:
    """Companies a new user may auto-join from their e-mail domain."""
    domain = email_domain(email)
    if not is_corporate_domain(domain):
        return []

    result = await db.execute(
        select(Company)
        .where(
            Company.auto_join_enabled.is_(True),
            Company.verified_domain == domain
        )
        .order_by(Company.name, Company.id)
    )
    return [c for c in result.scalars().all() if domain not in (c.blocked_domains or [])]


async def auto_join_company(db: AsyncSession, principal: Principal, company_id: uuid.UUID) -> Company:
    """
    Join a company as member through a verified e-mail domain.

    Raises:
        IneligibleTarget: auto-join disabled, domain mismatch, or domain blocked
    """
    company = await db.get(Company, company_id)
    if company is None:
        raise ReferenceNotFound("company", company_id)
    profile = await db.get(Profile, principal.id)
    if profile is None:
        raise ReferenceNotFound("profile", principal.id)

    domain = email_domain(principal.email)
    if not company.auto_join_enabled:
        raise IneligibleTarget("Auto-join is disabled for this company")
    if not domain or company.verified_domain != domain:
        raise IneligibleTarget("Email domain does not match company domain")
    if domain in (company.blocked_domains or []):
        raise IneligibleTarget("This email domain is blocked from auto-joining")

    async with constraint_guard(db, "Company auto-join"):
        profile.company_id = company.id
        profile.company_role = CompanyRole.MEMBER.value
        profile.company = company.name
        db.add(CompanyJoinAudit(
            user_id=principal.id,
            company_id=company.id,
            action="auto_joined",
            join_method="auto_domain",
            to_role=CompanyRole.MEMBER.value,
            performed_by=principal.id,
            details={"email_domain": domain, "verified_domain": company.verified_domain},
        ))

    await sync_role(db, principal.id)
    logger.info(f"{principal.id} auto-joined company {company.id} via {domain}")
    return company


# ============================================================================
# JOIN REQUESTS AND INVITATIONS
# ============================================================================

def _join(
    db: AsyncSession,
    profile: Profile,
    company: Company,
    role: str,
    join_method: str,
    performed_by: uuid.UUID,
    details: Optional[dict] = None,
) -> None:
    profile.company_id = company.id
    profile.company_role = role
    profile.company = company.name
    db.add(CompanyJoinAudit(
        user_id=profile.id,
        company_id=company.id,
        action="joined",
        join_method=join_method,
        to_role=role,
        performed_by=performed_by,
        details=details or {},
    ))


async def request_to_join_company(
    db: AsyncSession,
    principal: Principal,
    company_id: uuid.UUID,
    message: Optional[str] = None,
) -> CompanyJoinRequest:
    """
    Ask to join a company as its member.

    Raises:
        IneligibleTarget: the principal already has a company
        ConstraintViolation: a request is already pending
    """
    company = await db.get(Company, company_id)
    if company is None:
        raise ReferenceNotFound("company", company_id)
    profile = await db.get(Profile, principal.id)
    if profile is None:
        raise ReferenceNotFound("profile", principal.id)
    if profile.company_id is not None:
        raise IneligibleTarget("You already belong to a company")

    result = await db.execute(
        select(CompanyJoinRequest).where(
            CompanyJoinRequest.user_id == principal.id,
            CompanyJoinRequest.status == ReviewStatus.PENDING.value
        )
    )
    if result.first() is not None:
        raise ConstraintViolation("You already have a pending join request")

    result = await db.execute(
        select(CompanyJoinRequest).where(
            CompanyJoinRequest.company_id == company.id,
            CompanyJoinRequest.user_id == principal.id
        )
    )
    request = result.scalar_one_or_none()
    async with constraint_guard(db, "Join request"):
        if request is None:
            request = CompanyJoinRequest(company_id=company.id, user_id=principal.id)
            db.add(request)
        request.status = ReviewStatus.PENDING.value
        request.message = message
        request.response_message = None
        request.decided_by = None

    logger.info(f"{principal.id} requested to join company {company.id}")
    return request


async def decide_join_request(
    db: AsyncSession,
    principal: Principal,
    request_id: uuid.UUID,
    approve: bool,
    role: str = CompanyRole.MEMBER.value,
    response_message: Optional[str] = None,
) -> CompanyJoinRequest:
    """
    Approve or reject a pending join request (that company's admin, or a
    platform admin). Approval makes the company the requester's primary
    company.

    Raises:
        InvalidStateTransition: the request was already decided
        IneligibleTarget: the requester joined another company meanwhile
    """
    request = await db.get(CompanyJoinRequest, request_id)
    if request is None:
        if principal.is_admin:
            raise ReferenceNotFound("join_request", request_id)
        raise NotPermitted(Decision.deny("forbidden"))
    authorize(principal, CompanySnapshot(id=request.company_id), Action.UPDATE).require()

    target = ReviewStatus.APPROVED if approve else ReviewStatus.REJECTED
    if request.status != ReviewStatus.PENDING.value:
        raise InvalidStateTransition(request.status, target.value)

    role = CompanyRole(role).value
    profile = await db.get(Profile, request.user_id)
    if approve and profile.company_id is not None:
        raise IneligibleTarget("The requester already belongs to a company")

    company = await db.get(Company, request.company_id)
    async with constraint_guard(db, "Join request"):
        request.status = target.value
        request.response_message = response_message
        request.decided_by = principal.id
        if approve:
            _join(db, profile, company, role, "join_request", principal.id,
                        {"join_request_id": str(request.id)})

    if approve:
        await sync_role(db, profile.id)
    logger.info(f"Join request {request.id} {target.value} by {principal.id}")
    return request


async def invite_to_company(
    db: AsyncSession,
    principal: Principal,
    company_id: uuid.UUID,
    email: str,
    role: str = CompanyRole.MEMBER.value,
    now: Optional[datetime] = None,
) -> CompanyInvitation:
    """
    Invite an e-mail address into a company (company admin or platform
    admin). Re-inviting an address refreshes its token and expiry.
    """
    now = ensure_utc(now or utcnow())
    authorize(principal, CompanySnapshot(id=company_id), Action.UPDATE).require()
    if await db.get(Company, company_id) is None:
        raise ReferenceNotFound("company", company_id)

    role = CompanyRole(role).value
    if role not in (CompanyRole.ADMIN.value, CompanyRole.MEMBER.value):
        raise ValueError(f"Invitations cannot grant the {role} role")

    email = email.strip().lower()
    result = await db.execute(
        select(CompanyInvitation).where(
            CompanyInvitation.company_id == company_id,
            CompanyInvitation.email == email
        )
    )
    invitation = result.scalar_one_or_none()
    if invitation is not None and invitation.status == InvitationStatus.ACCEPTED.value:
        raise ConstraintViolation(f"{email} has already joined through an invitation")

    async with constraint_guard(db, "Company invitation"):
        if invitation is None:
            invitation = CompanyInvitation(company_id=company_id, email=email)
            db.add(invitation)
        else:
            invitation.token = new_token()
        invitation.inviter_id = principal.id
        invitation.role = role
        invitation.status = InvitationStatus.PENDING.value
        invitation.expires_at = now + timedelta(days=settings.company_invitation_days)

    logger.info(f"Invited {email} to company {company_id} as {role}")
    return invitation


async def accept_company_invitation(
    db: AsyncSession,
    principal: Principal,
    token: str,
    now: Optional[datetime] = None,
) -> Company:
    """
    Join a company through an invitation addressed to the principal's e-mail.

    Raises:
        IneligibleTarget: unknown, used or expired token, or another recipient
    """
    now = ensure_utc(now or utcnow())
    result = await db.execute(select(CompanyInvitation).where(CompanyInvitation.token == token))
    invitation = result.scalar_one_or_none()
    if invitation is None or invitation.status != InvitationStatus.PENDING.value:
        raise IneligibleTarget("Invalid or expired invitation")
    if ensure_utc(invitation.expires_at) <= now:
        invitation.status = InvitationStatus.EXPIRED.value
        await db.flush()
        raise IneligibleTarget("Invalid or expired invitation")
    if invitation.email != (principal.email or "").strip().lower():
        raise IneligibleTarget("This invitation was sent to a different email address")

    profile = await db.get(Profile, principal.id)
    if profile is None:
        raise ReferenceNotFound("profile", principal.id)
    company = await db.get(Company, invitation.company_id)

    async with constraint_guard(db, "Company invitation"):
        invitation.status = InvitationStatus.ACCEPTED.value
        invitation.accepted_at = now
        _join(db, profile, company, invitation.role, "invitation", invitation.inviter_id,
                    {"invitation_id": str(invitation.id)})

    await sync_role(db, principal.id)
    logger.info(f"{principal.id} joined company {company.id} by invitation")
    return company
