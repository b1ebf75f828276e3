"""
Principal Resolver

Materializes the acting `Principal` from a verified claim set and the
persisted profile. The profile is the source of truth for roles; the claim
store is brought back in line by `sync_role`.
"""

import logging
import uuid
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from database.models import (
    UserRole,
    CompanyRole,
    Identity,
    Profile,
    CompanyMembership,
)
from schemas.common import utcnow
from schemas.principal import Principal
from schemas.resources import Action, ProfileSnapshot
from schemas.rfp import ProfileUpdate
from services.errors import PrincipalNotFound, ReferenceNotFound, constraint_guard
from services.policy import authorize


logger = logging.getLogger("rfp_marketplace.services.principals")

ROLE_FIELDS = frozenset({"role", "company_role", "company_id"})


def _parse_uuid(value) -> Optional[uuid.UUID]:
    if value is None or value == "":
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def principal_from_claims(claims: dict) -> Optional[Principal]:
    """
    Build a principal from the token claims alone.

    Returns None unless the claim set is internally consistent: a subject,
    a matching `user_id` when one is present, and enumerated role values.
    """
    sub = _parse_uuid(claims.get("sub"))
    if sub is None:
        return None

    user_id = claims.get("user_id")
    if user_id is not None and _parse_uuid(user_id) != sub:
        return None

    try:
        role = UserRole(claims.get(settings.role_claim_key))
        company_role = CompanyRole(claims["company_role"]) if claims.get("company_role") else None
    except ValueError:
        return None

    return Principal(
        id=sub,
        email=claims.get("email") or "",
        role=role,
        company_id=_parse_uuid(claims.get("company_id")),
        company_role=company_role,
        claim_role=role.value,
    )


def reconcile_role(claims: dict, profile: Profile) -> Tuple[UserRole, Optional[CompanyRole], bool]:
    """
    Reconcile the claimed role against the persisted profile.

    Returns:
        (role, company_role, claim_stale); the persisted values always win
    """
    role = UserRole(profile.role)
    company_role = CompanyRole(profile.company_role) if profile.company_role else None

    fast = principal_from_claims(claims)
    stale = (
        fast is None
        or fast.id != profile.id
        or fast.role != role
        or fast.company_role != company_role
        or fast.company_id != profile.company_id
    )
    return role, company_role, stale


async def resolve_principal(db: AsyncSession, claims: dict) -> Principal:
    """
    Resolve the acting principal for a verified claim set.

    The profile is always read, even when the claims are self-consistent:
    the persisted role wins over the token's, and a missing profile has to
    raise `PrincipalNotFound`. The claim fast path (`principal_from_claims`)
    therefore only feeds drift detection through `reconcile_role` and never
    short-circuits the read.

    Raises:
        PrincipalNotFound: the identity has no provisioned profile
    """
    user_id = _parse_uuid(claims.get("sub"))
    if user_id is None:
        raise PrincipalNotFound(claims.get("sub"))

    profile = await db.get(Profile, user_id)
    if profile is None:
        raise PrincipalNotFound(user_id)

    result = await db.execute(
        select(CompanyMembership.company_id).where(
            CompanyMembership.user_id == user_id,
            CompanyMembership.status == "active"
        )
    )
    secondary = frozenset(result.scalars().all())

    role, company_role, stale = reconcile_role(claims, profile)
    claim_role = claims.get(settings.role_claim_key)
    if stale:
        logger.warning(
            f"Role claim drift for {user_id}: claim={claim_role!r} persisted={role.value}"
        )

    return Principal(
        id=profile.id,
        email=profile.email,
        role=role,
        company_id=profile.company_id,
        company_role=company_role,
        secondary_company_ids=secondary - {profile.company_id},
        claim_role=claim_role,
        claim_stale=stale,
    )


async def sync_role(db: AsyncSession, principal_id: uuid.UUID) -> bool:
    """
    Push the persisted role facts into the identity's claim store.

    Idempotent: returns False when the claim store already matches.
    """
    profile = await db.get(Profile, principal_id)
    if profile is None:
        raise PrincipalNotFound(principal_id)
    identity = await db.get(Identity, principal_id)
    if identity is None:
        raise ReferenceNotFound("identity", principal_id)

    desired = {
        "role": profile.role,
        "company_role": profile.company_role,
        "company_id": str(profile.company_id) if profile.company_id else None,
    }
    current = dict(identity.app_metadata or {})
    if all(current.get(key) == value for key, value in desired.items()):
        return False

    current.update(desired)
    identity.app_metadata = current
    identity.claims_synced_at = utcnow()
    await db.flush()

    logger.info(f"Synced role claims for {principal_id}: role={profile.role}")
    return True


async def update_profile(
    db: AsyncSession,
    principal: Principal,
    user_id: uuid.UUID,
    changes: ProfileUpdate,
) -> Profile:
    """
    Apply a profile edit. Principals may edit their own contact fields;
    role and company fields, and other principals' profiles, need an admin.
    Role changes are pushed to the claim store.
    """
    fields = changes.model_dump(exclude_unset=True)

    profile = await db.get(Profile, user_id)
    if profile is None:
        if not principal.is_admin:
            authorize(principal, ProfileSnapshot(id=user_id, role=UserRole.BIDDER),
                      Action.UPDATE, changes=fields).require()
        raise ReferenceNotFound("profile", user_id)

    snapshot = ProfileSnapshot(id=profile.id, role=profile.role, company_id=profile.company_id)
    authorize(principal, snapshot, Action.UPDATE, changes=fields).require()

    async with constraint_guard(db, "Profile update"):
        for key, value in fields.items():
            setattr(profile, key, value)

    if ROLE_FIELDS & set(fields):
        await sync_role(db, user_id)
    return profile
