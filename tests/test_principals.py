import uuid

import pytest

from database.models import CompanyRole, Identity, UserRole
from schemas.rfp import ProfileUpdate
from services.errors import NotPermitted, PrincipalNotFound
from services.principals import (
    principal_from_claims,
    reconcile_role,
    resolve_principal,
    sync_role,
    update_profile,
)

from factories import add_membership, make_company, make_profile, principal_of


def claims_for(profile, role=None, **extra) -> dict:
    claims = {"sub": str(profile.id), "email": profile.email, "role": role or profile.role}
    claims.update(extra)
    return claims


def test_principal_from_claims_requires_consistent_claims():
    user_id = uuid.uuid4()

    principal = principal_from_claims({"sub": str(user_id), "user_id": str(user_id), "role": "bidder"})
    assert principal.id == user_id
    assert principal.role == UserRole.BIDDER

    assert principal_from_claims({"role": "admin"}) is None
    assert principal_from_claims({"sub": str(user_id), "user_id": str(uuid.uuid4()), "role": "admin"}) is None
    assert principal_from_claims({"sub": str(user_id), "role": "superuser"}) is None
    assert principal_from_claims({"sub": "not-a-uuid", "role": "admin"}) is None


def test_persisted_role_wins_over_claim(run_db):
    async def scenario(db):
        profile = await make_profile(db, role="admin", claim_role="bidder")

        role, company_role, stale = reconcile_role(claims_for(profile, role="bidder"), profile)
        assert role == UserRole.ADMIN
        assert company_role is None
        assert stale

        principal = await resolve_principal(db, claims_for(profile, role="bidder"))
        assert principal.is_admin
        assert principal.claim_role == "bidder"
        assert principal.claim_stale

    run_db(scenario)


def test_resolve_principal_collects_secondary_memberships(run_db):
    async def scenario(db):
        home = await make_company(db, name="Home Ltd")
        partner = await make_company(db, name="Partner Ltd")
        profile = await make_profile(db, company_id=home.id, company_role="member")
        await add_membership(db, profile, partner)
        await add_membership(db, profile, await make_company(db, name="Former Ltd"), status="inactive")

        principal = await resolve_principal(db, claims_for(profile, company_id=str(home.id),
                                                           company_role="member"))
        assert principal.company_id == home.id
        assert principal.company_role == CompanyRole.MEMBER
        assert principal.secondary_company_ids == frozenset({partner.id})
        assert principal.belongs_to(partner.id)
        assert not principal.claim_stale

    run_db(scenario)


def test_identity_without_profile_is_not_resolved(run_db):
    async def scenario(db):
        with pytest.raises(PrincipalNotFound):
            await resolve_principal(db, {"sub": str(uuid.uuid4()), "role": "bidder"})

    run_db(scenario)


def test_consistent_claims_never_skip_the_profile_read(run_db):
    async def scenario(db):
        demoted = await make_profile(db, role="bidder", claim_role="admin")
        claims = claims_for(demoted, role="admin", user_id=str(demoted.id))
        assert principal_from_claims(claims).is_admin

        principal = await resolve_principal(db, claims)
        assert not principal.is_admin
        assert principal.claim_stale

        orphan = uuid.uuid4()
        with pytest.raises(PrincipalNotFound):
            await resolve_principal(db, {"sub": str(orphan), "user_id": str(orphan), "role": "admin"})

    run_db(scenario)


def test_sync_role_is_idempotent(run_db):
    async def scenario(db):
        profile = await make_profile(db, role="client_reviewer", claim_role="bidder")

        assert await sync_role(db, profile.id) is True
        assert await sync_role(db, profile.id) is False

        identity = await db.get(Identity, profile.id)
        assert identity.app_metadata["role"] == "client_reviewer"
        assert identity.claims_synced_at is not None

    run_db(scenario)


def test_self_service_profile_edits(run_db):
    async def scenario(db):
        profile = await make_profile(db)
        principal = principal_of(profile)

        updated = await update_profile(db, principal, profile.id, ProfileUpdate(first_name="Ada", phone="555"))
        assert updated.first_name == "Ada"

        with pytest.raises(NotPermitted) as exc:
            await update_profile(db, principal, profile.id, ProfileUpdate(role="admin"))
        assert exc.value.decision.reason == "field_not_allowed"

        other = await make_profile(db)
        with pytest.raises(NotPermitted):
            await update_profile(db, principal, other.id, ProfileUpdate(first_name="Eve"))

    run_db(scenario)


def test_admin_role_change_syncs_claims(run_db):
    async def scenario(db):
        admin = principal_of(await make_profile(db, role="admin"))
        profile = await make_profile(db)

        await update_profile(db, admin, profile.id, ProfileUpdate(role="client_reviewer"))

        identity = await db.get(Identity, profile.id)
        assert identity.app_metadata["role"] == "client_reviewer"
        assert await sync_role(db, profile.id) is False

    run_db(scenario)
