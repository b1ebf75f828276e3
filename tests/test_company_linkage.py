import uuid

import pytest
from sqlalchemy import select

from database.models import AnalyticsEvent, CompanyJoinAudit, Identity, Profile
from schemas.rfp import CompanyCreate
from services.company_linkage import (
    accept_company_invitation,
    add_secondary_membership,
    assign_user_to_company,
    auto_join_company,
    create_company,
    decide_join_request,
    find_autojoin_companies,
    invite_to_company,
    match_company,
    member_counts,
    reconcile_all,
    request_to_join_company,
)
from services.errors import ConstraintViolation, IneligibleTarget, InvalidStateTransition, NotPermitted

from factories import NOW, add_membership, days, make_company, make_profile, principal_of


ACME, HOLDINGS, BIG = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
CANDIDATES = [(ACME, "Acme"), (HOLDINGS, "Acme Holdings"), (BIG, "Big Acme Co")]


@pytest.mark.parametrize("text,expected", [
    ("ACME", ACME),
    ("acme hold", HOLDINGS),
    ("me hold", HOLDINGS),
    ("Acme Holdings Europe", HOLDINGS),
    ("  big acme co ", BIG),
    ("Globex", None),
    ("", None),
    (None, None),
])
def test_match_company_ranks(text, expected):
    assert match_company(text, CANDIDATES) == expected


def test_match_company_ignores_candidate_order():
    twins = [(uuid.uuid4(), "Northwind"), (uuid.uuid4(), "Northwind")]
    assert match_company("northwind", twins) == match_company("northwind", list(reversed(twins)))


async def events(db, event_type) -> list[AnalyticsEvent]:
    result = await db.execute(select(AnalyticsEvent).where(AnalyticsEvent.event_type == event_type))
    return list(result.scalars().all())


def test_reconcile_links_text_profiles(run_db):
    async def scenario(db):
        admin = await make_profile(db, role="admin")
        acme = await make_company(db, name="Acme Corp")
        plain = await make_profile(db, company="acme corp")
        owner = await make_profile(db, company="Acme", company_role="admin")
        lost = await make_profile(db, company="Nowhere Industries")
        await make_profile(db, company="Acme Corp", company_id=acme.id, company_role="member")

        outcome = await reconcile_all(db, performed_by=admin.id)

        assert outcome.attempted == 3
        assert outcome.linked_count == 2
        assert [(f.user_id, f.reason) for f in outcome.failures] == [(lost.id, "no_matching_company_found")]

        assert (plain.company_id, plain.company_role) == (acme.id, "member")
        assert (owner.company_id, owner.company_role) == (acme.id, "admin")
        assert len(await events(db, "company_auto_linked")) == 2
        assert len(await events(db, "company_link_failed")) == 1

        audits = (await db.execute(select(CompanyJoinAudit))).scalars().all()
        assert {a.user_id for a in audits} == {plain.id, owner.id}
        assert all(a.performed_by == admin.id for a in audits)

        again = await reconcile_all(db)
        assert (again.attempted, again.linked_count) == (1, 0)

    run_db(scenario)


def test_member_counts_count_each_principal_once(run_db):
    async def scenario(db):
        acme = await make_company(db, name="Acme Corp")
        beta = await make_company(db, name="Beta Ltd")

        await make_profile(db, company_id=acme.id, company_role="member", company="Beta Ltd")
        by_text = await make_profile(db, company="acme corp")
        both = await make_profile(db, company_id=acme.id, company_role="admin")
        await add_membership(db, both, acme)
        collaborator = await make_profile(db, company_id=beta.id, company_role="member")
        await add_membership(db, collaborator, acme)
        await add_membership(db, by_text, beta)

        counts = {c.name: c for c in await member_counts(db)}
        assert list(counts) == ["Acme Corp", "Beta Ltd"]
        assert (counts["Acme Corp"].primary, counts["Acme Corp"].text_matched,
                counts["Acme Corp"].secondary, counts["Acme Corp"].total) == (2, 1, 1, 4)
        assert (counts["Beta Ltd"].primary, counts["Beta Ltd"].secondary, counts["Beta Ltd"].total) == (1, 1, 2)

    run_db(scenario)


def test_create_company_with_corporate_domain(run_db):
    async def scenario(db):
        founder = await make_profile(db, email="ceo@northwind.io")
        company = await create_company(db, principal_of(founder), CompanyCreate(name="Northwind"))

        assert company.verified_domain == "northwind.io"
        assert company.auto_join_enabled is True
        assert (founder.company_id, founder.company_role) == (company.id, "admin")

        identity = await db.get(Identity, founder.id)
        assert identity.app_metadata["company_role"] == "admin"
        assert identity.app_metadata["company_id"] == str(company.id)

    run_db(scenario)


def test_create_company_with_consumer_domain(run_db):
    async def scenario(db):
        founder = await make_profile(db, email="someone@gmail.com")
        company = await create_company(db, principal_of(founder), CompanyCreate(name="Solo Consulting"))

        assert company.verified_domain is None
        assert company.auto_join_enabled is False
        assert company.verification_status == "unverified"
        assert await find_autojoin_companies(db, "other@gmail.com") == []

    run_db(scenario)


def test_auto_join_by_verified_domain(run_db):
    async def scenario(db):
        company = await make_company(db, name="Northwind", verified_domain="northwind.io",
                                     auto_join_enabled=True, blocked_domains=[])
        assert [c.id for c in await find_autojoin_companies(db, "dev@northwind.io")] == [company.id]

        joiner = await make_profile(db, email="dev@northwind.io")
        await auto_join_company(db, principal_of(joiner), company.id)
        assert (joiner.company_id, joiner.company_role) == (company.id, "member")

        outsider = await make_profile(db, email="dev@southwind.io")
        with pytest.raises(IneligibleTarget, match="does not match"):
            await auto_join_company(db, principal_of(outsider), company.id)

    run_db(scenario)


def test_auto_join_refusals(run_db):
    async def scenario(db):
        closed = await make_company(db, name="Closed Co", verified_domain="closed.io",
                                    auto_join_enabled=False, blocked_domains=[])
        blocked = await make_company(db, name="Blocked Co", verified_domain="blocked.io",
                                     auto_join_enabled=True, blocked_domains=["blocked.io"])

        with pytest.raises(IneligibleTarget, match="disabled"):
            await auto_join_company(db, principal_of(await make_profile(db, email="a@closed.io")), closed.id)
        with pytest.raises(IneligibleTarget, match="blocked"):
            await auto_join_company(db, principal_of(await make_profile(db, email="a@blocked.io")), blocked.id)
        assert await find_autojoin_companies(db, "b@blocked.io") == []

    run_db(scenario)


def test_secondary_membership_rules(run_db):
    async def scenario(db):
        acme = await make_company(db, name="Acme Corp")
        other = await make_company(db, name="Other Co")
        acme_admin = principal_of(await make_profile(db, company_id=acme.id, company_role="admin"))
        collaborator = await make_profile(db)

        membership = await add_secondary_membership(db, acme_admin, collaborator.id, acme.id)
        assert membership.role == "collaborator"

        with pytest.raises(ConstraintViolation):
            await add_secondary_membership(db, acme_admin, collaborator.id, acme.id)
        with pytest.raises(NotPermitted):
            await add_secondary_membership(db, acme_admin, collaborator.id, other.id)

    run_db(scenario)


def test_admin_assignment_records_audit(run_db):
    async def scenario(db):
        admin = principal_of(await make_profile(db, role="admin"))
        acme = await make_company(db, name="Acme Corp")
        user = await make_profile(db)

        await assign_user_to_company(db, admin, user.id, acme.id)
        await assign_user_to_company(db, admin, user.id, acme.id, role="admin")

        profile = await db.get(Profile, user.id)
        assert (profile.company_id, profile.company_role, profile.company) == (acme.id, "admin", "Acme Corp")

        result = await db.execute(
            select(CompanyJoinAudit.action).where(CompanyJoinAudit.user_id == user.id)
        )
        assert sorted(result.scalars().all()) == ["joined", "promoted"]

        with pytest.raises(NotPermitted):
            await assign_user_to_company(db, principal_of(user), user.id, acme.id)

    run_db(scenario)


def test_join_request_approval_sets_primary_company(run_db):
    async def scenario(db):
        acme = await make_company(db, name="Acme Corp")
        acme_admin = principal_of(await make_profile(db, company_id=acme.id, company_role="admin"))
        applicant = await make_profile(db)

        request = await request_to_join_company(db, principal_of(applicant), acme.id, message="Hi")
        assert request.status == "pending"
        with pytest.raises(ConstraintViolation):
            await request_to_join_company(db, principal_of(applicant), acme.id)

        await decide_join_request(db, acme_admin, request.id, approve=True)

        profile = await db.get(Profile, applicant.id)
        assert (profile.company_id, profile.company_role, profile.company) == (acme.id, "member", "Acme Corp")
        identity = await db.get(Identity, applicant.id)
        assert identity.app_metadata["company_id"] == str(acme.id)

        audit = (await db.execute(
            select(CompanyJoinAudit.join_method).where(CompanyJoinAudit.user_id == applicant.id)
        )).scalars().all()
        assert audit == ["join_request"]

        with pytest.raises(InvalidStateTransition):
            await decide_join_request(db, acme_admin, request.id, approve=False)
        with pytest.raises(IneligibleTarget):
            await request_to_join_company(db, principal_of(profile), acme.id)

    run_db(scenario)


def test_join_requests_are_decided_by_that_company_only(run_db):
    async def scenario(db):
        acme = await make_company(db, name="Acme Corp")
        other = await make_company(db, name="Other Co")
        other_admin = principal_of(await make_profile(db, company_id=other.id, company_role="admin"))
        acme_member = principal_of(await make_profile(db, company_id=acme.id, company_role="member"))
        applicant = await make_profile(db)

        request = await request_to_join_company(db, principal_of(applicant), acme.id)
        for decider in (other_admin, acme_member):
            with pytest.raises(NotPermitted):
                await decide_join_request(db, decider, request.id, approve=True)

        admin = principal_of(await make_profile(db, role="admin"))
        rejected = await decide_join_request(db, admin, request.id, approve=False, response_message="No")
        assert rejected.status == "rejected"
        assert (await db.get(Profile, applicant.id)).company_id is None

    run_db(scenario)


def test_company_invitation_flow(run_db):
    async def scenario(db):
        acme = await make_company(db, name="Acme Corp")
        acme_admin = principal_of(await make_profile(db, company_id=acme.id, company_role="admin"))
        invitee = await make_profile(db, email="new.hire@acme.io")
        stranger = principal_of(await make_profile(db, email="someone@acme.io"))

        invitation = await invite_to_company(db, acme_admin, acme.id, "New.Hire@acme.io", role="admin", now=NOW)
        assert invitation.email == "new.hire@acme.io"

        with pytest.raises(IneligibleTarget, match="different email"):
            await accept_company_invitation(db, stranger, invitation.token, now=NOW)

        company = await accept_company_invitation(db, principal_of(invitee), invitation.token, now=NOW)
        assert company.id == acme.id
        profile = await db.get(Profile, invitee.id)
        assert (profile.company_id, profile.company_role) == (acme.id, "admin")
        assert invitation.status == "accepted"

        with pytest.raises(IneligibleTarget):
            await accept_company_invitation(db, principal_of(invitee), invitation.token, now=NOW)
        with pytest.raises(NotPermitted):
            await invite_to_company(db, stranger, acme.id, "x@acme.io", now=NOW)

    run_db(scenario)


def test_company_invitations_expire_and_can_be_refreshed(run_db):
    async def scenario(db):
        acme = await make_company(db, name="Acme Corp")
        acme_admin = principal_of(await make_profile(db, company_id=acme.id, company_role="admin"))
        invitee = principal_of(await make_profile(db, email="slow@acme.io"))

        first = await invite_to_company(db, acme_admin, acme.id, "slow@acme.io", now=NOW)
        stale_token = first.token
        with pytest.raises(IneligibleTarget, match="expired"):
            await accept_company_invitation(db, invitee, stale_token, now=NOW + days(8))

        refreshed = await invite_to_company(db, acme_admin, acme.id, "slow@acme.io", now=NOW + days(8))
        assert refreshed.id == first.id
        assert refreshed.token != stale_token
        await accept_company_invitation(db, invitee, refreshed.token, now=NOW + days(9))

    run_db(scenario)
