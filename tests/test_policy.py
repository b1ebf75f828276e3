import itertools
import uuid
from datetime import timedelta

import pytest

from schemas.principal import Principal
from schemas.resources import (
    Action,
    AccessGrantSnapshot,
    CompanyNDASnapshot,
    CompanySnapshot,
    ComponentSnapshot,
    DocumentSnapshot,
    GrantFacts,
    NDASnapshot,
    NotificationSnapshot,
    ProfileSnapshot,
    QuestionSnapshot,
    RFPSnapshot,
    SubmissionSnapshot,
    SystemResource,
)
from services.errors import NotPermitted
from services.policy import authorize

from factories import NOW


def make_principal(role="bidder", company_id=None, company_role=None, secondary=()):
    return Principal(
        id=uuid.uuid4(),
        email="p@example.org",
        role=role,
        company_id=company_id,
        company_role=company_role,
        secondary_company_ids=frozenset(secondary),
    )


def rfp(visibility="public", status="active"):
    return RFPSnapshot(id=uuid.uuid4(), visibility=visibility, status=status, closing_date=NOW)


ADMIN = make_principal("admin")
BIDDER = make_principal("bidder")


# ============================================================================
# Documents and components
# ============================================================================

@pytest.mark.parametrize(
    "requires_nda,public,has_nda",
    list(itertools.product([False, True], repeat=3)),
)
def test_document_truth_table(requires_nda, public, has_nda):
    doc = DocumentSnapshot(
        id=uuid.uuid4(),
        rfp=rfp("public" if public else "confidential"),
        requires_nda=requires_nda,
    )
    facts = GrantFacts(nda_approved=has_nda)

    decision = authorize(BIDDER, doc, Action.READ, facts=facts)

    expected = (not requires_nda and public) or has_nda
    assert decision.allowed is expected
    if not expected:
        assert decision.reason == "not_visible"


def test_company_nda_grants_document_access():
    doc = DocumentSnapshot(rfp=rfp("confidential"), requires_nda=True)
    decision = authorize(BIDDER, doc, Action.READ, facts=GrantFacts(company_nda_approved=True))
    assert decision.allowed
    assert decision.reason == "company_nda_grant"


def test_draft_rfp_hides_public_documents_but_not_components():
    draft = rfp("public", status="draft")
    doc = DocumentSnapshot(rfp=draft, requires_nda=False)
    component = ComponentSnapshot(rfp=draft, requires_nda=False)

    assert not authorize(None, doc, Action.READ)
    assert authorize(None, component, Action.READ).reason == "public"


def test_anonymous_nda_facts_never_grant():
    doc = DocumentSnapshot(rfp=rfp("public"), requires_nda=True)
    assert not authorize(None, doc, Action.READ, facts=GrantFacts(nda_approved=True))


def test_admin_reads_everything():
    doc = DocumentSnapshot(rfp=rfp("confidential", status="draft"), requires_nda=True)
    decision = authorize(ADMIN, doc, Action.READ)
    assert decision.allowed and decision.reason == "admin"
    assert authorize(ADMIN, SystemResource(name="close_expired_rfps"), Action.EXECUTE)


# ============================================================================
# RFPs
# ============================================================================

def test_confidential_rfp_needs_access_grant():
    confidential = rfp("confidential")

    assert authorize(BIDDER, confidential, Action.READ).reason == "not_visible"
    granted = authorize(BIDDER, confidential, Action.READ, facts=GrantFacts(access_approved=True))
    assert granted.allowed and granted.reason == "access_grant"


def test_accepted_invitation_opens_confidential_rfp():
    confidential = rfp("confidential")
    invited = GrantFacts(invitation_accepted=True)

    decision = authorize(BIDDER, confidential, Action.READ, facts=invited)
    assert decision.allowed and decision.reason == "invitation"
    assert not authorize(None, confidential, Action.READ, facts=invited)
    assert authorize(BIDDER, confidential, Action.UPDATE, facts=invited).reason == "admin_only"


def test_public_rfp_readable_by_anonymous():
    assert authorize(None, rfp("public"), Action.READ).reason == "public"


def test_rfp_writes_are_admin_only_and_hidden_rows_stay_hidden():
    assert authorize(BIDDER, rfp("public"), Action.UPDATE).reason == "admin_only"
    assert authorize(BIDDER, rfp("confidential"), Action.UPDATE).reason == "not_visible"
    assert authorize(ADMIN, rfp("confidential"), Action.DELETE).allowed


# ============================================================================
# Profiles
# ============================================================================

def test_profile_self_service():
    me = ProfileSnapshot(id=BIDDER.id, role="bidder")

    assert authorize(BIDDER, me, Action.READ).reason == "self"
    assert authorize(BIDDER, me, Action.UPDATE, changes={"phone": "555-0100"}).allowed
    denied = authorize(BIDDER, me, Action.UPDATE, changes={"role": "admin"})
    assert not denied and denied.reason == "field_not_allowed"


def test_profile_of_someone_else():
    company_id = uuid.uuid4()
    company_admin = make_principal("bidder", company_id=company_id, company_role="admin")
    member = ProfileSnapshot(id=uuid.uuid4(), role="bidder", company_id=company_id)
    outsider = ProfileSnapshot(id=uuid.uuid4(), role="bidder", company_id=uuid.uuid4())

    assert authorize(company_admin, member, Action.READ).reason == "company_admin"
    assert not authorize(company_admin, member, Action.UPDATE)
    assert not authorize(company_admin, outsider, Action.READ)
    assert not authorize(None, member, Action.READ)


def test_company_member_without_admin_role_cannot_read_colleagues():
    company_id = uuid.uuid4()
    member = make_principal("bidder", company_id=company_id, company_role="member")
    colleague = ProfileSnapshot(id=uuid.uuid4(), role="bidder", company_id=company_id)
    assert authorize(member, colleague, Action.READ).reason == "forbidden"


# ============================================================================
# NDAs, access grants, companies
# ============================================================================

def test_nda_create_needs_readable_rfp():
    public_nda = NDASnapshot(rfp=rfp("public"), user_id=BIDDER.id)
    hidden_nda = NDASnapshot(rfp=rfp("confidential"), user_id=BIDDER.id)
    foreign_nda = NDASnapshot(rfp=rfp("public"), user_id=uuid.uuid4())

    assert authorize(BIDDER, public_nda, Action.CREATE).allowed
    assert authorize(BIDDER, hidden_nda, Action.CREATE).reason == "not_visible"
    assert authorize(BIDDER, foreign_nda, Action.READ).reason == "forbidden"
    assert authorize(BIDDER, public_nda, Action.UPDATE).reason == "admin_only"


def test_strangers_cannot_tell_hidden_grant_rows_exist():
    hidden = rfp("confidential")
    company_id = uuid.uuid4()
    rows = [
        NDASnapshot(rfp=hidden, user_id=uuid.uuid4()),
        CompanyNDASnapshot(rfp=hidden, company_id=company_id, signed_by=uuid.uuid4()),
        AccessGrantSnapshot(rfp_id=hidden.id, user_id=uuid.uuid4(), rfp=hidden),
    ]
    for row in rows:
        for action in (Action.READ, Action.UPDATE, Action.CREATE):
            assert authorize(BIDDER, row, action).reason == "not_visible"
            assert authorize(None, row, action).reason == "not_visible"

    # Once the RFP is readable, the ordinary denial comes back
    granted = GrantFacts(access_approved=True)
    assert authorize(BIDDER, rows[0], Action.READ, facts=granted).reason == "forbidden"
    assert authorize(BIDDER, rows[1], Action.READ, facts=granted).reason == "forbidden"
    assert authorize(BIDDER, rows[2], Action.READ, facts=granted).reason == "admin_only"

    member = make_principal("bidder", company_id=company_id, company_role="member")
    assert authorize(member, rows[1], Action.READ).reason == "company_member"


def test_company_nda_rules():
    company_id = uuid.uuid4()
    company_admin = make_principal("bidder", company_id=company_id, company_role="admin")
    member = make_principal("bidder", company_id=company_id, company_role="member")
    collaborator = make_principal("bidder", secondary=[company_id])

    signed = CompanyNDASnapshot(rfp=rfp(), company_id=company_id, signed_by=company_admin.id)
    assert authorize(company_admin, signed, Action.CREATE).reason == "company_admin"
    assert authorize(member, signed, Action.READ).reason == "company_member"
    assert authorize(collaborator, signed, Action.READ).reason == "company_member"

    by_member = CompanyNDASnapshot(rfp=rfp(), company_id=company_id, signed_by=member.id)
    assert not authorize(member, by_member, Action.CREATE)


def test_access_grants_are_readable_by_their_subject_only():
    grant = AccessGrantSnapshot(rfp_id=uuid.uuid4(), user_id=BIDDER.id, status="approved")
    assert authorize(BIDDER, grant, Action.READ).allowed
    assert authorize(BIDDER, grant, Action.UPDATE).reason == "admin_only"
    assert not authorize(make_principal(), grant, Action.READ)


def test_company_rules():
    company_id = uuid.uuid4()
    company_admin = make_principal("bidder", company_id=company_id, company_role="admin")

    assert authorize(BIDDER, CompanySnapshot(created_by=BIDDER.id), Action.CREATE).allowed
    assert not authorize(BIDDER, CompanySnapshot(created_by=uuid.uuid4()), Action.CREATE)
    assert authorize(company_admin, CompanySnapshot(id=company_id), Action.UPDATE).allowed
    assert not authorize(BIDDER, CompanySnapshot(id=company_id), Action.READ)


# ============================================================================
# Questions
# ============================================================================

def test_question_visibility():
    asker = make_principal()
    pending = QuestionSnapshot(rfp=rfp(), user_id=asker.id, status="pending")
    published = QuestionSnapshot(rfp=rfp(), user_id=asker.id, status="published")
    hidden = QuestionSnapshot(rfp=rfp("confidential"), user_id=asker.id, status="published")

    assert authorize(asker, pending, Action.READ).reason == "self"
    assert authorize(BIDDER, pending, Action.READ).reason == "forbidden"
    assert authorize(BIDDER, published, Action.READ).reason == "published"
    assert authorize(BIDDER, hidden, Action.READ).reason == "not_visible"
    assert authorize(asker, pending, Action.UPDATE).reason == "admin_only"


# ============================================================================
# Submissions
# ============================================================================

def test_submission_readers():
    company_id = uuid.uuid4()
    owner = make_principal("bidder", company_id=company_id, company_role="member")
    colleague = make_principal("bidder", company_id=company_id, company_role="member")
    collaborator = make_principal("bidder", secondary=[company_id])
    submission = SubmissionSnapshot(rfp=rfp(), user_id=owner.id, company_id=company_id)

    assert authorize(owner, submission, Action.READ).reason == "self"
    assert authorize(colleague, submission, Action.READ).reason == "company_member"
    assert authorize(collaborator, submission, Action.READ).reason == "company_member"
    assert authorize(BIDDER, submission, Action.READ).reason == "forbidden"
    assert authorize(None, submission, Action.READ).reason == "anonymous"
    assert authorize(ADMIN, submission, Action.READ).reason == "admin"

    for principal in (owner, colleague):
        assert authorize(principal, submission, Action.UPDATE).reason == "admin_only"
        assert authorize(principal, submission, Action.DELETE).reason == "admin_only"
    assert authorize(ADMIN, submission, Action.UPDATE).allowed


def test_personal_submissions_are_private_to_their_owner():
    owner = make_principal()
    submission = SubmissionSnapshot(rfp=rfp(), user_id=owner.id)

    assert authorize(owner, submission, Action.READ).reason == "self"
    assert authorize(make_principal(company_id=uuid.uuid4()), submission, Action.READ).reason == "forbidden"


def test_submission_create():
    company_id = uuid.uuid4()
    bidder = make_principal("bidder", company_id=company_id, company_role="member")

    own = SubmissionSnapshot(rfp=rfp(), user_id=bidder.id, company_id=company_id)
    personal = SubmissionSnapshot(rfp=rfp(), user_id=bidder.id)
    for_other_company = SubmissionSnapshot(rfp=rfp(), user_id=bidder.id, company_id=uuid.uuid4())
    for_someone_else = SubmissionSnapshot(rfp=rfp(), user_id=uuid.uuid4(), company_id=company_id)
    hidden = SubmissionSnapshot(rfp=rfp("confidential"), user_id=bidder.id, company_id=company_id)

    assert authorize(bidder, own, Action.CREATE).reason == "self"
    assert authorize(bidder, personal, Action.CREATE).reason == "self"
    assert authorize(bidder, for_other_company, Action.CREATE).reason == "forbidden"
    assert authorize(bidder, for_someone_else, Action.CREATE).reason == "forbidden"
    assert authorize(bidder, hidden, Action.CREATE).reason == "not_visible"
    assert authorize(bidder, hidden, Action.CREATE, facts=GrantFacts(invitation_accepted=True)).allowed
    assert authorize(None, own, Action.CREATE).reason == "anonymous"


def test_strangers_cannot_tell_hidden_submissions_exist():
    submission = SubmissionSnapshot(rfp=rfp("confidential"), user_id=uuid.uuid4(), company_id=uuid.uuid4())
    for action in (Action.READ, Action.UPDATE, Action.CREATE):
        assert authorize(BIDDER, submission, action).reason == "not_visible"
        assert authorize(None, submission, action).reason == "not_visible"


# ============================================================================
# Notifications
# ============================================================================

def test_notification_read_marker_moves_forward_once():
    owner = make_principal()
    created = NOW - timedelta(hours=1)
    unread = NotificationSnapshot(id=uuid.uuid4(), user_id=owner.id, created_at=created)
    read = NotificationSnapshot(id=uuid.uuid4(), user_id=owner.id, created_at=created, read_at=NOW)

    assert authorize(owner, unread, Action.UPDATE, changes={"read_at": NOW}, now=NOW).allowed
    assert authorize(owner, read, Action.UPDATE, changes={"read_at": NOW}, now=NOW).reason == "already_read"
    assert authorize(owner, unread, Action.UPDATE, changes={"read_at": NOW - timedelta(hours=2)},
                     now=NOW).reason == "read_at_invalid"
    assert authorize(owner, unread, Action.UPDATE, changes={"read_at": NOW - timedelta(minutes=1)},
                     now=NOW).reason == "read_at_invalid"
    assert authorize(owner, unread, Action.UPDATE, changes={"read_at": NOW + timedelta(minutes=2)},
                     now=NOW).allowed
    assert authorize(owner, unread, Action.UPDATE, changes={"read_at": NOW + timedelta(days=3650)},
                     now=NOW).reason == "read_at_invalid"
    # Without a reference time no marker is accepted
    assert authorize(owner, unread, Action.UPDATE, changes={"read_at": NOW}).reason == "read_at_invalid"
    assert authorize(owner, unread, Action.UPDATE, changes={"title": "x"}).reason == "field_not_allowed"
    assert authorize(BIDDER, unread, Action.READ).reason == "forbidden"


def test_system_actions_need_admin():
    op = SystemResource(name="reconcile_companies")
    assert authorize(BIDDER, op, Action.EXECUTE).reason == "admin_only"
    assert not authorize(None, op, Action.EXECUTE)


def test_require_raises_with_decision_attached():
    with pytest.raises(NotPermitted) as exc:
        authorize(BIDDER, rfp("confidential"), Action.READ).require()
    assert exc.value.decision.reason == "not_visible"
