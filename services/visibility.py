"""
Visibility Rules

Per-entity read predicates composed by the policy engine. Each returns the
reason a principal may read the resource, or None when it may not.
"""

from typing import Optional

from database.models import RFPStatus
from schemas.principal import Principal
from schemas.resources import (
    RFPSnapshot,
    ComponentSnapshot,
    DocumentSnapshot,
    ProfileSnapshot,
    GrantFacts,
)


def rfp_read_reason(
    principal: Optional[Principal],
    rfp: RFPSnapshot,
    facts: GrantFacts,
) -> Optional[str]:
    """
    Public RFPs are readable by anyone; confidential ones need an approved
    access grant or an accepted invitation.
    """
    if principal is not None and principal.is_admin:
        return "admin"
    if rfp.is_public:
        return "public"
    if principal is not None and facts.access_approved:
        return "access_grant"
    if principal is not None and facts.invitation_accepted:
        return "invitation"
    return None


def nda_grant_reason(principal: Optional[Principal], facts: GrantFacts) -> Optional[str]:
    if principal is None:
        return None
    if facts.nda_approved:
        return "nda_grant"
    if facts.company_nda_approved:
        return "company_nda_grant"
    return None


def document_read_reason(
    principal: Optional[Principal],
    document: DocumentSnapshot,
    facts: GrantFacts,
) -> Optional[str]:
    """
    Documents are public only when they need no NDA and their RFP is public
    and no longer a draft. Otherwise an individual or company NDA grant for
    the RFP is required.
    """
    if principal is not None and principal.is_admin:
        return "admin"
    rfp = document.rfp
    if not document.requires_nda and rfp.is_public and rfp.status != RFPStatus.DRAFT:
        return "public"
    return nda_grant_reason(principal, facts)


def component_read_reason(
    principal: Optional[Principal],
    component: ComponentSnapshot,
    facts: GrantFacts,
) -> Optional[str]:
    """
    Components follow the document rule without the draft exclusion: a
    component of a public RFP is public in every lifecycle state.
    """
    if principal is not None and principal.is_admin:
        return "admin"
    if not component.requires_nda and component.rfp.is_public:
        return "public"
    return nda_grant_reason(principal, facts)


def shares_company_as_admin(principal: Principal, profile: ProfileSnapshot) -> bool:
    """Company admins may read the profiles of their own company's members."""
    return profile.company_id is not None and principal.is_company_admin(profile.company_id)
