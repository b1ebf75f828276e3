"""
Grant Queries

Store reads for access, invitation and NDA grants. These only ever query the
grant tables, never the resource being protected.
"""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import (
    AccessStatus,
    InvitationStatus,
    NDAStatus,
    NDA_GRANTING_STATUSES,
    RFPAccess,
    RFPInvitation,
    NDA,
    CompanyNDA,
)
from schemas.principal import Principal
from schemas.resources import GrantFacts


async def load_grant_facts(
    db: AsyncSession,
    principal: Optional[Principal],
    rfp_id: Optional[uuid.UUID],
) -> GrantFacts:
    """Approved access, accepted invitation, individual NDA and company NDA facts for one RFP."""
    if principal is None or rfp_id is None or principal.is_admin:
        return GrantFacts()

    access = select(RFPAccess.id).where(
        RFPAccess.rfp_id == rfp_id,
        RFPAccess.user_id == principal.id,
        RFPAccess.status == AccessStatus.APPROVED.value
    ).exists()
    invitation = select(RFPInvitation.id).where(
        RFPInvitation.rfp_id == rfp_id,
        RFPInvitation.recipient_user_id == principal.id,
        RFPInvitation.status == InvitationStatus.ACCEPTED.value
    ).exists()
    nda = select(NDA.id).where(
        NDA.rfp_id == rfp_id,
        NDA.user_id == principal.id,
        NDA.status.in_(NDA_GRANTING_STATUSES)
    ).exists()

    if principal.company_id is not None:
        company_nda = select(CompanyNDA.id).where(
            CompanyNDA.rfp_id == rfp_id,
            CompanyNDA.company_id == principal.company_id,
            CompanyNDA.status == NDAStatus.APPROVED.value
        ).exists()
        row = (await db.execute(select(access, invitation, nda, company_nda))).one()
        return GrantFacts(
            access_approved=row[0],
            invitation_accepted=row[1],
            nda_approved=row[2],
            company_nda_approved=row[3],
        )

    row = (await db.execute(select(access, invitation, nda))).one()
    return GrantFacts(access_approved=row[0], invitation_accepted=row[1], nda_approved=row[2])


async def approved_access_rfp_ids(db: AsyncSession, principal: Principal) -> set[uuid.UUID]:
    """RFPs the principal holds an approved access grant for."""
    result = await db.execute(
        select(RFPAccess.rfp_id).where(
            RFPAccess.user_id == principal.id,
            RFPAccess.status == AccessStatus.APPROVED.value
        )
    )
    return set(result.scalars().all())


async def accepted_invitation_rfp_ids(db: AsyncSession, principal: Principal) -> set[uuid.UUID]:
    """RFPs the principal has accepted an invitation to."""
    result = await db.execute(
        select(RFPInvitation.rfp_id).where(
            RFPInvitation.recipient_user_id == principal.id,
            RFPInvitation.status == InvitationStatus.ACCEPTED.value
        )
    )
    return set(result.scalars().all())


async def approved_access_user_ids(db: AsyncSession, rfp_id: uuid.UUID) -> list[uuid.UUID]:
    """Principals holding an approved access grant on the RFP, in id order."""
    result = await db.execute(
        select(RFPAccess.user_id)
        .where(
            RFPAccess.rfp_id == rfp_id,
            RFPAccess.status == AccessStatus.APPROVED.value
        )
        .order_by(RFPAccess.user_id)
    )
    return list(result.scalars().all())
