"""
Maintenance Router (v1)

Operator endpoints for the lifecycle sweep, company reconciliation and role
claim sync. Every endpoint is an admin-only system action.
"""

import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from api.auth.dependencies import require_system_action
from api.middleware.rate_limit import limiter, LIMIT_MAINTENANCE
from schemas.events import CloseResult, ExpirationCheck, ReconcileResult, CompanyMemberCount
from schemas.principal import Principal
from services.lifecycle import close_expired_rfps, check_rfp_expiration
from services.company_linkage import reconcile_all, member_counts
from services.principals import sync_role
from workers.queue import enqueue_company_reconciliation, get_job_status


router = APIRouter(prefix="/maintenance", tags=["Maintenance"])


# ============================================================================
# Response Models
# ============================================================================

class JobResponse(BaseModel):
    """Queued background job."""
    job_id: str
    status: str


class SyncRoleResponse(BaseModel):
    """Result of a role claim sync."""
    user_id: uuid.UUID
    changed: bool


# ============================================================================
# Lifecycle
# ============================================================================

@router.post("/rfps/close-expired", response_model=CloseResult)
@limiter.limit(LIMIT_MAINTENANCE)
async def close_expired(
    request: Request,
    principal: Principal = Depends(require_system_action("close_expired_rfps")),
    db: AsyncSession = Depends(get_db)
):
    """Close every active RFP whose closing date has passed."""
    return await close_expired_rfps(db)


@router.get("/rfps/{rfp_id}/expiration", response_model=ExpirationCheck)
async def rfp_expiration(
    rfp_id: uuid.UUID,
    principal: Principal = Depends(require_system_action("check_rfp_expiration")),
    db: AsyncSession = Depends(get_db)
):
    """Close one RFP if it has expired and report its deadline state."""
    return await check_rfp_expiration(db, rfp_id)


# ============================================================================
# Companies
# ============================================================================

@router.post("/companies/reconcile", response_model=ReconcileResult)
@limiter.limit(LIMIT_MAINTENANCE)
async def reconcile_companies(
    request: Request,
    principal: Principal = Depends(require_system_action("reconcile_companies")),
    db: AsyncSession = Depends(get_db)
):
    """Link profiles with free-text company names to company records."""
    return await reconcile_all(db, performed_by=principal.id)


@router.post("/companies/reconcile/jobs", response_model=JobResponse)
@limiter.limit(LIMIT_MAINTENANCE)
async def queue_company_reconciliation(
    request: Request,
    principal: Principal = Depends(require_system_action("reconcile_companies"))
):
    """Run the reconciliation on the background worker."""
    job_id = await enqueue_company_reconciliation(performed_by=str(principal.id))
    return JobResponse(job_id=job_id, status="queued")


@router.get("/jobs/{job_id}")
async def job_status(
    job_id: str,
    principal: Principal = Depends(require_system_action("job_status"))
):
    """Status of a background maintenance job."""
    status = await get_job_status(job_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return status


@router.get("/companies/member-counts", response_model=List[CompanyMemberCount])
async def company_member_counts(
    principal: Principal = Depends(require_system_action("member_counts")),
    db: AsyncSession = Depends(get_db)
):
    """De-duplicated member counts per company."""
    return await member_counts(db)


# ============================================================================
# Principals
# ============================================================================

@router.post("/principals/{user_id}/sync-role", response_model=SyncRoleResponse)
async def sync_principal_role(
    user_id: uuid.UUID,
    principal: Principal = Depends(require_system_action("sync_role")),
    db: AsyncSession = Depends(get_db)
):
    """Copy the persisted role into the identity's claim store."""
    changed = await sync_role(db, user_id)
    return SyncRoleResponse(user_id=user_id, changed=changed)
