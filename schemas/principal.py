"""
Principal Schema

The materialized acting principal. Built once per request by the principal
resolver and passed by value into every authorization decision.
"""

import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from database.models import UserRole, CompanyRole


class Principal(BaseModel):
    """Authenticated actor with its persisted role facts."""
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(..., description="Profile / identity id")
    email: str = Field(..., description="Profile e-mail")
    role: UserRole = Field(..., description="Persisted primary role")
    company_id: Optional[uuid.UUID] = Field(default=None, description="Primary company")
    company_role: Optional[CompanyRole] = Field(
        default=None,
        description="Role inside the primary company"
    )
    secondary_company_ids: frozenset[uuid.UUID] = Field(
        default_factory=frozenset,
        description="Companies joined through active secondary memberships"
    )
    claim_role: Optional[str] = Field(
        default=None,
        description="Role carried by the identity token, as presented"
    )
    claim_stale: bool = Field(
        default=False,
        description="Token claims disagree with the persisted profile"
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_bidder(self) -> bool:
        return self.role == UserRole.BIDDER

    @property
    def is_client_reviewer(self) -> bool:
        return self.role == UserRole.CLIENT_REVIEWER

    def belongs_to(self, company_id: Optional[uuid.UUID]) -> bool:
        """Primary or active secondary membership of `company_id`."""
        if company_id is None:
            return False
        return company_id == self.company_id or company_id in self.secondary_company_ids

    def is_company_admin(self, company_id: Optional[uuid.UUID]) -> bool:
        return (
            company_id is not None
            and company_id == self.company_id
            and self.company_role == CompanyRole.ADMIN
        )
