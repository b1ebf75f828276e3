"""
RFP Marketplace - Services Package

Authorization, RFP lifecycle, notifications, principal resolution,
company linkage and RFP participation.
"""

from services.errors import (
    MarketplaceError,
    PrincipalNotFound,
    InvalidStateTransition,
    ConstraintViolation,
    ReferenceNotFound,
    NotPermitted,
    FolderCycleError,
    IneligibleTarget,
    constraint_guard
)
from services.policy import authorize
from services.principals import (
    principal_from_claims,
    reconcile_role,
    resolve_principal,
    sync_role,
    update_profile
)
from services.notifications import (
    on_transition,
    list_notifications,
    unread_count,
    mark_read,
    mark_all_read
)
from services.lifecycle import (
    guard_status,
    publish_rfp,
    close_rfp,
    update_rfp,
    close_expired_rfps,
    check_rfp_expiration
)
from services.authorization import (
    check,
    visible_rfps,
    visible_documents,
    visible_components
)
from services.documents import (
    validate_parent_folder,
    move_document
)
from services.workflow import (
    submit_question,
    answer_question,
    sign_nda,
    decide_nda,
    sign_company_nda,
    decide_company_nda,
    set_access
)
from services.company_linkage import (
    match_company,
    link_by_name,
    reconcile_all,
    member_counts,
    create_company,
    assign_user_to_company,
    add_secondary_membership,
    find_autojoin_companies,
    auto_join_company,
    request_to_join_company,
    decide_join_request,
    invite_to_company,
    accept_company_invitation
)
from services.participation import (
    send_rfp_invitation,
    accept_rfp_invitation,
    decline_rfp_invitation,
    register_interest,
    decide_registration,
    submit_proposal,
    review_submission,
    list_submissions
)

__all__ = [
    # Errors
    "MarketplaceError",
    "PrincipalNotFound",
    "InvalidStateTransition",
    "ConstraintViolation",
    "ReferenceNotFound",
    "NotPermitted",
    "FolderCycleError",
    "IneligibleTarget",
    "constraint_guard",
    # Authorization
    "authorize",
    "check",
    "visible_rfps",
    "visible_documents",
    "visible_components",
    # Principals
    "principal_from_claims",
    "reconcile_role",
    "resolve_principal",
    "sync_role",
    "update_profile",
    # Notifications
    "on_transition",
    "list_notifications",
    "unread_count",
    "mark_read",
    "mark_all_read",
    # Lifecycle
    "guard_status",
    "publish_rfp",
    "close_rfp",
    "update_rfp",
    "close_expired_rfps",
    "check_rfp_expiration",
    # Documents
    "validate_parent_folder",
    "move_document",
    # Workflow
    "submit_question",
    "answer_question",
    "sign_nda",
    "decide_nda",
    "sign_company_nda",
    "decide_company_nda",
    "set_access",
    # Company linkage
    "match_company",
    "link_by_name",
    "reconcile_all",
    "member_counts",
    "create_company",
    "assign_user_to_company",
    "add_secondary_membership",
    "find_autojoin_companies",
    "auto_join_company",
    "request_to_join_company",
    "decide_join_request",
    "invite_to_company",
    "accept_company_invitation",
    # Participation
    "send_rfp_invitation",
    "accept_rfp_invitation",
    "decline_rfp_invitation",
    "register_interest",
    "decide_registration",
    "submit_proposal",
    "review_submission",
    "list_submissions",
]
