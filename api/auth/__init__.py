"""
Authentication Package

JWT identity tokens and principal resolution for the API.
"""

from api.auth.jwt import (
    TokenError,
    create_access_token,
    issue_identity_token,
    verify_token
)
from api.auth.dependencies import (
    get_optional_principal,
    get_current_principal,
    require_system_action
)

__all__ = [
    # JWT
    "TokenError",
    "create_access_token",
    "issue_identity_token",
    "verify_token",
    # Dependencies
    "get_optional_principal",
    "get_current_principal",
    "require_system_action"
]
