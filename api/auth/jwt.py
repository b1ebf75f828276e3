"""
JWT Token Utilities

Issue and verify identity tokens. The role carried by a token is copied from
the identity's claim store at issue time and may lag behind the profile, which
is why the API re-resolves every token through `resolve_principal`.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError

from config.settings import settings
from database.models import Identity


class TokenError(Exception):
    """Token validation error."""
    pass


def create_access_token(claims: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign a claim set as an access token.

    Args:
        claims: Payload; must carry `sub` for the token to verify
        expires_delta: Lifetime, defaults to `jwt_expire_minutes`

    Returns:
        Encoded JWT token
    """
    issued_at = datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(minutes=settings.jwt_expire_minutes)

    payload = {**claims, "iat": issued_at, "exp": issued_at + lifetime, "type": "access"}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def issue_identity_token(identity: Identity, expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign the identity's current claim store into an access token.

    A claim store that has not been synced since a role change yields a
    token with the old role; the persisted profile still decides.
    """
    metadata = identity.app_metadata or {}
    claims = {
        "sub": str(identity.id),
        "user_id": str(identity.id),
        "email": identity.email,
        settings.role_claim_key: metadata.get("role"),
        "company_role": metadata.get("company_role"),
        "company_id": metadata.get("company_id"),
    }
    return create_access_token(claims, expires_delta)


def verify_token(token: str, token_type: str = "access") -> dict:
    """
    Decode a token and check its signature, expiry, type and subject.

    Returns:
        The verified claim set

    Raises:
        TokenError: If token is invalid, expired, of the wrong type or has no subject
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise TokenError(f"Invalid token: {str(e)}") from e

    if payload.get("type") != token_type:
        raise TokenError(f"Invalid token type. Expected {token_type}")
    if not payload.get("sub"):
        raise TokenError("Invalid token payload")

    return payload
