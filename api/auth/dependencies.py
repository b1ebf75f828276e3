"""
Authentication Dependencies

FastAPI dependencies that turn a bearer token into a materialized Principal.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from api.auth.jwt import verify_token, TokenError
from schemas.principal import Principal
from schemas.resources import Action, ResourceKind
from services.authorization import check
from services.principals import resolve_principal


# OAuth2 scheme for token extraction
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", auto_error=False)


async def get_optional_principal(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> Optional[Principal]:
    """
    Resolve the caller, or None for anonymous requests.

    Raises HTTPException if a token is present but invalid.
    """
    if token is None:
        return None

    try:
        claims = verify_token(token, "access")
    except TokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e)
        )

    principal = await resolve_principal(db, claims)

    # Rate limiter keys on this
    request.state.user_id = str(principal.id)
    return principal


async def get_current_principal(
    principal: Optional[Principal] = Depends(get_optional_principal)
) -> Principal:
    """
    Get the current principal, requiring authentication.

    Raises HTTPException if the request carries no token.
    """
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )
    return principal


def require_system_action(operation: str):
    """
    Dependency factory for operator maintenance endpoints.

    Usage:
        @router.post("/rfps/close-expired")
        async def close_expired(principal = Depends(require_system_action("close_expired_rfps"))):
            ...
    """
    async def action_checker(
        principal: Principal = Depends(get_current_principal),
        db: AsyncSession = Depends(get_db)
    ) -> Principal:
        decision = await check(db, principal, ResourceKind.SYSTEM, operation, Action.EXECUTE)
        if not decision:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Not permitted: {decision.reason}"
            )
        return principal

    return action_checker
