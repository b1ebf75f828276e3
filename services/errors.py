"""
Service Errors

Exceptions raised by the marketplace services. Authorization denials are not
in this list: `authorize` returns them as `Decision` values.
"""

from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession


class MarketplaceError(Exception):
    """Base class for marketplace service errors."""
    pass


class PrincipalNotFound(MarketplaceError):
    """Identity authenticated, but no profile has been provisioned for it."""

    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__(f"No profile provisioned for identity {user_id}")


class InvalidStateTransition(MarketplaceError):
    """Requested lifecycle transition is not allowed from the current state."""

    def __init__(self, current: str, target: str, message: Optional[str] = None):
        self.current = current
        self.target = target
        super().__init__(message or f"Cannot transition from {current} to {target}")


class ConstraintViolation(MarketplaceError):
    """The store rejected a write (uniqueness, foreign key, check)."""

    def __init__(self, message: str, original: Optional[Exception] = None):
        self.original = original
        super().__init__(message)


class ReferenceNotFound(MarketplaceError):
    """An admin write targets a row that does not exist."""

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class NotPermitted(MarketplaceError):
    """A write helper refused a denied decision."""

    def __init__(self, decision):
        self.decision = decision
        super().__init__(f"Not permitted: {decision.reason}")


class FolderCycleError(MarketplaceError):
    """Moving a document under a folder would create a cycle."""
    pass


class IneligibleTarget(MarketplaceError):
    """The target principal may not receive the requested grant."""
    pass


@asynccontextmanager
async def constraint_guard(db: AsyncSession, what: str):
    """
    Run writes inside a savepoint and surface store constraint failures.

    Usage:
        async with constraint_guard(db, "NDA"):
            db.add(nda)
    """
    try:
        async with db.begin_nested():
            yield
    except IntegrityError as e:
        raise ConstraintViolation(f"{what} violates a store constraint", original=e) from e
