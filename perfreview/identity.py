"""
Caller identity.

The engine never authenticates anyone: an IdentityProvider hands over the
already-authenticated caller, and role checks trust the role it reports.
"""
import logging
from typing import Iterable, Optional, Protocol
from pydantic import BaseModel

from perfreview.core.exceptions import AuthorizationError
from perfreview.schemas.user import UserRole

logger = logging.getLogger(__name__)


class Identity(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: UserRole = UserRole.TEAM

    @property
    def is_manager(self) -> bool:
        """Managers and admins can write final reviews."""
        return self.role in [UserRole.MANAGER, UserRole.ADMIN]

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class IdentityProvider(Protocol):
    def current_user(self) -> Identity:
        ...


class StaticIdentityProvider:
    """Serves a fixed identity; swap it with `switch` between calls."""

    def __init__(self, identity: Optional[Identity] = None):
        self._identity = identity

    def switch(self, identity: Identity) -> None:
        self._identity = identity

    def current_user(self) -> Identity:
        if self._identity is None:
            raise AuthorizationError("No authenticated user")
        return self._identity


def require_role(provider: Optional[IdentityProvider], allowed_roles: Iterable[UserRole]) -> Identity:
    """
    Return the current caller if it holds one of the allowed roles.

    Raises AuthorizationError otherwise, including when no provider is configured.
    """
    allowed = list(allowed_roles)
    if provider is None:
        raise AuthorizationError("No identity provider configured")
    user = provider.current_user()
    if user.role not in allowed:
        logger.warning(f"Access denied for user {user.id} with role {user.role.value}")
        raise AuthorizationError(
            f"Access denied. Required roles: {[r.value for r in allowed]}"
        )
    return user
