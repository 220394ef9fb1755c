import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Optional

from sqlalchemy.orm import Session

from ..errors import ForbiddenError, UnauthorizedError
from ..models.models import AdminUser, User

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    MODERATE = "moderate"


ROLE_CAPABILITIES: Dict[str, FrozenSet[Capability]] = {
    "admin": frozenset({Capability.MODERATE}),
    "moderator": frozenset({Capability.MODERATE}),
}


@dataclass(frozen=True)
class Principal:
    """An authenticated caller with the capabilities resolved for this request."""

    user_id: str
    email: str
    capabilities: FrozenSet[Capability] = field(default_factory=frozenset)

    def has(self, capability: Capability) -> bool:
        return capability in self.capabilities


def authorize(principal: Optional[Principal], capability: Capability) -> Principal:
    """Return the principal if it holds ``capability``, raise otherwise."""
    if principal is None:
        raise UnauthorizedError("Authentication required")
    if not principal.has(capability):
        logger.warning(
            "Denied %s to user %s", capability.value, principal.user_id
        )
        raise ForbiddenError(f"Missing capability: {capability.value}")
    return principal


class IdentityProvider:
    """Turns an upstream identity assertion into a Principal."""

    header_name = "X-User-Id"

    def resolve(self, db: Session, assertion: Optional[str]) -> Optional[Principal]:
        raise NotImplementedError


class TrustedHeaderIdentityProvider(IdentityProvider):
    """Resolves the user id asserted by the upstream identity proxy.

    The proxy authenticates the session and forwards the user id; unknown
    ids resolve to no principal at all.
    """

    def resolve(self, db: Session, assertion: Optional[str]) -> Optional[Principal]:
        if not assertion:
            return None

        user = db.query(User).filter(User.user_id == assertion).first()
        if not user:
            return None

        capabilities: FrozenSet[Capability] = frozenset()
        admin = (
            db.query(AdminUser).filter(AdminUser.user_id == user.user_id).first()
        )
        if admin:
            capabilities = ROLE_CAPABILITIES.get(admin.role, frozenset())

        return Principal(
            user_id=user.user_id, email=user.email, capabilities=capabilities
        )
