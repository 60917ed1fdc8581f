from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from record_store.domain import messages
from record_store.domain.exceptions import UnauthorizedError


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class Requester:
    """The authenticated caller of an operation."""

    identity: str
    role: Role = Role.USER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class AccessPolicy(Protocol):
    def check(self, role: Role, identity: str, owner: Optional[str]) -> bool:
        ...


class OwnerOrAdminPolicy:
    """Admins may touch anything; everyone else only what they own.

    Passing ``owner=None`` describes an admin-only resource.
    """

    def check(self, role: Role, identity: str, owner: Optional[str]) -> bool:
        if role == Role.ADMIN:
            return True
        return owner is not None and identity == owner


def authorize(policy: AccessPolicy, requester: Requester, owner: Optional[str], message: str = messages.FORBIDDEN) -> None:
    if not policy.check(requester.role, requester.identity, owner):
        raise UnauthorizedError(message)


def require_admin(requester: Requester, policy: Optional[AccessPolicy] = None) -> None:
    authorize(policy or OwnerOrAdminPolicy(), requester, None, messages.ADMIN_ONLY)
