from __future__ import annotations
from dataclasses import dataclass
from uuid import UUID


class NotAdmin(Exception):
    pass


@dataclass(frozen=True)
class AdminCapability:
    """Proof that the caller was authorised as an admin. Handed to review/settlement explicitly."""
    user_id: UUID

    @classmethod
    def for_user(cls, user) -> "AdminCapability":
        if not getattr(user, "is_admin", False):
            raise NotAdmin("Admin access required")
        return cls(user_id=user.id)


def ensure_admin(admin) -> AdminCapability:
    if not isinstance(admin, AdminCapability):
        raise NotAdmin("Admin access required")
    return admin
