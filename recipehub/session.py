from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Set

from .models import User


@dataclass
class SessionContext:
    """Per-request view of who is signed in.

    Built once when a request starts and discarded when it ends; nothing here
    outlives the request.
    """

    user: Optional[User] = None
    saved_ids: Set[str] = field(default_factory=set)

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def is_admin(self) -> bool:
        return self.user is not None and self.user.is_admin

    def owns(self, owner_id: Optional[str]) -> bool:
        return self.user is not None and owner_id == self.user.user_id

    def can_manage(self, owner_id: Optional[str]) -> bool:
        return self.is_admin or self.owns(owner_id)


__all__ = ["SessionContext"]
