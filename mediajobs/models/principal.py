"""
Authenticated principal.

The typed identity handed to the job services by the authentication
collaborator. The services never look at tokens or headers.

Dependencies: pydantic
System role: Requester identity and visibility scope
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ADMIN_ROLE = "admin"
USER_ROLE = "user"


class Principal(BaseModel):
    """Requesting identity (id + role)."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Principal identifier")
    role: Literal["admin", "user"] = USER_ROLE

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    @property
    def requester_scope(self) -> str | None:
        """Owner filter for repository reads: None lets admins see every row."""
        return None if self.is_admin else self.id
