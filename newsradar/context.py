from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RequestContext:
    """
    Who is asking. Built once per request from the session and passed explicitly
    into every data-access call, so no query can be written without a tenant.
    """
    user_id: int
    username: str
    organization_id: Optional[int]

    def owner_tag(self) -> str:
        """Source tag stamped on articles this user uploads."""
        return f"uploaded by {self.username}"
