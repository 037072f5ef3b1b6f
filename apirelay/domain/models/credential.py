"""Credential value object.

A Credential is created on login/refresh, replaced wholesale by the
CredentialManager and never mutated in place.
"""

import dataclasses
from dataclasses import dataclass
from typing import Optional, Tuple

from apirelay.domain.models.common import TokenValue


@dataclass(frozen=True)
class Credential:
    """An authentication token plus its known validity window."""
    token_value: TokenValue
    issued_at: float
    expires_at: Optional[float] = None  # None: expiry unknown
    token_type: str = "Bearer"
    refresh_token: Optional[str] = None
    rejected: bool = False  # Set once the server has refused this token

    def is_valid(self, now: float, leeway: float = 0.0) -> bool:
        """Returns True if the credential can still be presented at `now`.

        A credential with unknown expiry stays valid until the server
        rejects it.
        """
        if self.rejected:
            return False
        if self.expires_at is None:
            return True
        return now < self.expires_at - leeway

    def expired(self) -> "Credential":
        """Returns a copy marked as rejected."""
        return dataclasses.replace(self, rejected=True)

    def authorization_header(self) -> Tuple[str, str]:
        if not self.token_type:
            return "Authorization", self.token_value
        return "Authorization", f"{self.token_type} {self.token_value}"

    def __repr__(self) -> str:
        # Never leak the token into logs
        return (
            f"Credential(token_value='***', issued_at={self.issued_at!r}, "
            f"expires_at={self.expires_at!r}, token_type={self.token_type!r}, "
            f"rejected={self.rejected!r})"
        )
