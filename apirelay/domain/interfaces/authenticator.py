"""Interface for the authentication collaborator.

The token format and expiry semantics are opaque to the core; an
Authenticator only has to turn the previous credential (if any) into a
fresh one.
"""

import abc
from typing import Optional

from apirelay.domain.models.credential import Credential


class Authenticator(abc.ABC):
    """Abstract Base Class for credential issuers."""

    @abc.abstractmethod
    async def refresh(self, previous: Optional[Credential] = None) -> Credential:
        """Obtains a new credential.

        Args:
            previous: The credential being replaced, if any. Implementations
                may use its refresh token.

        Returns:
            A freshly issued Credential.

        Raises:
            Exception: Any failure; the CredentialManager wraps it in
                AuthRefreshFailed.
        """
        pass
