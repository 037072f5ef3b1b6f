"""Owns the current auth credential and keeps it fresh.

Reads of a valid credential are lock-free. A refresh runs at most once at
a time: concurrent callers wait on the same in-flight task and observe the
same Credential or the same failure.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from apirelay.domain.events.api_events import CredentialRefreshed
from apirelay.domain.exceptions import AuthRefreshFailed
from apirelay.domain.interfaces.authenticator import Authenticator
from apirelay.domain.interfaces.events import EventPublisher, NullEventPublisher
from apirelay.domain.models.credential import Credential

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_TIMEOUT_SECONDS = 30.0


class CredentialManager:
    """Caches a Credential and refreshes it through an Authenticator."""

    def __init__(
        self,
        authenticator: Authenticator,
        clock: Callable[[], float] = time.time,
        refresh_timeout_s: Optional[float] = DEFAULT_REFRESH_TIMEOUT_SECONDS,
        refresh_leeway_s: float = 0.0,
        event_publisher: Optional[EventPublisher] = None,
        initial_credential: Optional[Credential] = None,
    ):
        """Initializes the CredentialManager.

        Args:
            authenticator: Collaborator that issues new credentials.
            clock: Returns the current time in the same unit as
                Credential.expires_at (seconds since the epoch by default).
            refresh_timeout_s: Upper bound for a single refresh; None disables it.
            refresh_leeway_s: Treat credentials as stale this long before expiry.
            event_publisher: Receives CredentialRefreshed events.
            initial_credential: Optional credential to start with.
        """
        if refresh_leeway_s < 0:
            raise ValueError("refresh_leeway_s must not be negative.")
        self._authenticator = authenticator
        self._clock = clock
        self._refresh_timeout_s = refresh_timeout_s
        self._refresh_leeway_s = refresh_leeway_s
        self._events = event_publisher or NullEventPublisher()
        self._credential: Optional[Credential] = initial_credential
        self._inflight: Optional[asyncio.Task] = None
        # Created on first use so it binds to the loop that runs the calls
        self._lock: Optional[asyncio.Lock] = None
        logger.info(
            f"CredentialManager initialized: authenticator={authenticator.__class__.__name__}, "
            f"refresh_timeout={refresh_timeout_s}s, leeway={refresh_leeway_s}s"
        )

    @property
    def authenticator(self) -> Authenticator:
        return self._authenticator

    @property
    def cached_credential(self) -> Optional[Credential]:
        return self._credential

    def _is_usable(self, credential: Optional[Credential]) -> bool:
        return credential is not None and credential.is_valid(self._clock(), self._refresh_leeway_s)

    async def current_credential(self) -> Credential:
        """Returns a valid credential, refreshing first if the cached one is stale.

        Raises:
            AuthRefreshFailed: If the refresh fails or times out.
        """
        credential = self._credential
        if self._is_usable(credential):
            return credential

        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            # Another caller may have finished a refresh while we waited
            credential = self._credential
            if self._is_usable(credential):
                return credential
            if self._inflight is None:
                logger.debug("Cached credential stale or missing. Starting refresh.")
                self._inflight = asyncio.ensure_future(self._refresh(credential))
            task = self._inflight

        # Shield so a cancelled caller does not cancel the refresh other callers share
        return await asyncio.shield(task)

    async def _refresh(self, previous: Optional[Credential]) -> Credential:
        try:
            refresh_call = self._authenticator.refresh(previous)
            if self._refresh_timeout_s is not None:
                credential = await asyncio.wait_for(refresh_call, timeout=self._refresh_timeout_s)
            else:
                credential = await refresh_call
            if not isinstance(credential, Credential):
                raise TypeError(
                    f"Authenticator returned {type(credential).__name__}, expected Credential"
                )
        except asyncio.TimeoutError as e:
            logger.error(f"Credential refresh timed out after {self._refresh_timeout_s}s")
            raise AuthRefreshFailed(f"Credential refresh timed out after {self._refresh_timeout_s}s") from e
        except Exception as e:
            logger.error(f"Credential refresh failed: {type(e).__name__}: {e}")
            raise AuthRefreshFailed(f"Credential refresh failed: {e}") from e
        finally:
            self._inflight = None

        self._credential = credential
        logger.info(f"Credential refreshed (expires_at={credential.expires_at}).")
        self._events.publish(CredentialRefreshed(issued_at=credential.issued_at, expires_at=credential.expires_at))
        return credential

    def invalidate(self, credential: Optional[Credential] = None) -> None:
        """Marks the cached credential expired so the next read refreshes it.

        Args:
            credential: If given, only invalidate when this exact token is
                still cached. A rejection observed with an older token must
                not discard a credential another caller already refreshed.
        """
        cached = self._credential
        if cached is None:
            return
        if credential is not None and credential.token_value != cached.token_value:
            logger.debug("Ignoring invalidate() for a credential that was already replaced.")
            return
        self._credential = cached.expired()
        logger.info("Cached credential invalidated.")
