"""In-memory table of authorization flows awaiting their redirect.

Each entry is keyed by its ``state`` token and can be redeemed once.
Expired entries are swept lazily on every insert and redeem.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging
import threading
import time

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .pkce import generate_state


if TYPE_CHECKING:
    from collections.abc import Callable


logger = logging.getLogger("voide_oauth.auth")

DEFAULT_FLOW_TTL = 600.0


@dataclass(frozen=True)
class PendingFlow:
    """An issued authorization request that has not been redeemed.

    Attributes
    ----------
    state : str
        The CSRF state token sent to the provider.
    provider : str
        The provider the state was issued for.
    code_verifier : str or None
        The PKCE verifier, if PKCE was used.
    redirect_uri : str
        The redirect URI sent in the authorization request.
    client_id : str
        The client ID sent in the authorization request.
    created_at : float
        Unix timestamp of issuance.
    expires_at : float
        Unix timestamp after which the state is no longer redeemable.
    """

    state: str
    provider: str
    code_verifier: str | None
    redirect_uri: str
    client_id: str
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        """Check whether the flow has passed its TTL at ``now``."""
        return now >= self.expires_at


class PendingFlowTable:
    """Owned collection of pending flows, safe across threads.

    Parameters
    ----------
    ttl : float
        Seconds a flow stays redeemable (default 600).
    clock : callable, optional
        Returns the current Unix time in seconds (default ``time.time``).
    """

    def __init__(self, ttl: float = DEFAULT_FLOW_TTL, clock: Callable[[], float] | None = None) -> None:
        """Initialize an empty table."""
        self.ttl = ttl
        self._clock = clock or time.time
        self._flows: dict[str, PendingFlow] = {}
        self._lock = threading.Lock()

    def add(
        self,
        provider: str,
        redirect_uri: str,
        client_id: str,
        code_verifier: str | None = None,
    ) -> PendingFlow:
        """Register a new flow under a fresh, unique state.

        Parameters
        ----------
        provider : str
            The provider the flow is bound to.
        redirect_uri : str
            The redirect URI used in the authorization request.
        client_id : str
            The client ID used in the authorization request.
        code_verifier : str, optional
            The PKCE verifier to present at exchange time.

        Returns
        -------
        PendingFlow
            The registered flow.
        """
        now = self._clock()
        with self._lock:
            self._sweep_locked(now)
            state = generate_state()
            while state in self._flows:
                state = generate_state()
            flow = PendingFlow(
                state=state,
                provider=provider,
                code_verifier=code_verifier,
                redirect_uri=redirect_uri,
                client_id=client_id,
                created_at=now,
                expires_at=now + self.ttl,
            )
            self._flows[state] = flow
        return flow

    def pop(self, state: str) -> PendingFlow | None:
        """Redeem a state, removing it whatever the outcome.

        Parameters
        ----------
        state : str
            The state token from the redirect.

        Returns
        -------
        PendingFlow or None
            The flow, or None if the state is unknown or expired.
        """
        now = self._clock()
        with self._lock:
            flow = self._flows.pop(state, None)
            self._sweep_locked(now)
        if flow is None:
            return None
        if flow.is_expired(now):
            logger.debug("Pending flow for %s expired before redemption", flow.provider)
            return None
        return flow

    def discard(self, state: str) -> None:
        """Drop a flow without redeeming it (abandoned or cancelled)."""
        with self._lock:
            self._flows.pop(state, None)

    def sweep(self) -> int:
        """Remove every expired flow.

        Returns
        -------
        int
            Number of flows removed.
        """
        with self._lock:
            return self._sweep_locked(self._clock())

    def _sweep_locked(self, now: float) -> int:
        expired = [state for state, flow in self._flows.items() if flow.is_expired(now)]
        for state in expired:
            del self._flows[state]
        return len(expired)

    def __contains__(self, state: object) -> bool:
        with self._lock:
            return state in self._flows

    def __len__(self) -> int:
        with self._lock:
            return len(self._flows)
