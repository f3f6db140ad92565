"""Random values bound to each authorization request.

The CSRF ``state`` token and the RFC 7636 code verifier with its S256
challenge. Everything comes from the ``secrets`` CSPRNG.
"""

from __future__ import annotations

import hashlib
import secrets

from base64 import urlsafe_b64encode
from dataclasses import dataclass


# token_urlsafe(n) yields ceil(4n/3) characters; RFC 7636 allows 43..128
_MIN_VERIFIER_BYTES = 32
_MAX_VERIFIER_BYTES = 96

STATE_BYTES = 32


def generate_state() -> str:
    """Generate an unguessable CSRF state token (256 bits)."""
    return secrets.token_urlsafe(STATE_BYTES)


def compute_challenge(verifier: str) -> str:
    """Derive the S256 code challenge for a verifier.

    Parameters
    ----------
    verifier : str
        The code verifier.

    Returns
    -------
    str
        ``base64url(sha256(verifier))`` without padding.
    """
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


@dataclass(frozen=True)
class PKCEChallenge:
    """A verifier kept locally and the challenge sent to the provider.

    Attributes
    ----------
    verifier : str
        Secret presented at code exchange (43-128 URL-safe characters).
    challenge : str
        ``compute_challenge(verifier)``, sent in the authorization URL.
    method : str
        Always ``"S256"``; the plain method is never offered.
    """

    verifier: str
    challenge: str
    method: str = "S256"

    @classmethod
    def generate(cls, length: int = 64) -> PKCEChallenge:
        """Create a fresh verifier and its challenge.

        Parameters
        ----------
        length : int
            Number of random bytes behind the verifier (default 64,
            giving 86 characters). Must be between 32 and 96 so the
            verifier stays within 43-128 characters.

        Returns
        -------
        PKCEChallenge
            The new verifier and challenge.

        Raises
        ------
        ValueError
            If ``length`` would produce a verifier outside RFC 7636 bounds.
        """
        if not _MIN_VERIFIER_BYTES <= length <= _MAX_VERIFIER_BYTES:
            msg = (
                f"PKCE verifier length must be between {_MIN_VERIFIER_BYTES} "
                f"and {_MAX_VERIFIER_BYTES} bytes, got {length}"
            )
            raise ValueError(msg)
        verifier = secrets.token_urlsafe(length)
        return cls(verifier=verifier, challenge=compute_challenge(verifier))
