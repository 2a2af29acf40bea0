"""Identity provider seam. Authentication itself happens elsewhere; the services only need to know who is calling."""

from typing import Optional, Protocol

from online_chess.core.exceptions import UnauthenticatedError
from online_chess.core.models import PlayerIdentity


class IdentityProvider(Protocol):
    def current_identity(self) -> Optional[PlayerIdentity]:
        """The caller's identity, None if not signed in."""
        ...


class StaticIdentityProvider:
    """Always returns the identity it was created with (a signed-in client, or None for a signed-out one)."""

    def __init__(self, identity: Optional[PlayerIdentity] = None) -> None:
        self.identity = identity

    def current_identity(self) -> Optional[PlayerIdentity]:
        return self.identity


def require_identity(provider: IdentityProvider) -> PlayerIdentity:
    identity = provider.current_identity()
    if identity is None:
        raise UnauthenticatedError("Sign in to take part in a game.")
    return identity
