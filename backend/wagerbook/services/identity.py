"""Caller identity collaborators.

Identity and session management live outside Wagerbook; services only
ask the provider who the already-authenticated caller is.
"""

from typing import Optional, Protocol


class IdentityProvider(Protocol):
    def current_caller_identity(self) -> Optional[str]:
        ...


class StaticIdentity:
    """Identity provider bound to one known caller (request scope, CLI, tests)."""

    def __init__(self, identity: Optional[str]):
        self.identity = identity

    def current_caller_identity(self) -> Optional[str]:
        return self.identity

    def __repr__(self) -> str:
        return f"StaticIdentity({self.identity!r})"


class SystemIdentity(StaticIdentity):
    """Identity used by maintenance jobs that act on no user's behalf."""

    def __init__(self):
        super().__init__("system")
