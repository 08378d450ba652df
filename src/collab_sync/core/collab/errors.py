from __future__ import annotations

from typing import Optional


class CollabError(Exception):
    """Base class for errors raised by the collab core."""


class ProtocolError(CollabError):
    """An authoritative batch does not fit the local state.

    The caller must discard local state and resynchronize from the authority;
    continuing would risk permanent divergence.
    """

    def __init__(self, message: str, expected: Optional[int] = None, received: Optional[int] = None) -> None:
        super().__init__(message)
        self.expected = expected
        self.received = received


class StaleVersion(ProtocolError):
    """A batch claims to extend a version older than the confirmed one."""
