"""Session state for the collab client.

`CollabState` is an immutable snapshot of what the client knows about the
authoritative history:

- `version` counts the steps confirmed by the authority. It only moves forward
  when an authoritative batch is received, never on a local edit.
- `unconfirmed` holds the locally applied steps the authority has not yet
  acknowledged, oldest first, each paired with its inverse computed against the
  document right before it.

Every transition builds a new snapshot, so old snapshots can be kept around and
shared freely.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Tuple

from collab_sync.config import CollabConfig
from collab_sync.core.transform.steps import Step
from collab_sync.core.transform.transform import Transform


@dataclass(frozen=True)
class PendingStep:
    step: Step
    inverted: Step


@dataclass(frozen=True)
class CollabState:
    version: int = 0
    unconfirmed: Tuple[PendingStep, ...] = ()


@dataclass(frozen=True)
class EditorState:
    """A document together with its collab bookkeeping."""

    doc: str
    collab: CollabState


@dataclass(frozen=True)
class CollabSession:
    state: CollabState
    client_id: int


@dataclass(frozen=True)
class Sendable:
    version: int
    steps: Tuple[Step, ...]
    client_id: int


class SyncStatus(str, enum.Enum):
    SYNCED = "synced"
    PENDING = "pending"


def init_state(version: int = 0) -> CollabState:
    return CollabState(version=version, unconfirmed=())


def init(config: Optional[CollabConfig] = None) -> CollabSession:
    """Start a session: empty pending queue at the configured version."""
    config = config or CollabConfig()
    return CollabSession(state=init_state(config.version), client_id=config.resolve_client_id())


def unconfirmed_from(transform: Transform, start: int = 0) -> Tuple[PendingStep, ...]:
    """Pair each step of `transform` from `start` on with its inverse."""
    return tuple(
        PendingStep(step=transform.steps[i], inverted=transform.steps[i].invert(transform.docs[i]))
        for i in range(start, len(transform.steps))
    )


def on_local_edit(state: CollabState, transform: Transform) -> CollabState:
    if not transform.steps:
        return state
    return CollabState(version=state.version, unconfirmed=state.unconfirmed + unconfirmed_from(transform))


def sendable_steps(state: CollabState, client_id: int) -> Optional[Sendable]:
    """What to submit to the authority, or None when nothing is pending.

    No in-flight bookkeeping happens here: callers keep at most one submission
    outstanding.
    """
    if not state.unconfirmed:
        return None
    return Sendable(
        version=state.version,
        steps=tuple(p.step for p in state.unconfirmed),
        client_id=client_id,
    )


def sync_status(state: CollabState) -> SyncStatus:
    return SyncStatus.PENDING if state.unconfirmed else SyncStatus.SYNCED
