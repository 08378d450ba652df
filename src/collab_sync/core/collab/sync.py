"""Integration of authoritative step batches.

## Echo detection

The authority echoes every accepted step to all clients, including the one
that submitted it. A client recognises its own steps by the origin client id.
Only the longest prefix of a batch whose origin is the local client is treated
as an echo; this relies on the authority delivering a client's submission as
one contiguous, ordered run at the start of some later batch. That ordering is
a precondition provided by the transport and is not verified here.

## Outcomes

- Every step in the batch is an echo: a `ConfirmAction` that only trims the
  pending queue and advances the version. The document is untouched.
- Remote steps remain: a `TransformAction` carrying the transform that brings
  the local document forward (applying the remote steps directly when nothing
  is pending, or rebasing the pending steps over them otherwise) and the new
  `CollabState`. Such transforms are synchronization replays: not user
  interaction and not undoable history.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from collab_sync.core.collab.errors import ProtocolError, StaleVersion
from collab_sync.core.collab.rebase import rebase_steps
from collab_sync.core.collab.state import CollabState, EditorState, unconfirmed_from
from collab_sync.core.transform.steps import Step, StepError
from collab_sync.core.transform.transform import Transform


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfirmAction:
    collab_state: CollabState


@dataclass(frozen=True)
class TransformAction:
    transform: Transform
    collab_state: CollabState
    rebased: int
    interaction: bool = False
    add_to_history: bool = False


SyncAction = Union[ConfirmAction, TransformAction]


def count_own_prefix(client_ids: Sequence[int], our_id: int) -> int:
    ours = 0
    while ours < len(client_ids) and client_ids[ours] == our_id:
        ours += 1
    return ours


def check_batch(
    state: CollabState,
    steps: Sequence[Step],
    client_ids: Sequence[int],
    base_version: Optional[int] = None,
) -> None:
    if len(steps) != len(client_ids):
        raise ProtocolError(
            f"batch has {len(steps)} steps but {len(client_ids)} client ids",
            expected=len(steps),
            received=len(client_ids),
        )
    if base_version is None or base_version == state.version:
        return
    if base_version < state.version:
        raise StaleVersion(
            f"batch starts at version {base_version}, already confirmed {state.version}",
            expected=state.version,
            received=base_version,
        )
    raise ProtocolError(
        f"batch starts at version {base_version}, expected {state.version}",
        expected=state.version,
        received=base_version,
    )


def receive_action(
    editor: EditorState,
    steps: Sequence[Step],
    client_ids: Sequence[int],
    our_id: int,
    base_version: Optional[int] = None,
) -> SyncAction:
    """Build the action that moves `editor` forward along the authority's history.

    `base_version`, when the transport provides it, is the version the batch
    extends; a mismatch raises `ProtocolError` (or `StaleVersion` when the
    batch is behind) and the caller must resynchronize.
    """
    collab = editor.collab
    check_batch(collab, steps, client_ids, base_version)

    version = collab.version + len(steps)

    ours = count_own_prefix(client_ids, our_id)
    if ours > len(collab.unconfirmed):
        raise ProtocolError(
            f"batch echoes {ours} local steps but only {len(collab.unconfirmed)} are pending",
            expected=len(collab.unconfirmed),
            received=ours,
        )
    unconfirmed = collab.unconfirmed[ours:]
    remote = list(steps[ours:])

    if not remote:
        logger.debug(
            "collab confirm",
            extra={"client_id": our_id, "version": version, "confirmed": ours},
        )
        return ConfirmAction(collab_state=CollabState(version=version, unconfirmed=unconfirmed))

    n_unconfirmed = len(unconfirmed)
    transform = Transform(editor.doc)
    try:
        if n_unconfirmed:
            rebase_steps(
                transform,
                [p.step for p in unconfirmed],
                [p.inverted for p in unconfirmed],
                remote,
            )
        else:
            for step in remote:
                transform.step(step)
    except StepError as exc:
        raise ProtocolError(f"remote step does not apply to local document: {exc}") from exc

    new_unconfirmed = unconfirmed_from(transform, n_unconfirmed + len(remote))
    logger.debug(
        "collab transform",
        extra={
            "client_id": our_id,
            "version": version,
            "confirmed": ours,
            "remote": len(remote),
            "rebased": n_unconfirmed,
        },
    )
    return TransformAction(
        transform=transform,
        collab_state=CollabState(version=version, unconfirmed=new_unconfirmed),
        rebased=n_unconfirmed,
    )
