from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

from collab_sync.config import CollabConfig
from collab_sync.core.collab.state import (
    EditorState,
    Sendable,
    SyncStatus,
    init,
    on_local_edit,
    sendable_steps,
    sync_status,
)
from collab_sync.core.collab.sync import ConfirmAction, SyncAction, TransformAction, receive_action
from collab_sync.core.transform.steps import Step
from collab_sync.core.transform.transform import Transform


logger = logging.getLogger(__name__)


def apply_transform(editor: EditorState, transform: Transform) -> EditorState:
    """Apply a local (user) transform: new document, pending queue extended."""
    return EditorState(doc=transform.doc, collab=on_local_edit(editor.collab, transform))


def apply_action(editor: EditorState, action: SyncAction) -> EditorState:
    if isinstance(action, ConfirmAction):
        return EditorState(doc=editor.doc, collab=action.collab_state)
    if isinstance(action, TransformAction):
        return EditorState(doc=action.transform.doc, collab=action.collab_state)
    raise TypeError(f"unknown sync action: {action!r}")


class CollabClient:
    """Holds one participant's editor state and routes edits and batches into it.

    Calls must not overlap; each one replaces `editor` with its successor.
    """

    def __init__(self, doc: str = "", config: Optional[CollabConfig] = None) -> None:
        session = init(config)
        self.client_id = session.client_id
        self.editor = EditorState(doc=doc, collab=session.state)

    @property
    def doc(self) -> str:
        return self.editor.doc

    @property
    def version(self) -> int:
        return self.editor.collab.version

    @property
    def status(self) -> SyncStatus:
        return sync_status(self.editor.collab)

    def edit(self, build: Callable[[Transform], object]) -> Transform:
        """Run `build` on a fresh transform of the current document and apply it."""
        transform = Transform(self.editor.doc)
        build(transform)
        self.editor = apply_transform(self.editor, transform)
        return transform

    def receive(
        self,
        steps: Sequence[Step],
        client_ids: Sequence[int],
        base_version: Optional[int] = None,
    ) -> SyncAction:
        action = receive_action(self.editor, steps, client_ids, self.client_id, base_version)
        self.editor = apply_action(self.editor, action)
        logger.debug(
            "collab batch applied",
            extra={"client_id": self.client_id, "version": self.version},
        )
        return action

    def sendable(self) -> Optional[Sendable]:
        return sendable_steps(self.editor.collab, self.client_id)
