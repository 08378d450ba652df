from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional, Sequence

from collab_sync.core.transform.steps import ReplaceStep
from collab_sync.core.transform.transform import Transform
from collab_sync.persistence.base import Persistence, StepRecord


logger = logging.getLogger(__name__)

# Called with (base_version, steps, client_ids) while the document lock is held.
OnAccept = Callable[[int, list[ReplaceStep], list[int]], Awaitable[None]]


@dataclass(frozen=True)
class CatchUp:
    """What a joining client needs to reach `version`.

    Either `doc` is set (full resync), or `steps` holds the missed steps after
    `since`, or both are empty because the client is already current.
    """

    version: int
    since: int
    steps: list[ReplaceStep] = field(default_factory=list)
    client_ids: list[int] = field(default_factory=list)
    doc: Optional[str] = None


OnJoin = Callable[[CatchUp], Awaitable[None]]


@dataclass
class _DocState:
    lock: asyncio.Lock
    doc: str
    version: int


class AuthorityService:
    """Central sequencer: assigns the total order of steps for each document.

    A submission is accepted only when it was built on the current version; the
    submitter then learns about its steps through the broadcast like everyone
    else, and a rejected submitter retries after integrating the newer steps.
    """

    def __init__(self, persistence: Persistence) -> None:
        self._persistence = persistence
        self._docs: Dict[str, _DocState] = {}
        self._global_lock = asyncio.Lock()

    def get_version(self, doc_id: str) -> int:
        return self._persistence.get_latest_version(doc_id)

    async def receive_steps(
        self,
        doc_id: str,
        version: int,
        steps: Sequence[ReplaceStep],
        client_id: int,
        on_accept: Optional[OnAccept] = None,
    ) -> int | None:
        """Append `steps` after `version`; return the new version, or None when rejected.

        `on_accept` runs before the document lock is released, so batches are
        announced in version order.
        """
        doc = await self._get_or_create_doc(doc_id)
        async with doc.lock:
            if version != doc.version:
                logger.info(
                    "steps rejected: version mismatch",
                    extra={"doc_id": doc_id, "client_id": client_id, "version": doc.version},
                )
                return None

            transform = Transform(doc.doc)
            for step in steps:
                result = transform.maybe_step(step)
                if result.failed is not None:
                    logger.warning(
                        "steps rejected: %s",
                        result.failed,
                        extra={"doc_id": doc_id, "client_id": client_id, "version": doc.version},
                    )
                    return None

            records = [
                StepRecord(doc_id=doc_id, version=version + i + 1, client_id=client_id, step=step)
                for i, step in enumerate(steps)
            ]
            doc.doc = transform.doc
            doc.version += len(records)

            self._persistence.append_steps(records)
            self._persistence.store_snapshot(doc_id=doc_id, version=doc.version, doc=doc.doc)
            if on_accept is not None:
                await on_accept(version, [r.step for r in records], [r.client_id for r in records])

            logger.info(
                "steps accepted",
                extra={"doc_id": doc_id, "client_id": client_id, "version": doc.version},
            )
            return doc.version

    async def join(self, doc_id: str, last_seen_version: int, replay_limit: int, on_join: OnJoin) -> CatchUp:
        """Compute the catch-up for a joining client and hand it to `on_join`.

        Both run under the document lock, the same lock `receive_steps` holds
        while announcing a batch. A step batch therefore reaches the joiner
        either through the catch-up or through the broadcast, never both.
        """
        doc = await self._get_or_create_doc(doc_id)
        async with doc.lock:
            if last_seen_version > 0 and last_seen_version == doc.version:
                catch_up = CatchUp(version=doc.version, since=doc.version)
            else:
                catch_up = CatchUp(version=doc.version, since=0, doc=doc.doc)
                if 0 < last_seen_version < doc.version:
                    steps, client_ids = self.steps_since(doc_id, last_seen_version)
                    if len(steps) <= replay_limit:
                        catch_up = CatchUp(
                            version=doc.version, since=last_seen_version, steps=steps, client_ids=client_ids
                        )
            await on_join(catch_up)
            return catch_up

    def steps_since(self, doc_id: str, version: int) -> tuple[list[ReplaceStep], list[int]]:
        records = self._persistence.get_steps_since(doc_id=doc_id, since_version=version) or []
        return [r.step for r in records], [r.client_id for r in records]

    def get_snapshot(self, doc_id: str) -> tuple[str, int]:
        snap = self._persistence.get_snapshot(doc_id)
        if snap is None:
            return ("", 0)
        return snap

    async def _get_or_create_doc(self, doc_id: str) -> _DocState:
        async with self._global_lock:
            ds = self._docs.get(doc_id)
            if ds is not None:
                return ds

            version = self._persistence.get_latest_version(doc_id)
            records = self._persistence.get_steps_since(doc_id=doc_id, since_version=0) or []
            if records:
                logger.info(
                    "doc rebuild from step log start",
                    extra={"doc_id": doc_id, "client_id": "-", "version": version},
                )
            transform = Transform("")
            for rec in records:
                transform.step(rec.step)
            self._persistence.store_snapshot(doc_id=doc_id, version=version, doc=transform.doc)
            if records:
                logger.info(
                    "doc rebuild from step log done",
                    extra={"doc_id": doc_id, "client_id": "-", "version": version},
                )

            ds = _DocState(lock=asyncio.Lock(), doc=transform.doc, version=version)
            self._docs[doc_id] = ds
            return ds
