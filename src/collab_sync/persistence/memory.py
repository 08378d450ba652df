from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, List

from collab_sync.persistence.base import Persistence, StepRecord


@dataclass
class _DocStore:
    last_version: int
    steps: List[StepRecord]
    snapshot: str


class InMemoryPersistence(Persistence):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._docs: Dict[str, _DocStore] = {}

    def append_steps(self, records: list[StepRecord]) -> None:
        with self._lock:
            for record in records:
                ds = self._docs.setdefault(record.doc_id, _DocStore(last_version=0, steps=[], snapshot=""))
                ds.steps.append(record)
                ds.last_version = record.version

    def get_steps_since(self, doc_id: str, since_version: int) -> list[StepRecord] | None:
        with self._lock:
            ds = self._docs.get(doc_id)
            if ds is None:
                return []
            return [r for r in ds.steps if r.version > since_version]

    def get_latest_version(self, doc_id: str) -> int:
        with self._lock:
            ds = self._docs.get(doc_id)
            return ds.last_version if ds else 0

    def get_snapshot(self, doc_id: str) -> tuple[str, int] | None:
        with self._lock:
            ds = self._docs.get(doc_id)
            if ds is None:
                return None
            return (ds.snapshot, ds.last_version)

    def store_snapshot(self, doc_id: str, version: int, doc: str) -> None:
        with self._lock:
            ds = self._docs.setdefault(doc_id, _DocStore(last_version=0, steps=[], snapshot=""))
            ds.snapshot = doc
            ds.last_version = max(ds.last_version, version)
