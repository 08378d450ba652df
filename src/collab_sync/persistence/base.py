from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from collab_sync.core.transform.steps import ReplaceStep


@dataclass(frozen=True)
class StepRecord:
    doc_id: str
    # Version reached once this step is applied (1 for the first step of a document).
    version: int
    client_id: int
    step: ReplaceStep


class Persistence(Protocol):
    def append_steps(self, records: list[StepRecord]) -> None: ...

    def get_steps_since(self, doc_id: str, since_version: int) -> list[StepRecord] | None: ...

    def get_latest_version(self, doc_id: str) -> int: ...

    def get_snapshot(self, doc_id: str) -> tuple[str, int] | None: ...

    def store_snapshot(self, doc_id: str, version: int, doc: str) -> None: ...
