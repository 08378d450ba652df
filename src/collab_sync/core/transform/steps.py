from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol

from collab_sync.core.transform.step_map import Mapping, StepMap


class StepError(Exception):
    """Raised when a step is applied to a document it does not fit."""


@dataclass(frozen=True)
class StepResult:
    doc: Optional[str] = None
    failed: Optional[str] = None

    @classmethod
    def ok(cls, doc: str) -> StepResult:
        return cls(doc=doc)

    @classmethod
    def fail(cls, message: str) -> StepResult:
        return cls(failed=message)


class Step(Protocol):
    """An atomic, invertible document edit.

    `invert` must be given the document the step was applied to and returns a
    step that undoes it on the resulting document. `map` returns the step
    rebased through a mapping, or `None` when the mapping deleted its content.
    """

    def apply(self, doc: str) -> StepResult: ...

    def invert(self, doc: str) -> Step: ...

    def get_map(self) -> StepMap: ...

    def map(self, mapping: Mapping) -> Optional[Step]: ...

    def to_json(self) -> dict[str, Any]: ...


@dataclass(frozen=True)
class ReplaceStep:
    """Replace the text between `from_` and `to` with `text`.

    Insertions have `from_ == to`, deletions have an empty `text`.
    """

    from_: int
    to: int
    text: str = ""

    def apply(self, doc: str) -> StepResult:
        if self.from_ < 0 or self.from_ > self.to or self.to > len(doc):
            return StepResult.fail(f"replace range {self.from_}-{self.to} outside document of size {len(doc)}")
        return StepResult.ok(doc[: self.from_] + self.text + doc[self.to :])

    def invert(self, doc: str) -> ReplaceStep:
        return ReplaceStep(self.from_, self.from_ + len(self.text), doc[self.from_ : self.to])

    def get_map(self) -> StepMap:
        return StepMap(((self.from_, self.to - self.from_, len(self.text)),))

    def map(self, mapping: Mapping) -> Optional[ReplaceStep]:
        start = mapping.map_result(self.from_, 1)
        end = mapping.map_result(self.to, -1)
        if start.deleted and end.deleted:
            return None
        return ReplaceStep(start.pos, max(start.pos, end.pos), self.text)

    def to_json(self) -> dict[str, Any]:
        return {"stepType": "replace", "from": self.from_, "to": self.to, "text": self.text}

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> ReplaceStep:
        if data.get("stepType") != "replace":
            raise ValueError(f"unknown step type: {data.get('stepType')!r}")
        return cls(int(data["from"]), int(data["to"]), str(data.get("text", "")))
