from __future__ import annotations

from typing import List

from collab_sync.core.transform.step_map import Mapping
from collab_sync.core.transform.steps import ReplaceStep, Step, StepError, StepResult


class Transform:
    """An ordered composition of steps applied to a starting document.

    `docs[i]` is the document immediately before `steps[i]`, which is what a
    step needs to compute its inverse.
    """

    def __init__(self, doc: str) -> None:
        self.doc = doc
        self.steps: List[Step] = []
        self.docs: List[str] = []
        self.mapping = Mapping()

    @property
    def before(self) -> str:
        return self.docs[0] if self.docs else self.doc

    def step(self, step: Step) -> Transform:
        result = self.maybe_step(step)
        if result.failed is not None:
            raise StepError(result.failed)
        return self

    def maybe_step(self, step: Step) -> StepResult:
        result = step.apply(self.doc)
        if result.failed is None and result.doc is not None:
            self._add_step(step, result.doc)
        return result

    def replace(self, from_: int, to: int, text: str = "") -> Transform:
        return self.step(ReplaceStep(from_, to, text))

    def insert(self, pos: int, text: str) -> Transform:
        return self.replace(pos, pos, text)

    def delete(self, from_: int, to: int) -> Transform:
        return self.replace(from_, to)

    def _add_step(self, step: Step, doc: str) -> None:
        self.docs.append(self.doc)
        self.steps.append(step)
        self.mapping.append_map(step.get_map())
        self.doc = doc
