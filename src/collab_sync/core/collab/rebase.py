"""Rebase pending local steps over newly confirmed remote steps.

Given a transform positioned at the current local document (which already has
the pending steps applied), `rebase_steps` appends:

1. the inverses of the pending steps, newest first, which brings the document
   back to the last confirmed version;
2. the remote steps, in authority order;
3. each pending step mapped through everything that happened since the point
   where it was originally defined.

A successfully reapplied step is registered as the mirror of its own inverse,
so later pending steps that touched content it inserted map back into that
content instead of collapsing onto its edges.

A pending step whose range was deleted by remote steps, or whose mapped form no
longer applies, is dropped. The result only depends on the inputs.
"""

from __future__ import annotations

import logging
from typing import Sequence

from collab_sync.core.transform.steps import Step
from collab_sync.core.transform.transform import Transform


logger = logging.getLogger(__name__)


def rebase_steps(
    transform: Transform,
    steps: Sequence[Step],
    inverted: Sequence[Step],
    inside: Sequence[Step],
) -> None:
    for inverse in reversed(inverted):
        transform.step(inverse)
    for step in inside:
        transform.step(step)

    map_from = len(inverted)
    for index, step in enumerate(steps):
        mapped = step.map(transform.mapping.slice(map_from))
        map_from -= 1
        if mapped is None:
            logger.debug("rebase dropped pending step", extra={"step_index": index})
            continue
        result = transform.maybe_step(mapped)
        if result.failed is not None:
            logger.debug("rebase could not reapply pending step: %s", result.failed, extra={"step_index": index})
            continue
        transform.mapping.set_mirror(map_from, len(transform.steps) - 1)
