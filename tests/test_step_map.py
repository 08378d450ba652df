"""Tests for the text step model and position mapping.

These cover the pieces the rebase engine leans on: inverses that exactly undo
a step, position mapping around replaced ranges, and mirror recovery.
"""

import pytest

from collab_sync.core.transform.step_map import Mapping, StepMap
from collab_sync.core.transform.steps import ReplaceStep, StepError
from collab_sync.core.transform.transform import Transform


def test_replace_step_apply_and_invert() -> None:
    """Applying a step then its inverse restores the original document."""

    doc = "hello world"
    step = ReplaceStep(6, 11, "there")
    result = step.apply(doc)
    assert result.failed is None
    assert result.doc == "hello there"

    inverse = step.invert(doc)
    assert inverse == ReplaceStep(6, 11, "world")
    assert inverse.apply("hello there").doc == doc


def test_replace_step_out_of_range_fails() -> None:
    """Steps that do not fit the document report failure instead of raising."""

    assert ReplaceStep(2, 10, "x").apply("abc").failed is not None
    assert ReplaceStep(3, 2).apply("abc").failed is not None

    with pytest.raises(StepError):
        Transform("abc").step(ReplaceStep(5, 5, "x"))


def test_step_map_shifts_positions_after_range() -> None:
    """Positions after an insertion move right, positions before stay put."""

    m = StepMap(((2, 0, 3),))
    assert m.map(1) == 1
    assert m.map(5) == 8
    # Position exactly at the insertion point follows assoc.
    assert m.map(2, 1) == 5
    assert m.map(2, -1) == 2


def test_step_map_reports_deleted_positions() -> None:
    """Positions strictly inside a deleted range are flagged as deleted."""

    m = StepMap(((2, 4, 0),))
    inside = m.map_result(4, 1)
    assert inside.pos == 2
    assert inside.deleted
    assert inside.recover == (0, 2)

    at_end = m.map_result(6, 1)
    assert at_end.pos == 2
    assert not at_end.deleted


def test_step_map_invert_round_trip() -> None:
    """An inverted map carries positions back for untouched content."""

    m = StepMap(((1, 2, 5), (10, 0, 1)))
    inv = m.invert()
    for pos in (0, 1, 12, 20):
        assert inv.map(m.map(pos, -1), -1) == pos


def test_mapping_recovers_positions_through_mirrors() -> None:
    """A position inside undone content lands inside the redone content."""

    undo = StepMap(((2, 2, 0),))
    remote = StepMap(((0, 0, 2),))
    redo = StepMap(((4, 0, 2),))

    mapping = Mapping()
    mapping.append_map(undo)
    mapping.append_map(remote)
    mapping.append_map(redo, mirrors=0)

    assert mapping.get_mirror(0) == 2
    assert mapping.map(3) == 5

    # Without the mirror the position collapses onto the deletion edge.
    plain = Mapping([undo, remote, redo])
    assert plain.map(3) == 6


def test_replace_step_map_drops_step_inside_deleted_range() -> None:
    """A step whose whole range was deleted maps to nothing."""

    mapping = Mapping([StepMap(((1, 4, 0),))])
    assert ReplaceStep(3, 3, "X").map(mapping) is None
    assert ReplaceStep(1, 1, "X").map(mapping) == ReplaceStep(1, 1, "X")
    assert ReplaceStep(0, 3, "").map(mapping) == ReplaceStep(0, 1, "")


def test_transform_tracks_docs_before_each_step() -> None:
    """Transform.docs[i] is the document right before steps[i]."""

    tr = Transform("abc").insert(3, "d").delete(0, 1).replace(0, 1, "B")
    assert tr.doc == "Bcd"
    assert tr.docs == ["abc", "abcd", "bcd"]
    assert tr.before == "abc"
    assert len(tr.mapping) == 3


def test_maybe_step_leaves_transform_untouched_on_failure() -> None:
    tr = Transform("abc").insert(0, "x")

    result = tr.maybe_step(ReplaceStep(9, 9, "y"))

    assert result.failed is not None
    assert result.doc is None
    assert tr.doc == "xabc"
    assert tr.docs == ["abc"]
    assert len(tr.steps) == 1
    assert len(tr.mapping) == 1


def test_step_json_round_trip() -> None:
    step = ReplaceStep(1, 4, "xy")
    assert ReplaceStep.from_json(step.to_json()) == step
    with pytest.raises(ValueError):
        ReplaceStep.from_json({"stepType": "addMark", "from": 0, "to": 1})
