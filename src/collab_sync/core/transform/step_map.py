"""Position mapping through document edits.

## Core model

- A `StepMap` describes how one step moves positions. It is a sequence of
  replaced ranges `(start, old_size, new_size)`, with `start` expressed in the
  coordinates of the document *before* the step.
- A `Mapping` is an ordered pipeline of step maps. Positions are mapped through
  every map in `[from_, to)` in order.

## Mirroring

When a step is undone (by its inverse) and later redone in rebased form, the
inverse map and the redo map form a *mirror pair*. Mapping a position that lies
inside the range removed by the inverse would normally collapse it to the edge
of that range. If the mirror of that map is inside the mapped window, the
position is instead recovered at the same offset inside the range re-inserted by
the mirror, and mapping resumes after it. This is what lets a pending step that
was typed inside an earlier pending insertion survive a rebase.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


Range = Tuple[int, int, int]
Recover = Tuple[int, int]


@dataclass(frozen=True)
class MapResult:
    pos: int
    # True when the position was inside a replaced range (on the side given by assoc).
    deleted: bool = False
    # (range index, offset into range) when the position can be recovered by a mirror map.
    recover: Optional[Recover] = None


class StepMap:
    """The position map of a single step."""

    def __init__(self, ranges: Tuple[Range, ...] = ()) -> None:
        self.ranges = tuple(ranges)

    def __repr__(self) -> str:
        return f"StepMap({self.ranges!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, StepMap) and other.ranges == self.ranges

    def __hash__(self) -> int:
        return hash(self.ranges)

    def map(self, pos: int, assoc: int = 1) -> int:
        return self.map_result(pos, assoc).pos

    def map_result(self, pos: int, assoc: int = 1) -> MapResult:
        diff = 0
        for index, (start, old_size, new_size) in enumerate(self.ranges):
            if start > pos:
                break
            end = start + old_size
            if pos <= end:
                if not old_size:
                    side = assoc
                elif pos == start:
                    side = -1
                elif pos == end:
                    side = 1
                else:
                    side = assoc
                result = start + diff + (0 if side < 0 else new_size)
                edge = start if assoc < 0 else end
                if pos == edge:
                    return MapResult(result)
                return MapResult(result, deleted=True, recover=(index, pos - start))
            diff += new_size - old_size
        return MapResult(pos + diff)

    def recover(self, value: Recover) -> int:
        index, offset = value
        diff = 0
        for start, old_size, new_size in self.ranges[:index]:
            diff += new_size - old_size
        return self.ranges[index][0] + diff + offset

    def invert(self) -> StepMap:
        inverted: List[Range] = []
        diff = 0
        for start, old_size, new_size in self.ranges:
            inverted.append((start + diff, new_size, old_size))
            diff += new_size - old_size
        return StepMap(tuple(inverted))


class Mapping:
    """An ordered pipeline of step maps with optional mirror pairs.

    `slice` returns a view sharing the underlying maps and mirror table, so a
    slice taken from a `Transform` keeps seeing mirrors registered later on the
    parent mapping.
    """

    def __init__(
        self,
        maps: Optional[List[StepMap]] = None,
        mirror: Optional[Dict[int, int]] = None,
        from_: int = 0,
        to: Optional[int] = None,
    ) -> None:
        self.maps: List[StepMap] = maps if maps is not None else []
        self.mirror: Dict[int, int] = mirror if mirror is not None else {}
        self.from_ = from_
        self.to = len(self.maps) if to is None else to

    def __len__(self) -> int:
        return self.to - self.from_

    def slice(self, from_: int = 0, to: Optional[int] = None) -> Mapping:
        return Mapping(self.maps, self.mirror, from_, len(self.maps) if to is None else to)

    def append_map(self, step_map: StepMap, mirrors: Optional[int] = None) -> None:
        self.maps.append(step_map)
        self.to = len(self.maps)
        if mirrors is not None:
            self.set_mirror(self.to - 1, mirrors)

    def set_mirror(self, n: int, m: int) -> None:
        self.mirror[n] = m
        self.mirror[m] = n

    def get_mirror(self, n: int) -> Optional[int]:
        return self.mirror.get(n)

    def map(self, pos: int, assoc: int = 1) -> int:
        return self.map_result(pos, assoc).pos

    def map_result(self, pos: int, assoc: int = 1) -> MapResult:
        deleted = False
        i = self.from_
        while i < self.to:
            result = self.maps[i].map_result(pos, assoc)
            if result.recover is not None:
                corr = self.get_mirror(i)
                if corr is not None and i < corr < self.to:
                    pos = self.maps[corr].recover(result.recover)
                    i = corr + 1
                    continue
            deleted = deleted or result.deleted
            pos = result.pos
            i += 1
        return MapResult(pos, deleted=deleted)
