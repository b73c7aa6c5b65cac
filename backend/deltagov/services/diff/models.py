"""
Value types produced by the diff engine.

All types are frozen dataclasses so a computed delta can be shared between
concurrent callers and cached without defensive copies. ``delta_to_json`` /
``json_to_delta`` give the compact form stored in the ``deltas`` table.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, replace
from enum import StrEnum
from typing import Any

from deltagov.config.settings import DiffGranularity as Granularity

__all__ = [
    "ChangeKind",
    "DeltaResult",
    "EditOperation",
    "Granularity",
    "Hunk",
    "PairKey",
    "delta_to_json",
    "json_to_delta",
]


class ChangeKind(StrEnum):
    INSERTION = "insertion"
    DELETION = "deletion"
    UNCHANGED = "unchanged"


@dataclass(frozen=True, slots=True)
class EditOperation:
    """
    One step of an edit script.

    ``a_index`` is the 0-based position in the source sequence and is None
    for insertions; ``b_index`` is the position in the destination and is
    None for deletions.
    """

    kind: ChangeKind
    text: str
    a_index: int | None = None
    b_index: int | None = None

    @property
    def is_change(self) -> bool:
        return self.kind is not ChangeKind.UNCHANGED

    def reversed(self) -> EditOperation:
        if self.kind is ChangeKind.INSERTION:
            kind = ChangeKind.DELETION
        elif self.kind is ChangeKind.DELETION:
            kind = ChangeKind.INSERTION
        else:
            kind = ChangeKind.UNCHANGED
        return EditOperation(kind, self.text, a_index=self.b_index, b_index=self.a_index)


@dataclass(frozen=True, slots=True)
class Hunk:
    """A contiguous slice of the edit script plus its surrounding context."""

    start_a: int
    start_b: int
    lines: tuple[EditOperation, ...] = ()

    @property
    def count_a(self) -> int:
        return sum(1 for op in self.lines if op.kind is not ChangeKind.INSERTION)

    @property
    def count_b(self) -> int:
        return sum(1 for op in self.lines if op.kind is not ChangeKind.DELETION)

    def reversed(self) -> Hunk:
        return Hunk(
            start_a=self.start_b,
            start_b=self.start_a,
            lines=_deletions_first(op.reversed() for op in self.lines),
        )


@dataclass(frozen=True, slots=True)
class DeltaResult:
    """The computed difference between two versions of a bill."""

    from_version: str
    to_version: str
    granularity: Granularity
    insertions: int
    deletions: int
    unchanged: int
    hunks: tuple[Hunk, ...] = field(default_factory=tuple)
    is_approximate: bool = False

    @property
    def has_changes(self) -> bool:
        return self.insertions > 0 or self.deletions > 0

    def reversed(self) -> DeltaResult:
        """Return the same delta seen from ``to_version`` back to ``from_version``."""
        return replace(
            self,
            from_version=self.to_version,
            to_version=self.from_version,
            insertions=self.deletions,
            deletions=self.insertions,
            hunks=tuple(h.reversed() for h in self.hunks),
        )


@dataclass(frozen=True, slots=True)
class PairKey:
    """
    Order-independent cache key for a comparison between two versions.

    ``variant`` encodes the diff options so deltas rendered with different
    granularity or context never share a cache entry.
    """

    low: str
    high: str
    variant: str

    @classmethod
    def of(cls, from_id: str, to_id: str, variant: str) -> PairKey:
        low, high = sorted((from_id, to_id))
        return cls(low=low, high=high, variant=variant)

    def is_reversed(self, from_id: str) -> bool:
        """True when a caller asking ``from_id → other`` needs the delta flipped."""
        return from_id != self.low

    def __str__(self) -> str:
        return f"{self.low}:{self.high}:{self.variant}"


def _deletions_first(ops: Any) -> tuple[EditOperation, ...]:
    """Reorder every maximal change run so its deletions precede its insertions."""
    out: list[EditOperation] = []
    deletions: list[EditOperation] = []
    insertions: list[EditOperation] = []
    for op in ops:
        if op.kind is ChangeKind.DELETION:
            deletions.append(op)
        elif op.kind is ChangeKind.INSERTION:
            insertions.append(op)
        else:
            out.extend(deletions)
            out.extend(insertions)
            deletions.clear()
            insertions.clear()
            out.append(op)
    out.extend(deletions)
    out.extend(insertions)
    return tuple(out)


# ── Serialisation ─────────────────────────────────────────────────────── #


def delta_to_json(delta: DeltaResult) -> str:
    """Serialise a delta to a compact JSON string for DB storage."""
    return json.dumps(asdict(delta), ensure_ascii=False, separators=(",", ":"))


def json_to_delta(raw: str) -> DeltaResult:
    """Deserialise a JSON delta string back to a DeltaResult."""
    data = json.loads(raw)
    hunks = tuple(
        Hunk(
            start_a=h["start_a"],
            start_b=h["start_b"],
            lines=tuple(
                EditOperation(
                    kind=ChangeKind(op["kind"]),
                    text=op["text"],
                    a_index=op["a_index"],
                    b_index=op["b_index"],
                )
                for op in h["lines"]
            ),
        )
        for h in data["hunks"]
    )
    return DeltaResult(
        from_version=data["from_version"],
        to_version=data["to_version"],
        granularity=Granularity(data["granularity"]),
        insertions=data["insertions"],
        deletions=data["deletions"],
        unchanged=data["unchanged"],
        hunks=hunks,
        is_approximate=data["is_approximate"],
    )
