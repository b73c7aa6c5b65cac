"""
Delta response schemas.

The wire format is camelCase: ``{fromVersion, toVersion, granularity,
insertions, deletions, unchanged, isApproximate, hunks: [{startA, startB,
lines: [{type, text}]}]}``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from deltagov.services.diff.models import ChangeKind, DeltaResult, Granularity


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LineOut(_CamelModel):
    type: ChangeKind
    text: str


class HunkOut(_CamelModel):
    start_a: int
    start_b: int
    lines: list[LineOut]


class DeltaOut(_CamelModel):
    from_version: str
    to_version: str
    granularity: Granularity
    insertions: int
    deletions: int
    unchanged: int
    is_approximate: bool
    hunks: list[HunkOut]

    @classmethod
    def from_delta(cls, delta: DeltaResult) -> DeltaOut:
        return cls(
            from_version=delta.from_version,
            to_version=delta.to_version,
            granularity=delta.granularity,
            insertions=delta.insertions,
            deletions=delta.deletions,
            unchanged=delta.unchanged,
            is_approximate=delta.is_approximate,
            hunks=[
                HunkOut(
                    start_a=h.start_a,
                    start_b=h.start_b,
                    lines=[LineOut(type=op.kind, text=op.text) for op in h.lines],
                )
                for h in delta.hunks
            ],
        )
