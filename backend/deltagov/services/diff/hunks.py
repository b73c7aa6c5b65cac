"""
Hunk assembly: groups a flat edit script into context-bounded change regions.

Two change runs separated by at most ``2 * context_lines`` unchanged tokens
share one hunk, and every hunk carries up to ``context_lines`` unchanged
tokens on each side, as in a unified diff.
"""

from __future__ import annotations

from collections.abc import Sequence

from deltagov.services.diff.models import ChangeKind, EditOperation, Hunk


def count_operations(script: Sequence[EditOperation]) -> tuple[int, int, int]:
    """Return ``(insertions, deletions, unchanged)`` in one pass over the script."""
    insertions = deletions = unchanged = 0
    for op in script:
        if op.kind is ChangeKind.INSERTION:
            insertions += 1
        elif op.kind is ChangeKind.DELETION:
            deletions += 1
        else:
            unchanged += 1
    return insertions, deletions, unchanged


def assemble(
    script: Sequence[EditOperation],
    context_lines: int,
    full_context_when_unchanged: bool = False,
) -> list[Hunk]:
    """
    Group ``script`` into hunks.

    A script without changes yields no hunks, unless
    ``full_context_when_unchanged`` is set, in which case the whole script
    is returned as a single hunk of unchanged context (still no hunk for an
    empty script).

    Raises:
        ValueError: ``context_lines`` is negative.
    """
    if context_lines < 0:
        raise ValueError("context_lines must be >= 0")

    changes = [i for i, op in enumerate(script) if op.is_change]
    if not changes:
        if full_context_when_unchanged and script:
            return [Hunk(start_a=0, start_b=0, lines=tuple(script))]
        return []

    spans: list[tuple[int, int]] = []
    first = last = changes[0]
    for idx in changes[1:]:
        if idx - last - 1 <= 2 * context_lines:
            last = idx
            continue
        spans.append((first, last))
        first = last = idx
    spans.append((first, last))

    hunks: list[Hunk] = []
    pos_a = pos_b = 0
    cursor = 0
    for first, last in spans:
        lo = max(first - context_lines, 0)
        hi = min(last + 1 + context_lines, len(script))
        # advance the sequence offsets over everything skipped since the last hunk
        for op in script[cursor:lo]:
            if op.kind is not ChangeKind.INSERTION:
                pos_a += 1
            if op.kind is not ChangeKind.DELETION:
                pos_b += 1
        hunk = Hunk(start_a=pos_a, start_b=pos_b, lines=tuple(script[lo:hi]))
        hunks.append(hunk)
        pos_a += hunk.count_a
        pos_b += hunk.count_b
        cursor = hi
    return hunks
