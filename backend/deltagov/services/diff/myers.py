"""
Myers shortest-edit-script computation.

Linear-space variant: the common prefix and suffix are stripped, then the
remaining block is split at the middle snake found by running the greedy
forward and reverse searches towards each other, and both halves are solved
recursively. Time is O((N+M)·D) where D is the edit distance, which stays
small for incremental legislative amendments even on long bills.

Tokens are interned to integers in first-seen order before the search so
comparisons are cheap and the output never depends on hash ordering.
"""

from __future__ import annotations

from collections.abc import Sequence

from deltagov.services.diff.models import ChangeKind, EditOperation

# (kind, a_index, b_index) triples; converted to EditOperation at the end
_RawOp = tuple[ChangeKind, int | None, int | None]


def _intern(seq_a: Sequence[str], seq_b: Sequence[str]) -> tuple[list[int], list[int]]:
    table: dict[str, int] = {}
    a = [table.setdefault(tok, len(table)) for tok in seq_a]
    b = [table.setdefault(tok, len(table)) for tok in seq_b]
    return a, b


def compute_edit_script(seq_a: Sequence[str], seq_b: Sequence[str]) -> list[EditOperation]:
    """
    Return the shortest edit script turning ``seq_a`` into ``seq_b``.

    Within every run of consecutive changes the deletions come before the
    insertions. Neither input is modified.
    """
    a, b = _intern(seq_a, seq_b)
    raw: list[_RawOp] = []
    _diff(a, 0, len(a), b, 0, len(b), raw)

    script: list[EditOperation] = []
    pending_ins: list[EditOperation] = []
    for kind, ai, bi in raw:
        if kind is ChangeKind.INSERTION:
            pending_ins.append(EditOperation(kind, seq_b[bi], None, bi))  # type: ignore[index]
            continue
        if kind is ChangeKind.DELETION:
            script.append(EditOperation(kind, seq_a[ai], ai, None))  # type: ignore[index]
            continue
        script.extend(pending_ins)
        pending_ins.clear()
        script.append(EditOperation(kind, seq_a[ai], ai, bi))  # type: ignore[index]
    script.extend(pending_ins)
    return script


def _diff(
    a: list[int], a_lo: int, a_hi: int, b: list[int], b_lo: int, b_hi: int, out: list[_RawOp]
) -> None:
    while a_lo < a_hi and b_lo < b_hi and a[a_lo] == b[b_lo]:
        out.append((ChangeKind.UNCHANGED, a_lo, b_lo))
        a_lo += 1
        b_lo += 1

    suffix = 0
    while a_lo < a_hi and b_lo < b_hi and a[a_hi - 1] == b[b_hi - 1]:
        a_hi -= 1
        b_hi -= 1
        suffix += 1

    if a_lo == a_hi:
        out.extend((ChangeKind.INSERTION, None, j) for j in range(b_lo, b_hi))
    elif b_lo == b_hi:
        out.extend((ChangeKind.DELETION, i, None) for i in range(a_lo, a_hi))
    else:
        split = _middle_snake(a, a_lo, a_hi, b, b_lo, b_hi)
        if split is None:
            out.extend((ChangeKind.DELETION, i, None) for i in range(a_lo, a_hi))
            out.extend((ChangeKind.INSERTION, None, j) for j in range(b_lo, b_hi))
        else:
            x, y = split
            _diff(a, a_lo, x, b, b_lo, y, out)
            _diff(a, x, a_hi, b, y, b_hi, out)

    out.extend((ChangeKind.UNCHANGED, a_hi + i, b_hi + i) for i in range(suffix))


def _middle_snake(
    a: list[int], a_lo: int, a_hi: int, b: list[int], b_lo: int, b_hi: int
) -> tuple[int, int] | None:
    """
    Return an absolute point ``(x, y)`` on a shortest path through the block.

    Both halves on either side of the point need strictly fewer edits than
    the whole block, so recursion terminates. Returns None only when the two
    searches never meet, in which case the block has no tokens in common.
    """
    n = a_hi - a_lo
    m = b_hi - b_lo
    max_d = (n + m + 1) // 2
    offset = max_d
    size = 2 * max_d + 2
    forward = [-1] * size
    reverse = [-1] * size
    forward[offset + 1] = 0
    reverse[offset + 1] = 0
    delta = n - m
    odd = delta % 2 != 0

    # Diagonals that ran off the grid are skipped on later rounds
    k1_start = k1_end = k2_start = k2_end = 0

    for d in range(max_d):
        for k1 in range(-d + k1_start, d + 1 - k1_end, 2):
            i = offset + k1
            if k1 == -d or (k1 != d and forward[i - 1] < forward[i + 1]):
                x1 = forward[i + 1]
            else:
                x1 = forward[i - 1] + 1
            y1 = x1 - k1
            while x1 < n and y1 < m and a[a_lo + x1] == b[b_lo + y1]:
                x1 += 1
                y1 += 1
            forward[i] = x1
            if x1 > n:
                k1_end += 2
            elif y1 > m:
                k1_start += 2
            elif odd:
                k2 = delta - k1
                j = offset + k2
                if 0 <= j < size and reverse[j] != -1:
                    x2 = reverse[j]
                    # the reverse endpoint must itself lie on the grid
                    if x2 <= n and x2 - k2 <= m and x1 >= n - x2:
                        return a_lo + x1, b_lo + y1

        for k2 in range(-d + k2_start, d + 1 - k2_end, 2):
            j = offset + k2
            if k2 == -d or (k2 != d and reverse[j - 1] < reverse[j + 1]):
                x2 = reverse[j + 1]
            else:
                x2 = reverse[j - 1] + 1
            y2 = x2 - k2
            while x2 < n and y2 < m and a[a_hi - x2 - 1] == b[b_hi - y2 - 1]:
                x2 += 1
                y2 += 1
            reverse[j] = x2
            if x2 > n:
                k2_end += 2
            elif y2 > m:
                k2_start += 2
            elif not odd:
                k1 = delta - k2
                i = offset + k1
                if 0 <= i < size and forward[i] != -1:
                    x1 = forward[i]
                    y1 = x1 - k1
                    if x1 <= n and 0 <= y1 <= m and x1 >= n - x2:
                        return a_lo + x1, b_lo + y1

    return None
