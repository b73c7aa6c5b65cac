"""Unit tests for deltagov.services.diff.myers."""
import random

import pytest

from deltagov.services.diff.models import ChangeKind
from deltagov.services.diff.myers import compute_edit_script


def _apply(script, seq_a):
    """Rebuild the destination from the source using only the script's indices."""
    out = []
    for op in script:
        if op.kind is ChangeKind.UNCHANGED:
            assert seq_a[op.a_index] == op.text
            out.append(op.text)
        elif op.kind is ChangeKind.INSERTION:
            out.append(op.text)
    return out


def _distance(script):
    return sum(1 for op in script if op.is_change)


def _lcs_length(a, b):
    prev = [0] * (len(b) + 1)
    for x in a:
        cur = [0]
        for j, y in enumerate(b):
            cur.append(prev[j] + 1 if x == y else max(prev[j + 1], cur[j]))
        prev = cur
    return prev[-1]


def test_identical_sequences_are_all_unchanged():
    script = compute_edit_script(["a", "b", "c"], ["a", "b", "c"])
    assert [op.kind for op in script] == [ChangeKind.UNCHANGED] * 3
    assert [(op.a_index, op.b_index) for op in script] == [(0, 0), (1, 1), (2, 2)]


def test_empty_inputs():
    assert compute_edit_script([], []) == []
    assert [op.kind for op in compute_edit_script([], ["x", "y"])] == [ChangeKind.INSERTION] * 2
    assert [op.kind for op in compute_edit_script(["x"], [])] == [ChangeKind.DELETION]


def test_replacement_puts_deletion_before_insertion():
    script = compute_edit_script(["SECTION 1.", "foo"], ["SECTION 1.", "bar"])
    assert [(op.kind, op.text) for op in script] == [
        (ChangeKind.UNCHANGED, "SECTION 1."),
        (ChangeKind.DELETION, "foo"),
        (ChangeKind.INSERTION, "bar"),
    ]


def test_indices_point_into_their_own_sequence():
    a = ["x", "a", "b", "y"]
    b = ["a", "z", "b"]
    for op in compute_edit_script(a, b):
        if op.kind is ChangeKind.DELETION:
            assert op.b_index is None and a[op.a_index] == op.text
        elif op.kind is ChangeKind.INSERTION:
            assert op.a_index is None and b[op.b_index] == op.text
        else:
            assert a[op.a_index] == b[op.b_index] == op.text


def test_classic_myers_example_has_distance_five():
    a = list("ABCABBA")
    b = list("CBABAC")
    script = compute_edit_script(a, b)
    assert _apply(script, a) == b
    assert _distance(script) == 5


def test_inputs_are_not_modified():
    a = ["1", "2", "3"]
    b = ["3", "2", "1"]
    compute_edit_script(a, b)
    assert a == ["1", "2", "3"]
    assert b == ["3", "2", "1"]


@pytest.mark.parametrize("seed", range(25))
def test_random_scripts_are_minimal_and_valid(seed):
    rng = random.Random(seed)
    alphabet = "abcd"
    a = [rng.choice(alphabet) for _ in range(rng.randint(0, 30))]
    b = [rng.choice(alphabet) for _ in range(rng.randint(0, 30))]
    script = compute_edit_script(a, b)

    assert _apply(script, a) == b
    # keeps plus deletions walk the source in order
    assert [op.text for op in script if op.kind is not ChangeKind.INSERTION] == a
    assert _distance(script) == len(a) + len(b) - 2 * _lcs_length(a, b)


def test_change_runs_are_deletions_first():
    rng = random.Random(7)
    a = [rng.choice("xyz") for _ in range(40)]
    b = [rng.choice("xyz") for _ in range(40)]
    script = compute_edit_script(a, b)
    for prev, cur in zip(script, script[1:]):
        assert not (prev.kind is ChangeKind.INSERTION and cur.kind is ChangeKind.DELETION)
