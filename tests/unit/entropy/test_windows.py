import numpy as np
import pytest

from modentropy.entropy.windows import CombinedWindow, GenomeWindows, StrandedWindow
from modentropy.informatics.modcall import CANONICAL_CALL, FILTERED_CALL, BaseModCall

M = BaseModCall.modified("m")


def _stranded_plus():
    return StrandedWindow([("C", 10), ("C", 20)], None, 2)


def test_stranded_window_requires_sorted_positions():
    with pytest.raises(AssertionError):
        StrandedWindow([("C", 20), ("C", 10)], None, 2)
    with pytest.raises(AssertionError):
        StrandedWindow([("C", 10)], None, 2)
    with pytest.raises(AssertionError):
        StrandedWindow(None, None, 2)


def test_read_must_cover_the_window():
    window = _stranded_plus()
    calls = {("C", 10): M, ("C", 20): CANONICAL_CALL}
    assert not window.add_read_to_patterns(calls, 11, 30, "+", 0)
    assert not window.add_read_to_patterns(calls, 5, 19, "+", 0)
    assert not window.add_read_to_patterns(calls, -1, 30, "+", 0)
    assert not window.add_read_to_patterns(calls, 10, 10, "+", 0)
    assert window.add_read_to_patterns(calls, 10, 20, "+", 0)
    assert window.pos_read_patterns == [[M, CANONICAL_CALL]]
    np.testing.assert_array_equal(window.pos_position_valid_coverages, [1, 1])


def test_missing_calls_are_filtered_and_limited():
    window = _stranded_plus()
    assert not window.add_read_to_patterns({("C", 10): M}, 0, 50, "+", 0)
    assert window.add_read_to_patterns({("C", 10): M}, 0, 50, "+", 1)
    assert window.pos_read_patterns == [[M, FILTERED_CALL]]
    np.testing.assert_array_equal(window.pos_position_valid_coverages, [1, 0])


def test_reads_only_update_their_strand_side():
    window = _stranded_plus()
    calls = {("C", 10): M, ("C", 20): M}
    assert not window.add_read_to_patterns(calls, 0, 50, "-", 0)
    assert window.neg_read_patterns == []
    assert window.neg_interval is None
    assert window.leftmost() == 10 and window.rightmost() == 20


def test_stranded_window_with_both_sides():
    window = StrandedWindow([("C", 10), ("C", 20)], [("G", 10), ("G", 30)], 2)
    assert window.leftmost() == 10
    assert window.rightmost() == 30
    assert window.add_read_to_patterns({("G", 10): M, ("G", 30): M}, 0, 40, "-", 0)
    np.testing.assert_array_equal(window.neg_position_valid_coverages, [1, 1])
    np.testing.assert_array_equal(window.pos_position_valid_coverages, [0, 0])


def test_combined_window_projects_negative_reads():
    window = CombinedWindow(
        (10, 21),
        {("C", 11): ("C", 10), ("C", 21): ("C", 20)},
        2,
    )
    assert window.lookup_positions("+") == [("C", 10), ("C", 20)]
    assert window.lookup_positions("-") == [("C", 11), ("C", 21)]
    assert window.add_read_to_patterns({("C", 10): M, ("C", 20): CANONICAL_CALL}, 0, 30, "+", 0)
    assert window.add_read_to_patterns({("C", 11): CANONICAL_CALL, ("C", 21): M}, 0, 30, "-", 0)
    assert window.read_patterns == [[M, CANONICAL_CALL], [CANONICAL_CALL, M]]
    np.testing.assert_array_equal(window.position_valid_coverages, [2, 2])


def test_updates_are_order_independent():
    reads = [
        ({("C", 10): M, ("C", 20): M}, 0, 50),
        ({("C", 10): CANONICAL_CALL}, 0, 50),
        ({("C", 20): CANONICAL_CALL, ("C", 10): M}, 5, 25),
    ]
    forward, backward = _stranded_plus(), _stranded_plus()
    for calls, start, end in reads:
        forward.add_read_to_patterns(calls, start, end, "+", 1)
    for calls, start, end in reversed(reads):
        backward.add_read_to_patterns(calls, start, end, "+", 1)
    np.testing.assert_array_equal(
        forward.pos_position_valid_coverages, backward.pos_position_valid_coverages
    )
    assert sorted(map(repr, forward.pos_read_patterns)) == sorted(map(repr, backward.pos_read_patterns))


def test_genome_windows_range_and_emptiness():
    windows = GenomeWindows(0, "chr1", [_stranded_plus(), StrandedWindow(None, [("G", 15), ("G", 40)], 2)])
    assert windows.get_range() == (10, 40)
    assert len(windows) == 2
    with pytest.raises(ValueError):
        GenomeWindows(0, "chr1", [])
