from __future__ import annotations

import numpy as np
import pytest

from interODB.ODB.Remap import NOT_FOUND, GlobalRemapper


def test_distinct_labels_are_a_bijection():
    rm = GlobalRemapper()
    rm.add_partition("A", [1, 2, 3], [1, 2])
    rm.add_partition("B", [10, 11], [7])

    assert rm.nnodes == 5
    assert rm.nelems == 3
    assert rm.partition_names == ["A", "B"]
    assert "B" in rm
    assert "C" not in rm
    assert not rm.duplicate_node_labels
    assert not rm.duplicate_element_labels

    pairs = [("A", 1), ("A", 2), ("A", 3), ("B", 10), ("B", 11)]
    for gidx, (name, label) in enumerate(pairs):
        assert rm.resolve(label, True, name) == gidx
        assert rm.resolve(label, True) == gidx
        assert rm.owner(gidx, True) == (name, label)

    assert rm.owner(2, False) == ("B", 7)
    b = rm.partition("B")
    assert (b.node_start, b.node_count, b.element_start, b.element_count) == (3, 2, 2, 1)


def test_duplicate_label_first_partition_wins():
    rm = GlobalRemapper()
    rm.add_partition("A", [1, 2, 3], [1])
    rm.add_partition("B", [1, 2], [1])

    assert rm.nnodes == 5
    assert rm.nelems == 2
    assert rm.resolve(1, True) == 0
    assert rm.resolve(2, True) == 1
    assert rm.resolve(1, True, "B") == 3
    assert rm.resolve(1, False, "B") == 1
    assert rm.duplicate_node_labels == {1, 2}
    assert rm.duplicate_element_labels == {1}
    assert rm.owner(4, True) == ("B", 2)


def test_label_repeated_inside_one_partition():
    rm = GlobalRemapper()
    rm.add_partition("A", [5, 5, 6], [])

    assert rm.nnodes == 3
    assert rm.resolve(5, True) == 0
    assert rm.resolve(6, True) == 2
    assert rm.duplicate_node_labels == {5}
    assert rm.owner(1, True) == ("A", 5)


def test_unknown_labels_resolve_to_sentinel():
    rm = GlobalRemapper()
    rm.add_partition("A", [1, 2], [1])

    assert rm.resolve(99, True) == NOT_FOUND
    assert rm.resolve(1, True, "missing") == NOT_FOUND
    assert rm.resolve(2, False) == NOT_FOUND

    out = rm.resolve_many([2, 99, 1], True)
    assert out.dtype == np.int64
    np.testing.assert_array_equal(out, [1, NOT_FOUND, 0])


def test_registering_a_name_twice_raises():
    rm = GlobalRemapper()
    rm.add_partition("A", [1], [])
    with pytest.raises(ValueError):
        rm.add_partition("A", [2], [])
    assert rm.nnodes == 1


def test_owner_skips_empty_partitions():
    rm = GlobalRemapper()
    rm.add_partition("A", [1, 2], [])
    rm.add_partition("EMPTY", [], [])
    rm.add_partition("C", [8], [3])

    assert rm.owner(2, True) == ("C", 8)
    assert rm.owner(0, False) == ("C", 3)
    with pytest.raises(IndexError):
        rm.owner(3, True)
    with pytest.raises(IndexError):
        rm.owner(-1, True)
