"""Global index space for partitioned meshes.

Every partition numbers its nodes and elements with its own labels. The
remapper lays the partitions end to end in two flat arenas, one for nodes
and one for elements, so that partition ``k`` owns the contiguous global
range ``[start_k, start_k + count_k)`` of each arena.

Two lookups are kept:

- per partition: ``(partition, local label) -> global index``. Used for
  connectivity, which is always expressed in the owning partition's labels.
- flattened: ``label -> global index`` across all partitions. Used for field
  blocks that do not name their partition. When a label occurs in more than
  one partition the first one registered keeps it and the label is recorded
  as a duplicate.

Unknown labels resolve to :data:`NOT_FOUND` instead of raising, because
field data is routinely sparse.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Set, Tuple

import numpy as np

NOT_FOUND: int = int(np.iinfo(np.int64).max)


@dataclass
class Partition:
    """Placement of one partition inside the global arenas.

    Attributes
    ----------
    name
        Partition name.
    node_start, node_count
        Global range of the partition's nodes.
    element_start, element_count
        Global range of the partition's elements.
    node_map, element_map
        Local label to global index.
    node_labels, element_labels
        Labels in registration order; ``node_labels[i]`` owns global node
        ``node_start + i``.
    """

    name: str
    node_start: int
    node_count: int
    element_start: int
    element_count: int
    node_map: Dict[int, int] = field(default_factory=dict, repr=False)
    element_map: Dict[int, int] = field(default_factory=dict, repr=False)
    node_labels: np.ndarray = field(
        default_factory=lambda: np.empty((0,), dtype=np.int64), repr=False
    )
    element_labels: np.ndarray = field(
        default_factory=lambda: np.empty((0,), dtype=np.int64), repr=False
    )

    def labels(self, is_node: bool) -> np.ndarray:
        return self.node_labels if is_node else self.element_labels

    def lookup(self, is_node: bool) -> Dict[int, int]:
        return self.node_map if is_node else self.element_map


class GlobalRemapper:
    """Unify partition label spaces into 0-based global node/element ids."""

    def __init__(self) -> None:
        self._partitions: Dict[str, Partition] = {}
        self._order: List[str] = []
        self._flat_nodes: Dict[int, int] = {}
        self._flat_elems: Dict[int, int] = {}
        self.duplicate_node_labels: Set[int] = set()
        self.duplicate_element_labels: Set[int] = set()
        self._nnodes = 0
        self._nelems = 0

    def __repr__(self) -> str:
        return (
            f"GlobalRemapper(partitions={len(self._order)}, nodes={self._nnodes}, "
            f"elements={self._nelems}, dup_nodes={len(self.duplicate_node_labels)}, "
            f"dup_elements={len(self.duplicate_element_labels)})"
        )

    __str__ = __repr__

    # -------------- registration --------------

    @staticmethod
    def _assign(
        labels: np.ndarray,
        start: int,
        local: Dict[int, int],
        flat: Dict[int, int],
        duplicates: Set[int],
    ) -> None:
        """Give each label the next global index; first writer wins on clashes."""
        for offset, lab in enumerate(labels.tolist()):
            if lab in local:
                duplicates.add(lab)
                continue
            gidx = start + offset
            local[lab] = gidx
            if lab in flat:
                duplicates.add(lab)
            else:
                flat[lab] = gidx

    def add_partition(
        self,
        name: str,
        node_labels: Iterable[int] | np.ndarray,
        element_labels: Iterable[int] | np.ndarray,
    ) -> Partition:
        """Register one partition and return its placement.

        Parameters
        ----------
        name
            Partition name. Must be new to this remapper.
        node_labels, element_labels
            Local labels in the order the partition lists its entities.

        Raises
        ------
        ValueError
            If ``name`` is already registered.
        """
        if name in self._partitions:
            raise ValueError(f"partition '{name}' already registered")
        nl = np.fromiter(node_labels, dtype=np.int64)
        el = np.fromiter(element_labels, dtype=np.int64)

        part = Partition(
            name=name,
            node_start=self._nnodes,
            node_count=int(nl.size),
            element_start=self._nelems,
            element_count=int(el.size),
            node_labels=nl.copy(),
            element_labels=el.copy(),
        )
        self._assign(
            nl, part.node_start, part.node_map, self._flat_nodes, self.duplicate_node_labels
        )
        self._assign(
            el,
            part.element_start,
            part.element_map,
            self._flat_elems,
            self.duplicate_element_labels,
        )
        self._partitions[name] = part
        self._order.append(name)
        self._nnodes += part.node_count
        self._nelems += part.element_count
        return part

    # -------------- queries --------------

    @property
    def nnodes(self) -> int:
        return self._nnodes

    @property
    def nelems(self) -> int:
        return self._nelems

    @property
    def partition_names(self) -> List[str]:
        return list(self._order)

    @property
    def partitions(self) -> List[Partition]:
        return [self._partitions[n] for n in self._order]

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, name: object) -> bool:
        return name in self._partitions

    def partition(self, name: str) -> Partition:
        """Return a partition by name.

        Raises
        ------
        KeyError
            If the partition name does not exist.
        """
        return self._partitions[name]

    def count(self, is_node: bool) -> int:
        return self._nnodes if is_node else self._nelems

    def _table(self, is_node: bool, partition: str | None) -> Dict[int, int]:
        if partition is None:
            return self._flat_nodes if is_node else self._flat_elems
        part = self._partitions.get(partition)
        if part is None:
            return {}
        return part.lookup(is_node)

    def resolve(self, label: int, is_node: bool, partition: str | None = None) -> int:
        """Return the global index of ``label`` or :data:`NOT_FOUND`.

        Parameters
        ----------
        label
            Local label.
        is_node
            ``True`` for nodes, ``False`` for elements.
        partition
            Restrict the lookup to one partition. ``None`` uses the flattened
            map (first registration wins for duplicated labels).
        """
        return self._table(is_node, partition).get(int(label), NOT_FOUND)

    def resolve_many(
        self,
        labels: Iterable[int] | np.ndarray,
        is_node: bool,
        partition: str | None = None,
    ) -> np.ndarray:
        """Vectorized :meth:`resolve`. Returns an ``int64`` array."""
        table = self._table(is_node, partition)
        arr = np.asarray(labels, dtype=np.int64).reshape(-1)
        return np.fromiter(
            (table.get(lab, NOT_FOUND) for lab in arr.tolist()),
            dtype=np.int64,
            count=arr.size,
        )

    def owner(self, index: int, is_node: bool) -> Tuple[str, int]:
        """Return the ``(partition, label)`` pair that owns a global index.

        Raises
        ------
        IndexError
            If ``index`` is outside the global range.
        """
        total = self.count(is_node)
        if index < 0 or index >= total:
            raise IndexError(f"global index {index} out of range [0, {total})")
        starts = np.asarray(
            [p.node_start if is_node else p.element_start for p in self.partitions],
            dtype=np.int64,
        )
        # empty partitions share their start with the next one; "right" skips them
        k = int(np.searchsorted(starts, index, side="right")) - 1
        part = self.partitions[k]
        start = part.node_start if is_node else part.element_start
        return part.name, int(part.labels(is_node)[index - start])
