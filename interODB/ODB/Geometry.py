"""Global geometry tables built from partition data.

The store holds three tables indexed by global id: node coordinates,
element connectivity (global node ids), and element type tags. They are
filled once from the partitions and can be released after the mesh has
been assembled; the label maps in :class:`~interODB.ODB.Remap.GlobalRemapper`
stay alive for field lookups.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

import numpy as np

from interODB.errors import DiagnosticKind, DiagnosticLog
from interODB.Mesh.Mesh import ElementArray, ElementRecord, NodeArray

from .Remap import NOT_FOUND, GlobalRemapper
from .Source import PartitionData


def reconcile_counts(
    part: PartitionData, diagnostics: DiagnosticLog | None = None
) -> Tuple[int, int]:
    """Return usable ``(nodes, elements)`` counts for a partition.

    The usable count is the smallest of the declared count and the length of
    every collected list. A disagreement is reported as truncation.
    """
    node_sizes = (
        part.declared_nodes,
        len(part.node_labels),
        int(part.coordinates.shape[0]),
    )
    elem_sizes = (
        part.declared_elements,
        len(part.element_labels),
        len(part.element_types),
        len(part.connectivity),
    )
    nn = min(node_sizes)
    ne = min(elem_sizes)
    if diagnostics is not None and (max(node_sizes) != nn or max(elem_sizes) != ne):
        diagnostics.warn(
            DiagnosticKind.TRUNCATED,
            f"partition '{part.name}' is incomplete: nodes declared/labels/coords="
            f"{node_sizes}, elements declared/labels/types/conn={elem_sizes}; "
            f"using nodes={nn}, elements={ne}",
            partition=part.name,
            nodes=nn,
            elements=ne,
        )
    return nn, ne


class GeometryStore:
    """Coordinates, connectivity, and type tags by global id."""

    def __init__(self, logger=None, diagnostics: DiagnosticLog | None = None):
        if logger is None:
            from interODB.Log import Log

            logger = Log().logger
        self.logger = logger
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticLog(logger)
        self._xyz: np.ndarray | None = None
        self._elements: ElementArray | None = None

    def __repr__(self) -> str:
        if not self.is_built:
            return "GeometryStore(released)"
        return f"GeometryStore(nodes={self.nnodes}, elements={self.nelems})"

    __str__ = __repr__

    # -------------- construction --------------

    def build(self, partitions: Sequence[PartitionData], remapper: GlobalRemapper) -> None:
        """Fill the tables from ``partitions`` in the order given.

        An empty ``remapper`` is populated here. A populated one (rebuild
        after :meth:`release`) is reused and must list the same partitions.

        Raises
        ------
        ValueError
            If a populated remapper does not match ``partitions``.
        """
        if len(remapper) == 0:
            for part in partitions:
                nn, ne = reconcile_counts(part, self.diagnostics)
                remapper.add_partition(
                    part.name, part.node_labels[:nn], part.element_labels[:ne]
                )
        else:
            names = [p.name for p in partitions]
            if names != remapper.partition_names:
                raise ValueError(
                    f"partitions {names} do not match the registered {remapper.partition_names}"
                )

        xyz = np.zeros((remapper.nnodes, 3), dtype=float)
        conn_list: List[np.ndarray] = []
        etype_list: List[str] = []

        for part in partitions:
            placed = remapper.partition(part.name)
            n0, nn = placed.node_start, placed.node_count
            xyz[n0 : n0 + nn] = part.coordinates[:nn]
            local = placed.node_map
            for i in range(placed.element_count):
                labels = part.connectivity[i]
                gids = np.fromiter(
                    (local.get(lab, NOT_FOUND) for lab in labels.tolist()),
                    dtype=np.int64,
                    count=labels.size,
                )
                missing = gids == NOT_FOUND
                if np.any(missing):
                    for lab in labels[missing].tolist():
                        self.diagnostics.warn(
                            DiagnosticKind.UNRESOLVED_LABEL,
                            f"node label {lab} not found in partition '{part.name}' "
                            f"(element label {int(placed.element_labels[i])}); using node 0",
                            partition=part.name,
                            label=int(lab),
                        )
                    gids[missing] = 0
                conn_list.append(gids)
                etype_list.append(part.element_types[i])

        self._xyz = xyz
        self._elements = ElementArray.from_ragged(conn_list, etype_list)
        self.logger.info(
            "Geometry built from {} partitions: {} nodes, {} elements",
            len(remapper),
            self.nnodes,
            self.nelems,
        )

    def release(self) -> None:
        """Drop all three tables. Queries fail until :meth:`build` runs again."""
        self._xyz = None
        self._elements = None
        self.logger.debug("Geometry tables released")

    # -------------- queries --------------

    @property
    def is_built(self) -> bool:
        return self._xyz is not None and self._elements is not None

    def _require(self) -> None:
        if not self.is_built:
            raise RuntimeError("geometry has been released or was never built")

    @property
    def nnodes(self) -> int:
        self._require()
        return int(self._xyz.shape[0])  # type: ignore[union-attr]

    @property
    def nelems(self) -> int:
        self._require()
        return len(self._elements)  # type: ignore[arg-type]

    @property
    def coordinates(self) -> np.ndarray:
        """Return the ``(N, 3)`` float64 coordinate table."""
        self._require()
        return self._xyz  # type: ignore[return-value]

    @property
    def nodes(self) -> NodeArray:
        return NodeArray(self.coordinates)

    @property
    def elements(self) -> ElementArray:
        """Return the padded element table (global node ids + type tags)."""
        self._require()
        return self._elements  # type: ignore[return-value]

    @property
    def element_types(self) -> np.ndarray:
        return self.elements.etype

    def element(self, ei: int) -> ElementRecord:
        """Return one element record by global id."""
        return self.elements.record(ei)
