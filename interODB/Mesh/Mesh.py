"""Mesh containers for interODB.

Two element layouts live here:

- :class:`ElementArray` keeps the *source* element records (global node ids
  plus the database type tag) padded to a fixed width. It is what the
  geometry store hands to the assembler.
- :class:`CellArray` is the columnar *output* layout: one cell type per
  element, an offsets array of length ``E + 1``, and one flat connectivity
  buffer. Unsupported elements keep their slot as an empty cell.

:class:`Mesh` combines points, cells, and the named arrays attached to
points or cells after assembly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

EMPTY_CELL = 0


@dataclass
class NodeArray:
    """Point coordinates by global node id.

    ``xyz`` is stored as float64 with shape ``(N, 3)``; planar input gets
    ``z = 0`` and extra columns are dropped.
    """

    xyz: np.ndarray

    def __post_init__(self) -> None:
        pts = np.asanyarray(self.xyz, dtype=float)
        if pts.size == 0:
            pts = np.zeros((0, 3), dtype=float)
        if pts.ndim != 2:
            raise ValueError(f"coordinates must be (N, 3), got shape {pts.shape}")
        if pts.shape[1] < 3:
            pad = np.zeros((pts.shape[0], 3 - pts.shape[1]), dtype=pts.dtype)
            pts = np.hstack((pts, pad))
        self.xyz = pts[:, :3]

    def __len__(self) -> int:
        return int(self.xyz.shape[0])


@dataclass
class ElementRecord:
    """One source element: global node ids and the database type tag."""

    nodes: np.ndarray
    etype: str

    def __len__(self) -> int:
        return int(self.nodes.size)


@dataclass
class ElementArray:
    """Source elements of mixed arity, right-padded with ``-1``.

    Attributes
    ----------
    conn
        ``(E, Kmax)`` int64 global node ids.
    nper
        ``(E,)`` node count of each row; slots past it are padding.
    etype
        ``(E,)`` database tags such as ``'C3D8R'`` or ``'S4'``, kept verbatim.
    """

    conn: np.ndarray
    nper: np.ndarray
    etype: np.ndarray

    def __post_init__(self) -> None:
        conn = np.asanyarray(self.conn, dtype=np.int64)
        if conn.size == 0 and conn.ndim < 2:
            conn = conn.reshape(0, 0)
        if conn.ndim != 2:
            raise ValueError("conn must be (E, Kmax)")
        self.conn = conn
        self.nper = np.asanyarray(self.nper, dtype=np.int64).reshape(-1)
        self.etype = np.asanyarray(self.etype, dtype=object).reshape(-1)
        n = conn.shape[0]
        if self.nper.shape[0] != n or self.etype.shape[0] != n:
            raise ValueError(
                f"element tables disagree: conn={n}, nper={self.nper.shape[0]}, "
                f"etype={self.etype.shape[0]}"
            )

    @classmethod
    def from_ragged(
        cls, conn_list: Sequence[Sequence[int]], etypes: Sequence[str]
    ) -> ElementArray:
        """Pad one node id list per element into a table."""
        nper = np.fromiter((len(c) for c in conn_list), dtype=np.int64, count=len(conn_list))
        conn = np.full((nper.size, int(nper.max(initial=0))), -1, dtype=np.int64)
        for row, ids in zip(conn, conn_list):
            row[: len(ids)] = ids
        return cls(conn=conn, nper=nper, etype=np.asarray(list(etypes), dtype=object))

    def __len__(self) -> int:
        return int(self.conn.shape[0])

    def __getitem__(self, idx: slice | np.ndarray | list[int]) -> ElementArray:
        """Return the selected rows as a new table."""
        return ElementArray(self.conn[idx], self.nper[idx], self.etype[idx])

    def nodes_of(self, ei: int) -> np.ndarray:
        """Return the node ids of element ``ei`` without padding."""
        return self.conn[ei, : self.nper[ei]]

    def record(self, ei: int) -> ElementRecord:
        return ElementRecord(nodes=self.nodes_of(ei).copy(), etype=str(self.etype[ei]))

    def total_nodes(self) -> int:
        """Return the connectivity length summed over all elements."""
        return int(self.nper.sum())

    def valid_mask(self) -> np.ndarray:
        """Return a ``conn``-shaped mask that is ``False`` on padding."""
        return np.arange(self.conn.shape[1])[None, :] < self.nper[:, None]


@dataclass
class CellArray:
    """Columnar cell list.

    Attributes
    ----------
    types
        Array of shape ``(E,)``, ``uint8`` VTK cell type ids. ``0`` is the
        empty cell.
    offsets
        Array of shape ``(E + 1,)``. Cell ``i`` uses
        ``connectivity[offsets[i]:offsets[i + 1]]``.
    connectivity
        Flat array of 0-based point ids.
    """

    types: np.ndarray
    offsets: np.ndarray
    connectivity: np.ndarray

    def __post_init__(self) -> None:
        self.types = np.asanyarray(self.types, dtype=np.uint8).reshape(-1)
        self.offsets = np.asanyarray(self.offsets, dtype=np.int64).reshape(-1)
        self.connectivity = np.asanyarray(self.connectivity, dtype=np.int64).reshape(-1)
        if self.offsets.shape[0] != self.types.shape[0] + 1:
            raise ValueError("offsets must have one more entry than types")
        if self.offsets[0] != 0:
            raise ValueError("offsets must start at 0")
        if int(self.offsets[-1]) != self.connectivity.shape[0]:
            raise ValueError("last offset must equal the connectivity length")
        if np.any(np.diff(self.offsets) < 0):
            raise ValueError("offsets must be non-decreasing")

    def __len__(self) -> int:
        """Return the number of cells, empty ones included."""
        return int(self.types.shape[0])

    def sizes(self) -> np.ndarray:
        """Return the point count of every cell."""
        return np.diff(self.offsets)

    @property
    def n_empty(self) -> int:
        """Return the number of empty (unsupported) cell slots."""
        return int(np.count_nonzero(self.types == EMPTY_CELL))


class Mesh:
    """Assembled output mesh.

    Attributes
    ----------
    nodes
        Point table. Coordinates may be deformed in place.
    cells
        Columnar cell list, one slot per global element.
    parts
        Mapping ``partition name -> cell indices``.
    point_data
        Mapping ``name -> (N, C)`` float32 arrays.
    cell_data
        Mapping ``name -> (E, C)`` float32 arrays.
    """

    nodes: NodeArray
    cells: CellArray
    parts: dict[str, np.ndarray]
    point_data: dict[str, np.ndarray]
    cell_data: dict[str, np.ndarray]

    def __init__(
        self,
        nodes: NodeArray,
        cells: CellArray,
        parts: dict[str, np.ndarray] | None = None,
    ) -> None:
        self.nodes = nodes
        self.cells = cells
        self.parts = (
            {}
            if parts is None
            else {k: np.asarray(v, dtype=np.int64) for k, v in parts.items()}
        )
        self.point_data = {}
        self.cell_data = {}

    def __repr__(self) -> str:
        return (
            f"Mesh(points={self.n_points}, cells={self.n_cells}, "
            f"empty={self.cells.n_empty}, point_data={list(self.point_data)}, "
            f"cell_data={list(self.cell_data)})"
        )

    __str__ = __repr__

    # -------------- simple queries --------------

    @property
    def n_points(self) -> int:
        """Return the number of points in the mesh."""
        return len(self.nodes)

    @property
    def n_cells(self) -> int:
        """Return the number of cell slots in the mesh."""
        return len(self.cells)

    @property
    def points(self) -> np.ndarray:
        return self.nodes.xyz

    # -------------- named arrays --------------

    def add_point_array(self, name: str, arr: np.ndarray) -> None:
        a = np.asarray(arr, dtype=np.float32)
        if a.shape[0] != self.n_points:
            raise ValueError(f"points {self.n_points} != data {a.shape[0]}")
        self.point_data[name] = a

    def add_cell_array(self, name: str, arr: np.ndarray) -> None:
        a = np.asarray(arr, dtype=np.float32)
        if a.shape[0] != self.n_cells:
            raise ValueError(f"cells {self.n_cells} != data {a.shape[0]}")
        self.cell_data[name] = a
