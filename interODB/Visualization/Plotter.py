from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict

import numpy as np
import pyvista as pv

from interODB.Mesh.Mesh import CellArray, Mesh

# -------------------------- internal helpers --------------------------


def _legacy_cells(cells: CellArray) -> np.ndarray:
    """Return the ``[n, id0, ..., n, id0, ...]`` stream VTK expects.

    Empty cells contribute a bare ``0`` count.
    """
    E = len(cells)
    sizes = cells.sizes()
    out = np.empty((E + cells.connectivity.size,), dtype=np.int64)
    count_pos = cells.offsets[:-1] + np.arange(E, dtype=np.int64)
    is_count = np.zeros(out.shape, dtype=bool)
    is_count[count_pos] = True
    out[count_pos] = sizes
    out[~is_count] = cells.connectivity
    return out


def _as_vtk_array(arr: np.ndarray) -> np.ndarray:
    a = np.asarray(arr, dtype=np.float32)
    if a.ndim == 2 and a.shape[1] == 1:
        a = a[:, 0]
    return np.ascontiguousarray(a)


def _attach_point(ds: pv.DataSet, name: str, arr: np.ndarray) -> None:
    ds.point_data[name] = _as_vtk_array(arr)


def _attach_cell(ds: pv.DataSet, name: str, arr: np.ndarray) -> None:
    ds.cell_data[name] = _as_vtk_array(arr)


# -------------------------- public bridge --------------------------


@dataclass
class PVBridge:
    """Hand an assembled mesh and its named arrays to PyVista."""

    mesh: Mesh

    # ---------- grids ----------

    def grid(self) -> pv.UnstructuredGrid:
        """Return the whole mesh as an unstructured grid.

        Cell order follows the mesh, empty cells included, so cell arrays
        line up one to one.
        """
        m = self.mesh
        xyz = np.asarray(m.points, dtype=np.float64, order="C")
        cells = np.ascontiguousarray(_legacy_cells(m.cells))
        ctypes = np.ascontiguousarray(m.cells.types.astype(np.uint8))
        ds = pv.UnstructuredGrid(cells, ctypes, xyz)
        for name, arr in m.point_data.items():
            _attach_point(ds, name, arr)
        for name, arr in m.cell_data.items():
            _attach_cell(ds, name, arr)
        return ds

    def part_grids(self) -> Dict[str, pv.UnstructuredGrid]:
        """Return one grid per partition, cell arrays sliced to its cells."""
        full = self.grid()
        out: Dict[str, pv.UnstructuredGrid] = {}
        for name, rows in self.mesh.parts.items():
            ids = np.asarray(rows, dtype=np.int64)
            if ids.size == 0:
                continue
            out[name] = full.extract_cells(ids)
        return out

    # ---------- output ----------

    def save(self, path: str | Path, binary: bool = True) -> Path:
        """Write the grid to ``path`` (``.vtu``) and return the path."""
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        self.grid().save(str(p), binary=binary)
        return p
