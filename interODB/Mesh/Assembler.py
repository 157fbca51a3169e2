from __future__ import annotations

from typing import Dict, Sequence, Tuple

import numpy as np
import pyvista as pv

from interODB.errors import DiagnosticKind, DiagnosticLog, SizeMismatchError
from interODB.ODB.Enums import FieldLocation
from interODB.ODB.Fields import FieldArray

from .Mesh import EMPTY_CELL, CellArray, ElementArray, Mesh, NodeArray

# -------------------------- element type table --------------------------

# Matched as substrings of the source tag, in this order. Longer tokens of a
# family come first so that e.g. "C3D10M" is not caught by a shorter entry.
_CELL_TYPE_TABLE: Tuple[Tuple[str, int], ...] = (
    # 3D solids
    ("C3D10", pv.CellType.QUADRATIC_TETRA),
    ("C3D15", pv.CellType.QUADRATIC_WEDGE),
    ("C3D20", pv.CellType.QUADRATIC_HEXAHEDRON),
    ("C3D4", pv.CellType.TETRA),
    ("C3D6", pv.CellType.WEDGE),
    ("C3D8", pv.CellType.HEXAHEDRON),
    # plane stress / plane strain / axisymmetric
    ("CPS3", pv.CellType.TRIANGLE),
    ("CPE3", pv.CellType.TRIANGLE),
    ("CAX3", pv.CellType.TRIANGLE),
    ("CPS4", pv.CellType.QUAD),
    ("CPE4", pv.CellType.QUAD),
    ("CAX4", pv.CellType.QUAD),
    ("CPS6", pv.CellType.QUADRATIC_TRIANGLE),
    ("CPE6", pv.CellType.QUADRATIC_TRIANGLE),
    ("CAX6", pv.CellType.QUADRATIC_TRIANGLE),
    ("CPS8", pv.CellType.QUADRATIC_QUAD),
    ("CPE8", pv.CellType.QUADRATIC_QUAD),
    ("CAX8", pv.CellType.QUADRATIC_QUAD),
    ("CPS9", pv.CellType.BIQUADRATIC_QUAD),
    ("CPE9", pv.CellType.BIQUADRATIC_QUAD),
    ("CAX9", pv.CellType.BIQUADRATIC_QUAD),
    # membranes and rigid surfaces
    ("M3D3", pv.CellType.TRIANGLE),
    ("M3D4", pv.CellType.QUAD),
    ("M3D8", pv.CellType.QUADRATIC_QUAD),
    ("M3D9", pv.CellType.BIQUADRATIC_QUAD),
    ("R3D3", pv.CellType.TRIANGLE),
    ("R3D4", pv.CellType.QUAD),
    ("R3D8", pv.CellType.QUADRATIC_QUAD),
    ("R3D9", pv.CellType.BIQUADRATIC_QUAD),
    # shells
    ("S3", pv.CellType.TRIANGLE),
    ("S4", pv.CellType.QUAD),
    ("S6", pv.CellType.QUADRATIC_TRIANGLE),
    ("S8", pv.CellType.QUADRATIC_QUAD),
    ("S9", pv.CellType.BIQUADRATIC_QUAD),
    # beams, trusses, pipes
    ("PIPE31", pv.CellType.LINE),
    ("PIPE32", pv.CellType.QUADRATIC_EDGE),
    ("B31", pv.CellType.LINE),
    ("B32", pv.CellType.QUADRATIC_EDGE),
    ("T3D2", pv.CellType.LINE),
    ("T3D3", pv.CellType.QUADRATIC_EDGE),
)


def cell_type_for(tag: str) -> int | None:
    """Return the VTK cell type id for a source element tag, or ``None``.

    The first table token contained in ``tag`` decides. Matching is case
    sensitive, the way the database writes its tags.
    """
    for token, cell_type in _CELL_TYPE_TABLE:
        if token in tag:
            return int(cell_type)
    return None


# -------------------------- assembly --------------------------


def build_mesh(
    points: np.ndarray | NodeArray,
    elements: ElementArray,
    types: Sequence[str] | None = None,
    parts: Dict[str, np.ndarray] | None = None,
    diagnostics: DiagnosticLog | None = None,
    logger=None,
) -> Mesh:
    """Build the columnar output mesh in one batched pass.

    Parameters
    ----------
    points
        ``(N, 3)`` coordinates indexed by global node id.
    elements
        Source element records with global node ids.
    types
        Source tags overriding ``elements.etype``. When its length differs
        from ``elements`` the shorter one is used and the difference is
        reported as truncation.
    parts
        Optional ``name -> cell indices`` groups carried onto the mesh.

    Elements whose tag has no cell type keep their slot as an empty cell
    with no connectivity.
    """
    if logger is None:
        from interODB.Log import Log

        logger = Log().logger
    if diagnostics is None:
        diagnostics = DiagnosticLog(logger)

    # own copy: apply_displacement edits points in place
    xyz = points.xyz if isinstance(points, NodeArray) else points
    nodes = NodeArray(np.array(xyz, dtype=float))
    tags = elements.etype if types is None else np.asarray(list(types), dtype=object)

    ne = min(len(elements), len(tags))
    if len(elements) != len(tags):
        diagnostics.warn(
            DiagnosticKind.TRUNCATED,
            f"element records disagree: {len(elements)} connectivity rows, "
            f"{len(tags)} type tags; using {ne}",
            connectivity=len(elements),
            types=len(tags),
        )
        elements = elements[np.arange(ne)]
        tags = tags[:ne]

    lookup = {str(t): cell_type_for(str(t)) for t in set(tags.tolist())}
    celltypes = np.zeros((ne,), dtype=np.uint8)
    for e, tag in enumerate(tags.tolist()):
        vtk_id = lookup[str(tag)]
        if vtk_id is None:
            diagnostics.warn(
                DiagnosticKind.UNSUPPORTED_TYPE,
                f"unsupported element type '{tag}' (element {e + 1}); emitted as empty cell",
                tag=str(tag),
                element=e + 1,
            )
            continue
        celltypes[e] = vtk_id

    accepted = celltypes != EMPTY_CELL
    sizes = np.where(accepted, elements.nper, 0)
    offsets = np.zeros((ne + 1,), dtype=np.int64)
    np.cumsum(sizes, out=offsets[1:])
    # row-major boolean indexing keeps element order
    connectivity = elements.conn[elements.valid_mask() & accepted[:, None]]

    mesh = Mesh(nodes, CellArray(celltypes, offsets, connectivity), parts)
    logger.info(
        "Mesh assembled: {} points, {} cells ({} empty), "
        "{} connectivity entries ({} dropped)",
        mesh.n_points,
        mesh.n_cells,
        mesh.cells.n_empty,
        int(connectivity.size),
        elements.total_nodes() - int(connectivity.size),
    )
    return mesh


def attach_field(
    mesh: Mesh,
    field: FieldArray,
    name: str | None = None,
    location: FieldLocation | str | None = None,
) -> str:
    """Attach a field as a named ``(entities, components)`` array.

    Nodal fields go to ``mesh.point_data``, elemental ones to
    ``mesh.cell_data``. Rows of invalid entities are zeroed. Returns the name
    the array was stored under.

    Raises
    ------
    SizeMismatchError
        If the field does not hold ``entities * components`` values for the
        target location.
    """
    loc = field.location if location is None else FieldLocation.parse(location)
    key = name or field.name
    nodal = loc == FieldLocation.NODAL
    count = mesh.n_points if nodal else mesh.n_cells
    expected = count * field.ncomp
    if field.values.size != expected:
        raise SizeMismatchError(key, expected, int(field.values.size))

    data = field.matrix().copy()
    data[~field.valid] = 0.0
    if nodal:
        mesh.add_point_array(key, data)
    else:
        mesh.add_cell_array(key, data)
    return key


def apply_displacement(mesh: Mesh, field: FieldArray, scale: float) -> None:
    """Move the points by ``scale`` times the leading (up to 3) components.

    ``scale == 0`` leaves the mesh untouched.

    Raises
    ------
    SizeMismatchError
        If the field does not have one entry per point.
    """
    if scale == 0:
        return
    if field.entity_count != mesh.n_points:
        raise SizeMismatchError(
            field.name, mesh.n_points * field.ncomp, int(field.values.size)
        )
    k = min(3, field.ncomp)
    disp = field.matrix()[:, :k].astype(np.float64)
    disp[~field.valid] = 0.0
    mesh.nodes.xyz[:, :k] += float(scale) * disp
