"""Turn one frame of a result set into an exportable mesh.

Fields are read, attached, and released one at a time so that only the mesh
and a single field are held at once.
"""

from __future__ import annotations

from pathlib import Path

from interODB.errors import NotFoundError
from interODB.Mesh.Assembler import apply_displacement, attach_field
from interODB.Mesh.Mesh import Mesh
from interODB.ODB.Derived import component, vector_magnitude, von_mises
from interODB.ODB.Enums import FieldKind
from interODB.ODB.Fields import FieldArray
from interODB.ODB.ODB import StepFrameInfo, odb
from interODB.options import ExportOptions
from interODB.Visualization.Plotter import PVBridge


def pick_frame(reader: odb, step: str | None = None, frame: int | None = None) -> StepFrameInfo:
    """Resolve an optional (step, frame) pair to an indexed frame.

    A missing step means the first step; a missing frame means the first
    frame of the step.

    Raises
    ------
    NotFoundError
        If the dataset has no such step or frame.
    """
    by_step = reader.framesByStep()
    if step is None:
        if not by_step:
            raise NotFoundError("step", None, f"in {reader.path} (no steps)")
        step = next(iter(by_step))
    if step not in by_step:
        raise NotFoundError("step", step)
    frames = by_step[step]
    if frame is None:
        if not frames:
            raise NotFoundError("frame", None, f"in step '{step}' (no frames)")
        return frames[0]
    for info in frames:
        if info.frame_index == int(frame):
            return info
    raise NotFoundError("frame", frame, f"in step '{step}'")


def _attach_with_derived(
    reader: odb, mesh: Mesh, field: FieldArray, options: ExportOptions
) -> None:
    attach_field(mesh, field)
    kind = field.descriptor.kind

    if kind == FieldKind.STRESS:
        if options.stress_component != "ALL":
            try:
                attach_field(mesh, component(field, options.stress_component))
            except NotFoundError as e:
                reader.logger.warning("Stress component skipped: {}", e)
        if options.von_mises:
            vm = von_mises(field, diagnostics=reader.diagnostics)
            if vm is not None:
                attach_field(mesh, vm)

    elif kind in (FieldKind.DISPLACEMENT, FieldKind.ROTATION):
        if options.magnitudes:
            mag = vector_magnitude(field, diagnostics=reader.diagnostics)
            if mag is not None:
                attach_field(mesh, mag)
        if kind == FieldKind.DISPLACEMENT and options.deformation_scale != 0:
            apply_displacement(mesh, field, options.deformation_scale)
            reader.logger.info(
                "Points deformed by '{}' x {}", field.name, options.deformation_scale
            )


def frame_mesh(
    reader: odb,
    step: str | None = None,
    frame: int | None = None,
    options: ExportOptions | None = None,
) -> Mesh:
    """Build the mesh and attach the known fields of one frame.

    Parameters
    ----------
    reader
        Open result set.
    step, frame
        Frame to export. Defaults to the first frame of the first step.
    options
        Derived fields and deformation.
    """
    options = options if options is not None else ExportOptions()
    info = pick_frame(reader, step, frame)
    mesh = reader.buildMesh()

    present = {name for name, _ in reader.listFieldNames(*info.key)}
    for name in reader.options.known_fields:
        if name not in present:
            continue
        field = reader.readField(info.step_name, info.frame_index, name)
        if field is None:
            continue
        _attach_with_derived(reader, mesh, field, options)
        reader.releaseField(name)

    reader.logger.info(
        "Frame '{}' {} (value {}) attached: {} point arrays, {} cell arrays",
        info.step_name,
        info.frame_index,
        info.frame_value,
        len(mesh.point_data),
        len(mesh.cell_data),
    )
    return mesh


def export_vtu(
    reader: odb,
    path: str | Path | None = None,
    step: str | None = None,
    frame: int | None = None,
    options: ExportOptions | None = None,
) -> Path:
    """Write one frame to a ``.vtu`` file and return its path.

    ``path`` may be a directory (or ``None`` for the source's directory); the
    file is then named ``<source basename>.vtu``.
    """
    options = options if options is not None else ExportOptions()
    if path is None:
        target = Path(reader.path).with_suffix(".vtu")
    else:
        target = Path(path)
        if target.is_dir():
            target = target / f"{reader.baseName}.vtu"
    mesh = frame_mesh(reader, step, frame, options)
    out = PVBridge(mesh).save(target, binary=options.binary)
    reader.logger.info("Saved VTU: {}", out)
    return out
