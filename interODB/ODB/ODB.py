"""Session reader for partitioned finite-element result sets.

Overview
========
:class:`odb` opens one :class:`~interODB.ODB.Source.ResultSource` and wires
the conversion stages together:

1) Partitions
   - Every partition is registered with a :class:`GlobalRemapper`, which
     lays node and element labels out in one 0-based index space.
   - The :class:`GeometryStore` resolves coordinates, connectivity, and type
     tags into that space.

2) Steps and frames
   - The step/frame index is read once at open. Frames keep their upstream
     ids, grouped by step and ascending within a step.

3) Fields
   - ``readFieldOutput(step, frame)`` extracts every known field of a frame.
   - ``readField(step, frame, name)`` extracts one field on demand.
   - Extracted fields stay cached until released or until another frame is
     selected.

4) Mesh
   - ``buildMesh()`` assembles the output mesh and, by default, releases the
     geometry tables afterwards.

Memory
------
At most one mesh plus the fields currently cached are held. Call
``releaseField(name)`` once a field has been consumed. Geometry released by
``buildMesh`` is rebuilt from the source on the next call.

Typical use
-----------
>>> with odb(source) as db:
...     mesh = db.buildMesh()
...     u = db.readField("Step-1", 3, "U")
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Tuple

import numpy as np
from prettytable import PrettyTable

from interODB.errors import DiagnosticKind, DiagnosticLog, NotFoundError
from interODB.Log import Log
from interODB.Mesh.Assembler import build_mesh
from interODB.Mesh.Mesh import Mesh
from interODB.options import ReaderOptions

from .Enums import FieldLocation
from .Fields import FieldArray, FieldExtractor
from .Geometry import GeometryStore
from .Remap import GlobalRemapper
from .Source import FieldOutputData, FrameData, ResultSource, StepData


@dataclass
class StepFrameInfo:
    """Identity of one frame.

    ``frame_index`` is the upstream frame id and need not be contiguous.
    """

    step_name: str
    frame_index: int
    frame_value: float
    description: str = ""

    @property
    def key(self) -> Tuple[str, int]:
        return self.step_name, self.frame_index


class odb:
    """Result-set reader.

    Parameters
    ----------
    source
        Open result database.
    options
        Reader options. Logging is configured from ``options.log``.
    """

    def __init__(self, source: ResultSource, options: ReaderOptions | None = None):
        self.options = options if options is not None else ReaderOptions()
        self._log = Log.from_options(self.options.log)
        self.logger = self._log.for_source(source.path)
        self.source = source
        self.diagnostics = DiagnosticLog(self.logger)
        self._closed = False

        self.remapper = GlobalRemapper()
        self.geometry = GeometryStore(self.logger, self.diagnostics)
        self.extractor = FieldExtractor(self.remapper, self.logger, self.diagnostics)

        # step/frame index
        self._steps: Dict[str, StepData] = {}
        self._frames: Dict[Tuple[str, int], Tuple[StepFrameInfo, FrameData]] = {}
        self._index: List[StepFrameInfo] = []

        # field cache of the current frame
        self._current: StepFrameInfo | None = None
        self._fields: Dict[str, FieldArray] = {}

        self._readPartitions()
        self._readSteps()

    def __repr__(self) -> str:
        return (
            f"odb(path={self.path!r}, partitions={len(self.remapper)}, "
            f"nodes={self.nnodes}, elements={self.nelems}, frames={len(self._index)})"
        )

    __str__ = __repr__

    def __enter__(self) -> odb:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Drop cached data, close the source, and release the log file."""
        if self._closed:
            return
        self._closed = True
        self._fields.clear()
        self._current = None
        self.geometry.release()
        self.source.close()
        self.logger.debug("Closed {}", self.path)
        self._log.release_file(self.options.log.log_file)

    # -------------- scanning --------------

    def _readPartitions(self) -> None:
        """Register the partitions and fill the geometry tables."""
        self.geometry.build(list(self.source.partitions()), self.remapper)
        dn = self.remapper.duplicate_node_labels
        de = self.remapper.duplicate_element_labels
        if dn or de:
            self.diagnostics.warn(
                DiagnosticKind.DUPLICATE_LABEL,
                f"{len(dn)} node and {len(de)} element labels occur in more than one "
                "partition; label-only lookups use the first partition",
                nodes=len(dn),
                elements=len(de),
            )
        self.logger.info(
            "Partitions: {} ({} nodes, {} elements)",
            ", ".join(self.remapper.partition_names) or "-",
            self.nnodes,
            self.nelems,
        )

    def _readSteps(self) -> None:
        """Index every frame of every step without touching field data."""
        for step in self.source.steps():
            self._steps[step.name] = step
            infos = []
            for fr in step.frames:
                info = StepFrameInfo(
                    step.name, int(fr.frame_id), float(fr.value), fr.description
                )
                if info.key in self._frames:
                    self.diagnostics.warn(
                        DiagnosticKind.DUPLICATE_LABEL,
                        f"frame {info.frame_index} listed twice in step '{step.name}'; "
                        "keeping the first",
                        step=step.name,
                        frame=info.frame_index,
                    )
                    continue
                self._frames[info.key] = (info, fr)
                infos.append(info)
            infos.sort(key=lambda i: i.frame_index)
            self._index.extend(infos)
        self.logger.info(
            "Found {} frames in {} steps", len(self._index), len(self._steps)
        )

    # -------------- model --------------

    @property
    def path(self) -> str:
        return str(getattr(self.source, "path", "<memory>"))

    @property
    def baseName(self) -> str:
        """Return the source file name without directory and suffix."""
        return Path(self.path).stem

    @property
    def partitionNames(self) -> List[str]:
        return self.remapper.partition_names

    @property
    def nnodes(self) -> int:
        return self.remapper.nnodes

    @property
    def nelems(self) -> int:
        return self.remapper.nelems

    def duplicateLabels(self) -> Dict[str, List[int]]:
        """Return labels seen in more than one partition, per entity class."""
        return {
            "nodes": sorted(self.remapper.duplicate_node_labels),
            "elements": sorted(self.remapper.duplicate_element_labels),
        }

    def partitionCells(self) -> Dict[str, np.ndarray]:
        """Return ``partition name -> global element ids``."""
        return {
            p.name: np.arange(
                p.element_start, p.element_start + p.element_count, dtype=np.int64
            )
            for p in self.remapper.partitions
        }

    # -------------- steps and frames --------------

    def availableStepsFrames(self) -> List[StepFrameInfo]:
        """Return all frames, grouped by step, ascending frame id within a step."""
        return list(self._index)

    def framesByStep(self) -> Dict[str, List[StepFrameInfo]]:
        out: Dict[str, List[StepFrameInfo]] = {name: [] for name in self._steps}
        for info in self._index:
            out[info.step_name].append(info)
        return out

    @property
    def currentStepFrame(self) -> StepFrameInfo | None:
        """Frame whose fields are currently cached."""
        return self._current

    def _frame(self, step: str, frame: int) -> Tuple[StepFrameInfo, FrameData]:
        if step not in self._steps:
            raise NotFoundError("step", step)
        hit = self._frames.get((step, int(frame)))
        if hit is None:
            raise NotFoundError("frame", frame, f"in step '{step}'")
        return hit

    def listFieldNames(self, step: str, frame: int) -> List[Tuple[str, Tuple[str, ...]]]:
        """Return ``(name, component_labels)`` of every output in a frame.

        No field data is extracted.
        """
        _, fr = self._frame(step, frame)
        return [(name, tuple(out.component_labels)) for name, out in fr.fields.items()]

    # -------------- fields --------------

    def _select(self, info: StepFrameInfo) -> None:
        if self._current is None or self._current.key != info.key:
            self._fields.clear()
            self._current = info

    @staticmethod
    def _unsupported_shape(output: FieldOutputData) -> str | None:
        if output.ncomp <= 0:
            return "no component labels and no sized blocks"
        try:
            FieldLocation.parse(output.location)
        except ValueError:
            return f"unknown location '{output.location}'"
        return None

    def _extract(
        self, info: StepFrameInfo, fr: FrameData, name: str
    ) -> FieldArray | None:
        output = fr.fields.get(name)
        if output is None:
            raise NotFoundError(
                "field", name, f"in step '{info.step_name}' frame {info.frame_index}"
            )
        reason = self._unsupported_shape(output)
        if reason is not None:
            self.diagnostics.warn(
                DiagnosticKind.UNSUPPORTED_TYPE,
                f"field '{name}' in step '{info.step_name}' frame {info.frame_index} "
                f"skipped: {reason}",
                field=name,
                step=info.step_name,
                frame=info.frame_index,
            )
            return None
        fa = self.extractor.extract_output(output)
        self._fields[name] = fa
        self.logger.info(
            "Read field '{}' ({}, {} components, {}/{} valid)",
            name,
            fa.location.value,
            fa.ncomp,
            fa.n_valid,
            fa.entity_count,
        )
        return fa

    def readFieldOutput(self, step: str, frame: int) -> Dict[str, FieldArray]:
        """Extract every known field present in a frame.

        The field cache is cleared first. Known names missing from the frame
        are skipped, and so are outputs of unsupported shape (recorded as
        ``UnsupportedType`` diagnostics).

        Raises
        ------
        NotFoundError
            If the step or frame does not exist.
        """
        info, fr = self._frame(step, frame)
        self._fields.clear()
        self._current = info
        for name in self.options.known_fields:
            if name in fr.fields:
                self._extract(info, fr, name)
            else:
                self.logger.debug(
                    "Field '{}' not in step '{}' frame {}", name, step, info.frame_index
                )
        return dict(self._fields)

    def readField(self, step: str, frame: int, name: str) -> FieldArray | None:
        """Extract one field.

        Other cached fields of the same frame are kept. Selecting another
        frame starts a fresh cache. Returns ``None`` when the output has an
        unsupported shape.

        Raises
        ------
        NotFoundError
            If the step, frame, or field does not exist.
        """
        info, fr = self._frame(step, frame)
        self._select(info)
        return self._extract(info, fr, name)

    def hasFieldData(self, name: str) -> bool:
        return name in self._fields

    def getFieldData(self, name: str) -> FieldArray:
        """Return a cached field.

        Raises
        ------
        NotFoundError
            If the field has not been read or was released.
        """
        try:
            return self._fields[name]
        except KeyError:
            raise NotFoundError("field", name, "(not read or released)") from None

    def fieldNames(self) -> List[str]:
        """Return the names of the cached fields."""
        return list(self._fields)

    def releaseField(self, name: str) -> bool:
        """Drop one cached field. Returns whether it was cached."""
        return self._fields.pop(name, None) is not None

    def releaseFields(self) -> None:
        self._fields.clear()

    # -------------- mesh --------------

    def buildMesh(self, release_geometry: bool | None = None) -> Mesh:
        """Assemble the output mesh.

        Parameters
        ----------
        release_geometry
            Drop the geometry tables afterwards. Defaults to
            ``options.release_geometry``. Released tables are rebuilt from
            the source on the next call.
        """
        if release_geometry is None:
            release_geometry = self.options.release_geometry
        if not self.geometry.is_built:
            self.logger.debug("Rebuilding released geometry from {}", self.path)
            self.geometry.build(list(self.source.partitions()), self.remapper)
        mesh = build_mesh(
            self.geometry.nodes,
            self.geometry.elements,
            parts=self.partitionCells(),
            diagnostics=self.diagnostics,
            logger=self.logger,
        )
        if release_geometry:
            self.geometry.release()
        return mesh

    # -------------- reporting --------------

    def summary(self) -> str:
        """Log and return the model tree: partitions, then steps and frames."""
        parts = PrettyTable()
        parts.field_names = ["partition", "nodes", "elements", "first node", "first element"]
        for p in self.remapper.partitions:
            parts.add_row(
                [p.name, p.node_count, p.element_count, p.node_start, p.element_start]
            )

        frames = PrettyTable()
        frames.field_names = ["step", "frame", "value", "description", "fields"]
        for info in self._index:
            _, fr = self._frames[info.key]
            frames.add_row(
                [
                    info.step_name,
                    info.frame_index,
                    f"{info.frame_value:.6g}",
                    info.description,
                    ", ".join(fr.fields) or "-",
                ]
            )

        text = "\n".join(
            [
                f"{self.path}: {self.nnodes} nodes, {self.nelems} elements",
                parts.get_string(),
                frames.get_string(),
            ]
        )
        self.logger.info("\n{}", text)
        return text
