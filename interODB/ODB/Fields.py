"""Dense, validity-tracked field arrays from blocked raw samples.

Raw field data arrives as a sequence of :class:`~interODB.ODB.Source.BulkBlock`
chunks keyed by entity label. :class:`FieldExtractor` turns them into one
:class:`FieldArray` per field:

- ``values`` is a flat float32 array of ``entity_count * ncomp`` numbers,
  entity-major and component-minor, zero-filled before population.
- ``valid`` is a boolean array of ``entity_count`` flags. An unset flag means
  the entity had no sample and its components read as zero.

Policy for multi-sample entities
--------------------------------
When a block stores several sub-samples per entity (integration points,
section points) only the **first** sub-sample is kept. No averaging is done.

Labels that do not resolve to a global index are skipped together with
their values, so the output is never shifted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import numpy as np

from interODB.errors import DiagnosticKind, DiagnosticLog, SizeMismatchError

from .Enums import FieldKind, FieldLocation, kind_for_name
from .Remap import GlobalRemapper
from .Source import BulkBlock, FieldOutputData


@dataclass
class FieldDescriptor:
    """Metadata of a field output.

    Attributes
    ----------
    name
        Output name, e.g. ``'U'`` or ``'S'``.
    location
        Nodal or elemental.
    ncomp
        Component count.
    component_labels
        Ordered component names, e.g. ``('S11', 'S22', ...)``. May be empty.
    kind
        Physical meaning; drives which derived fields are computed.
    description
        Free text from the database.
    """

    name: str
    location: FieldLocation
    ncomp: int
    component_labels: tuple[str, ...] = ()
    kind: FieldKind = FieldKind.GENERIC
    description: str = ""

    def __post_init__(self) -> None:
        self.location = FieldLocation.parse(self.location)
        self.component_labels = tuple(self.component_labels)
        self.ncomp = int(self.ncomp)
        if self.ncomp <= 0:
            raise ValueError(f"field '{self.name}' must have at least one component")

    @classmethod
    def from_output(cls, output: FieldOutputData) -> FieldDescriptor:
        return cls(
            name=output.name,
            location=output.location,  # type: ignore[arg-type]
            ncomp=output.ncomp,
            component_labels=tuple(output.component_labels),
            kind=kind_for_name(output.name),
            description=output.description,
        )

    def component_index(self, label: str) -> int:
        """Return the position of a component label.

        Raises
        ------
        ValueError
            If the label is not one of ``component_labels``.
        """
        return self.component_labels.index(label)


@dataclass
class FieldArray:
    """Dense per-entity field values with a validity bitmap."""

    descriptor: FieldDescriptor
    values: np.ndarray
    valid: np.ndarray

    def __post_init__(self) -> None:
        self.values = np.asarray(self.values, dtype=np.float32).reshape(-1)
        self.valid = np.asarray(self.valid, dtype=bool).reshape(-1)
        expected = self.valid.size * self.descriptor.ncomp
        if self.values.size != expected:
            raise SizeMismatchError(self.descriptor.name, expected, self.values.size)

    def __repr__(self) -> str:
        return (
            f"FieldArray(name={self.name!r}, location={self.location.value}, "
            f"entities={self.entity_count}, ncomp={self.ncomp}, valid={self.n_valid})"
        )

    __str__ = __repr__

    @classmethod
    def zeros(cls, descriptor: FieldDescriptor, entity_count: int) -> FieldArray:
        return cls(
            descriptor,
            np.zeros((entity_count * descriptor.ncomp,), dtype=np.float32),
            np.zeros((entity_count,), dtype=bool),
        )

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def location(self) -> FieldLocation:
        return self.descriptor.location

    @property
    def ncomp(self) -> int:
        return self.descriptor.ncomp

    @property
    def entity_count(self) -> int:
        return int(self.valid.size)

    @property
    def n_valid(self) -> int:
        return int(np.count_nonzero(self.valid))

    def matrix(self) -> np.ndarray:
        """Return ``values`` as an ``(entity_count, ncomp)`` view."""
        return self.values.reshape(self.entity_count, self.ncomp)


class FieldExtractor:
    """Scatter raw blocks into dense arrays through the global remapper."""

    def __init__(
        self,
        remapper: GlobalRemapper,
        logger=None,
        diagnostics: DiagnosticLog | None = None,
    ):
        if logger is None:
            from interODB.Log import Log

            logger = Log().logger
        self.remapper = remapper
        self.logger = logger
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticLog(logger)

    def extract(
        self,
        blocks: Iterable[BulkBlock],
        location: FieldLocation | str,
        ncomp: int,
        descriptor: FieldDescriptor | None = None,
    ) -> FieldArray:
        """Build a dense :class:`FieldArray` from raw blocks.

        Parameters
        ----------
        blocks
            Raw chunks in delivery order. Later blocks overwrite earlier ones
            for the same entity.
        location
            Selects the node or element label space and entity count.
        ncomp
            Components stored per entity. Blocks narrower than this leave the
            trailing components at zero; wider blocks are cut.
        descriptor
            Metadata for the result. A generic one named ``'field'`` is made
            when omitted.
        """
        loc = FieldLocation.parse(location)
        if descriptor is None:
            descriptor = FieldDescriptor("field", loc, ncomp)
        is_node = loc == FieldLocation.NODAL
        total = self.remapper.count(is_node)
        out = FieldArray.zeros(descriptor, total)
        mat = out.matrix()

        nblocks = 0
        for block in blocks:
            nblocks += 1
            self._scatter(block, is_node, total, mat, out.valid, descriptor.name)

        self.logger.debug(
            "Extracted '{}' from {} blocks: {}/{} {} valid, {} components",
            descriptor.name,
            nblocks,
            out.n_valid,
            total,
            "nodes" if is_node else "elements",
            descriptor.ncomp,
        )
        return out

    def _scatter(
        self,
        block: BulkBlock,
        is_node: bool,
        total: int,
        mat: np.ndarray,
        valid: np.ndarray,
        name: str,
    ) -> None:
        """Copy the first sub-sample of each resolvable entity of one block."""
        labels = block.labels
        n = int(labels.size)
        if n == 0:
            return
        width = int(block.width)  # type: ignore[arg-type]
        mult = block.per_entity()
        avail = block.rows // mult
        if avail < n:
            self.diagnostics.warn(
                DiagnosticKind.TRUNCATED,
                f"field '{name}': block holds {block.rows} rows for {n} entities x "
                f"{mult} samples; using the first {avail} entities",
                field=name,
                entities=n,
                rows=block.rows,
            )
            labels = labels[:avail]
            n = avail
            if n == 0:
                return

        rows = block.values[: n * mult * width].reshape(n, mult, width)
        first = rows[:, 0, :]

        gidx = self.remapper.resolve_many(labels, is_node, block.partition)
        ok = gidx < total
        if not np.all(ok):
            self.logger.debug(
                "Field '{}': {} of {} labels unresolved in block, skipped",
                name,
                int(np.count_nonzero(~ok)),
                n,
            )
        ncomp = mat.shape[1]
        k = min(width, ncomp)
        tgt = gidx[ok]
        mat[tgt, :k] = first[ok, :k]
        valid[tgt] = True

    def extract_output(self, output: FieldOutputData) -> FieldArray:
        """Extract a whole field output using its own metadata."""
        descriptor = FieldDescriptor.from_output(output)
        return self.extract(output.blocks, descriptor.location, descriptor.ncomp, descriptor)

