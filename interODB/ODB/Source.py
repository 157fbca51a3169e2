"""Upstream result-database interface.

The result database itself (partitions, steps, frames, field blocks) is read
by an external library. This module fixes the shape in which that library
hands data to the readers in :mod:`interODB.ODB`:

- :class:`PartitionData`: one instance holds node labels and coordinates,
  element labels, type tags, and connectivity in *local* node labels.
- :class:`StepData` / :class:`FrameData`: ordered frames per step, each
  exposing its field outputs by name.
- :class:`FieldOutputData`: component labels, location, and a sequence of
  :class:`BulkBlock` chunks keyed by entity label.

Any object implementing :class:`ResultSource` can be opened with
:class:`interODB.ODB.ODB.odb`. :class:`MemorySource` keeps everything in
process memory and is what adapters and tests build on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Protocol, Sequence, runtime_checkable

import numpy as np

from .Enums import FieldLocation


@dataclass
class PartitionData:
    """Raw mesh of one partition as delivered by the database.

    Attributes
    ----------
    name
        Partition (instance) name.
    node_labels
        Array of shape ``(n,)`` with local node labels.
    coordinates
        Array of shape ``(n, 3)``. 2D input is padded with ``z = 0``.
    element_labels
        Array of shape ``(e,)`` with local element labels.
    element_types
        Source type tag per element, e.g. ``'C3D8R'``.
    connectivity
        One sequence of local node labels per element.
    node_count, element_count
        Counts declared by the database. ``None`` means "same as the lists".
        A disagreement with the lists is treated as truncation.
    """

    name: str
    node_labels: np.ndarray
    coordinates: np.ndarray
    element_labels: np.ndarray
    element_types: Sequence[str]
    connectivity: Sequence[Sequence[int]]
    node_count: int | None = None
    element_count: int | None = None

    def __post_init__(self) -> None:
        self.node_labels = np.asarray(self.node_labels, dtype=np.int64).reshape(-1)
        xyz = np.asarray(self.coordinates, dtype=float)
        if xyz.size == 0:
            xyz = np.zeros((0, 3), dtype=float)
        if xyz.ndim != 2:
            raise ValueError("coordinates must be 2D")
        if xyz.shape[1] == 2:
            xyz = np.hstack((xyz, np.zeros((xyz.shape[0], 1), dtype=xyz.dtype)))
        elif xyz.shape[1] > 3:
            xyz = xyz[:, :3]
        self.coordinates = xyz
        self.element_labels = np.asarray(self.element_labels, dtype=np.int64).reshape(
            -1
        )
        self.element_types = [str(t) for t in self.element_types]
        self.connectivity = [
            np.asarray(c, dtype=np.int64).reshape(-1) for c in self.connectivity
        ]

    @property
    def declared_nodes(self) -> int:
        return len(self.node_labels) if self.node_count is None else int(self.node_count)

    @property
    def declared_elements(self) -> int:
        return (
            len(self.element_labels)
            if self.element_count is None
            else int(self.element_count)
        )


@dataclass
class BulkBlock:
    """One chunk of raw field samples.

    ``values`` holds ``len(labels) * multiplicity`` rows of ``width``
    numbers, entity-major: all sub-samples (integration points, section
    points) of the first entity, then the second entity, and so on.

    Attributes
    ----------
    labels
        Entity labels, one per entity (not per sub-sample).
    values
        Array of shape ``(rows, width)`` or flat array of ``rows * width``.
    width
        Components per row. Taken from ``values.shape[1]`` when omitted.
    multiplicity
        Sub-samples per entity. Derived as ``rows // len(labels)`` when
        omitted.
    partition
        Name of the partition owning the labels, when the database provides
        it. ``None`` resolves through the flattened label map.
    """

    labels: np.ndarray
    values: np.ndarray
    width: int | None = None
    multiplicity: int | None = None
    partition: str | None = None

    def __post_init__(self) -> None:
        self.labels = np.asarray(self.labels, dtype=np.int64).reshape(-1)
        v = np.asarray(self.values, dtype=np.float32)
        if self.width is None:
            if v.ndim != 2:
                raise ValueError("width is required for flat block values")
            self.width = int(v.shape[1])
        self.width = int(self.width)
        if self.width <= 0:
            raise ValueError("block width must be positive")
        self.values = v.reshape(-1)

    @property
    def rows(self) -> int:
        """Return the number of complete rows in the value stream."""
        return int(self.values.size // self.width)

    def per_entity(self) -> int:
        """Return the number of sub-samples stored per entity."""
        if self.multiplicity is not None:
            return max(int(self.multiplicity), 1)
        n = self.labels.size
        if n == 0:
            return 1
        return max(self.rows // n, 1)


@dataclass
class FieldOutputData:
    """A named field output of one frame."""

    name: str
    component_labels: Sequence[str]
    location: FieldLocation | str
    blocks: Sequence[BulkBlock] = field(default_factory=list)
    description: str = ""

    def __post_init__(self) -> None:
        self.component_labels = tuple(str(c) for c in self.component_labels)
        self.location = FieldLocation.parse(self.location)

    @property
    def ncomp(self) -> int:
        """Return the component count, falling back to the widest block."""
        if self.component_labels:
            return len(self.component_labels)
        return max((int(b.width or 0) for b in self.blocks), default=0)


@dataclass
class FrameData:
    frame_id: int
    value: float
    description: str = ""
    fields: Mapping[str, FieldOutputData] = field(default_factory=dict)


@dataclass
class StepData:
    name: str
    frames: Sequence[FrameData] = field(default_factory=list)
    description: str = ""


@runtime_checkable
class ResultSource(Protocol):
    """What a result database library must expose."""

    path: str

    def partitions(self) -> Iterable[PartitionData]: ...

    def steps(self) -> Iterable[StepData]: ...

    def close(self) -> None: ...


class MemorySource:
    """In-process :class:`ResultSource` over already decoded data."""

    def __init__(
        self,
        partitions: Iterable[PartitionData],
        steps: Iterable[StepData] = (),
        path: str = "<memory>",
    ):
        self.path = path
        self._partitions: List[PartitionData] = list(partitions)
        self._steps: List[StepData] = list(steps)
        self.closed = False

    def __repr__(self) -> str:
        return (
            f"MemorySource(path={self.path!r}, partitions={len(self._partitions)}, "
            f"steps={len(self._steps)})"
        )

    __str__ = __repr__

    def partitions(self) -> List[PartitionData]:
        return self._partitions

    def steps(self) -> List[StepData]:
        return self._steps

    def close(self) -> None:
        self.closed = True
