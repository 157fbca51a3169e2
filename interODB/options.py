"""Configuration dataclasses for the result readers and the exporter."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Sequence

LogLevel = Literal["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR"]


@dataclass(slots=True)
class LogOptions:
    """Logging configuration.

    Attributes:
        log_file (str | Path | None): Optional file sink. The file is
            overwritten on each run and rotated past 10 MB.
        level (LogLevel): Minimum level for both sinks.
        debug_mode (bool): Forces the console sink to ``"DEBUG"`` so per-block
            extraction details become visible.
    """

    log_file: str | Path | None = None
    level: LogLevel = "INFO"
    debug_mode: bool = False


@dataclass(slots=True)
class ReaderOptions:
    """Controls for opening a result set.

    Attributes:
        known_fields (Sequence[str]): Field names read by
            ``readFieldOutput``. Names absent from a frame are skipped.
        release_geometry (bool): Drop the coordinate, connectivity, and type
            tables once ``buildMesh`` has consumed them. Keeps peak memory at
            one mesh plus one field; rebuilding then rescans the partitions.
        log (LogOptions): Logger configuration applied when the reader opens.
    """

    known_fields: Sequence[str] = ("U", "UR", "S")
    release_geometry: bool = True
    log: LogOptions = field(default_factory=LogOptions)


@dataclass(slots=True)
class ExportOptions:
    """Controls for turning one frame into an exported mesh.

    Attributes:
        deformation_scale (float): Factor applied to the displacement field
            when deforming point coordinates. ``0.0`` leaves the geometry
            undeformed.
        stress_component (str): Stress component label written as an extra
            scalar (``"S_<label>"``). ``"ALL"`` writes only the full tensor.
        von_mises (bool): Add the ``VonMises`` cell scalar for stress fields.
        magnitudes (bool): Add ``<name>.Magnitude`` for vector fields.
        binary (bool): Write ``.vtu`` files in binary rather than ASCII.
    """

    deformation_scale: float = 0.0
    stress_component: str = "ALL"
    von_mises: bool = True
    magnitudes: bool = True
    binary: bool = True
