"""Scalar fields derived from extracted fields.

All functions honour the validity bitmap of their input: invalid entities
produce ``0`` and stay invalid in the result. Shapes that cannot support the
computation are reported as unsupported and the function returns ``None``
instead of raising, so the caller can keep going with its other fields.
"""

from __future__ import annotations

import numpy as np

from interODB.errors import DiagnosticKind, DiagnosticLog, NotFoundError

from .Enums import FieldKind
from .Fields import FieldArray, FieldDescriptor

# (s11, s22, s33, s12, s13, s23)
VON_MISES_COMPONENTS = 6


def _scalar(source: FieldArray, name: str, values: np.ndarray) -> FieldArray:
    desc = FieldDescriptor(
        name=name,
        location=source.location,
        ncomp=1,
        component_labels=(),
        kind=FieldKind.GENERIC,
        description=f"derived from {source.name}",
    )
    out = np.where(source.valid, values, 0.0).astype(np.float32)
    return FieldArray(desc, out, source.valid.copy())


def _unsupported(diagnostics: DiagnosticLog | None, message: str, **context) -> None:
    if diagnostics is None:
        diagnostics = DiagnosticLog()
    diagnostics.warn(DiagnosticKind.UNSUPPORTED_TYPE, message, **context)


def vector_magnitude(
    field: FieldArray,
    name: str | None = None,
    diagnostics: DiagnosticLog | None = None,
) -> FieldArray | None:
    """Return the Euclidean norm of the first 2 or 3 components.

    Three components are used when the field has them, two otherwise.
    Fields with fewer than two components are skipped (``None``).
    """
    if field.ncomp < 2:
        _unsupported(
            diagnostics,
            f"magnitude of '{field.name}' needs at least 2 components, got {field.ncomp}",
            field=field.name,
        )
        return None
    k = min(3, field.ncomp)
    m = field.matrix()[:, :k].astype(np.float64)
    mag = np.sqrt(np.einsum("ij,ij->i", m, m))
    return _scalar(field, name or f"{field.name}.Magnitude", mag)


def von_mises(
    field: FieldArray,
    name: str = "VonMises",
    diagnostics: DiagnosticLog | None = None,
) -> FieldArray | None:
    """Return the von Mises invariant of a symmetric stress tensor.

    Components are expected in the order ``(s11, s22, s33, s12, s13, s23)``::

        vm = sqrt(0.5 * ((s11-s22)^2 + (s22-s33)^2 + (s33-s11)^2
                         + 6 * (s12^2 + s13^2 + s23^2)))

    Fields with fewer than six components are skipped (``None``).
    """
    if field.ncomp < VON_MISES_COMPONENTS:
        _unsupported(
            diagnostics,
            f"von Mises of '{field.name}' needs {VON_MISES_COMPONENTS} components, "
            f"got {field.ncomp}",
            field=field.name,
        )
        return None
    s = field.matrix()[:, :VON_MISES_COMPONENTS].astype(np.float64)
    s11, s22, s33, s12, s13, s23 = s.T
    vm = np.sqrt(
        0.5
        * (
            (s11 - s22) ** 2
            + (s22 - s33) ** 2
            + (s33 - s11) ** 2
            + 6.0 * (s12**2 + s13**2 + s23**2)
        )
    )
    return _scalar(field, name, vm)


def component(field: FieldArray, label: str, name: str | None = None) -> FieldArray:
    """Return one named component as a scalar field ``<name>_<label>``.

    Raises
    ------
    NotFoundError
        If ``label`` is not a component of ``field``.
    """
    try:
        idx = field.descriptor.component_index(label)
    except ValueError as e:
        raise NotFoundError(
            "component", label, f"in field '{field.name}' {field.descriptor.component_labels}"
        ) from e
    return _scalar(field, name or f"{field.name}_{label}", field.matrix()[:, idx])
