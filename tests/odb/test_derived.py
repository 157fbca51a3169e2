from __future__ import annotations

import numpy as np
import pytest

from interODB.errors import DiagnosticKind, DiagnosticLog, NotFoundError
from interODB.ODB.Derived import component, vector_magnitude, von_mises
from interODB.ODB.Fields import FieldArray, FieldDescriptor

S_LABELS = ("S11", "S22", "S33", "S12", "S13", "S23")


def _field(name, rows, valid, location="elemental", labels=()):
    rows = np.asarray(rows, dtype=float)
    desc = FieldDescriptor(name, location, rows.shape[1], labels)
    return FieldArray(desc, rows.reshape(-1), valid)


def test_von_mises_uniaxial_and_invalid():
    s = _field(
        "S",
        [[100.0, 0, 0, 0, 0, 0], [0, 0, 0, 0, 0, 0], [0, 0, 0, 0, 0, 10.0]],
        [True, False, True],
        labels=S_LABELS,
    )
    vm = von_mises(s)

    assert vm.name == "VonMises"
    assert vm.ncomp == 1
    np.testing.assert_allclose(vm.values, [100.0, 0.0, np.sqrt(300.0)], rtol=1e-6)
    np.testing.assert_array_equal(vm.valid, s.valid)


def test_von_mises_ignores_stale_values_of_invalid_entities():
    s = _field("S", [[50.0, 0, 0, 0, 0, 0]], [False], labels=S_LABELS)
    assert von_mises(s).values[0] == 0.0


def test_von_mises_needs_six_components():
    diags = DiagnosticLog()
    s = _field("S", [[1.0, 2.0, 3.0, 4.0]], [True])
    assert von_mises(s, diagnostics=diags) is None
    assert len(diags.of_kind(DiagnosticKind.UNSUPPORTED_TYPE)) == 1


def test_magnitude_of_vectors():
    u = _field("U", [[3.0, 4.0, 0.0], [1.0, 1.0, 1.0]], [True, False], "nodal")
    mag = vector_magnitude(u)

    assert mag.name == "U.Magnitude"
    np.testing.assert_allclose(mag.values, [5.0, 0.0])
    assert mag.location == u.location


def test_magnitude_of_planar_vectors_and_extra_components():
    planar = _field("U", [[3.0, 4.0]], [True], "nodal")
    np.testing.assert_allclose(vector_magnitude(planar).values, [5.0])

    # only the leading three components count
    wide = _field("X", [[2.0, 3.0, 6.0, 100.0]], [True], "nodal")
    np.testing.assert_allclose(vector_magnitude(wide).values, [7.0])


def test_magnitude_of_scalar_is_unsupported():
    diags = DiagnosticLog()
    t = _field("NT11", [[1.0], [2.0]], [True, True], "nodal")
    assert vector_magnitude(t, diagnostics=diags) is None
    assert diags.records[0].kind == DiagnosticKind.UNSUPPORTED_TYPE
    assert diags.records[0].context["field"] == "NT11"


def test_single_component():
    s = _field(
        "S",
        [[1.0, 2.0, 3.0, 4.0, 5.0, 6.0], [7.0, 8.0, 9.0, 1.0, 1.0, 1.0]],
        [True, False],
        labels=S_LABELS,
    )
    s22 = component(s, "S22")

    assert s22.name == "S_S22"
    np.testing.assert_allclose(s22.values, [2.0, 0.0])
    with pytest.raises(NotFoundError):
        component(s, "S99")
