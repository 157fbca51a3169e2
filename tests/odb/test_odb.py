from __future__ import annotations

import numpy as np
import pytest

from interODB.errors import DiagnosticKind, NotFoundError
from interODB.Log import Log
from interODB.ODB.ODB import odb
from interODB.ODB.Source import (
    BulkBlock,
    FieldOutputData,
    FrameData,
    MemorySource,
    PartitionData,
    StepData,
)
from interODB.options import LogOptions, ReaderOptions


def test_open_scans_partitions(reader):
    assert reader.partitionNames == ["PART-A", "PART-B"]
    assert reader.nnodes == 5
    assert reader.nelems == 3
    assert reader.duplicateLabels() == {"nodes": [], "elements": []}
    assert reader.baseName == "beam"
    np.testing.assert_array_equal(reader.partitionCells()["PART-B"], [2])


def test_frames_grouped_by_step_in_ascending_order(reader):
    frames = reader.availableStepsFrames()
    assert [(f.step_name, f.frame_index) for f in frames] == [
        ("Step-1", 0),
        ("Step-1", 2),
        ("Step-2", 5),
    ]
    assert frames[1].frame_value == 1.0
    assert frames[1].description.startswith("Increment 2")

    by_step = reader.framesByStep()
    assert list(by_step) == ["Step-1", "Step-2"]
    assert [f.frame_index for f in by_step["Step-1"]] == [0, 2]
    assert reader.currentStepFrame is None


def test_list_field_names_does_not_extract(reader):
    names = dict(reader.listFieldNames("Step-1", 2))
    assert names["U"] == ("U1", "U2", "U3")
    assert set(names) == {"U", "S", "RF"}
    assert reader.fieldNames() == []


def test_read_all_known_fields(reader):
    fields = reader.readFieldOutput("Step-1", 2)

    assert set(fields) == {"U", "S"}
    assert reader.currentStepFrame.frame_index == 2
    assert reader.hasFieldData("U")
    assert not reader.hasFieldData("RF")
    assert reader.getFieldData("U").n_valid == 4

    fields = reader.readFieldOutput("Step-1", 0)
    assert set(fields) == {"U", "UR"}
    assert not reader.hasFieldData("S")


def test_single_field_mode(reader):
    reader.readField("Step-1", 2, "U")
    reader.readField("Step-1", 2, "RF")
    assert reader.fieldNames() == ["U", "RF"]

    # another frame starts a fresh cache
    reader.readField("Step-2", 5, "U")
    assert reader.fieldNames() == ["U"]
    assert reader.currentStepFrame.step_name == "Step-2"
    np.testing.assert_array_equal(
        reader.getFieldData("U").valid, [False, True, False, False, False]
    )


def test_missing_step_frame_or_field(reader):
    with pytest.raises(NotFoundError):
        reader.readFieldOutput("Step-9", 0)
    with pytest.raises(NotFoundError):
        reader.readField("Step-1", 1, "U")
    with pytest.raises(NotFoundError):
        reader.listFieldNames("Step-2", 0)

    reader.readField("Step-1", 2, "U")
    with pytest.raises(NotFoundError):
        reader.readField("Step-1", 2, "UR")
    assert reader.hasFieldData("U")


def test_release_fields(reader):
    reader.readFieldOutput("Step-1", 2)
    assert reader.releaseField("U") is True
    assert reader.releaseField("U") is False
    with pytest.raises(NotFoundError):
        reader.getFieldData("U")
    reader.releaseFields()
    assert reader.fieldNames() == []


def test_mesh_counts_survive_geometry_release(reader):
    mesh = reader.buildMesh(release_geometry=True)
    assert not reader.geometry.is_built
    assert (mesh.n_points, mesh.n_cells) == (5, 3)
    assert reader.nnodes == 5

    again = reader.buildMesh(release_geometry=False)
    assert reader.geometry.is_built
    assert (again.n_points, again.n_cells) == (mesh.n_points, mesh.n_cells)
    np.testing.assert_array_equal(again.cells.offsets, mesh.cells.offsets)
    np.testing.assert_array_equal(again.parts["PART-A"], [0, 1])


def test_summary_lists_model_tree(reader):
    text = reader.summary()
    assert "PART-A" in text
    assert "Step-2" in text
    assert "U, S, RF" in text


def test_context_manager_closes_source(source):
    with odb(source, ReaderOptions(known_fields=("U",))) as db:
        assert set(db.readFieldOutput("Step-1", 2)) == {"U"}
    assert source.closed


def test_duplicate_labels_are_reported():
    parts = [
        PartitionData("A", [1, 2], np.zeros((2, 3)), [1], ["T3D2"], [[1, 2]]),
        PartitionData("B", [2, 3], np.ones((2, 3)), [1], ["T3D2"], [[2, 3]]),
    ]
    with odb(MemorySource(parts)) as db:
        assert db.duplicateLabels() == {"nodes": [2], "elements": [1]}
        assert len(db.diagnostics.of_kind(DiagnosticKind.DUPLICATE_LABEL)) == 1
        np.testing.assert_array_equal(db.geometry.element(1).nodes, [2, 3])


def test_repeated_frame_id_is_indexed_once(partitions):
    step = StepData(
        "Step-1", [FrameData(3, 0.5, "first", {}), FrameData(3, 0.7, "again", {})]
    )
    with odb(MemorySource(partitions, [step])) as db:
        frames = db.availableStepsFrames()
        assert [(f.frame_index, f.description) for f in frames] == [(3, "first")]
        assert db.listFieldNames("Step-1", 3) == []
        assert len(db.diagnostics.of_kind(DiagnosticKind.DUPLICATE_LABEL)) == 1


def test_field_without_components_is_skipped(partitions):
    u = FieldOutputData(
        "U", ("U1", "U2", "U3"), "nodal", [BulkBlock([1, 10], [[1.0, 0.0, 0.0]] * 2)]
    )
    empty = FieldOutputData("S", (), "elemental", [])
    step = StepData("Step-1", [FrameData(0, 0.0, "", {"U": u, "S": empty})])
    with odb(MemorySource(partitions, [step])) as db:
        fields = db.readFieldOutput("Step-1", 0)
        assert set(fields) == {"U"}
        assert fields["U"].n_valid == 2

        diags = db.diagnostics.of_kind(DiagnosticKind.UNSUPPORTED_TYPE)
        assert [d.context["field"] for d in diags] == ["S"]

        assert db.readField("Step-1", 0, "S") is None
        assert db.fieldNames() == ["U"]


def test_second_reader_keeps_first_log_file(tmp_path, partitions):
    log_a = tmp_path / "a.log"
    a = odb(
        MemorySource(partitions, path="a.odb"),
        ReaderOptions(log=LogOptions(log_file=log_a)),
    )
    b = odb(MemorySource(partitions, path="b.odb"))
    try:
        a.logger.info("written after b opened")
        assert log_a in Log().file_sinks
    finally:
        b.close()
        a.close()

    assert log_a not in Log().file_sinks
    text = log_a.read_text()
    assert "written after b opened" in text
    assert "| a.odb |" in text


def test_shared_log_file_outlives_first_close(tmp_path, partitions):
    opts = ReaderOptions(log=LogOptions(log_file=tmp_path / "run.log"))
    a = odb(MemorySource(partitions), opts)
    b = odb(MemorySource(partitions), opts)

    a.close()
    a.close()
    assert opts.log.log_file in Log().file_sinks

    b.close()
    assert opts.log.log_file not in Log().file_sinks
