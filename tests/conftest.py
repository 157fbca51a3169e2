from __future__ import annotations

import pytest

from interODB.ODB.ODB import odb
from interODB.ODB.Source import (
    BulkBlock,
    FieldOutputData,
    FrameData,
    MemorySource,
    PartitionData,
    StepData,
)
from interODB.options import ReaderOptions

U_LABELS = ("U1", "U2", "U3")
S_LABELS = ("S11", "S22", "S33", "S12", "S13", "S23")


def _partitions():
    # PART-A: nodes 1,2,3 -> global 0,1,2; elements 1,2 -> global 0,1
    # PART-B: nodes 10,11 -> global 3,4; element 7 -> global 2
    return [
        PartitionData(
            name="PART-A",
            node_labels=[1, 2, 3],
            coordinates=[[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]],
            element_labels=[1, 2],
            element_types=["CPS3", "T3D2"],
            connectivity=[[1, 2, 3], [2, 3]],
        ),
        PartitionData(
            name="PART-B",
            node_labels=[10, 11],
            coordinates=[[2.0, 0.0], [3.0, 0.0]],
            element_labels=[7],
            element_types=["B31"],
            connectivity=[[10, 11]],
        ),
    ]


def _frame_2():
    # U covers nodes 1, 3, 10, 11; node 2 (global 1) has no sample
    u = FieldOutputData(
        "U",
        U_LABELS,
        "nodal",
        [
            BulkBlock([1, 3], [[3.0, 4.0, 0.0], [1.0, 2.0, 2.0]], partition="PART-A"),
            BulkBlock([10, 11], [[0.0, 0.0, 1.0], [0.5, 0.0, 0.0]]),
        ],
        description="Spatial displacement",
    )
    # two integration points per element; element 7 has no sample
    s = FieldOutputData(
        "S",
        S_LABELS,
        "elemental",
        [
            BulkBlock(
                [1, 2],
                [
                    [100.0, 0.0, 0.0, 0.0, 0.0, 0.0],
                    [999.0, 0.0, 0.0, 0.0, 0.0, 0.0],
                    [0.0, 0.0, 0.0, 0.0, 0.0, 10.0],
                    [7.0, 7.0, 7.0, 0.0, 0.0, 0.0],
                ],
                multiplicity=2,
                partition="PART-A",
            )
        ],
        description="Stress components",
    )
    rf = FieldOutputData(
        "RF", ("RF1", "RF2", "RF3"), "nodal", [BulkBlock([1], [[1.0, 1.0, 1.0]])]
    )
    return FrameData(2, 1.0, "Increment 2: Step Time = 1.000", {"U": u, "S": s, "RF": rf})


def _frame_0():
    u = FieldOutputData(
        "U",
        U_LABELS,
        "nodal",
        [
            BulkBlock([1, 2, 3], [[0.0, 0.0, 0.0]] * 3, partition="PART-A"),
            BulkBlock([10, 11], [[0.0, 0.0, 0.0]] * 2, partition="PART-B"),
        ],
    )
    ur = FieldOutputData(
        "UR",
        ("UR1", "UR2", "UR3"),
        "nodal",
        [BulkBlock([1, 2, 3], [[0.0, 0.0, 0.1]] * 3, partition="PART-A")],
    )
    return FrameData(0, 0.0, "Increment 0: Step Time = 0.0", {"U": u, "UR": ur})


def _steps():
    return [
        # frames listed out of order on purpose
        StepData("Step-1", [_frame_2(), _frame_0()]),
        StepData(
            "Step-2",
            [
                FrameData(
                    5,
                    2.0,
                    "Increment 5",
                    {
                        "U": FieldOutputData(
                            "U", U_LABELS, "nodal", [BulkBlock([2], [[0.0, 1.0, 0.0]])]
                        )
                    },
                )
            ],
        ),
    ]


@pytest.fixture
def partitions():
    return _partitions()


@pytest.fixture
def frame2():
    return _frame_2()


@pytest.fixture
def source():
    return MemorySource(_partitions(), _steps(), path="/data/jobs/beam.odb")


@pytest.fixture
def reader(source):
    db = odb(source, ReaderOptions())
    yield db
    db.close()
