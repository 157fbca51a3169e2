from __future__ import annotations

from enum import Enum


class FieldLocation(Enum):
    """Where a field output is sampled."""

    NODAL = "nodal"
    ELEMENTAL = "elemental"

    @classmethod
    def parse(cls, value: "FieldLocation | str") -> "FieldLocation":
        """Accept an enum member or a case-insensitive name/alias."""
        if isinstance(value, cls):
            return value
        s = str(value).strip().lower()
        if s in ("nodal", "node", "point", "points"):
            return cls.NODAL
        if s in (
            "elemental",
            "element",
            "elem",
            "cell",
            "cells",
            "integration_point",
            "centroid",
        ):
            return cls.ELEMENTAL
        raise ValueError(f"unknown field location '{value}'")


class FieldKind(Enum):
    """Physical meaning of a field output."""

    DISPLACEMENT = "displacement"
    ROTATION = "rotation"
    STRESS = "stress"
    GENERIC = "generic"


# Output names used by the solver for the fields read in "all known" mode.
KNOWN_FIELD_KINDS = {
    "U": FieldKind.DISPLACEMENT,
    "UR": FieldKind.ROTATION,
    "S": FieldKind.STRESS,
}


def kind_for_name(name: str) -> FieldKind:
    return KNOWN_FIELD_KINDS.get(name, FieldKind.GENERIC)
