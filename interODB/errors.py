"""Error types and non-fatal diagnostics shared by the readers and the assembler."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List


class NotFoundError(LookupError):
    """Raised when a step, frame, field, or component is not in the dataset."""

    def __init__(self, what: str, key: Any, detail: str = ""):
        msg = f"{what} {key!r} not found"
        if detail:
            msg = f"{msg} {detail}"
        super().__init__(msg)
        self.what = what
        self.key = key


class SizeMismatchError(ValueError):
    """Raised when an array length disagrees with the expected entity count."""

    def __init__(self, name: str, expected: int, actual: int):
        super().__init__(
            f"'{name}': expected {expected} values, got {actual}"
        )
        self.name = name
        self.expected = expected
        self.actual = actual


class DiagnosticKind(str, Enum):
    """Categories of problems that are reported but never raised."""

    UNSUPPORTED_TYPE = "UnsupportedType"
    TRUNCATED = "Truncated"
    DUPLICATE_LABEL = "DuplicateLabel"
    UNRESOLVED_LABEL = "UnresolvedLabel"


@dataclass(slots=True)
class Diagnostic:
    """One recorded problem.

    Attributes:
        kind (DiagnosticKind): Category of the problem.
        message (str): Human readable description, also sent to the log.
        context (Dict[str, Any]): Identifiers of the offending item
            (partition, label, element ordinal, field name, ...).
    """

    kind: DiagnosticKind
    message: str
    context: Dict[str, Any] = field(default_factory=dict)


class DiagnosticLog:
    """Collect non-fatal problems and forward them to the logger."""

    def __init__(self, logger=None) -> None:
        if logger is None:
            from .Log import Log

            logger = Log().logger
        self.logger = logger
        self.records: List[Diagnostic] = []

    def warn(self, kind: DiagnosticKind, message: str, **context: Any) -> Diagnostic:
        """Record a diagnostic and emit it at WARNING level."""
        diag = Diagnostic(kind, message, dict(context))
        self.records.append(diag)
        self.logger.warning("[{}] {}", kind.value, message)
        return diag

    def of_kind(self, kind: DiagnosticKind) -> List[Diagnostic]:
        """Return the records of one category in emission order."""
        return [d for d in self.records if d.kind == kind]

    def clear(self) -> None:
        self.records.clear()

    def __len__(self) -> int:
        return len(self.records)

    def __repr__(self) -> str:
        return f"DiagnosticLog(records={len(self.records)})"
