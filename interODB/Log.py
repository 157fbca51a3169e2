"""Configure the shared logger for interODB.

Every record carries a ``source`` extra naming the dataset it concerns, so
interleaved output from several open result sets stays readable.
"""

import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, List, Optional

from loguru import logger as _logger

if TYPE_CHECKING:
    from loguru import Logger

    from .options import LogOptions

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[source]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
_FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[source]} | "
    "{name}:{function}:{line} - {message}"
)


class Log:
    """One configured loguru logger shared by every reader in the process.

    The first instantiation replaces loguru's default handler with a console
    sink. Later calls with arguments swap that console sink for one at the
    new level and add the requested file sink. File sinks are shared by
    path and stay installed until every reader that asked for them has
    called :meth:`release_file`; sinks added outside this class are never
    touched after the first instantiation.
    """

    _instance: Optional["Log"] = None

    def __new__(cls: type["Log"], *args: Any, **kwargs: Any) -> "Log":
        if cls._instance is None:
            inst = super().__new__(cls)
            inst._console_id = None
            inst._files = {}
            _logger.remove()
            _logger.configure(extra={"source": "-"})
            cls._instance = inst
            inst._configure(*args, **kwargs)
        elif args or kwargs:
            cls._instance._configure(*args, **kwargs)
        return cls._instance

    @classmethod
    def from_options(cls, options: "LogOptions") -> "Log":
        """Configure from a :class:`~interODB.options.LogOptions` block."""
        return cls(
            log_file=options.log_file,
            level=options.level,
            debug_mode=options.debug_mode,
        )

    def _configure(
        self,
        log_file: str | Path | None = None,
        level: str = "INFO",
        debug_mode: bool = False,
        rotation: str = "10 MB",
        retention: str = "10 days",
    ) -> None:
        """Replace the console sink and acquire the optional file sink."""
        self.level = "DEBUG" if debug_mode else level
        self.log_file = None if log_file is None else Path(log_file)

        if self._console_id is not None:
            _logger.remove(self._console_id)
        self._console_id = _logger.add(
            sys.stdout, level=self.level, format=_CONSOLE_FORMAT
        )

        if self.log_file is None:
            return
        held = self._files.get(self.log_file)
        if held is not None:
            held[1] += 1
            return
        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        # truncated per run, rotated while running
        sink_id = _logger.add(
            self.log_file,
            level=level,
            format=_FILE_FORMAT,
            rotation=rotation,
            retention=retention,
            mode="w",
        )
        self._files[self.log_file] = [sink_id, 1]

    def release_file(self, log_file: str | Path | None) -> bool:
        """Drop one use of a file sink; remove the sink after its last use.

        Returns whether a sink was removed.
        """
        if log_file is None:
            return False
        path = Path(log_file)
        held = self._files.get(path)
        if held is None:
            return False
        held[1] -= 1
        if held[1] > 0:
            return False
        _logger.remove(held[0])
        del self._files[path]
        return True

    @property
    def file_sinks(self) -> List[Path]:
        """Return the paths of the installed file sinks."""
        return list(self._files)

    @property
    def logger(self) -> "Logger":
        """Return the configured loguru logger."""
        return _logger

    def for_source(self, path: str | Path) -> "Logger":
        """Return a logger whose records are tagged with the dataset name."""
        return _logger.bind(source=Path(str(path)).name or str(path))
