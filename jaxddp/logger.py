"""Verbosity-gated logging sink for the solvers.

A logger is handed to a solver at construction; solvers only write to it at
iteration boundaries.
"""

from __future__ import annotations

from .types import LogSink, Verbosity


_LEVELS = {Verbosity.SILENT: 0, Verbosity.OUTER: 1, Verbosity.INNER: 2}


class SolverLogger:
    def __init__(self, verbose: Verbosity = Verbosity.SILENT, sink: LogSink = print):
        self.verbose = verbose
        self.sink = sink

    def enabled(self, level: Verbosity) -> bool:
        return level != Verbosity.SILENT and _LEVELS[self.verbose] >= _LEVELS[level]

    def log(self, level: Verbosity, message: str) -> None:
        if self.enabled(level):
            self.sink(message)

    def outer(self, message: str) -> None:
        self.log(Verbosity.OUTER, message)

    def inner(self, message: str) -> None:
        self.log(Verbosity.INNER, message)
