# bootforge/errors.py

from __future__ import annotations

from typing import List, Optional


class BootforgeError(Exception):
    """Base for every fatal engine error.

    Each subclass maps to a process exit code and carries an optional
    remediation hint that the CLI prints under the classification line.
    """

    classification = "BootforgeError"
    exit_code = 1

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.hint = hint


class CatalogError(BootforgeError):
    """Malformed catalog, bad dependency edge, unresolved variable or bad config."""

    classification = "CatalogError"
    exit_code = 2

    def __init__(self, message: str, hint: Optional[str] = None, problems: Optional[List[str]] = None):
        super().__init__(message, hint)
        self.problems = list(problems or [])


class PreconditionError(BootforgeError):
    classification = "PreconditionError"
    exit_code = 3


class ExecutionError(BootforgeError):
    classification = "ExecutionError"
    exit_code = 4

    def __init__(
        self,
        message: str,
        hint: Optional[str] = None,
        *,
        unit_id: Optional[str] = None,
        returncode: Optional[int] = None,
        timed_out: bool = False,
        command: Optional[List[str]] = None,
    ):
        super().__init__(message, hint)
        self.unit_id = unit_id
        self.returncode = returncode
        self.timed_out = timed_out
        self.command = list(command) if command else None


class StateError(BootforgeError):
    """The ledger cannot be read or written. Never resumable."""

    classification = "StateError"
    exit_code = 5
