"""
Exception taxonomy shared by timeline resolution and graph compilation.

Nothing here is retried: every operation is deterministic, so an identical
input fails identically. Callers decide whether to surface or abort.
"""

from __future__ import annotations

from collections.abc import Sequence


class FrameGraphError(Exception):
    """Base exception for framegraph."""
    pass


class ConfigurationError(FrameGraphError, ValueError):
    """
    Raised when input configuration is malformed.

    Subclasses ``ValueError``, the same base as pydantic's ``ValidationError``,
    so one ``except ValueError`` covers model and helper validation alike.
    """
    pass


class UnresolvedReferenceError(FrameGraphError, LookupError):
    """Raised when a hero key or sync anchor is referenced but unknown."""

    def __init__(self, kind: str, name: str, message: str | None = None):
        self.kind = kind
        self.name = name
        super().__init__(message or f"Unresolved {kind} reference: {name}")


class LabelCollisionError(FrameGraphError):
    """
    Raised when the filter graph compiler assigns or consumes a label
    inconsistently.

    This indicates a defect in the compiler itself, never bad user input,
    so compilation is aborted instead of being repaired.
    """

    def __init__(self, label: str, reason: str = "assigned twice"):
        self.label = label
        self.reason = reason
        super().__init__(f"Filter label '{label}' {reason}")


class ExternalToolError(FrameGraphError):
    """Raised when the encoder process rejects a compiled command."""

    def __init__(
        self,
        command: Sequence[str],
        exit_code: int,
        stderr: str = "",
    ):
        self.command = list(command)
        self.exit_code = exit_code
        self.stderr = stderr
        tail = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
        super().__init__(f"Encoder exited with code {exit_code}: {tail}")
