"""Base error type for pipeline stage failures."""

from __future__ import annotations

from vidcards.core.constants import FailureCause


class StageError(RuntimeError):
    """A failure that ends a job run with a known cause."""

    cause: FailureCause = FailureCause.INTERNAL

    def __init__(self, message: str, cause: FailureCause | None = None) -> None:
        super().__init__(message)
        if cause is not None:
            self.cause = cause

    @property
    def message(self) -> str:
        return str(self)
