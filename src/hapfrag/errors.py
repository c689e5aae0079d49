from __future__ import annotations

from pathlib import Path
from typing import Optional


class SourceAccessError(RuntimeError):
    """Raised when a variant or alignment source cannot be opened or read.

    This is fatal for the run: callers must not continue with a partial index
    or a partial fragment collection.
    """

    def __init__(self, message: str, *, path: Optional[str | Path] = None) -> None:
        super().__init__(message)
        self.path = str(path) if path is not None else None
