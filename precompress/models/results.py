"""Result types shared by the pipeline and the CLI."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True)
class WorkerResult:
    """What a single worker accomplished before the queue closed."""

    compressed: int = 0
    error: Optional[BaseException] = None


@dataclass(slots=True)
class RunResult:
    """Outcome of a whole run: artifacts written and the first failure, if any."""

    count: int
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> None:
        """Re-raise the recorded error, if there is one."""

        if self.error is not None:
            raise self.error
