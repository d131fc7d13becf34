"""Refresher capability performing one reconcile cycle."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
import datetime

__all__ = [
    "Refresher",
    "ReconcileResult",
]


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of a reconcile cycle handed back to the scheduler."""

    requeue_after: datetime.timedelta | None = None
    """Delay before the resource is reconciled again, None to not requeue."""

    @property
    def requeue(self) -> bool:
        """Return True if the resource should be reconciled again."""
        return self.requeue_after is not None


class Refresher(ABC):
    """Fetches material for one resource and records the outcome."""

    @abstractmethod
    async def refresh(self) -> None:
        """Run one cycle, raising on failure."""

    @abstractmethod
    def get_result(self) -> ReconcileResult:
        """Return the result of the last completed refresh."""
