"""Version history of a named key vault object.

A vault keeps every version of a certificate or key. Listing calls return the
versions unordered, so a history is always sorted by creation time before it
is trimmed down to the window of versions that should be trusted.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
import datetime

__all__ = [
    "VersionEntry",
    "VersionHistory",
]


@dataclass(frozen=True)
class VersionEntry:
    """A single version of a vault object."""

    version: str
    """The version identifier."""

    created_at: datetime.datetime
    """When the version was created."""

    enabled: bool
    """Whether the version is currently enabled in the vault."""


@dataclass
class VersionHistory:
    """Versions of one vault object, oldest first once sorted."""

    entries: list[VersionEntry] = field(default_factory=list)

    @classmethod
    def from_entries(cls, entries: Iterable[VersionEntry]) -> "VersionHistory":
        """Build a history sorted ascending by creation time."""
        history = cls(list(entries))
        history.sort()
        return history

    def sort(self) -> None:
        """Sort in place, ascending by creation time (oldest to newest)."""
        self.entries.sort(key=lambda entry: entry.created_at)

    def trim(self, limit: int, version: str | None = None) -> "VersionHistory":
        """Return the window of versions to retain.

        Without a pinned version the most recent `limit` versions are kept.
        With a pinned version the window ends at that version and extends back
        by up to `limit` older versions. A pinned version that is not in the
        history yields an empty window.
        """
        if not version:
            return VersionHistory(self._trim_suffix(limit))
        return VersionHistory(self._trim_to_version(limit, version))

    def _trim_suffix(self, limit: int) -> list[VersionEntry]:
        limit = min(limit, len(self.entries))
        return self.entries[len(self.entries) - limit :]

    def _trim_to_version(self, limit: int, version: str) -> list[VersionEntry]:
        index = next(
            (i for i, entry in enumerate(self.entries) if entry.version == version),
            -1,
        )
        start = max(index - limit, 0)
        return self.entries[start : index + 1]

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[VersionEntry]:
        return iter(self.entries)
