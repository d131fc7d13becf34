"""Status information for material retrieved by a provider."""

from dataclasses import dataclass, field
import datetime
from enum import StrEnum
from typing import Any

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig


class MaterialKind(StrEnum):
    """The kind of material a status document describes."""

    CERTIFICATES = "certificates"
    KEYS = "keys"


@dataclass
class StatusProperty(DataClassDictMixin):
    """Status of a single retrieved (or removed) object version."""

    name: str
    version: str
    enabled: bool
    last_refreshed: str = field(metadata=field_options(alias="lastRefreshed"))
    """RFC3339 time the version was last refreshed."""

    class Config(BaseConfig):
        serialize_by_alias = True


ProviderStatus = dict[str, list[StatusProperty]]
"""Status document produced by one fetch call, keyed by material kind."""


def format_time(when: datetime.datetime) -> str:
    """Format a time as RFC3339 in UTC."""
    return when.astimezone(datetime.UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def now() -> datetime.datetime:
    """Return the current time in UTC."""
    return datetime.datetime.now(datetime.UTC)


def status_document(
    properties: list[StatusProperty], kind: MaterialKind
) -> ProviderStatus:
    """Return a status document for one fetch call."""
    return {kind.value: properties}


def status_to_dict(status: ProviderStatus) -> dict[str, Any]:
    """Serialize a status document for the resource status properties."""
    return {kind: [prop.to_dict() for prop in props] for kind, props in status.items()}


def brief_error(error: str, max_length: int) -> str:
    """Truncate an error to `max_length` characters with an ellipsis marker."""
    if len(error) > max_length:
        return f"{error[:max_length]}..."
    return error
