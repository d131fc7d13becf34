"""Identity of retrieved key material."""

from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class MapKey:
    """Identity of one certificate chain or key inside the store.

    Two keys are equal only when name, version and enabled flag all match, so a
    version that becomes disabled is a different key than the enabled one that
    was stored before.
    """

    name: str
    """The name of the vault object."""

    version: str
    """The version of the vault object."""

    enabled: bool = True
    """Whether the version was enabled when it was retrieved."""

    def __str__(self) -> str:
        state = "enabled" if self.enabled else "disabled"
        return f"{self.name}@{self.version} ({state})"
