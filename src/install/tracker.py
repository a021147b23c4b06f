"""Session-scoped record of the packages already handled."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Tuple

from versioning.parser import normalize_name


@dataclass(frozen=True)
class InstalledRecord:
    name: str
    version: str


class InstalledSet:
    """Normalized name -> version.

    A name is recorded before its dependencies are visited, which is what
    stops the recursion on cyclic graphs. Recording a name again replaces
    its version.
    """

    def __init__(self) -> None:
        self._versions: Dict[str, str] = {}

    def is_installed(self, name: str) -> bool:
        return normalize_name(name) in self._versions

    def version_of(self, name: str) -> Optional[str]:
        return self._versions.get(normalize_name(name))

    def mark_installed(self, name: str, version: str) -> None:
        self._versions[normalize_name(name)] = version

    def load_from_environment(self, environment) -> int:
        """Record everything installed in ``environment``; returns the count."""
        records = environment.list_installed()
        for record in records:
            self.mark_installed(record.name, record.version)
        return len(records)

    def items(self) -> Iterator[Tuple[str, str]]:
        return iter(sorted(self._versions.items()))

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.is_installed(name)

    def __len__(self) -> int:
        return len(self._versions)
