"""Reading and writing the project lock file.

Format::

    # comments
    python = "3.12.1"

    [[packages]]
    name = "requests"
    version = "2.32.3"

A ``[[packages]]`` block contributes an entry only when it holds both a
name and a version.
"""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Union

from errors import LockFileError
from versioning.parser import normalize_name

logger = logging.getLogger(__name__)

BLOCK_MARKER = "[[packages]]"
HEADER = (
    "# This file is generated by wheelwright.\n"
    "# It records the exact versions installed in the environment.\n"
    "# Do not edit it by hand.\n"
)

_KEY_VALUE_RE = re.compile(r'^(?P<key>[A-Za-z_][A-Za-z0-9_-]*)\s*=\s*"(?P<value>[^"]*)"\s*$')


@dataclass(frozen=True)
class LockedPackage:
    name: str
    version: str


@dataclass
class LockFile:
    python_version: str
    packages: List[LockedPackage] = field(default_factory=list)

    def package_set(self):
        return {(normalize_name(p.name), p.version) for p in self.packages}


def parse_lock(text: str) -> LockFile:
    """Parse lock file content.

    Raises:
        LockFileError: the interpreter version line is missing.
    """
    python_version: Optional[str] = None
    packages: List[LockedPackage] = []
    name: Optional[str] = None
    version: Optional[str] = None

    def flush():
        if name and version:
            packages.append(LockedPackage(name, version))

    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line == BLOCK_MARKER:
            flush()
            name = version = None
            continue
        match = _KEY_VALUE_RE.match(line)
        if match is None:
            logger.debug("Ignoring unrecognised lock line %d: %r", lineno, line)
            continue
        key, value = match.group("key"), match.group("value")
        if key == "python":
            python_version = value
        elif key == "name":
            name = value
        elif key == "version":
            version = value
    flush()

    if not python_version:
        raise LockFileError("Lock file does not record a python version")
    return LockFile(python_version=python_version, packages=packages)


def render_lock(lock: LockFile) -> str:
    if not lock.python_version:
        raise LockFileError("Cannot write a lock file without a python version")
    parts = [HEADER, f'python = "{lock.python_version}"\n']
    for package in lock.packages:
        parts.append(f'\n{BLOCK_MARKER}\nname = "{package.name}"\nversion = "{package.version}"\n')
    return "".join(parts)


def read_lock_file(path: Union[str, Path]) -> LockFile:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise LockFileError(f"Lock file {path} does not exist") from exc
    return parse_lock(text)


def check_lock_file(path: Union[str, Path], python_version: str) -> Optional[LockFile]:
    """Read the lock file back before a command touches the environment.

    Returns None when there is no lock file yet. A lock recorded for another
    interpreter series is reported and left to the next snapshot.

    Raises:
        LockFileError: the lock file exists but is malformed.
    """
    path = Path(path)
    if not path.is_file():
        logger.debug("No lock file at %s", path)
        return None
    lock = read_lock_file(path)
    if _series(lock.python_version) != _series(python_version):
        logger.warning("%s was written for python %s but the environment runs %s",
                       path.name, lock.python_version, python_version)
    return lock


def _series(version: str) -> str:
    return ".".join(version.strip().split(".")[:2])


def write_lock_file(path: Union[str, Path], lock: LockFile) -> None:
    """Write through a temporary sibling so readers never see half a file."""
    path = Path(path)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(render_lock(lock), encoding="utf-8")
    os.replace(tmp, path)
    logger.debug("Wrote %s with %d packages", path, len(lock.packages))


def init_lock_file(path: Union[str, Path], python_version: str) -> LockFile:
    lock = LockFile(python_version=python_version)
    write_lock_file(path, lock)
    return lock


def lock_from_records(python_version: str, records: Iterable) -> LockFile:
    packages = sorted(
        (LockedPackage(r.name, r.version) for r in records),
        key=lambda p: normalize_name(p.name),
    )
    return LockFile(python_version=python_version, packages=packages)


def snapshot_environment(path: Union[str, Path], environment) -> LockFile:
    """Rewrite the lock file from what is installed in ``environment``."""
    lock = lock_from_records(environment.python_version, environment.list_installed())
    write_lock_file(path, lock)
    logger.info("Updated %s (%d packages)", Path(path).name, len(lock.packages))
    return lock
