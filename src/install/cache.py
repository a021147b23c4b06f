"""On-disk artifact cache keyed by (normalized name, version)."""
from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Optional, Union

from constants import Constants
from versioning.parser import normalize_name

logger = logging.getLogger(__name__)

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


class PackageCache:
    """Shared artifact cache.

    Layout::

        <root>/wheels/<name>-<version>/<artifact filename>
        <root>/wheels/<name>-<version>/extracted/
        <root>/wheels/<name>-<version>/built/
        <root>/git-<name>/

    Presence of an artifact is decided by its filename alone.
    """

    def __init__(self, root: Optional[Union[str, Path]] = None) -> None:
        self.root = Path(root or Constants.CACHE_DIR).expanduser()

    @property
    def wheels_root(self) -> Path:
        return self.root / Constants.CACHE_WHEELS_DIR

    def package_dir(self, name: str, version: str) -> Path:
        path = self.wheels_root / f"{normalize_name(name)}-{version}"
        path.mkdir(parents=True, exist_ok=True)
        return path

    def artifact_path(self, name: str, version: str, filename: str) -> Path:
        return self.package_dir(name, version) / filename

    def has_artifact(self, name: str, version: str, filename: str) -> bool:
        return self.artifact_path(name, version, filename).is_file()

    def extract_dir(self, name: str, version: str) -> Path:
        return self.package_dir(name, version) / Constants.CACHE_EXTRACT_DIR

    def built_dir(self, name: str, version: str) -> Path:
        return self.package_dir(name, version) / Constants.CACHE_BUILT_DIR

    def git_build_dir(self, name: str) -> Path:
        path = self.root / f"git-{normalize_name(name)}"
        path.mkdir(parents=True, exist_ok=True)
        return path

    def clean(self) -> None:
        """Delete the whole cache root."""
        if self.root.exists():
            logger.info("Removing cache at %s", self.root)
            shutil.rmtree(self.root)

    def size(self) -> int:
        """Total size in bytes of the regular files under the root."""
        total = 0
        if not self.root.exists():
            return total
        for dirpath, _, filenames in os.walk(self.root):
            for filename in filenames:
                path = os.path.join(dirpath, filename)
                if not os.path.islink(path):
                    total += os.path.getsize(path)
        return total

    def human_size(self) -> str:
        return format_size(self.size())


def format_size(num_bytes: int) -> str:
    size = float(num_bytes)
    for unit in _SIZE_UNITS:
        if size < 1024 or unit == _SIZE_UNITS[-1]:
            if unit == "B":
                return f"{int(size)} B"
            return f"{size:.2f} {unit}"
        size /= 1024
    return f"{num_bytes} B"
