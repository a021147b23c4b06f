"""Target virtual environment: locations, installed listing and file placement."""
from __future__ import annotations

import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Callable, List, Optional, Union

from constants import Constants
from common.command import run_cmd
from common.logging_utils import extra_context, is_debug_enabled
from errors import EnvironmentNotFound, FilesystemError, UserInputError
from versioning.parser import is_valid_name, normalize_name
from .tracker import InstalledRecord

logger = logging.getLogger(__name__)

_SKIPPED_SUFFIXES = (".data", ".whl")


def _directly_inside(site: Path, path: Path) -> bool:
    """Whether ``path`` names an entry of ``site`` itself, not site or a parent."""
    if path.name in ("", ".", ".."):
        return False
    return path.parent.resolve() == site.resolve()


def split_metadata_dir(dirname: str):
    """``"my_pkg-1.0.dist-info"`` -> ``("my_pkg", "1.0")``, None if malformed."""
    if not dirname.endswith(Constants.METADATA_SUFFIX):
        return None
    stem = dirname[: -len(Constants.METADATA_SUFFIX)]
    name, sep, version = stem.rpartition("-")
    if not sep or not name or not version:
        return None
    return name, version


class Environment:
    """A virtual environment packages are placed into."""

    def __init__(self, venv_dir: Union[str, Path], python_version: Optional[str] = None,
                 runner: Callable = run_cmd, windows: Optional[bool] = None) -> None:
        self.venv_dir = Path(venv_dir)
        self._python_version = python_version
        self._runner = runner
        self.windows = sys.platform.startswith("win") if windows is None else windows

    @classmethod
    def create(cls, venv_dir: Union[str, Path], python: str = "python3",
               runner: Callable = run_cmd) -> "Environment":
        """Create the virtual environment with ``python -m venv``."""
        logger.info("Creating virtual environment at %s", venv_dir)
        result = runner([python, "-m", "venv", str(venv_dir)])
        if not result.ok:
            raise FilesystemError(
                f"Could not create virtual environment at {venv_dir}: {result.stderr.strip()}"
            )
        return cls(venv_dir, runner=runner)

    @property
    def bin_dir(self) -> Path:
        return self.venv_dir / ("Scripts" if self.windows else "bin")

    @property
    def python_executable(self) -> Path:
        return self.bin_dir / ("python.exe" if self.windows else "python")

    @property
    def pip_executable(self) -> Path:
        return self.bin_dir / ("pip.exe" if self.windows else "pip")

    def exists(self) -> bool:
        return self.venv_dir.is_dir() and (self.venv_dir / "pyvenv.cfg").is_file()

    def ensure_exists(self) -> None:
        if not self.exists():
            raise EnvironmentNotFound(
                f"No virtual environment at {self.venv_dir}; run 'wheelwright init' first"
            )

    @property
    def python_version(self) -> str:
        if self._python_version is None:
            self._python_version = self._detect_python_version()
        return self._python_version

    def _detect_python_version(self) -> str:
        cfg = self.venv_dir / "pyvenv.cfg"
        if cfg.is_file():
            for line in cfg.read_text(encoding="utf-8").splitlines():
                key, sep, value = line.partition("=")
                if sep and key.strip() in ("version", "version_info"):
                    return value.strip()
        result = self._runner([
            str(self.python_executable), "-c",
            "import sys; print('%d.%d.%d' % sys.version_info[:3])",
        ])
        if not result.ok or not result.stdout.strip():
            raise EnvironmentNotFound(f"Cannot determine the interpreter version of {self.venv_dir}")
        return result.stdout.strip()

    @property
    def site_packages(self) -> Path:
        if self.windows:
            return self.venv_dir / "Lib" / "site-packages"
        major_minor = ".".join(self.python_version.split(".")[:2])
        return self.venv_dir / "lib" / f"python{major_minor}" / "site-packages"

    def list_installed(self) -> List[InstalledRecord]:
        """Distributions found as ``<name>-<version>.dist-info`` directories."""
        site = self.site_packages
        if not site.is_dir():
            return []
        records = []
        for entry in sorted(site.iterdir()):
            parsed = split_metadata_dir(entry.name) if entry.is_dir() else None
            if parsed:
                records.append(InstalledRecord(*parsed))
        return records

    def place(self, source_dir: Union[str, Path]) -> int:
        """Copy an unpacked wheel into site-packages.

        ``*.data`` directories and nested wheel files are skipped. Returns
        the number of top-level entries placed.
        """
        source_dir = Path(source_dir)
        site = self.site_packages
        site.mkdir(parents=True, exist_ok=True)
        placed = 0
        for entry in sorted(source_dir.iterdir()):
            if entry.name.endswith(_SKIPPED_SUFFIXES):
                continue
            target = site / entry.name
            if entry.is_symlink():
                if target.is_symlink() or target.is_file():
                    target.unlink()
                os.symlink(os.readlink(entry), target)
            elif entry.is_dir():
                shutil.copytree(entry, target, symlinks=True, dirs_exist_ok=True)
            else:
                shutil.copy2(entry, target)
            placed += 1
        if is_debug_enabled(logger):
            logger.debug(
                "Placed wheel contents",
                extra=extra_context(
                    event="install",
                    component="environment",
                    action="place",
                    outcome="success",
                    count=placed,
                    target=str(site)
                )
            )
        return placed

    def remove(self, name: str) -> bool:
        """Delete a distribution's package directory and metadata directories.

        Dependents are left untouched. Returns whether anything was removed.

        Raises:
            UserInputError: ``name`` is not a valid distribution name.
        """
        if not is_valid_name(name):
            raise UserInputError(f"Invalid package name: {name!r}")
        site = self.site_packages
        if not site.is_dir():
            return False
        key = normalize_name(name)
        metadata_dirs = []
        for entry in site.iterdir():
            parsed = split_metadata_dir(entry.name) if entry.is_dir() else None
            if parsed and normalize_name(parsed[0]) == key:
                metadata_dirs.append(entry)

        candidates = {name, name.replace("-", "_"), key.replace("-", "_")}
        for meta in metadata_dirs:
            top_level = meta / "top_level.txt"
            if top_level.is_file():
                candidates.update(
                    line.strip() for line in top_level.read_text(encoding="utf-8").splitlines()
                    if line.strip() and "/" not in line and ".." not in line
                )

        removed = False
        for candidate in sorted(candidates):
            for path in (site / candidate, site / f"{candidate}.py"):
                if not _directly_inside(site, path):
                    logger.warning("Refusing to remove %s outside %s", path, site)
                    continue
                if path.is_symlink() or path.is_file():
                    path.unlink()
                    removed = True
                elif path.is_dir():
                    shutil.rmtree(path)
                    removed = True
        for meta in metadata_dirs:
            shutil.rmtree(meta)
            removed = True
        if removed:
            logger.info("Removed %s from %s", name, site)
        return removed
