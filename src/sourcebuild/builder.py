"""Build wheels from source archives and checkouts.

A PEP 517 build through ``python -m build`` is tried first; when that
frontend is missing or fails, ``pip wheel`` is used instead. A build only
counts as successful when the frontend exits 0 and left a ``*.whl`` in the
output directory.
"""
from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional, Union

from constants import BuildType, Constants
from common.command import run_cmd
from common.logging_utils import extra_context, is_debug_enabled, Timer
from errors import BuildFailed, NoBuildFile
from install.archive import extract_archive

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_STDERR_TAIL_LINES = 12


def build_env(build_type: Optional[str] = None, base: Optional[Mapping[str, str]] = None,
              which: Callable[[str], Optional[str]] = shutil.which) -> Dict[str, str]:
    """Process environment for a build with the compiler toolchain selected.

    The native toolchain only fills CC/CXX when they are unset; the zig
    toolchain overrides them when ``zig`` is on PATH.
    """
    env = dict(os.environ if base is None else base)
    selected = (build_type or BuildType.NATIVE_COMPILER.value).strip().lower()
    if selected == BuildType.ZIG_COMPILER.value:
        zig = which("zig")
        if zig:
            env["CC"] = f"{zig} cc"
            env["CXX"] = f"{zig} c++"
            return env
        logger.warning("build_type %s requested but zig is not on PATH; using the native compiler",
                       selected)
    elif selected != BuildType.NATIVE_COMPILER.value:
        logger.warning("Unknown build_type %r; using the native compiler", build_type)
    env.setdefault("CC", "gcc")
    env.setdefault("CXX", "g++")
    return env


def has_build_file(directory: Path) -> bool:
    return any((directory / name).is_file() for name in Constants.BUILD_FILES)


def find_project_root(directory: PathLike) -> Path:
    """The directory itself or its first subdirectory holding a build file.

    Raises:
        NoBuildFile: neither level has pyproject.toml or setup.py.
    """
    directory = Path(directory)
    if has_build_file(directory):
        return directory
    for child in sorted(p for p in directory.iterdir() if p.is_dir()):
        if has_build_file(child):
            return child
    raise NoBuildFile(f"No pyproject.toml or setup.py found in {directory}")


def find_wheel(directory: PathLike) -> Optional[Path]:
    directory = Path(directory)
    if not directory.is_dir():
        return None
    wheels = sorted(directory.glob("*.whl"))
    return wheels[0] if wheels else None


def _stderr_tail(text: str) -> str:
    lines = [line for line in (text or "").strip().splitlines() if line.strip()]
    return "\n".join(lines[-_STDERR_TAIL_LINES:])


class SourceBuilder:
    """Produces wheels inside the target environment's interpreter."""

    def __init__(self, environment, build_type: Optional[str] = None,
                 runner: Callable = run_cmd) -> None:
        self.environment = environment
        self.build_type = build_type or Constants.BUILD_TYPE
        self._runner = runner
        self._prepared = False

    @property
    def _python(self) -> str:
        return str(self.environment.python_executable)

    def ensure_build_deps(self) -> None:
        """Make pip available and install wheel/setuptools, once per builder.

        Raises:
            BuildFailed: pip is missing and ensurepip could not install it.
        """
        if self._prepared:
            return
        if not self._runner([self._python, "-m", "pip", "--version"]).ok:
            logger.info("Bootstrapping pip into %s", self.environment.venv_dir)
            result = self._runner([self._python, "-m", "ensurepip", "--upgrade"])
            if not result.ok:
                raise BuildFailed(f"Could not bootstrap pip: {_stderr_tail(result.stderr)}")
        result = self._runner([self._python, "-m", "pip", "install", "--quiet", "wheel", "setuptools"])
        if not result.ok:
            logger.warning("Installing build requirements failed: %s", _stderr_tail(result.stderr))
        self._prepared = True

    def build_wheel(self, source_dir: PathLike, output_dir: PathLike) -> Path:
        """Build a wheel from ``source_dir`` into a fresh ``output_dir``.

        Raises:
            BuildFailed: every frontend failed or produced no wheel.
        """
        source_dir = Path(source_dir)
        output_dir = Path(output_dir)
        if output_dir.exists():
            shutil.rmtree(output_dir)
        output_dir.mkdir(parents=True)
        self.ensure_build_deps()
        env = build_env(self.build_type)

        attempts = (
            ("build", [self._python, "-m", "build", "--wheel", "--no-isolation",
                       "--outdir", str(output_dir), str(source_dir)]),
            ("pip wheel", [self._python, "-m", "pip", "wheel", "--no-deps",
                           "--wheel-dir", str(output_dir), str(source_dir)]),
        )
        failures = []
        details = []
        for label, argv in attempts:
            with Timer() as timer:
                result = self._runner(argv, env=env, cwd=str(source_dir))
            wheel = find_wheel(output_dir)
            if result.ok and wheel is not None:
                if is_debug_enabled(logger):
                    logger.debug(
                        "Wheel built",
                        extra=extra_context(
                            event="build",
                            component="builder",
                            action=label,
                            outcome="success",
                            duration_ms=timer.duration_ms(),
                            target=wheel.name
                        )
                    )
                logger.info("Built %s", wheel.name)
                return wheel
            reason = f"exit {result.returncode}" if not result.ok else "no wheel produced"
            failures.append(f"{label}: {reason}")
            logger.info("%s failed for %s (%s)", label, source_dir.name, reason)
            tail = _stderr_tail(result.stderr)
            if tail:
                details.append(f"[{label}]\n{tail}")
        message = f"Could not build {source_dir.name}: {'; '.join(failures)}"
        if details:
            message += "\n" + "\n".join(details)
        raise BuildFailed(message)

    def build_sdist(self, archive: PathLike, output_dir: PathLike) -> Path:
        """Unpack a source archive into a scratch directory and build it."""
        scratch = tempfile.mkdtemp(prefix="wheelwright-sdist-")
        try:
            extract_archive(archive, scratch)
            root = find_project_root(scratch)
            return self.build_wheel(root, output_dir)
        finally:
            shutil.rmtree(scratch, ignore_errors=True)
