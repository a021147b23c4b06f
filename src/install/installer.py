"""Recursive, idempotent installation of a requirement and its dependencies."""
from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Union

from common.http_client import download_file
from common.logging_utils import extra_context, is_debug_enabled, Timer
from errors import UnsupportedFormat, UserInputError, WheelwrightError
from registry.pypi.client import ArtifactKind, ArtifactMetadata
from versioning.models import PackageSpec
from versioning.parser import is_valid_name, parse_dependency
from .archive import extract_archive
from .tracker import InstalledRecord

logger = logging.getLogger(__name__)


@dataclass
class DependencyFailure:
    """A requirement that could not be installed, and why."""
    name: str
    reason: str
    error_type: str = ""


@dataclass
class InstallReport:
    """Outcome of one install request, dependencies included."""
    requested: str
    installed: List[InstalledRecord] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[DependencyFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def record_failure(self, name: str, exc: BaseException) -> None:
        self.failed.append(DependencyFailure(name=name, reason=str(exc), error_type=type(exc).__name__))

    def merge(self, other: "InstallReport") -> None:
        self.installed.extend(other.installed)
        self.skipped.extend(other.skipped)
        self.failed.extend(other.failed)

    def summary(self) -> str:
        return (f"{len(self.installed)} installed, {len(self.skipped)} already present, "
                f"{len(self.failed)} failed")


def unpack_and_place(wheel: Path, extract_dir: Path, environment) -> None:
    """Unpack ``wheel`` into a cleared ``extract_dir`` and copy it into the environment."""
    if extract_dir.exists():
        shutil.rmtree(extract_dir)
    extract_archive(wheel, extract_dir)
    environment.place(extract_dir)


class PackageInstaller:
    """Depth-first installer over a dependency graph that may contain cycles.

    A package is recorded in the tracker as soon as its release is resolved
    and before its dependencies are visited. A name already recorded is
    skipped, whatever version the new requirement asks for.
    """

    def __init__(self, environment, cache, tracker, resolver, builder,
                 downloader: Callable[[str, str], str] = download_file) -> None:
        self.environment = environment
        self.cache = cache
        self.tracker = tracker
        self.resolver = resolver
        self.builder = builder
        self.downloader = downloader

    def install(self, requirement: Union[str, PackageSpec]) -> InstallReport:
        """Install one requirement and, best effort, its dependency tree.

        Failures of the requirement itself propagate; failures of its
        dependencies are logged and collected in the report.
        """
        report = InstallReport(requested=str(requirement))
        self._install(requirement, report)
        return report

    def install_all(self, requirements: Iterable[Union[str, PackageSpec]]) -> InstallReport:
        """Install several top-level requirements, continuing past failures."""
        report = InstallReport(requested="*")
        for requirement in requirements:
            try:
                report.merge(self.install(requirement))
            except WheelwrightError as exc:
                logger.error("Failed to install %s: %s", requirement, exc)
                report.record_failure(str(requirement), exc)
        return report

    def _install(self, requirement: Union[str, PackageSpec], report: InstallReport) -> None:
        spec = requirement if isinstance(requirement, PackageSpec) else parse_dependency(requirement)
        if self.tracker.is_installed(spec.name):
            logger.debug("%s already handled (%s), skipping", spec.name, self.tracker.version_of(spec.name))
            report.skipped.append(spec.name)
            return

        metadata = self.resolver.resolve(spec)
        self.tracker.mark_installed(spec.name, metadata.version)
        if metadata.name:
            self.tracker.mark_installed(metadata.name, metadata.version)
        logger.info("Installing %s %s", metadata.name or spec.name, metadata.version)

        for dependency in metadata.dependencies:
            try:
                self._install(dependency, report)
            except (WheelwrightError, OSError) as exc:
                logger.warning("Could not install %s (required by %s): %s",
                               dependency, metadata.name or spec.name, exc)
                report.record_failure(dependency, exc)

        self._materialize(metadata)
        report.installed.append(InstalledRecord(metadata.name or spec.name, metadata.version))

    def fetch_artifact(self, metadata: ArtifactMetadata) -> Path:
        """Return the cached artifact, downloading it when absent."""
        artifact = self.cache.artifact_path(metadata.name, metadata.version, metadata.filename)
        if self.cache.has_artifact(metadata.name, metadata.version, metadata.filename):
            logger.debug("Using cached %s", metadata.filename)
            return artifact
        with Timer() as timer:
            self.downloader(metadata.url, str(artifact))
        if is_debug_enabled(logger):
            logger.debug(
                "Artifact downloaded",
                extra=extra_context(
                    event="download",
                    component="installer",
                    action="fetch_artifact",
                    outcome="success",
                    duration_ms=timer.duration_ms(),
                    target=metadata.filename
                )
            )
        return artifact

    def _materialize(self, metadata: ArtifactMetadata) -> None:
        if metadata.kind not in (ArtifactKind.WHEEL, ArtifactKind.SDIST):
            raise UnsupportedFormat(f"Unsupported artifact kind for {metadata.filename}")
        artifact = self.fetch_artifact(metadata)
        if metadata.kind is ArtifactKind.WHEEL:
            wheel = artifact
        else:
            logger.info("No compatible wheel for %s, building from source", metadata.name)
            wheel = self.builder.build_sdist(
                artifact, self.cache.built_dir(metadata.name, metadata.version)
            )
        unpack_and_place(wheel, self.cache.extract_dir(metadata.name, metadata.version), self.environment)


def remove_packages(environment, names: Iterable[str]) -> List[str]:
    """Remove each named distribution; returns the names that were present.

    Raises:
        UserInputError: a name is not a valid distribution name; nothing is removed.
    """
    names = list(names)
    for name in names:
        if not is_valid_name(name):
            raise UserInputError(f"Invalid package name: {name!r}")
    environment.ensure_exists()
    removed = []
    for name in names:
        if environment.remove(name):
            removed.append(name)
        else:
            logger.warning("%s is not installed", name)
    return removed
