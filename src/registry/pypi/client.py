"""PyPI registry client: fetch project metadata and pick an installable artifact."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from packaging.markers import InvalidMarker, Marker, UndefinedComparison, UndefinedEnvironmentName

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer
from errors import InvalidVersion, NoCompatibleWheel, PackageNotFound, PackageVersionNotFound
from versioning.models import PackageSpec, Version
from versioning.parser import dependency_name, normalize_name, parse_dependency, parse_version
from .tags import TargetPlatform, interpreter_tag, wheel_rank

import registry.pypi as pypi_pkg

logger = logging.getLogger(__name__)

_EXTRA_MARKER_RE = re.compile(r"\bextra\s*==")


class ArtifactKind(Enum):
    """Distribution kinds, valued by the index's ``packagetype`` field."""
    WHEEL = "bdist_wheel"
    SDIST = "sdist"


@dataclass
class ArtifactMetadata:
    """A resolved release and the artifact chosen for it."""
    name: str
    version: str
    dependencies: List[str] = field(default_factory=list)
    url: str = ""
    filename: str = ""
    kind: ArtifactKind = ArtifactKind.WHEEL


def select_artifact(
    files: List[Dict[str, Any]], cp_tag: str, target: TargetPlatform
) -> Tuple[Dict[str, Any], ArtifactKind]:
    """Choose the best wheel for the target, else the first sdist.

    Wheels made for the interpreter and a concrete platform beat
    interpreter wheels for any platform, which beat universal wheels.
    Equal ranks keep index order.

    Raises:
        NoCompatibleWheel: neither a compatible wheel nor an sdist exists.
    """
    best: Optional[Dict[str, Any]] = None
    best_rank: Optional[int] = None
    for entry in files:
        if entry.get("packagetype") != ArtifactKind.WHEEL.value or entry.get("yanked"):
            continue
        rank = wheel_rank(entry.get("filename", ""), cp_tag, target)
        if rank is None:
            continue
        if best_rank is None or rank < best_rank:
            best, best_rank = entry, rank
    if best is not None:
        return best, ArtifactKind.WHEEL
    for entry in files:
        if entry.get("packagetype") == ArtifactKind.SDIST.value and not entry.get("yanked"):
            return entry, ArtifactKind.SDIST
    raise NoCompatibleWheel(f"No wheel for {cp_tag} on {target.os_family.value}/"
                            f"{target.arch_family.value} and no source distribution")


def select_release_version(releases: Dict[str, List[Dict[str, Any]]], spec: PackageSpec) -> Optional[str]:
    """Highest release satisfying every constraint of ``spec``.

    Releases without files or with unparsable versions are ignored.
    Pre-releases are considered only when no final release qualifies.
    """
    finals: List[Tuple[Version, str]] = []
    pres: List[Tuple[Version, str]] = []
    for text, files in releases.items():
        if not files or all(f.get("yanked") for f in files):
            continue
        try:
            version = parse_version(text)
        except InvalidVersion:
            logger.debug("Ignoring unparsable release %r", text)
            continue
        if not spec.is_satisfied_by(version):
            continue
        (pres if version.is_prerelease else finals).append((version, text))
    pool = finals or pres
    if not pool:
        return None
    return max(pool, key=lambda item: item[0])[1]


class PyPIClient:
    """Resolve requirements against a PyPI-compatible JSON API."""

    def __init__(self, python_version: str, platform: Optional[TargetPlatform] = None,
                 index_url: Optional[str] = None):
        self.python_version = python_version
        self.cp_tag = interpreter_tag(python_version)
        self.platform = platform or TargetPlatform.detect()
        base = index_url or Constants.REGISTRY_URL_PYPI
        self.index_url = base if base.endswith("/") else base + "/"

    def project_url(self, name: str, version: Optional[str] = None) -> str:
        if version:
            return f"{self.index_url}{normalize_name(name)}/{version}/json"
        return f"{self.index_url}{normalize_name(name)}/json"

    def fetch_project(self, name: str) -> Dict[str, Any]:
        return self._fetch(self.project_url(name), PackageNotFound)

    def fetch_release(self, name: str, version: str) -> Dict[str, Any]:
        return self._fetch(self.project_url(name, version), PackageVersionNotFound)

    def _fetch(self, url: str, not_found) -> Dict[str, Any]:
        with Timer() as timer:
            doc = pypi_pkg.get_json(url, context="pypi", not_found=not_found)
        if is_debug_enabled(logger):
            logger.debug(
                "Fetched project metadata",
                extra=extra_context(
                    event="http_response",
                    component="client",
                    action="fetch",
                    outcome="success",
                    duration_ms=timer.duration_ms(),
                    target=safe_url(url),
                    package_manager="pypi"
                )
            )
        if not isinstance(doc, dict) or not isinstance(doc.get("info"), dict):
            raise not_found(f"pypi: {safe_url(url)} returned no project info")
        return doc

    def resolve(self, spec: Union[str, PackageSpec]) -> ArtifactMetadata:
        """Resolve a requirement to a release and one of its artifacts.

        The latest release is used unless it violates the requirement's
        constraints, in which case the highest satisfying release is fetched.
        """
        if isinstance(spec, str):
            spec = parse_dependency(spec)
        doc = self.fetch_project(spec.name)
        latest = doc["info"].get("version", "")
        if spec.constraints and not self._satisfies(latest, spec):
            chosen = select_release_version(doc.get("releases") or {}, spec)
            if chosen is None:
                raise PackageVersionNotFound(f"No release of {spec.name} satisfies {spec}")
            logger.info("Selected %s %s for %s (latest is %s)", spec.name, chosen, spec, latest)
            doc = self.fetch_release(spec.name, chosen)
        return self.metadata_from_document(doc)

    @staticmethod
    def _satisfies(version_text: str, spec: PackageSpec) -> bool:
        try:
            return spec.is_satisfied_by(parse_version(version_text))
        except InvalidVersion:
            return False

    def metadata_from_document(self, doc: Dict[str, Any]) -> ArtifactMetadata:
        info = doc["info"]
        entry, kind = select_artifact(doc.get("urls") or [], self.cp_tag, self.platform)
        metadata = ArtifactMetadata(
            name=info.get("name", ""),
            version=info.get("version", ""),
            dependencies=self.dependency_names(info.get("requires_dist") or []),
            url=entry.get("url", ""),
            filename=entry.get("filename", ""),
            kind=kind,
        )
        if is_debug_enabled(logger):
            logger.debug(
                "Selected artifact",
                extra=extra_context(
                    event="decision",
                    component="client",
                    action="select_artifact",
                    outcome=kind.value,
                    target=metadata.filename,
                    package_manager="pypi"
                )
            )
        return metadata

    def dependency_names(self, requires_dist: List[str]) -> List[str]:
        """Bare names of the unconditional dependencies, in declaration order."""
        names: List[str] = []
        seen = set()
        for entry in requires_dist:
            if not isinstance(entry, str) or not self._marker_applies(entry):
                continue
            name = dependency_name(entry)
            key = normalize_name(name) if name else ""
            if key and key not in seen:
                seen.add(key)
                names.append(name)
        return names

    def _marker_applies(self, requirement: str) -> bool:
        """Evaluate the environment marker for the target interpreter.

        Requirements only pulled in by an extra never apply. Markers that
        cannot be evaluated are treated as applying.
        """
        if ";" not in requirement:
            return True
        marker_text = requirement.split(";", 1)[1].strip()
        if not marker_text:
            return True
        if _EXTRA_MARKER_RE.search(marker_text):
            return False
        major_minor = ".".join(self.python_version.split(".")[:2])
        environment = {"python_version": major_minor, "python_full_version": self.python_version}
        if major_minor == self.python_version:
            environment["python_full_version"] = major_minor + ".0"
        try:
            return Marker(marker_text).evaluate(environment)
        except (InvalidMarker, UndefinedComparison, UndefinedEnvironmentName):
            logger.debug("Could not evaluate marker %r, keeping dependency", marker_text)
            return True
