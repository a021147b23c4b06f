"""Install packages straight from git repositories.

Specifiers look like ``git=URL[@ref][#fragment]``, ``git+URL...`` or
``name @ git+URL...``. A ``@ref`` shaped like ``v<digit>...`` is a tag,
any other ``@ref`` a branch; ``branch=``, ``tag=`` and ``commit=``
fragment keys are explicit and win over ``@ref``.
"""
from __future__ import annotations

import configparser
import logging
import re
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Union

import requirements
from packaging.utils import InvalidWheelFilename, parse_wheel_filename

from constants import Constants
from common.command import run_cmd
from common.logging_utils import extra_context, is_debug_enabled, safe_url
from errors import GitCheckoutFailed, GitCloneFailed, UserInputError, WheelwrightError
from install.installer import InstallReport, unpack_and_place
from install.tracker import InstalledRecord
from sourcebuild.builder import find_project_root
from versioning.parser import dependency_name, normalize_name

try:
    import tomllib as toml  # type: ignore
except ImportError:  # pragma: no cover - Python < 3.11
    import tomli as toml  # type: ignore

logger = logging.getLogger(__name__)

_TAG_REF_RE = re.compile(r"^v\d")
_NAMED_REF_RE = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)\s*@\s*(git\+\S+)\s*$")
_HOSTED_RE = re.compile(r"^(?:https?://)?(?:www\.)?(?:github\.com|gitlab\.com)/[^/\s]+/[^/\s]+")


@dataclass
class GitSpec:
    url: str
    branch: Optional[str] = None
    tag: Optional[str] = None
    commit: Optional[str] = None
    name: Optional[str] = None

    @property
    def ref(self) -> Optional[str]:
        return self.tag or self.branch


def is_git_spec(text: str) -> bool:
    text = (text or "").strip()
    if text.startswith(("git=", "git+", "git://")):
        return True
    if _NAMED_REF_RE.match(text):
        return True
    return bool(_HOSTED_RE.match(text))


def parse_git_spec(text: str) -> GitSpec:
    """Parse a git specifier.

    Raises:
        UserInputError: no repository URL remains after parsing.
    """
    text = (text or "").strip()
    name = None
    named = _NAMED_REF_RE.match(text)
    if named:
        name, text = named.group(1), named.group(2)
    for prefix in ("git=", "git+"):
        if text.startswith(prefix):
            text = text[len(prefix):]
            break

    url, _, fragment = text.partition("#")
    branch = tag = commit = None

    at = url.rfind("@")
    if at > max(url.rfind("/"), url.rfind(":")):
        ref = url[at + 1:]
        url = url[:at]
        if _TAG_REF_RE.match(ref):
            tag = ref
        elif ref:
            branch = ref

    for part in filter(None, fragment.split("&")):
        key, _, value = part.partition("=")
        key, value = key.strip(), value.strip()
        if not value:
            continue
        if key == "branch":
            branch, tag = value, None
        elif key == "tag":
            tag, branch = value, None
        elif key == "commit":
            commit = value
        elif key == "egg" and name is None:
            name = value

    if not url:
        raise UserInputError(f"Invalid git specifier: {text!r}")
    return GitSpec(url=url, branch=branch, tag=tag, commit=commit, name=name)


def repo_name_from_url(url: str) -> str:
    """Final path segment of a repository URL without ``.git``."""
    trimmed = (url or "").strip().rstrip("/")
    segment = re.split(r"[/:]", trimmed)[-1] if trimmed else ""
    if segment.endswith(".git"):
        segment = segment[:-4]
    return segment or "unknown"


def _name_from_pyproject(repo_dir: Path) -> Optional[str]:
    path = repo_dir / Constants.PYPROJECT_FILE
    if not path.is_file():
        return None
    try:
        with open(path, "rb") as fh:
            data = toml.load(fh) or {}
    except (OSError, toml.TOMLDecodeError) as exc:
        logger.debug("Unreadable %s: %s", path, exc)
        return None
    name = (data.get("project") or {}).get("name")
    return name if isinstance(name, str) and name.strip() else None


def _name_from_setup_cfg(repo_dir: Path) -> Optional[str]:
    path = repo_dir / "setup.cfg"
    if not path.is_file():
        return None
    parser = configparser.ConfigParser(interpolation=None)
    try:
        parser.read(path, encoding="utf-8")
    except configparser.Error as exc:
        logger.debug("Unreadable %s: %s", path, exc)
        return None
    name = parser.get("metadata", "name", fallback="").strip()
    return name or None


def _remote_url(repo_dir: Path) -> Optional[str]:
    path = repo_dir / ".git" / "config"
    if not path.is_file():
        return None
    for line in path.read_text(encoding="utf-8", errors="replace").splitlines():
        key, sep, value = line.strip().partition("=")
        if sep and key.strip() == "url" and value.strip():
            return value.strip()
    return None


def derive_package_name(repo_dir: Union[str, Path], fallback_url: Optional[str] = None) -> str:
    """Distribution name of a checkout.

    Looks at ``[project].name`` in pyproject.toml, then ``[metadata] name``
    in setup.cfg, then the remote URL recorded in .git/config, then
    ``fallback_url``.
    """
    repo_dir = Path(repo_dir)
    name = _name_from_pyproject(repo_dir) or _name_from_setup_cfg(repo_dir)
    if name:
        return name.strip()
    remote = _remote_url(repo_dir) or fallback_url
    return repo_name_from_url(remote) if remote else "unknown"


def is_dev_requirement(line: str) -> bool:
    name = (dependency_name(line) or line).lower()
    return any(marker in name for marker in Constants.DEV_TOOL_MARKERS)


def filter_requirement_lines(text: str) -> List[str]:
    """Installable lines of a requirements file.

    Comments, pip options, editable and local-path entries and development
    tools are dropped.
    """
    lines = []
    for raw in text.splitlines():
        line = raw.strip()
        if " #" in line:
            line = line.split(" #", 1)[0].strip()
        if not line or line.startswith(("#", "-", ".", "/")):
            continue
        if is_dev_requirement(line):
            continue
        lines.append(line)
    return lines


def read_dependency_lines(repo_dir: Union[str, Path]) -> List[str]:
    """Entries of the first conventional requirements file that has any."""
    repo_dir = Path(repo_dir)
    for relative in Constants.DEPENDENCY_FILES:
        path = repo_dir / relative
        if not path.is_file():
            continue
        lines = filter_requirement_lines(path.read_text(encoding="utf-8", errors="replace"))
        if lines:
            logger.debug("Using dependencies from %s", relative)
            return lines
    return []


def is_vcs_requirement(line: str) -> bool:
    return line.startswith("git+") or bool(_NAMED_REF_RE.match(line))


def requirement_name(line: str) -> Optional[str]:
    """Project name of a requirements line, parsed with requirements-parser."""
    try:
        parsed = list(requirements.parse(line))
    except ValueError:
        parsed = []
    for req in parsed:
        name = getattr(req, "name", None)
        if isinstance(name, str) and name:
            return name
    return dependency_name(line) or None


def wheel_version(wheel: Path) -> str:
    try:
        _, version, _, _ = parse_wheel_filename(wheel.name)
    except InvalidWheelFilename:
        return "0"
    return str(version)


class GitInstaller:
    """Clone, build and place packages from git, then their dependencies."""

    def __init__(self, environment, cache, builder, installer, runner: Callable = run_cmd) -> None:
        self.environment = environment
        self.cache = cache
        self.builder = builder
        self.installer = installer
        self.tracker = installer.tracker
        self._runner = runner

    def clone(self, spec: GitSpec, dest: Union[str, Path]) -> None:
        """Shallow clone of the requested ref, then the commit if one was given."""
        argv = ["git", "clone", "--depth", "1"]
        if spec.ref:
            argv += ["--branch", spec.ref]
        argv += [spec.url, str(dest)]
        if is_debug_enabled(logger):
            logger.debug(
                "Cloning repository",
                extra=extra_context(
                    event="vcs",
                    component="git_source",
                    action="clone",
                    target=safe_url(spec.url),
                    ref=spec.ref,
                    commit=spec.commit
                )
            )
        result = self._runner(argv)
        if not result.ok:
            raise GitCloneFailed(f"git clone of {safe_url(spec.url)} failed: {result.stderr.strip()}")
        if spec.commit:
            fetched = self._runner(["git", "-C", str(dest), "fetch", "--depth", "1", "origin", spec.commit])
            if not fetched.ok:
                logger.debug("Fetching commit %s failed, trying checkout anyway", spec.commit)
            result = self._runner(["git", "-C", str(dest), "checkout", spec.commit])
            if not result.ok:
                raise GitCheckoutFailed(f"git checkout {spec.commit} failed: {result.stderr.strip()}")

    def _build_and_place(self, spec: GitSpec, repo_dir: Path) -> InstalledRecord:
        name = spec.name or derive_package_name(repo_dir, spec.url)
        root = find_project_root(repo_dir)
        build_dir = self.cache.git_build_dir(name)
        wheel = self.builder.build_wheel(root, build_dir / Constants.CACHE_BUILT_DIR)
        version = wheel_version(wheel)
        unpack_and_place(wheel, build_dir / Constants.CACHE_EXTRACT_DIR, self.environment)
        self.tracker.mark_installed(name, version)
        logger.info("Installed %s %s from %s", name, version, safe_url(spec.url))
        return InstalledRecord(name, version)

    def install(self, spec_text: str) -> InstallReport:
        """Install a git package and the dependencies its repository lists.

        Failures of the package itself propagate; dependency failures are
        collected in the report.
        """
        spec = parse_git_spec(spec_text)
        report = InstallReport(requested=spec_text)
        clone_dir = Path(tempfile.mkdtemp(prefix="wheelwright-git-"))
        try:
            self.clone(spec, clone_dir)
            report.installed.append(self._build_and_place(spec, clone_dir))
            self._install_repository_dependencies(clone_dir, report)
        finally:
            shutil.rmtree(clone_dir, ignore_errors=True)
        return report

    def install_git_dependency(self, spec_text: str) -> InstalledRecord:
        """Clone, build and place without looking at the repository's dependencies."""
        spec = parse_git_spec(spec_text)
        clone_dir = Path(tempfile.mkdtemp(prefix="wheelwright-git-"))
        try:
            self.clone(spec, clone_dir)
            return self._build_and_place(spec, clone_dir)
        finally:
            shutil.rmtree(clone_dir, ignore_errors=True)

    def _install_repository_dependencies(self, repo_dir: Path, report: InstallReport) -> None:
        for line in read_dependency_lines(repo_dir):
            try:
                if is_vcs_requirement(line):
                    named = _NAMED_REF_RE.match(line)
                    if named and self.tracker.is_installed(named.group(1)):
                        report.skipped.append(named.group(1))
                        continue
                    report.installed.append(self.install_git_dependency(line))
                    continue
                name = requirement_name(line)
                if not name:
                    logger.warning("Skipping unrecognised requirement %r", line)
                    continue
                if self.tracker.is_installed(name):
                    report.skipped.append(normalize_name(name))
                    continue
                report.merge(self.installer.install(line))
            except (WheelwrightError, OSError) as exc:
                logger.warning("Could not install repository dependency %s: %s", line, exc)
                report.record_failure(line, exc)
