"""Runtime configuration assembled from files, environment and CLI flags.

Precedence, lowest to highest: built-in defaults, the user config file
(YAML or JSON), the project's ``[tool.wheelwright]`` table, WHEELWRIGHT_*
environment variables, command-line flags. Unreadable config files are
logged and skipped.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from constants import Constants

try:
    import tomllib as toml  # type: ignore
except ImportError:  # pragma: no cover - Python < 3.11
    import tomli as toml  # type: ignore

logger = logging.getLogger(__name__)

ENV_PREFIX = "WHEELWRIGHT_"
_KEYS = ("index_url", "cache_dir", "venv_dir", "build_type", "request_timeout")
_ALIASES = {"venv": "venv_dir", "timeout": "request_timeout", "index": "index_url"}


@dataclass(frozen=True)
class Settings:
    project_dir: Path
    index_url: str = Constants.REGISTRY_URL_PYPI
    cache_dir: str = Constants.CACHE_DIR
    venv_dir: str = Constants.VENV_DIR
    build_type: str = Constants.BUILD_TYPE
    request_timeout: int = Constants.REQUEST_TIMEOUT

    @property
    def venv_path(self) -> Path:
        path = Path(self.venv_dir).expanduser()
        return path if path.is_absolute() else self.project_dir / path

    @property
    def lock_path(self) -> Path:
        return self.project_dir / Constants.LOCK_FILE

    @property
    def pyproject_path(self) -> Path:
        return self.project_dir / Constants.PYPROJECT_FILE


def _normalize_keys(data: Mapping[str, Any]) -> Dict[str, Any]:
    out = {}
    for key, value in data.items():
        key = str(key).strip().lower().replace("-", "_")
        key = _ALIASES.get(key, key)
        if key in _KEYS and value is not None and value != "":
            out[key] = value
    return out


def load_config_file(path: str) -> Dict[str, Any]:
    """Settings from a YAML or JSON file; {} when missing or malformed."""
    try:
        with open(path, "r", encoding="utf-8") as fh:
            if path.lower().endswith(".json"):
                data = json.load(fh)
            else:
                data = yaml.safe_load(fh)
    except FileNotFoundError:
        return {}
    except (OSError, ValueError, yaml.YAMLError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        if data is not None:
            logger.warning("Ignoring config file %s: top level is not a mapping", path)
        return {}
    section = data.get("wheelwright", data)
    return _normalize_keys(section if isinstance(section, dict) else {})


def load_user_config(explicit_path: Optional[str] = None) -> Dict[str, Any]:
    if explicit_path:
        if not os.path.isfile(explicit_path):
            logger.warning("Config file %s not found", explicit_path)
        return load_config_file(explicit_path)
    for candidate in Constants.DEFAULT_CONFIG_LOCATIONS:
        if os.path.isfile(candidate):
            return load_config_file(candidate)
    return {}


def load_pyproject(project_dir: Path) -> Dict[str, Any]:
    """The parsed pyproject.toml of a project, {} when absent or malformed."""
    path = project_dir / Constants.PYPROJECT_FILE
    if not path.is_file():
        return {}
    try:
        with open(path, "rb") as fh:
            return toml.load(fh) or {}
    except (OSError, toml.TOMLDecodeError) as exc:
        logger.warning("Ignoring unreadable %s: %s", path, exc)
        return {}


def pyproject_settings(data: Mapping[str, Any]) -> Dict[str, Any]:
    """``[tool.wheelwright]``, plus the legacy ``[project] build_type`` key."""
    out = {}
    project = data.get("project") or {}
    if isinstance(project, dict) and project.get("build_type"):
        out["build_type"] = project["build_type"]
    tool = (data.get("tool") or {}).get("wheelwright") or {}
    if isinstance(tool, dict):
        out.update(_normalize_keys(tool))
    return out


def env_settings(environ: Mapping[str, str]) -> Dict[str, Any]:
    found = {}
    for key in _KEYS + tuple(_ALIASES):
        value = environ.get(ENV_PREFIX + key.upper())
        if value:
            found[key] = value
    return _normalize_keys(found)


def cli_settings(args) -> Dict[str, Any]:
    return _normalize_keys({
        "index_url": getattr(args, "INDEX_URL", None),
        "cache_dir": getattr(args, "CACHE_DIR", None),
        "venv_dir": getattr(args, "VENV", None),
    })


def _merge(settings: Settings, overrides: Dict[str, Any], source: str) -> Settings:
    if not overrides:
        return settings
    values = dict(overrides)
    if "request_timeout" in values:
        try:
            values["request_timeout"] = int(values["request_timeout"])
        except (TypeError, ValueError):
            logger.warning("Ignoring non-integer timeout %r from %s", values["request_timeout"], source)
            del values["request_timeout"]
    for key in ("index_url", "cache_dir", "venv_dir", "build_type"):
        if key in values:
            values[key] = str(values[key])
    logger.debug("Settings from %s: %s", source, sorted(values))
    return replace(settings, **values)


def load_config(args=None, project_dir: Optional[str] = None,
                environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Assemble Settings and publish the network tunables on Constants."""
    root = Path(project_dir or getattr(args, "PROJECT_DIR", None) or ".").resolve()
    settings = Settings(project_dir=root)
    settings = _merge(settings, load_user_config(getattr(args, "CONFIG", None)), "config file")
    settings = _merge(settings, pyproject_settings(load_pyproject(root)), "pyproject.toml")
    settings = _merge(settings, env_settings(os.environ if environ is None else environ), "environment")
    settings = _merge(settings, cli_settings(args), "command line")
    apply_settings(settings)
    return settings


def apply_settings(settings: Settings) -> None:
    Constants.REGISTRY_URL_PYPI = settings.index_url
    Constants.REQUEST_TIMEOUT = settings.request_timeout
    Constants.CACHE_DIR = settings.cache_dir
    Constants.BUILD_TYPE = settings.build_type
