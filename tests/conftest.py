"""Shared fixtures: throwaway virtual environments, wheels and stub runners."""
import zipfile
from pathlib import Path

import pytest

from common.command import CmdResult
from constants import Constants
from install.environment import Environment

PYTHON_VERSION = "3.12.4"


def make_venv(root: Path, python_version: str = PYTHON_VERSION) -> Environment:
    """Lay out the bits of a virtual environment the installer looks at."""
    root.mkdir(parents=True, exist_ok=True)
    (root / "pyvenv.cfg").write_text(
        f"home = /usr/bin\ninclude-system-site-packages = false\nversion = {python_version}\n",
        encoding="utf-8",
    )
    environment = Environment(root, windows=False)
    environment.site_packages.mkdir(parents=True, exist_ok=True)
    return environment


def make_wheel(directory: Path, name: str, version: str, extra_files=None) -> Path:
    """Write a minimal wheel for ``name`` into ``directory``."""
    directory.mkdir(parents=True, exist_ok=True)
    module = name.replace("-", "_")
    path = directory / f"{module}-{version}-py3-none-any.whl"
    dist_info = f"{module}-{version}.dist-info"
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr(f"{module}/__init__.py", f"__version__ = '{version}'\n")
        zf.writestr(f"{dist_info}/METADATA", f"Metadata-Version: 2.1\nName: {name}\nVersion: {version}\n")
        zf.writestr(f"{dist_info}/top_level.txt", f"{module}\n")
        zf.writestr(f"{module}-{version}.data/scripts/tool", "#!/bin/sh\n")
        for arcname, content in (extra_files or {}).items():
            zf.writestr(arcname, content)
    return path


class StubRunner:
    """Records argv lists and answers from a list of handlers.

    Each handler is ``(predicate, result_or_callable)``; the first matching
    predicate wins. Unmatched commands succeed with empty output.
    """

    def __init__(self, handlers=None):
        self.calls = []
        self.handlers = list(handlers or [])

    def __call__(self, argv, *, env=None, cwd=None):
        argv = [str(a) for a in argv]
        self.calls.append({"argv": argv, "env": env, "cwd": cwd})
        for predicate, outcome in self.handlers:
            if predicate(argv):
                result = outcome(argv) if callable(outcome) else outcome
                return result
        return CmdResult(argv=argv, returncode=0, stdout="", stderr="")

    def commands(self):
        return [" ".join(call["argv"]) for call in self.calls]


@pytest.fixture
def venv(tmp_path):
    return make_venv(tmp_path / "venv")


@pytest.fixture(autouse=True)
def _restore_constants():
    """Configuration loading publishes settings on Constants; undo that per test."""
    saved = {
        key: getattr(Constants, key)
        for key in ("REGISTRY_URL_PYPI", "REQUEST_TIMEOUT", "CACHE_DIR", "BUILD_TYPE")
    }
    yield
    for key, value in saved.items():
        setattr(Constants, key, value)
