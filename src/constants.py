"""Constants used in the project."""

import os
from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    EXIT_WARNINGS = 3
    NOT_FOUND = 4
    BUILD_ERROR = 5
    USER_ERROR = 6
    INTEGRITY_ERROR = 7


class BuildType(Enum):
    """Compiler toolchains available to source builds."""

    NATIVE_COMPILER = "native_compiler"
    ZIG_COMPILER = "zig_compiler"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REGISTRY_URL_PYPI = "https://pypi.org/pypi/"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    DOWNLOAD_CHUNK_SIZE = 64 * 1024
    USER_AGENT = "wheelwright/0.3.0"

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    ENV_LOG_LEVEL = "WHEELWRIGHT_LOG_LEVEL"

    CACHE_DIR = os.path.join(os.path.expanduser("~"), ".cache", "wheelwright")
    CACHE_WHEELS_DIR = "wheels"
    CACHE_EXTRACT_DIR = "extracted"
    CACHE_BUILT_DIR = "built"

    VENV_DIR = ".venv"
    PYPROJECT_FILE = "pyproject.toml"
    REQUIREMENTS_FILE = "requirements.txt"
    LOCK_FILE = "wheelwright.lock"
    METADATA_SUFFIX = ".dist-info"

    BUILD_TYPE = BuildType.NATIVE_COMPILER.value
    BUILD_FILES = ["pyproject.toml", "setup.py"]

    # Conventional locations of a repository's dependency list, in lookup order
    DEPENDENCY_FILES = [
        REQUIREMENTS_FILE,
        "requirements/base.txt",
        "requirements/main.txt",
        "requirements/prod.txt",
    ]
    DEV_TOOL_MARKERS = ["pytest", "sphinx", "flake8", "black", "mypy"]

    DEFAULT_CONFIG_LOCATIONS = [
        os.path.join(
            os.environ.get("XDG_CONFIG_HOME", os.path.join(os.path.expanduser("~"), ".config")),
            "wheelwright",
            "config.yml",
        ),
        os.path.join(os.path.expanduser("~"), ".wheelwright.yml"),
    ]
