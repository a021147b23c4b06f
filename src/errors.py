"""Exception hierarchy shared by every component.

Each family carries the process exit code the CLI reports when an error of
that family reaches the top level.
"""

from constants import ExitCodes


class WheelwrightError(Exception):
    """Base class for all errors raised by wheelwright."""

    exit_code = ExitCodes.FILE_ERROR


class UserInputError(WheelwrightError):
    """Raised when a requirement, specifier, or artifact is malformed."""

    exit_code = ExitCodes.USER_ERROR


class InvalidVersion(UserInputError, ValueError):
    """Raised when a version string does not follow the version grammar."""


class UnsupportedFormat(UserInputError):
    """Raised when an artifact is neither a wheel nor a known source archive."""


class NotFoundError(WheelwrightError):
    """Raised when a package, release, or compatible artifact is missing."""

    exit_code = ExitCodes.NOT_FOUND


class PackageNotFound(NotFoundError):
    """Raised when the index has no project with the requested name."""


class PackageVersionNotFound(NotFoundError):
    """Raised when no release satisfies the requested constraints."""


class NoCompatibleWheel(NotFoundError):
    """Raised when a release has neither a compatible wheel nor an sdist."""


class NetworkError(WheelwrightError):
    """Raised on transport failures and unexpected index responses."""

    exit_code = ExitCodes.CONNECTION_ERROR


class BuildError(WheelwrightError):
    """Raised when a wheel cannot be produced from source."""

    exit_code = ExitCodes.BUILD_ERROR


class BuildFailed(BuildError):
    """Raised when every build frontend failed for a source tree."""


class NoBuildFile(BuildError):
    """Raised when a source tree has no pyproject.toml or setup.py."""


class VcsError(BuildError):
    """Raised when a version-control checkout cannot be prepared."""


class GitCloneFailed(VcsError):
    """Raised when git clone exits non-zero."""


class GitCheckoutFailed(VcsError):
    """Raised when checking out a requested commit fails."""


class IntegrityError(WheelwrightError):
    """Raised when persisted project state is inconsistent."""

    exit_code = ExitCodes.INTEGRITY_ERROR


class LockFileError(IntegrityError):
    """Raised when a lock file cannot be read back."""


class FilesystemError(WheelwrightError):
    """Raised on missing environments and unusable paths."""

    exit_code = ExitCodes.FILE_ERROR


class EnvironmentNotFound(FilesystemError):
    """Raised when the target virtual environment does not exist."""
