"""Data models for versions, constraints and requirement specs."""

from dataclasses import dataclass, field
from enum import Enum
from functools import total_ordering
from typing import List, Optional, Tuple


class PreRelease(Enum):
    """Pre-release buckets, valued by precedence."""
    ALPHA = 1
    BETA = 2
    RC = 3

    @property
    def label(self) -> str:
        return {PreRelease.ALPHA: "a", PreRelease.BETA: "b", PreRelease.RC: "rc"}[self]


# Precedence of a release without pre-release segment on the pre axis.
_FINAL_RANK = 4
# A development release of a final version sorts before its pre-releases.
_DEV_ONLY_RANK = 0


@total_ordering
@dataclass(frozen=True, eq=False)
class Version:
    """A parsed release version.

    ``tail`` holds numeric release components beyond patch; ``precision`` is
    the number of release components that were written out and only matters
    for the compatible-release operator. Neither trailing zero components
    nor precision take part in comparisons.
    """
    major: int
    minor: int = 0
    patch: int = 0
    pre: Optional[Tuple[PreRelease, int]] = None
    post: Optional[int] = None
    dev: Optional[int] = None
    tail: Tuple[int, ...] = ()
    precision: int = field(default=3, compare=False)

    @property
    def release(self) -> Tuple[int, ...]:
        return (self.major, self.minor, self.patch) + tuple(self.tail)

    @property
    def is_prerelease(self) -> bool:
        return self.pre is not None or self.dev is not None

    def _key(self):
        release = list(self.release)
        while len(release) > 1 and release[-1] == 0:
            release.pop()
        if self.pre is not None:
            pre_key = (self.pre[0].value, self.pre[1])
        elif self.dev is not None and self.post is None:
            pre_key = (_DEV_ONLY_RANK, 0)
        else:
            pre_key = (_FINAL_RANK, 0)
        post_key = (1, self.post) if self.post is not None else (0, 0)
        dev_key = (0, self.dev) if self.dev is not None else (1, 0)
        return (tuple(release), pre_key, post_key, dev_key)

    def __eq__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self):
        return hash(self._key())

    def _suffix(self) -> str:
        text = ""
        if self.pre is not None:
            text += f"{self.pre[0].label}{self.pre[1]}"
        if self.post is not None:
            text += f".post{self.post}"
        if self.dev is not None:
            text += f".dev{self.dev}"
        return text

    def written(self) -> str:
        """Render with only the release components that were written out."""
        release = self.release
        width = max(1, self.precision)
        if any(release[width:]):
            width = len(release)
        return ".".join(str(part) for part in release[:width]) + self._suffix()

    def __str__(self) -> str:
        return ".".join(str(part) for part in self.release) + self._suffix()


class Operator(Enum):
    """Constraint operators."""
    EQ = "=="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    COMPATIBLE = "~="
    ANY = ""


@dataclass(frozen=True)
class Constraint:
    """One comparison against a version.

    ``prefix`` marks ``==X.Y.*`` / ``!=X.Y.*`` forms, which match on the
    written release components only.
    """
    op: Operator
    version: Optional[Version] = None
    prefix: bool = False

    def is_satisfied_by(self, candidate: Version) -> bool:
        if self.op is Operator.ANY or self.version is None:
            return True
        target = self.version
        if self.prefix:
            width = target.precision
            matches = _padded(candidate.release, width)[:width] == _padded(target.release, width)[:width]
            return matches if self.op is Operator.EQ else not matches
        if self.op is Operator.EQ:
            return candidate == target
        if self.op is Operator.NE:
            return candidate != target
        if self.op is Operator.LT:
            return candidate < target
        if self.op is Operator.LE:
            return candidate <= target
        if self.op is Operator.GT:
            return candidate > target
        if self.op is Operator.GE:
            return candidate >= target
        return target <= candidate < compatible_upper_bound(target)

    def __str__(self) -> str:
        if self.op is Operator.ANY or self.version is None:
            return ""
        suffix = ".*" if self.prefix else ""
        return f"{self.op.value}{self.version.written()}{suffix}"


def _padded(release: Tuple[int, ...], width: int) -> Tuple[int, ...]:
    return tuple(release) + (0,) * max(0, width - len(release))


def compatible_upper_bound(version: Version) -> Version:
    """Exclusive upper bound of ``~=version``.

    Bumps the second-to-last written release component and zeroes the
    rest; with a single written component the major is bumped.
    """
    width = max(1, version.precision)
    release = list(_padded(version.release, width)[:width])
    if width == 1:
        bumped = [release[0] + 1]
    else:
        bumped = release[:-2] + [release[-2] + 1]
    bumped += [0] * (3 - len(bumped))
    return Version(bumped[0], bumped[1], bumped[2], tail=tuple(bumped[3:]), precision=len(bumped))


@dataclass
class PackageSpec:
    """A requested package name with zero or more constraints."""
    name: str
    constraints: List[Constraint] = field(default_factory=list)

    def is_satisfied_by(self, version: Version) -> bool:
        return all(c.is_satisfied_by(version) for c in self.constraints)

    def __str__(self) -> str:
        return self.name + ",".join(str(c) for c in self.constraints if str(c))
