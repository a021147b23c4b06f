"""Parsing of version strings, constraints and requirement specifiers."""

import re
from typing import List, Optional, Tuple

from packaging.utils import canonicalize_name

from errors import InvalidVersion, UserInputError
from .models import Constraint, Operator, PackageSpec, PreRelease, Version

_VERSION_RE = re.compile(
    r"""
    ^\s*v?
    (?P<release>[0-9]+(?:\.[0-9]+)*)
    (?:
        [-_.]?
        (?P<pre_l>alpha|a|beta|b|preview|pre|rc|c)
        [-_.]?
        (?P<pre_n>[0-9]+)?
    )?
    (?:
        -(?P<post_n1>[0-9]+)
        |
        [-_.]?(?P<post_l>post)[-_.]?(?P<post_n2>[0-9]+)?
    )?
    (?:
        [-_.]?(?P<dev_l>dev)[-_.]?(?P<dev_n>[0-9]+)?
    )?
    (?:\+[a-z0-9]+(?:[-_.][a-z0-9]+)*)?
    \s*$
    """,
    re.VERBOSE | re.IGNORECASE,
)

_PRE_BUCKETS = {
    "alpha": PreRelease.ALPHA,
    "a": PreRelease.ALPHA,
    "beta": PreRelease.BETA,
    "b": PreRelease.BETA,
    "rc": PreRelease.RC,
    "c": PreRelease.RC,
    "pre": PreRelease.RC,
    "preview": PreRelease.RC,
}

# Longest operators first so "<=" is never read as "<".
_OPERATORS: Tuple[Operator, ...] = (
    Operator.COMPATIBLE,
    Operator.GE,
    Operator.LE,
    Operator.NE,
    Operator.EQ,
    Operator.GT,
    Operator.LT,
)

_NAME_RE = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9._-]*[A-Za-z0-9])?$")


def parse_version(text: str) -> Version:
    """Parse a version string.

    Raises:
        InvalidVersion: ``text`` does not follow the version grammar.
    """
    if not isinstance(text, str):
        raise InvalidVersion(f"Invalid version: {text!r}")
    match = _VERSION_RE.match(text)
    if match is None:
        raise InvalidVersion(f"Invalid version: {text!r}")

    parts = [int(p) for p in match.group("release").split(".")]
    precision = len(parts)
    parts += [0] * (3 - len(parts))

    pre = None
    if match.group("pre_l"):
        pre = (_PRE_BUCKETS[match.group("pre_l").lower()], int(match.group("pre_n") or 0))

    post = None
    if match.group("post_n1") is not None:
        post = int(match.group("post_n1"))
    elif match.group("post_n2") is not None:
        post = int(match.group("post_n2"))
    elif match.group("post_l"):
        post = 0

    dev = None
    if match.group("dev_l"):
        dev = int(match.group("dev_n") or 0)

    return Version(
        parts[0], parts[1], parts[2],
        pre=pre, post=post, dev=dev,
        tail=tuple(parts[3:]),
        precision=precision,
    )


def format_version(version: Version) -> str:
    return str(version)


def parse_constraint(text: str) -> Constraint:
    """Parse one comparison such as ``>=1.2`` or ``~=1.4.2``.

    A bare version means equality; empty text matches anything.
    """
    text = (text or "").strip()
    if not text:
        return Constraint(Operator.ANY)
    for op in _OPERATORS:
        if text.startswith(op.value):
            rest = text[len(op.value):].strip()
            break
    else:
        op, rest = Operator.EQ, text
    prefix = False
    if rest.endswith(".*") and op in (Operator.EQ, Operator.NE):
        prefix = True
        rest = rest[:-2]
    if not rest:
        raise InvalidVersion(f"Constraint without version: {text!r}")
    return Constraint(op, parse_version(rest), prefix=prefix)


def _strip_markers_and_extras(text: str) -> str:
    text = text.split(";", 1)[0]
    return re.sub(r"\[[^\]]*\]", "", text).strip()


def _earliest_operator(text: str) -> Optional[int]:
    positions = [text.find(op.value) for op in _OPERATORS]
    positions = [p for p in positions if p >= 0]
    return min(positions) if positions else None


def _split_direct_reference(text: str) -> Tuple[str, Optional[str]]:
    """Split ``name @ url`` into its parts; other text is returned unchanged."""
    if "@" not in text:
        return text, None
    head, _, url = text.partition("@")
    head = head.strip()
    if head and _NAME_RE.match(head):
        return head, url.strip()
    return text, None


def parse_dependency(text: str) -> PackageSpec:
    """Decompose a requirement specifier into name and constraints.

    Environment markers and extras are dropped, the earliest operator
    splits the name from the comma-separated constraints. A direct
    reference (``name @ url``) carries no constraints.

    Raises:
        UserInputError: no usable package name.
        InvalidVersion: a constraint holds a malformed version.
    """
    body = _strip_markers_and_extras(text or "")
    name, url = _split_direct_reference(body)
    if url is not None:
        return PackageSpec(name=name)

    body = body.replace("(", " ").replace(")", " ")
    idx = _earliest_operator(body)
    if idx is None:
        name, remainder = body.strip(), ""
    else:
        name, remainder = body[:idx].strip(), body[idx:]
    if not is_valid_name(name):
        raise UserInputError(f"Invalid requirement: {text!r}")

    constraints: List[Constraint] = []
    for piece in remainder.split(","):
        if piece.strip():
            constraints.append(parse_constraint(piece))
    return PackageSpec(name=name, constraints=constraints)


def is_valid_name(name: str) -> bool:
    return bool(name) and _NAME_RE.match(name) is not None


def dependency_name(text: str) -> str:
    """Return the bare project name of a requirement string.

    Unlike ``parse_dependency`` the constraints are never parsed, so
    specifier forms this model does not understand cannot fail here.
    """
    body = _strip_markers_and_extras(text or "")
    name, _ = _split_direct_reference(body)
    cut = len(name)
    for stop in ("(", " ", "\t", "@") + tuple(op.value for op in _OPERATORS):
        pos = name.find(stop)
        if pos >= 0:
            cut = min(cut, pos)
    return name[:cut].strip()


def normalize_name(name: str) -> str:
    """PEP 503 canonical form: lowercase, runs of ``-_.`` collapsed to ``-``."""
    return canonicalize_name(name)
