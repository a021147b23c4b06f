"""Wheel tag compatibility for a target interpreter and platform.

Wheel filenames are parsed into their (interpreter, abi, platform) tag
triples with ``packaging`` and each triple is checked against the target.
Compressed tag sets such as ``py2.py3`` or dotted manylinux platforms
expand to one triple per combination.
"""
from __future__ import annotations

import logging
import platform as _platform
import sys
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional

from packaging.tags import Tag
from packaging.utils import InvalidWheelFilename, parse_wheel_filename
from packaging.version import InvalidVersion as InvalidPackagingVersion

from common.logging_utils import extra_context, is_debug_enabled
from errors import InvalidVersion

logger = logging.getLogger(__name__)


class OsFamily(Enum):
    LINUX = "linux"
    MACOS = "macos"
    WINDOWS = "windows"


class ArchFamily(Enum):
    X86_64 = "x86_64"
    AARCH64 = "aarch64"


_MACHINE_FAMILIES = {
    "x86_64": ArchFamily.X86_64,
    "amd64": ArchFamily.X86_64,
    "x86": ArchFamily.X86_64,
    "i386": ArchFamily.X86_64,
    "i686": ArchFamily.X86_64,
    "aarch64": ArchFamily.AARCH64,
    "arm64": ArchFamily.AARCH64,
    "armv8l": ArchFamily.AARCH64,
}

_MACOS_MARKERS = ("macosx", "universal2")
_WINDOWS_MARKERS = ("win32", "win_amd64")
_X86_MARKERS = ("x86_64", "amd64", "i686", "i386")
_ARM_MARKERS = ("aarch64", "arm64")
_FOREIGN_ARM_MARKERS = ("aarch64", "arm64", "armv")

UNIVERSAL_INTERPRETERS = ("py3", "py2.py3")

# Preference ranks, lower is better.
RANK_SPECIFIC = 0
RANK_INTERPRETER_ANY = 1
RANK_UNIVERSAL = 2


@dataclass(frozen=True)
class TargetPlatform:
    """OS family and CPU architecture family wheels are selected for."""
    os_family: OsFamily
    arch_family: ArchFamily

    @classmethod
    def detect(cls, system: Optional[str] = None, machine: Optional[str] = None) -> "TargetPlatform":
        system = (system or sys.platform).lower()
        machine = (machine or _platform.machine()).lower()
        if system.startswith("linux"):
            os_family = OsFamily.LINUX
        elif system.startswith("darwin"):
            os_family = OsFamily.MACOS
        elif system.startswith(("win32", "cygwin", "windows")):
            os_family = OsFamily.WINDOWS
        else:
            logger.warning("Unknown operating system %r, selecting wheels as for Linux", system)
            os_family = OsFamily.LINUX
        arch_family = _MACHINE_FAMILIES.get(machine)
        if arch_family is None:
            logger.warning("Unknown machine type %r, selecting wheels as for x86_64", machine)
            arch_family = ArchFamily.X86_64
        return cls(os_family, arch_family)


def interpreter_tag(python_version: str) -> str:
    """``"3.12.1"`` -> ``"cp312"``."""
    parts = str(python_version).strip().split(".")
    if len(parts) < 2 or not parts[0].isdigit() or not parts[1].isdigit():
        raise InvalidVersion(f"Invalid interpreter version: {python_version!r}")
    return f"cp{parts[0]}{parts[1]}"


def wheel_tags(filename: str) -> Optional[FrozenSet[Tag]]:
    """Tag triples of a wheel filename, or None when it cannot be parsed."""
    try:
        _, _, _, tags = parse_wheel_filename(filename)
    except (InvalidWheelFilename, InvalidPackagingVersion) as exc:
        if is_debug_enabled(logger):
            logger.debug(
                "Skipping unparsable wheel filename",
                extra=extra_context(
                    event="decision",
                    component="tags",
                    action="parse_wheel_filename",
                    outcome="invalid",
                    target=filename,
                    reason=str(exc)
                )
            )
        return None
    return tags


def is_universal(tag: Tag) -> bool:
    return tag.interpreter in UNIVERSAL_INTERPRETERS or (tag.abi == "none" and tag.platform == "any")


def python_tag_compatible(tag: Tag, cp_tag: str) -> bool:
    return tag.interpreter == cp_tag or is_universal(tag)


def platform_compatible(platform_tag: str, target: TargetPlatform) -> bool:
    """Whether a wheel platform tag can run on ``target``."""
    tag = platform_tag.lower()
    if tag == "any":
        return True
    if target.os_family is OsFamily.LINUX:
        if tag.startswith("win") or any(m in tag for m in _MACOS_MARKERS):
            return False
        if target.arch_family is ArchFamily.X86_64:
            if any(m in tag for m in _FOREIGN_ARM_MARKERS):
                return False
            return any(m in tag for m in _X86_MARKERS)
        if any(m in tag for m in _X86_MARKERS):
            return False
        return any(m in tag for m in _ARM_MARKERS)
    if target.os_family is OsFamily.MACOS:
        return any(m in tag for m in _MACOS_MARKERS)
    return tag in _WINDOWS_MARKERS


def tag_rank(tag: Tag, cp_tag: str, target: TargetPlatform) -> Optional[int]:
    """Preference rank of one tag triple, None when incompatible."""
    if not python_tag_compatible(tag, cp_tag) or not platform_compatible(tag.platform, target):
        return None
    if tag.interpreter == cp_tag:
        return RANK_SPECIFIC if tag.platform != "any" else RANK_INTERPRETER_ANY
    return RANK_UNIVERSAL


def wheel_rank(filename: str, cp_tag: str, target: TargetPlatform) -> Optional[int]:
    """Best rank across a wheel's tag triples, None when no triple fits."""
    tags = wheel_tags(filename)
    if not tags:
        return None
    ranks = [r for r in (tag_rank(t, cp_tag, target) for t in tags) if r is not None]
    return min(ranks) if ranks else None
