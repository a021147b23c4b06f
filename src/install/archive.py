"""Unpacking of wheels and source archives.

Regular files, directories and symlinks are preserved. Members that would
land outside the destination are refused.
"""
from __future__ import annotations

import logging
import os
import stat
import tarfile
import zipfile
from pathlib import Path
from typing import Union

from errors import FilesystemError, UnsupportedFormat

logger = logging.getLogger(__name__)

WHEEL_SUFFIX = ".whl"
ZIP_SUFFIXES = (".whl", ".zip")
TAR_SUFFIXES = (".tar.gz", ".tgz")
SDIST_SUFFIXES = TAR_SUFFIXES + (".zip",)

PathLike = Union[str, Path]


def is_wheel(filename: str) -> bool:
    return filename.lower().endswith(WHEEL_SUFFIX)


def is_source_archive(filename: str) -> bool:
    return filename.lower().endswith(SDIST_SUFFIXES)


def _checked_target(dest: Path, member_name: str) -> Path:
    target = (dest / member_name).resolve()
    if target != dest and not str(target).startswith(str(dest) + os.sep):
        raise FilesystemError(f"Unsafe archive member path: {member_name}")
    return target


def extract_zip(archive: PathLike, dest: PathLike) -> Path:
    dest = Path(dest)
    dest.mkdir(parents=True, exist_ok=True)
    dest = dest.resolve()
    with zipfile.ZipFile(archive) as zf:
        for info in zf.infolist():
            target = _checked_target(dest, info.filename)
            mode = info.external_attr >> 16
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            if stat.S_ISLNK(mode):
                link_target = zf.read(info).decode("utf-8")
                if target.is_symlink() or target.exists():
                    target.unlink()
                os.symlink(link_target, target)
                continue
            with zf.open(info) as src, open(target, "wb") as out:
                while True:
                    chunk = src.read(64 * 1024)
                    if not chunk:
                        break
                    out.write(chunk)
            if mode & 0o111:
                os.chmod(target, (mode & 0o777) | 0o600)
    return dest


def extract_tar_gz(archive: PathLike, dest: PathLike) -> Path:
    dest = Path(dest)
    dest.mkdir(parents=True, exist_ok=True)
    dest = dest.resolve()
    with tarfile.open(archive, "r:gz") as tf:
        for member in tf.getmembers():
            _checked_target(dest, member.name)
            if member.islnk() or member.issym():
                link_base = dest if member.islnk() else (dest / member.name).parent
                _checked_target(dest, os.path.relpath(link_base / member.linkname, dest))
        if hasattr(tarfile, "tar_filter"):
            tf.extractall(dest, filter="tar")
        else:
            tf.extractall(dest)
    return dest


def extract_archive(archive: PathLike, dest: PathLike) -> Path:
    """Unpack a wheel, zip or gzipped tarball into ``dest``.

    Raises:
        UnsupportedFormat: the filename has no known archive suffix.
    """
    name = Path(archive).name.lower()
    logger.debug("Extracting %s into %s", name, dest)
    if name.endswith(ZIP_SUFFIXES):
        return extract_zip(archive, dest)
    if name.endswith(TAR_SUFFIXES):
        return extract_tar_gz(archive, dest)
    raise UnsupportedFormat(f"Unsupported archive format: {Path(archive).name}")
