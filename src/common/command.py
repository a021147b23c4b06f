"""Subprocess execution with consistent logging."""
from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CmdResult:
    argv: List[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def format_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def run_cmd(
    argv: Sequence[str],
    *,
    env: Optional[Mapping[str, str]] = None,
    cwd: Optional[str] = None,
) -> CmdResult:
    """Run a command, capturing its output.

    A missing executable is reported as return code 127 rather than raised,
    so callers can treat "not installed" and "failed" alike. Callers decide
    what a non-zero exit means.
    """
    argv_list = [str(a) for a in argv]
    logger.debug("CMD %s", format_argv(argv_list))
    try:
        p = subprocess.run(
            argv_list,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=cwd,
            env=dict(env) if env is not None else dict(os.environ),
            check=False,
        )
    except FileNotFoundError as exc:
        logger.debug("Executable not found: %s", argv_list[0])
        return CmdResult(argv=argv_list, returncode=127, stdout="", stderr=str(exc))

    if p.stdout:
        logger.debug("STDOUT %s", p.stdout.strip())
    if p.stderr:
        logger.debug("STDERR %s", p.stderr.strip())
    return CmdResult(argv=argv_list, returncode=p.returncode, stdout=p.stdout, stderr=p.stderr)
