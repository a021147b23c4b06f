#!/usr/bin/env python3
"""wheelwright: install Python packages into a project virtual environment.

Resolves requirements against the PyPI JSON API, installs them and their
dependencies into the project's virtual environment through a shared
artifact cache, and keeps a lock file in sync with what is installed.
"""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List

from args import parse_args
from cli_config import Settings, load_config, load_pyproject
from common.command import run_cmd
from constants import ExitCodes
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from errors import FilesystemError, WheelwrightError
from install.cache import PackageCache
from install.environment import Environment
from install.installer import InstallReport, PackageInstaller, remove_packages
from install.tracker import InstalledSet
from lock.lockfile import check_lock_file, init_lock_file, snapshot_environment
from registry.pypi.client import PyPIClient
from sourcebuild.builder import SourceBuilder
from vcs.git_source import GitInstaller, is_git_spec

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """Collaborators shared by the commands of one invocation."""
    settings: Settings
    environment: Environment
    cache: PackageCache
    tracker: InstalledSet
    installer: PackageInstaller
    git: GitInstaller


def open_session(settings: Settings) -> Session:
    environment = Environment(settings.venv_path)
    environment.ensure_exists()
    check_lock_file(settings.lock_path, environment.python_version)
    cache = PackageCache(settings.cache_dir)
    tracker = InstalledSet()
    tracker.load_from_environment(environment)
    resolver = PyPIClient(environment.python_version, index_url=settings.index_url)
    builder = SourceBuilder(environment, settings.build_type)
    installer = PackageInstaller(environment, cache, tracker, resolver, builder)
    git = GitInstaller(environment, cache, builder, installer)
    return Session(settings, environment, cache, tracker, installer, git)


def load_pkgs_file(file_name: str) -> List[str]:
    """Requirement lines of a requirements file.

    Blank lines, comments and pip options are skipped; inline comments
    are removed. Git and URL requirements are kept.
    """
    try:
        with open(file_name, encoding="utf-8") as fh:
            text = fh.read()
    except OSError as exc:
        raise FilesystemError(f"Cannot read requirements file {file_name}: {exc}") from exc
    lines = []
    for raw in text.splitlines():
        line = raw.strip()
        if " #" in line:
            line = line.split(" #", 1)[0].strip()
        if not line or line.startswith(("#", "-")):
            continue
        lines.append(line)
    return lines


def install_specs(session: Session, specs: List[str], best_effort: bool = False) -> InstallReport:
    """Install each requirement, routing git specifiers to the git installer.

    Without ``best_effort`` the first failing requirement aborts the
    command; with it, failures are collected and the rest continue.
    """
    report = InstallReport(requested=", ".join(specs))
    for spec in specs:
        try:
            if is_git_spec(spec):
                report.merge(session.git.install(spec))
            else:
                report.merge(session.installer.install(spec))
        except WheelwrightError as exc:
            if not best_effort:
                raise
            logger.error("Failed to install %s: %s", spec, exc)
            report.record_failure(spec, exc)
    return report


def finish(session: Session, report: InstallReport) -> int:
    snapshot_environment(session.settings.lock_path, session.environment)
    for failure in report.failed:
        logger.warning("Not installed: %s (%s)", failure.name, failure.reason)
    print(report.summary())
    if report.ok:
        return ExitCodes.SUCCESS.value
    return ExitCodes.EXIT_WARNINGS.value


def cmd_init(args, settings: Settings) -> int:
    environment = Environment(settings.venv_path)
    if environment.exists():
        logger.info("Virtual environment %s already exists", settings.venv_path)
    else:
        environment = Environment.create(settings.venv_path, python=args.PYTHON)
    if check_lock_file(settings.lock_path, environment.python_version) is not None:
        logger.info("%s already exists", settings.lock_path.name)
    else:
        init_lock_file(settings.lock_path, environment.python_version)
    print(f"Initialized {settings.project_dir} (python {environment.python_version})")
    return ExitCodes.SUCCESS.value


def cmd_add(args, settings: Settings) -> int:
    session = open_session(settings)
    return finish(session, install_specs(session, args.SPECS))


def cmd_remove(args, settings: Settings) -> int:
    session = open_session(settings)
    removed = remove_packages(session.environment, args.NAMES)
    snapshot_environment(settings.lock_path, session.environment)
    print(f"{len(removed)} removed, {len(args.NAMES) - len(removed)} not installed")
    return ExitCodes.SUCCESS.value if len(removed) == len(args.NAMES) else ExitCodes.EXIT_WARNINGS.value


def cmd_sync(args, settings: Settings) -> int:
    session = open_session(settings)
    project = load_pyproject(settings.project_dir).get("project") or {}
    dependencies = [d for d in project.get("dependencies") or [] if isinstance(d, str) and d.strip()]
    if not dependencies:
        logger.warning("No [project].dependencies found in %s", settings.pyproject_path)
    return finish(session, install_specs(session, dependencies, best_effort=True))


def cmd_install(args, settings: Settings) -> int:
    session = open_session(settings)
    specs = load_pkgs_file(args.REQUIREMENT_FILE)
    return finish(session, install_specs(session, specs, best_effort=True))


def cmd_list(args, settings: Settings) -> int:
    environment = Environment(settings.venv_path)
    environment.ensure_exists()
    check_lock_file(settings.lock_path, environment.python_version)
    records = environment.list_installed()
    for record in records:
        print(f"{record.name}=={record.version}")
    logger.info("%d packages installed", len(records))
    return ExitCodes.SUCCESS.value


def cmd_run(args, settings: Settings) -> int:
    """Run a script with the venv interpreter; the script's exit status is returned."""
    environment = Environment(settings.venv_path)
    environment.ensure_exists()
    script = Path(args.SCRIPT).resolve()
    if not script.is_file():
        raise FilesystemError(f"Script {script} not found")
    result = run_cmd([str(environment.python_executable), str(script), *args.SCRIPT_ARGS],
                     cwd=str(settings.project_dir))
    if result.stdout:
        sys.stdout.write(result.stdout)
    if result.stderr:
        sys.stderr.write(result.stderr)
    return result.returncode


def cmd_lock(args, settings: Settings) -> int:
    environment = Environment(settings.venv_path)
    environment.ensure_exists()
    check_lock_file(settings.lock_path, environment.python_version)
    lock = snapshot_environment(settings.lock_path, environment)
    print(f"Locked {len(lock.packages)} packages for python {lock.python_version}")
    return ExitCodes.SUCCESS.value


def cmd_cache(args, settings: Settings) -> int:
    cache = PackageCache(settings.cache_dir)
    if args.cache_action == "clean":
        cache.clean()
        print(f"Removed {cache.root}")
    else:
        print(f"Cache directory: {cache.root}")
        print(f"Cache size: {cache.human_size()}")
    return ExitCodes.SUCCESS.value


COMMANDS = {
    "init": cmd_init,
    "add": cmd_add,
    "remove": cmd_remove,
    "sync": cmd_sync,
    "install": cmd_install,
    "list": cmd_list,
    "run": cmd_run,
    "lock": cmd_lock,
    "cache": cmd_cache,
}


def main(argv=None) -> int:
    """Main function of the program."""
    args = parse_args(argv)
    configure_logging(args.LOG_LEVEL, args.LOG_FILE, args.QUIET)
    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action=args.action)
        )
    settings = load_config(args)
    try:
        code = COMMANDS[args.action](args, settings)
    except WheelwrightError as exc:
        logger.error("%s", exc)
        return exc.exit_code.value
    except OSError as exc:
        logger.error("Filesystem error: %s", exc)
        return ExitCodes.FILE_ERROR.value
    if is_debug_enabled(logger):
        logger.debug(
            "CLI finished",
            extra=extra_context(event="function_exit", component="cli", action=args.action, outcome=code)
        )
    return code


if __name__ == "__main__":
    sys.exit(main())
