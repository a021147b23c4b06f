"""Argument parsing functionality for wheelwright."""

import argparse


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level parser with one subparser per command."""
    parser = argparse.ArgumentParser(
        prog="wheelwright",
        description="wheelwright - install Python packages into a project virtual environment",
        add_help=True,
    )

    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'])
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("-q", "--quiet",
                        dest="QUIET",
                        help="Do not log to the console.",
                        action="store_true")
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML, YML, or JSON)",
                        action="store",
                        type=str)
    parser.add_argument("--project-dir",
                        dest="PROJECT_DIR",
                        help="Project directory holding pyproject.toml and the lock file (default: .)",
                        action="store",
                        type=str,
                        default=".")
    parser.add_argument("--venv",
                        dest="VENV",
                        help="Virtual environment directory (default: .venv)",
                        action="store",
                        type=str)
    parser.add_argument("--index-url",
                        dest="INDEX_URL",
                        help="Base URL of the PyPI JSON API",
                        action="store",
                        type=str)
    parser.add_argument("--cache-dir",
                        dest="CACHE_DIR",
                        help="Artifact cache directory",
                        action="store",
                        type=str)

    sub = parser.add_subparsers(dest="action", metavar="command")
    sub.required = True

    init = sub.add_parser("init", help="Create the virtual environment and lock file")
    init.add_argument("--python",
                      dest="PYTHON",
                      help="Interpreter used to create the virtual environment",
                      action="store",
                      type=str,
                      default="python3")

    add = sub.add_parser("add", aliases=["append"], help="Install packages and their dependencies")
    add.add_argument("SPECS", nargs="+", metavar="SPEC",
                     help="Requirement such as 'requests>=2.31' or 'git=https://host/repo.git@v1.0'")

    remove = sub.add_parser("remove", help="Remove installed packages")
    remove.add_argument("NAMES", nargs="+", metavar="NAME")

    sub.add_parser("sync", help="Install the dependencies declared in pyproject.toml")

    install = sub.add_parser("install", help="Install from a requirements file")
    install.add_argument("-r", "--requirement",
                         dest="REQUIREMENT_FILE",
                         help="Requirements file to install from",
                         action="store",
                         type=str,
                         required=True)

    run = sub.add_parser("run", help="Run a script with the virtual environment's interpreter")
    run.add_argument("SCRIPT", help="Python script to run")
    run.add_argument("SCRIPT_ARGS", nargs=argparse.REMAINDER, metavar="ARG",
                     help="Arguments passed to the script")

    sub.add_parser("list", help="List installed packages")
    sub.add_parser("lock", help="Rewrite the lock file from the environment")

    cache = sub.add_parser("cache", help="Inspect or clean the artifact cache")
    cache.add_argument("cache_action", choices=["clean", "info"])

    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    args = build_parser().parse_args(argv)
    if args.action == "append":
        args.action = "add"
    return args
