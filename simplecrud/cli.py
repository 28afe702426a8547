# File: simplecrud/cli.py
"""
SimpleCRUD - Command-Line Interface
====================================

Built with the standard-library ``argparse`` module.

Usage examples::

    # Serve every CRUD described in a configuration file
    python -m simplecrud serve --config app.yaml --port 8080

    # Show what the introspector sees for a table
    python -m simplecrud inspect users --database-url sqlite:///app.db

    # Check a configuration against the live schema without serving
    python -m simplecrud validate --config app.yaml

Exit codes:
    0 - success
    1 - configuration error
    4 - input/argument error
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, NoReturn, Optional, Sequence

# ---------------------------------------------------------------------------
# Logger (configured in _setup_logging)
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("simplecrud")


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_SUCCESS: int = 0
EXIT_CONFIG_ERROR: int = 1
EXIT_INPUT_ERROR: int = 4


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Configure the root simplecrud logger based on verbosity level.

    Args:
        verbosity: 0 = WARNING, 1 = INFO, 2+ = DEBUG.
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity >= 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    handler: logging.StreamHandler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    fmt: str = "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s"
    datefmt: str = "%H:%M:%S"
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root_logger: logging.Logger = logging.getLogger("simplecrud")
    root_logger.setLevel(level)

    # Remove existing handlers to prevent duplication
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.propagate = False


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    from simplecrud import __version__

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="simplecrud",
        description=(
            "SimpleCRUD: browse, search, add, edit and delete database rows "
            "through generated web pages."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s serve --config app.yaml\n"
            "  %(prog)s inspect users --database-url sqlite:///app.db\n"
            "  %(prog)s validate --config app.yaml -v\n"
        ),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"SimpleCRUD v{__version__}",
    )

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v = INFO, -vv = DEBUG).",
    )
    verbosity.add_argument(
        "-q", "--quiet",
        action="store_true",
        default=False,
        help="Suppress all log output.",
    )

    commands = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    serve = commands.add_parser("serve", help="Serve the CRUDs of a configuration file.")
    serve.add_argument("-c", "--config", required=True, metavar="PATH",
                       help="Application configuration (YAML or JSON).")
    serve.add_argument("--database-url", default=None, metavar="URL",
                       help="SQLAlchemy database URL (overrides settings and file).")
    serve.add_argument("--host", default=None, help="Bind address.")
    serve.add_argument("--port", type=int, default=None, help="Bind port.")

    inspect_cmd = commands.add_parser("inspect", help="Print the columns of a table.")
    inspect_cmd.add_argument("table", help="Table name.")
    inspect_cmd.add_argument("--database-url", default=None, metavar="URL",
                             help="SQLAlchemy database URL.")

    validate = commands.add_parser(
        "validate", help="Check a configuration file against the live schema."
    )
    validate.add_argument("-c", "--config", required=True, metavar="PATH",
                          help="Application configuration (YAML or JSON).")
    validate.add_argument("--database-url", default=None, metavar="URL",
                          help="SQLAlchemy database URL (overrides settings and file).")

    return parser


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _run_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from simplecrud.app import create_app_from_config
    from simplecrud.config import CrudSettings, load_config_file
    from simplecrud.errors import CrudError

    settings = CrudSettings()
    try:
        config = load_config_file(Path(args.config))
    except (FileNotFoundError, ValueError) as exc:
        logger.error("Failed to load configuration: %s", exc)
        return EXIT_INPUT_ERROR
    except CrudError as exc:
        logger.error("%s", exc.message)
        return EXIT_CONFIG_ERROR

    try:
        app = create_app_from_config(config, settings, database_url=args.database_url)
    except CrudError as exc:
        logger.error("%s", exc.message)
        return EXIT_CONFIG_ERROR

    host: str = args.host or settings.host
    port: int = args.port or settings.port
    logger.info("Serving %d CRUD(s) on http://%s:%d", len(config.cruds), host, port)
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())
    return EXIT_SUCCESS


def _run_inspect(args: argparse.Namespace) -> int:
    from simplecrud.config import CrudSettings
    from simplecrud.database import Database
    from simplecrud.errors import SchemaError
    from simplecrud.introspect import SchemaIntrospector

    url: Optional[str] = args.database_url or CrudSettings().database_url
    if not url:
        logger.error("No database URL: use --database-url or SIMPLECRUD_DATABASE_URL.")
        return EXIT_INPUT_ERROR

    introspector = SchemaIntrospector(Database(url))
    try:
        columns = introspector.columns_of(args.table)
    except SchemaError as exc:
        logger.error("%s", exc.message)
        return EXIT_INPUT_ERROR

    print(f"{'#':>3}  {'column':<24} {'type':<20} {'null':<8} values")
    for col in columns:
        values: str = ", ".join(col.enum_values) if col.enum_values else ""
        null_flag: str = "NULL" if col.nullable else "NOT NULL"
        print(
            f"{col.ordinal_position:>3}  {col.name:<24} {col.type_name:<20} "
            f"{null_flag:<8} {values}"
        )
    return EXIT_SUCCESS


def _run_validate(args: argparse.Namespace) -> int:
    """
    Register every CRUD of the configuration against a throwaway router.

    Returns the appropriate exit code.
    """
    from fastapi import APIRouter

    from simplecrud.config import CrudSettings, load_config_file
    from simplecrud.errors import CrudError
    from simplecrud.routes import SimpleCRUD
    from simplecrud.utils import Timer

    try:
        config = load_config_file(Path(args.config))
    except (FileNotFoundError, ValueError) as exc:
        logger.error("Failed to load configuration: %s", exc)
        return EXIT_INPUT_ERROR
    except CrudError as exc:
        print(exc.message)
        return EXIT_CONFIG_ERROR

    url: Optional[str] = (
        args.database_url or CrudSettings().database_url or config.database_url
    )
    if not url:
        logger.error("No database URL: use --database-url, settings, or the file.")
        return EXIT_INPUT_ERROR

    crud = SimpleCRUD(url, router=APIRouter())
    failures: List[str] = []
    with Timer("validation") as t:
        for spec in config.cruds:
            try:
                crud.register(spec)
            except CrudError as exc:
                failures.append(exc.message)

    print(f"\n{'=' * 50}")
    print("  Configuration Report")
    print(f"{'=' * 50}")
    print(f"  File:     {Path(args.config).name}")
    print(f"  CRUDs:    {len(config.cruds)}")
    print(f"  Time:     {t.elapsed:.3f}s")
    print(f"  Valid:    {'No' if failures else 'Yes'}")
    for message in failures:
        print(f"\n  {message}")
    print(f"{'=' * 50}\n")
    return EXIT_CONFIG_ERROR if failures else EXIT_SUCCESS


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def cli_main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """
    Main CLI entry point.

    Can be called from ``__main__.py`` or directly for testing.

    Args:
        argv: Optional argument list (defaults to sys.argv[1:]).
    """
    parser: argparse.ArgumentParser = _build_parser()
    args: argparse.Namespace = parser.parse_args(argv)

    if args.quiet:
        verbosity: int = -1
        logging.disable(logging.CRITICAL)
    else:
        verbosity = args.verbose
    _setup_logging(verbosity)

    runners = {
        "serve": _run_serve,
        "inspect": _run_inspect,
        "validate": _run_validate,
    }
    exit_code: int = runners[args.command](args)
    sys.exit(exit_code)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "cli_main",
    "EXIT_SUCCESS",
    "EXIT_CONFIG_ERROR",
    "EXIT_INPUT_ERROR",
]
