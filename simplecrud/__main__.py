# File: simplecrud/__main__.py
"""
SimpleCRUD - Module entry point.

Allows running the CLI directly via::

    python -m simplecrud serve --config app.yaml

This module simply delegates to the CLI entry point defined in ``simplecrud.cli``.
"""

from __future__ import annotations


def main() -> None:
    """Delegate to the CLI main function."""
    from simplecrud.cli import cli_main
    cli_main()


if __name__ == "__main__":
    main()
