"""
metastage CLI entry point.

A thin driver around :class:`metastage.modules.ModuleLoader`: it loads a
unit by namespace path and reports failures, or prints the symbols a
namespace ends up with.
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from metastage import __version__
from metastage.config import apply_cli_overrides, load_workspace_config

from .commands import cmd_load, cmd_symbols


LOG_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'warning': logging.WARNING,
    'error': logging.ERROR,
}


def _configure_logging(level_name: Optional[str]) -> None:
    """Configure the ``metastage`` logger from the CLI, environment or config."""
    level_name = (level_name or os.getenv('METASTAGE_LOG_LEVEL') or 'warning').lower()
    numeric_level = LOG_LEVELS.get(level_name, logging.WARNING)

    package_logger = logging.getLogger('metastage')
    package_logger.setLevel(numeric_level)

    # Add console handler if not already present
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)
        package_logger.propagate = False


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Load staged units into namespaces and inspect their symbols",
        prog="metastage",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument('--config', default=None, help='Path to a metastage.toml configuration file')
    parser.add_argument(
        '--workspace',
        default=None,
        help='Workspace root directory (defaults to current working directory)',
    )
    parser.add_argument(
        '--search-path', '-I',
        dest='search_paths',
        action='append',
        default=[],
        help='Directory to search for units (may be given multiple times)',
    )
    parser.add_argument(
        '--log-level',
        choices=sorted(LOG_LEVELS),
        default=None,
        help='Logging level (or set METASTAGE_LOG_LEVEL)',
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    load_parser = subparsers.add_parser('load', help='Load a unit and import it into a namespace')
    load_parser.add_argument('namespace', help='Dotted namespace path of the unit, e.g. Tools.Wrench')
    load_parser.add_argument('names', nargs='*', help='Names to import instead of the default exports')
    load_parser.add_argument('--into', default=None, help='Namespace receiving the imports')
    load_parser.set_defaults(func=cmd_load)

    symbols_parser = subparsers.add_parser('symbols', help='Load a unit and list the symbols of a namespace')
    symbols_parser.add_argument('namespace', help='Dotted namespace path of the unit')
    symbols_parser.add_argument(
        '--format',
        choices=['table', 'json'],
        default='table',
        help='Output format (default: table)',
    )
    symbols_parser.set_defaults(func=cmd_symbols)

    return parser


def main(argv: Optional[list] = None) -> int:
    """
    Main CLI entrypoint.

    Examples:
        >>> main(['load', 'Tools.Wrench'])  # doctest: +SKIP
        >>> main(['-I', 'lib', 'symbols', 'Tools.Wrench', '--format', 'json'])  # doctest: +SKIP
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, 'func', None):
        parser.print_help()
        return 1

    workspace_root = Path(args.workspace).resolve() if args.workspace else Path.cwd()
    config_path = Path(args.config).resolve() if args.config else None
    config = load_workspace_config(workspace_root, config_path)
    config = apply_cli_overrides(
        config,
        search_paths=args.search_paths,
        import_target=getattr(args, 'into', None),
        log_level=args.log_level,
    )
    _configure_logging(args.log_level or os.getenv('METASTAGE_LOG_LEVEL') or config.logging.level)

    return args.func(args, config)


__all__ = ["main", "build_parser"]
