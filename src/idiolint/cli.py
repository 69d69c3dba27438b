"""
CLI entry point for idiolint.

Usage:
    idiolint <path>...                    Lint files and directories
    idiolint src --format json            Machine-readable output
    idiolint --list-rules                 Show the available rules
    idiolint --init-config .idiolint.yaml Write a default config file

Exit codes:
    0  no error-severity findings
    1  at least one error-severity finding
    2  invocation or configuration error (bad config, missing or
       unreadable file, run cut short by --timeout)
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from idiolint import __version__
from idiolint.config import ConfigError, LintConfig, load_config, write_default_config
from idiolint.findings import Severity
from idiolint.lint import DEFAULT_REGISTRY, Linter, lint_paths
from idiolint.reporting import render_json, render_text

EXIT_OK = 0
EXIT_FINDINGS = 1
EXIT_USAGE = 2

SOURCE_SUFFIXES = (".js", ".mjs", ".cjs")
SKIP_DIRS = frozenset({"node_modules", ".git", "dist", "build"})


def discover_files(paths: List[str]) -> List[Path]:
    """
    Expand directories into the JavaScript files below them.

    Files named explicitly are kept whatever their suffix.

    Raises:
        FileNotFoundError: a path does not exist
    """
    found: List[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_file():
            found.append(path)
        elif path.is_dir():
            for candidate in sorted(path.rglob("*")):
                if not candidate.is_file() or candidate.suffix not in SOURCE_SUFFIXES:
                    continue
                if SKIP_DIRS.intersection(candidate.relative_to(path).parts[:-1]):
                    continue
                found.append(candidate)
        else:
            raise FileNotFoundError(f"No such file or directory: {raw}")
    return found


def _parse_severity_overrides(values: List[str]) -> dict:
    overrides = {}
    for value in values:
        rule_id, sep, level = value.partition("=")
        if not sep or not rule_id:
            raise ConfigError(f"Expected --severity RULE=LEVEL, got {value!r}")
        try:
            overrides[rule_id.strip()] = Severity.parse(level)
        except ValueError as e:
            raise ConfigError(f"--severity {value}: {e}") from None
    return overrides


def build_config(args) -> LintConfig:
    """Config file + environment, then command-line options on top."""
    config = load_config(args.config)
    changes = {}
    if args.indent_unit:
        changes["indent_unit"] = args.indent_unit
    if args.quote:
        changes["preferred_quote"] = args.quote

    disabled = frozenset(args.disable)
    if args.enable:
        changes["enabled_rules"] = frozenset(args.enable)
    elif disabled and config.enabled_rules is not None:
        changes["enabled_rules"] = config.enabled_rules - disabled
    if disabled:
        changes["disabled_rules"] = config.disabled_rules | disabled
    if args.severity:
        overrides = dict(config.severity_overrides)
        overrides.update(_parse_severity_overrides(args.severity))
        changes["severity_overrides"] = overrides
    return config.with_changes(**changes) if changes else config


def cmd_list_rules() -> int:
    """Print the registered rules."""
    for rule in DEFAULT_REGISTRY:
        print(f"{rule.id:<26} {rule.severity.value:<8} {rule.description}")
    return EXIT_OK


def cmd_init_config(path: str) -> int:
    """Write a default configuration file."""
    if Path(path).exists():
        print(f"Error: {path} already exists", file=sys.stderr)
        return EXIT_USAGE
    written = write_default_config(path)
    print(f"Wrote default configuration to {written}")
    return EXIT_OK


def cmd_lint(args) -> int:
    """Lint the given paths and print a report."""
    try:
        linter = Linter(build_config(args))
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        files = discover_files(args.paths)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE

    result = lint_paths(files, linter, jobs=args.jobs, timeout=args.timeout)

    render = render_json if args.format == "json" else render_text
    print(render(result.reports, result.cancelled, result.failures))

    if not result.complete:
        return EXIT_USAGE
    return EXIT_FINDINGS if result.has_errors else EXIT_OK


def make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="idiolint",
        description="Style checker for idiomatic JavaScript",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    idiolint src/
    idiolint app.js --quote single --indent-unit tab
    idiolint src/ --disable switch-avoidance --severity quote-style=error
    idiolint src/ --format json --jobs 8 --timeout 120
"""
    )
    parser.add_argument('--version', action='version', version=f'idiolint {__version__}')
    parser.add_argument('paths', nargs='*', help='Files or directories to lint')
    parser.add_argument('-c', '--config', help='Config file (default: ./.idiolint.yaml)')
    parser.add_argument('--indent-unit', choices=['space', 'tab'], help='Expected indentation character')
    parser.add_argument('--quote', choices=['double', 'single'], help='Preferred string quote')
    parser.add_argument('--enable', action='append', default=[], metavar='RULE',
                        help='Run only these rules (repeatable)')
    parser.add_argument('--disable', action='append', default=[], metavar='RULE',
                        help='Skip a rule (repeatable)')
    parser.add_argument('--severity', action='append', default=[], metavar='RULE=LEVEL',
                        help='Override a rule severity: error, warning or info (repeatable)')
    parser.add_argument('-f', '--format', choices=['text', 'json'], default='text')
    parser.add_argument('-j', '--jobs', type=int, help='Worker threads (default: CPU count)')
    parser.add_argument('--timeout', type=float, help='Whole-run timeout in seconds')
    parser.add_argument('--list-rules', action='store_true', help='List rules and exit')
    parser.add_argument('--init-config', metavar='FILE', help='Write a default config file and exit')
    parser.add_argument('-v', '--verbose', action='count', default=0, help='-v info, -vv debug')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = make_parser()
    args = parser.parse_args(argv)

    level = {0: logging.WARNING, 1: logging.INFO}.get(args.verbose, logging.DEBUG)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    if args.list_rules:
        return cmd_list_rules()
    if args.init_config:
        return cmd_init_config(args.init_config)
    if not args.paths:
        parser.print_usage(sys.stderr)
        print("Error: no paths given", file=sys.stderr)
        return EXIT_USAGE
    return cmd_lint(args)


if __name__ == "__main__":
    sys.exit(main())
