"""
CLI entry point for phpstyle.

Usage:
    phpstyle lint <path>...            Lint PHP files and directories
    phpstyle lint --fix <path>...      Rewrite fixable violations in place
    phpstyle rules                     List built-in rules and presets
    phpstyle parse <file>              Show the structural tree of a file
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Optional, Sequence

from phpstyle import __version__
from phpstyle.config import build_settings, find_config, load_document
from phpstyle.loader import SourceLoadError, EncodingError, load_source
from phpstyle.parser import ParseError, parse_source, to_dict, to_source
from phpstyle.reporting import EXIT_ABORTED, EXIT_OK, EXIT_VIOLATIONS, RENDERERS, exit_code
from phpstyle.rules import ConfigError, default_registry
from phpstyle.runner import CancelToken, LintRun

logger = logging.getLogger("phpstyle")


def _configure_logging(verbose: int) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def cmd_lint(args) -> int:
    """Lint files and directories."""
    config_path = Path(args.rules) if args.rules else find_config(args.paths)
    try:
        document = load_document(config_path) if config_path else None
        settings = build_settings(
            document,
            config_path=config_path,
            fail_on=args.fail_on,
            output_format=args.format,
            fix=args.fix or None,
            only=args.only,
            names=args.name,
            workers=args.workers,
            timeout=args.timeout,
            log_file=args.log_file,
        )
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_ABORTED
    if config_path:
        logger.info("Using config %s", config_path)

    cancel = CancelToken()

    def _on_interrupt(signum, frame):
        logger.warning("Interrupted; finishing files in progress")
        cancel.cancel()

    previous = signal.signal(signal.SIGINT, _on_interrupt)
    try:
        report = LintRun(settings).execute(args.paths, cancel)
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_ABORTED
    except OSError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_ABORTED
    finally:
        signal.signal(signal.SIGINT, previous)

    print(RENDERERS[settings.output_format](report))
    return exit_code(report)


def cmd_rules(args) -> int:
    """List built-in rules and presets."""
    registry = default_registry()
    if args.json:
        payload = {
            "rules": [
                {
                    "id": d.identifier,
                    "description": d.description,
                    "severity": d.severity.label,
                    "risky": d.risky,
                    "fixable": d.fixable,
                    "options": d.defaults(),
                }
                for d in registry
            ],
            "presets": registry.presets,
        }
        print(json.dumps(payload, indent=2, sort_keys=True))
        return EXIT_OK

    for d in registry:
        flags = [flag for flag, on in (("risky", d.risky), ("fixable", d.fixable)) if on]
        suffix = f" [{', '.join(flags)}]" if flags else ""
        print(f"{d.identifier}{suffix}")
        if d.description:
            print(f"    {d.description}")
        for spec in d.option_specs:
            print(f"    {spec.name} = {spec.default!r}")
    print()
    for name in sorted(registry.presets):
        print(f"{name}: {', '.join(registry.presets[name])}")
    return EXIT_OK


def cmd_parse(args) -> int:
    """Parse a file and show its structural tree."""
    try:
        source = load_source(args.file)
        tree = parse_source(source.text, str(source.path))
    except (SourceLoadError, EncodingError) as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_ABORTED
    except ParseError as e:
        print(f"{args.file}: {e}", file=sys.stderr)
        return EXIT_VIOLATIONS

    if args.json:
        print(json.dumps(to_dict(tree), indent=2))
    elif args.canonical:
        sys.stdout.write(to_source(tree))
    else:
        for child in tree.children:
            label = f" {child.name}" if child.name else ""
            print(f"{child.span.line}:{child.span.column} {child.kind.value} {child.tag}{label}")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="phpstyle",
        description="Rule-based PHP style and architecture linter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    phpstyle lint src
    phpstyle lint --fix --only ordered_imports src/Controller
    phpstyle lint --rules phpstyle.dist.yaml --format json .
"""
    )
    parser.add_argument('--version', action='version', version=f'phpstyle {__version__}')
    parser.add_argument('-v', '--verbose', action='count', default=0, help='More logging (repeatable)')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # lint
    lint_p = subparsers.add_parser('lint', help='Lint PHP files')
    lint_p.add_argument('paths', nargs='+', metavar='PATH', help='Files or directories to lint')
    lint_p.add_argument('--rules', metavar='CONFIG', help='Rule configuration file (YAML or JSON)')
    lint_p.add_argument('--format', choices=sorted(RENDERERS), help='Output format (default: plain)')
    lint_p.add_argument('--fail-on', choices=['info', 'warning', 'error'],
                        help='Lowest severity that fails the run (default: error)')
    lint_p.add_argument('--fix', action='store_true', help='Rewrite fixable violations in place')
    lint_p.add_argument('--only', action='append', metavar='RULE', help='Run only this rule (repeatable)')
    lint_p.add_argument('--name', action='append', metavar='GLOB',
                        help='File name pattern to lint (repeatable, default: *.php)')
    lint_p.add_argument('--workers', type=int, help='Parallel workers')
    lint_p.add_argument('--timeout', type=float, help='Per-file read timeout in seconds')
    lint_p.add_argument('--log-file', metavar='FILE', help='Append a JSONL run log to FILE')
    lint_p.set_defaults(func=cmd_lint)

    # rules
    rules_p = subparsers.add_parser('rules', help='List built-in rules and presets')
    rules_p.add_argument('--json', action='store_true', help='Output as JSON')
    rules_p.set_defaults(func=cmd_rules)

    # parse
    parse_p = subparsers.add_parser('parse', help='Show the structural tree of a PHP file')
    parse_p.add_argument('file', help='File to parse')
    parse_group = parse_p.add_mutually_exclusive_group()
    parse_group.add_argument('--json', action='store_true', help='Full tree as JSON')
    parse_group.add_argument('--canonical', action='store_true', help='Print the canonical re-serialization')
    parse_p.set_defaults(func=cmd_parse)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        # argparse exits 2 on usage errors and 0 for --help/--version
        return e.code if isinstance(e.code, int) else EXIT_ABORTED

    if args.command is None:
        parser.print_help()
        return EXIT_OK

    _configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
