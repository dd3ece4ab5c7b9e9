#!/usr/bin/env python3
"""idiomcheck/main.py — command-line entry point.

Usage examples
--------------
    # Analyse two units (JSON program representations)
    idiomcheck widget.json gadget.json

    # Four units at a time, 5 s deadline per unit, GCC-style output
    idiomcheck --jobs 4 --timeout 5 --format gcc build/repr/*.json

    # Rule configuration (enable/disable, severity, options)
    idiomcheck --config rules.json widget.json

    # List rule ids with their built-in defaults
    idiomcheck --list-rules

Exit codes
----------
    0   No finding with severity ``error``.
    1   One or more findings with severity ``error``.
    2   Infrastructure failure (unreadable unit file, bad configuration).

The module doubles as ``python -m idiomcheck`` via the companion
``idiomcheck/__main__.py`` which simply calls :func:`main`.
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
from pathlib import Path
from typing import Dict, Optional, Sequence

from idiomcheck import __version__
from idiomcheck.config import DEFAULT_CONFIG, RuleConfig
from idiomcheck.errors import ConfigError
from idiomcheck.reporter import FORMATTERS
from idiomcheck.runner import DEFAULT_REGISTRY, analyze_batch

_log = logging.getLogger("idiomcheck")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_INFRA: int = 2


def _configure_logging(verbosity: int) -> None:
    """Set up the root ``idiomcheck`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("idiomcheck")
    root.setLevel(level)
    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        root.addHandler(handler)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="idiomcheck",
        description=(
            "Static checker for C++ correctness idioms: constness discipline,\n"
            "exception-safe ownership handles, substitutability of public\n"
            "inheritance and virtual calls during construction/destruction."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              idiomcheck widget.json
              idiomcheck --jobs 4 --timeout 5 --format gcc repr/*.json
              idiomcheck --list-rules
        """),
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )
    parser.add_argument(
        "units",
        nargs="*",
        metavar="UNIT",
        help="Program representation files (JSON), one per unit.",
    )
    parser.add_argument(
        "-c", "--config",
        default=None,
        metavar="FILE",
        help="JSON rule configuration (rule id → enabled/severity/options).",
    )
    parser.add_argument(
        "-f", "--format",
        choices=sorted(FORMATTERS),
        default="text",
        help="Output format (default: text).",
    )
    parser.add_argument(
        "-j", "--jobs",
        type=int,
        default=1,
        help="Units analysed concurrently (default: 1).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Per-unit deadline; a unit exceeding it reports UNIT-timeout.",
    )
    parser.add_argument(
        "--color",
        choices=["auto", "always", "never"],
        default="auto",
        help="Colour text output (default: auto, i.e. when stdout is a TTY).",
    )
    parser.add_argument(
        "-o", "--output",
        default=None,
        metavar="FILE",
        help='Output file ("-" or omit for stdout).',
    )
    parser.add_argument(
        "--list-rules",
        action="store_true",
        help="List rule ids with their default severity and exit.",
    )
    return parser


def _list_rules(config: RuleConfig) -> str:
    lines = []
    for rule_id, default in DEFAULT_REGISTRY.all_rules().items():
        setting = config.resolve(rule_id, default)
        state = "on " if setting.enabled else "off"
        lines.append(f"{rule_id:<28} {state} {setting.severity.value}")
    return "\n".join(lines)


def _read_units(paths: Sequence[str]) -> Dict[str, str]:
    sources: Dict[str, str] = {}
    for p in paths:
        sources[p] = Path(p).read_text(encoding="utf-8")
    return sources


def _write(text: str, output: Optional[str]) -> None:
    if output and output != "-":
        Path(output).write_text(text + "\n" if text else "", encoding="utf-8")
    elif text:
        sys.stdout.write(text + "\n")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the idiomcheck CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        config = RuleConfig.load(args.config) if args.config else DEFAULT_CONFIG
        DEFAULT_REGISTRY.validate(config)
    except ConfigError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA

    if args.list_rules:
        _write(_list_rules(config), args.output)
        return EXIT_OK

    if not args.units:
        parser.print_help(sys.stderr)
        return EXIT_INFRA
    if args.jobs < 1:
        _log.error("--jobs must be at least 1")
        return EXIT_INFRA

    try:
        sources = _read_units(args.units)
    except (OSError, UnicodeDecodeError) as exc:
        _log.error("Cannot read unit: %s", exc)
        return EXIT_INFRA

    try:
        batch = analyze_batch(sources, config=config, jobs=args.jobs, timeout=args.timeout)
        color = args.color == "always" or (
            args.color == "auto" and args.format == "text"
            and not args.output and sys.stdout.isatty()
        )
        _write(FORMATTERS[args.format](batch, color=color), args.output)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130  # Standard UNIX convention for SIGINT
    except OSError as exc:
        _log.error("Cannot write output: %s", exc)
        return EXIT_INFRA

    if args.format != "text" and batch.skipped:
        _log.warning("%s", batch.summary())
    return EXIT_ERROR if batch.error_count else EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
