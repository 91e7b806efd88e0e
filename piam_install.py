#!/usr/bin/env python3
"""
piam-formula - Install prebuilt piam-anc releases with pinned SHA-256 checks.

Usage:
    piam_install.py install [--prefix DIR]   # Resolve, verify, install, print caveats
    piam_install.py test [--prefix DIR]      # Smoke test the installed binary
    piam_install.py resolve [--os OS --arch ARCH]
    piam_install.py caveats
    piam_install.py info
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from piam_formula import __version__
from piam_formula.config import Config, load_config, resolve_manifest_path
from piam_formula.errors import FormulaError
from piam_formula.formula import InstallLayout, caveats, formula_info, run_install, smoke_test
from piam_formula.logging_config import get_logger, setup_logging
from piam_formula.platforms import DEFAULT_RELEASE, ReleaseTable, detect_host, load_release_manifest, resolve


def _release_table(args: argparse.Namespace, config: Config) -> ReleaseTable:
    if getattr(args, "manifest", None):
        return load_release_manifest(args.manifest, verbose=args.verbose)
    manifest = resolve_manifest_path(config)
    if manifest is not None:
        return load_release_manifest(manifest, verbose=args.verbose)
    return DEFAULT_RELEASE


def _layout(args: argparse.Namespace, config: Config) -> InstallLayout:
    return InstallLayout(prefix=Path(args.prefix or config.prefix).expanduser())


def cmd_install(args: argparse.Namespace, config: Config) -> int:
    """Resolve the host artifact, install it and print the caveats."""
    # With --json, stdout carries only the package document
    package = run_install(
        _layout(args, config),
        table=_release_table(args, config),
        os_name=args.os,
        arch=args.arch,
        timeout=config.timeout_seconds,
        fetch_retries=config.fetch_retries,
        out=sys.stderr if args.json else sys.stdout,
        verbose=args.verbose,
    )
    if args.json:
        print(json.dumps(package.to_dict(), indent=2))
    return 0


def cmd_test(args: argparse.Namespace, config: Config) -> int:
    """Run the installed binary's --version and check its product name."""
    binary = _layout(args, config).binary_path
    output = smoke_test(binary)
    get_logger().info(f"{binary}: {output.strip().splitlines()[0]}")
    return 0


def cmd_resolve(args: argparse.Namespace, config: Config) -> int:
    """Print the descriptor selected for the host (or the overridden platform)."""
    table = _release_table(args, config)
    host = detect_host(system=args.os, machine=args.arch, verbose=args.verbose)
    descriptor = resolve(host.os, host.arch, table)
    print(json.dumps(descriptor.to_dict(), indent=2))
    return 0


def cmd_caveats(args: argparse.Namespace, config: Config) -> int:
    """Print the post-install guidance."""
    sys.stdout.write(caveats())
    return 0


def cmd_info(args: argparse.Namespace, config: Config) -> int:
    """Print formula metadata and the pinned release table."""
    print(json.dumps(formula_info(_release_table(args, config)), indent=2))
    return 0


COMMANDS = {
    "install": cmd_install,
    "test": cmd_test,
    "resolve": cmd_resolve,
    "caveats": cmd_caveats,
    "info": cmd_info,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="piam-formula",
        description="Install prebuilt PIAM Admin Network Configurator (piam-anc) releases",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="Configuration file (YAML or JSON)")
    parser.add_argument("--prefix", help="Installation prefix (default from config: /usr/local)")
    parser.add_argument("--log-file", help="Write DEBUG-level logs to this file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only warnings and errors")

    subparsers = parser.add_subparsers(dest="command", required=True)

    install_parser = subparsers.add_parser("install", help="Download, verify and install piam-anc")
    install_parser.add_argument("--json", action="store_true", help="Print the installed package as JSON")

    subparsers.add_parser("test", help="Smoke test the installed binary")
    resolve_parser = subparsers.add_parser("resolve", help="Show the artifact selected for a platform")
    subparsers.add_parser("caveats", help="Show post-install guidance")
    info_parser = subparsers.add_parser("info", help="Show formula metadata and pinned artifacts")

    for sub in (install_parser, resolve_parser):
        sub.add_argument("--os", help="Override the detected operating system")
        sub.add_argument("--arch", help="Override the detected CPU architecture")
    for sub in (install_parser, resolve_parser, info_parser):
        sub.add_argument("--manifest", help="Release manifest replacing the built-in table")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the formula CLI."""
    args = build_parser().parse_args(argv)
    logger = setup_logging(verbose=args.verbose, quiet=args.quiet, log_file=args.log_file)

    try:
        config = load_config(args.config, verbose=args.verbose)
        if config.log_file and not args.log_file:
            logger = setup_logging(verbose=args.verbose, quiet=args.quiet, log_file=config.log_file)
        return COMMANDS[args.command](args, config)
    except FormulaError as e:
        logger.error(e.message)
        if e.remediation:
            logger.error(f"Hint: {e.remediation}")
        return e.exit_code
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
