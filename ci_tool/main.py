"""CI tool entry point for splitting test projects into job matrices.

Provides discover, build-matrix, and show-matrix subcommands. discover
runs once per test project after its tests are built; build-matrix runs
once after every project has been discovered.
"""

from __future__ import annotations

import argparse
import os
import re
import sys
from dataclasses import replace
from pathlib import Path

from matrix_splitter.discovery.artifacts import write_manifest
from matrix_splitter.discovery.listing import compile_heading_pattern, discover
from matrix_splitter.errors import ConfigError, DiscoveryError, MissingManifestError
from matrix_splitter.matrix.builder import build
from matrix_splitter.matrix.collect import collect_manifests
from matrix_splitter.matrix.filters import load_filter_syntax
from matrix_splitter.metadata.resolver import (
    load_project_config,
    parse_group_list,
    resolve,
)
from matrix_splitter.reporting.matrix_writer import (
    write_github_output,
    write_json,
    write_yaml,
)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="CI tool for splitting test projects into job matrices"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # discover subcommand
    discover_parser = subparsers.add_parser(
        "discover",
        help="Parse a test listing and write the project's manifest artifacts",
    )
    discover_parser.add_argument(
        "--listing",
        required=True,
        help="Path to --list-tests output, or '-' for stdin",
    )
    discover_parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the project's split config (YAML or JSON)",
    )
    discover_parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path(".tests/split"),
        help="Directory to write manifest artifacts to (default: .tests/split)",
    )
    discover_parser.add_argument(
        "--project",
        default=None,
        help="Project name (overrides the config file)",
    )
    discover_parser.add_argument(
        "--prefix",
        default=None,
        help="Test name prefix (overrides the config file)",
    )
    discover_parser.add_argument(
        "--skip-groups",
        default=None,
        help="Semicolon-separated groups to fold into the catch-all job",
    )
    discover_parser.add_argument(
        "--enable",
        action="store_true",
        default=False,
        help="Enable splitting regardless of the config file",
    )
    discover_parser.add_argument(
        "--heading-pattern",
        default=None,
        help="Regex with a 'name' group matching grouping heading lines",
    )

    # build-matrix subcommand
    build_parser = subparsers.add_parser(
        "build-matrix",
        help="Combine all manifest artifacts into one CI job matrix",
    )
    build_parser.add_argument(
        "--artifacts-dir",
        type=Path,
        default=Path(".tests/split"),
        help="Directory holding manifest artifacts (default: .tests/split)",
    )
    build_parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Path to write the matrix file",
    )
    build_parser.add_argument(
        "--format",
        choices=["json", "yaml"],
        default="json",
        help="Matrix file format (default: json)",
    )
    build_parser.add_argument(
        "--expect",
        action="append",
        default=[],
        help="Project that must have artifacts (repeatable)",
    )
    build_parser.add_argument(
        "--github-output",
        type=Path,
        default=None,
        help="Append matrix=<json> to this file (default: $GITHUB_OUTPUT if set)",
    )
    build_parser.add_argument(
        "--filter-syntax",
        type=Path,
        default=None,
        help="YAML file overriding the runner's filter flag templates",
    )

    # show-matrix subcommand
    show_parser = subparsers.add_parser(
        "show-matrix",
        help="Display the job matrix as a table",
    )
    show_parser.add_argument(
        "--artifacts-dir",
        type=Path,
        default=Path(".tests/split"),
        help="Directory holding manifest artifacts (default: .tests/split)",
    )
    show_parser.add_argument(
        "--filter-syntax",
        type=Path,
        default=None,
        help="YAML file overriding the runner's filter flag templates",
    )

    return parser.parse_args(argv)


def _read_listing(source: str) -> list[str]:
    # Undecodable bytes become U+FFFD and the line is ignored as unknown.
    if source == "-":
        return sys.stdin.buffer.read().decode("utf-8", "replace").splitlines()
    return Path(source).read_text(encoding="utf-8", errors="replace").splitlines()


def cmd_discover(args: argparse.Namespace) -> int:
    """Handle discover subcommand.

    Resolves the project's config, parses its test listing and writes the
    manifest artifacts. A project with splitting disabled only gets its
    metadata written, so the matrix build can tell an opt-out from a
    missing project.

    Returns:
        Exit code (0 for success, 1 for errors).
    """
    label = args.project or args.prefix or "<unnamed>"
    try:
        config = load_project_config(args.config, args.project)
        if args.prefix is not None:
            config = replace(config, name_prefix=args.prefix)
        if args.skip_groups is not None:
            config = replace(config, skip_groups=parse_group_list(args.skip_groups))
        if args.enable:
            config = replace(config, split_enabled=True)
        label = config.project_name or label
        metadata = resolve(config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not metadata.project_name:
        print(f"Error: {label}: projectName is empty", file=sys.stderr)
        return 1

    if not metadata.split_enabled:
        write_manifest(args.output_dir, None, metadata)
        print(f"{metadata.project_name}: splitting disabled, no jobs will be generated")
        return 0

    heading = None
    if args.heading_pattern:
        try:
            heading = compile_heading_pattern(args.heading_pattern)
        except (re.error, ValueError) as e:
            print(f"Error: {label}: invalid heading pattern: {e}", file=sys.stderr)
            return 1

    try:
        lines = _read_listing(args.listing)
    except OSError as e:
        print(
            f"Error: {label}: cannot read listing {args.listing}: {e.strerror}",
            file=sys.stderr,
        )
        return 1

    try:
        manifest = discover(
            lines,
            metadata.name_prefix,
            metadata.skip_groups,
            project_name=metadata.project_name,
            heading_pattern=heading,
        )
    except DiscoveryError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    list_path, _ = write_manifest(args.output_dir, manifest, metadata)
    if manifest.groups:
        detail = f"{len(manifest.groups)} collection(s)"
        if manifest.has_ungrouped:
            detail += " + uncollected"
    else:
        detail = f"{len(manifest.classes)} class(es)"
    print(f"{manifest.project_name}: {manifest.mode.value} mode, {detail} -> {list_path}")
    return 0


def cmd_build_matrix(args: argparse.Namespace) -> int:
    """Handle build-matrix subcommand.

    Collects every project's manifest artifacts and writes the combined
    job matrix. Malformed projects are left out with a warning; expected
    projects without artifacts fail the command.

    Returns:
        Exit code (0 for success, 1 for errors).
    """
    try:
        syntax = load_filter_syntax(args.filter_syntax)
        collected = collect_manifests(args.artifacts_dir, args.expect)
        jobs = build(collected.pairs, syntax)
    except (ConfigError, MissingManifestError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.output is not None:
        if args.format == "yaml":
            write_yaml(jobs, args.output)
        else:
            write_json(jobs, args.output)
        print(f"Matrix written to {args.output}")

    github_output = args.github_output
    if github_output is None and os.environ.get("GITHUB_OUTPUT"):
        github_output = Path(os.environ["GITHUB_OUTPUT"])
    if github_output is not None:
        write_github_output(jobs, github_output)

    parts = [f"{len(collected.pairs)} split"]
    if collected.opted_out:
        parts.append(f"{len(collected.opted_out)} opted out")
    if collected.skipped:
        parts.append(f"{len(collected.skipped)} skipped")
    print(f"Matrix: {len(jobs)} jobs from projects ({', '.join(parts)})")
    return 0


def cmd_show_matrix(args: argparse.Namespace) -> int:
    """Handle show-matrix subcommand.

    Displays the job matrix in tabular format.

    Returns:
        Exit code (0 for success, 1 for errors).
    """
    try:
        syntax = load_filter_syntax(args.filter_syntax)
        collected = collect_manifests(args.artifacts_dir)
        jobs = build(collected.pairs, syntax)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not jobs:
        print("No jobs found")
        return 0

    # Compute column widths
    name_width = max(max(len(job.name) for job in jobs), 3)
    kind_width = max(len(job.kind.value) for job in jobs)

    header = f"{'Job':<{name_width}}  {'Kind':<{kind_width}}  {'Timeouts':<11}  Filter"
    print(header)
    print("-" * len(header))

    for job in jobs:
        timeouts = f"{job.session_timeout}/{job.hang_timeout}"
        print(
            f"{job.name:<{name_width}}  {job.kind.value:<{kind_width}}  "
            f"{timeouts:<11}  {job.filter_expression}"
        )

    print()
    kind_counts: dict[str, int] = {}
    for job in jobs:
        kind_counts[job.kind.value] = kind_counts.get(job.kind.value, 0) + 1
    parts = [f"{count} {kind}" for kind, count in sorted(kind_counts.items())]
    print(f"Total: {len(jobs)} jobs ({', '.join(parts)})")

    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return 1

    if args.command == "discover":
        return cmd_discover(args)
    elif args.command == "build-matrix":
        return cmd_build_matrix(args)
    elif args.command == "show-matrix":
        return cmd_show_matrix(args)
    else:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
