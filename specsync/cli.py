#!/usr/bin/env python3
"""
SpecSync command line.

Usage:
    specsync analyze changes.diff --root .
    specsync analyze --git main --root . --lean-out specs/ --store .specsync.json
    git diff | specsync analyze - --json
    specsync serve --port 8000
"""

import argparse
import logging
import os
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

from specsync import __version__
from specsync.core.config import PipelineConfig
from specsync.core.pipeline import PipelineResult, SpecSyncPipeline
from specsync.output.json_formatter import ReportFormatter
from specsync.sources import LocalSourceAccessor
from specsync.store import InMemorySpecificationStore, JsonSpecificationStore
from specsync.utils.files import save_artifact


def print_summary(result: PipelineResult, lean_files: dict) -> None:
    """Human-readable summary of a run"""
    print("\n" + "=" * 60)
    print(f"SpecSync: {len(result)} changed functions")
    print("=" * 60)

    for item in result:
        record = item.record
        marker = "⚠️ " if item.drift.has_drift else ("❌" if item.error else "✅")
        print(f"{marker} {item.function_key}:{item.change.start_line} "
              f"[{item.change.change_type.value}] confidence {record.confidence:.0f}% "
              f"({record.backend or record.provenance.value})")
        if item.drift.has_drift:
            print(f"     drift: {', '.join(item.drift.reasons)}")
        if item.error:
            print(f"     error: {item.error}")
        if item.function_key in lean_files:
            print(f"     lean:  {lean_files[item.function_key]}")

    print("-" * 60)
    print(f"Drift detected: {len(result.drifted)}   Failed: {len(result.failed)}")


def read_diff_input(args, sources: LocalSourceAccessor) -> str:
    if args.git:
        base, _, head = args.git.partition("..")
        return sources.read_diff(base, head or None)
    if args.diff in (None, "-"):
        return sys.stdin.read()
    return Path(args.diff).read_text(encoding="utf-8")


def cmd_analyze(args) -> int:
    config = PipelineConfig.from_env()
    if args.api_key:
        config.anthropic_api_key = args.api_key
    if args.lean_out:
        config.output_dir = args.lean_out

    sources = LocalSourceAccessor(args.root)
    store = JsonSpecificationStore(args.store) if args.store else InMemorySpecificationStore()
    pipeline = SpecSyncPipeline(config=config, sources=sources, store=store)

    try:
        diff = read_diff_input(args, sources)
    except FileNotFoundError:
        print(f"❌ Error: Diff not found: {args.diff}", file=sys.stderr)
        return 2
    except subprocess.CalledProcessError as e:
        print(f"❌ Error: git diff failed: {e.stderr or e}", file=sys.stderr)
        return 2

    head = None
    base = None
    changed_files = pipeline.segmenter.changed_files_from_diff(diff)
    if args.git:
        base, _, head = args.git.partition("..")
        head = head or None
        changed_files = sources.changed_files(base, head) or changed_files

    result = pipeline.run(diff, changed_files, head=head, base=base)

    lean_files = {}
    if args.lean_out:
        for item in result:
            if item.artifact is not None:
                lean_files[item.function_key] = save_artifact(item.artifact, config.output_dir)

    formatter = ReportFormatter(source=args.git or args.diff or "stdin")
    for item in result:
        formatter.add_result(item, lean_files.get(item.function_key))

    if args.report:
        formatter.save_to_file(args.report)
    if args.json:
        print(formatter.to_json_string())
    else:
        print_summary(result, lean_files)

    if args.fail_on_drift and result.drifted:
        return 1
    return 0


def cmd_serve(args) -> int:
    from specsync.server.app import run

    run(host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="specsync",
        description="Turn code diffs into formal specifications and Lean 4 proof obligations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Analyze a saved diff against the working tree
    specsync analyze changes.diff --root .

    # Analyze a revision range, keep records between runs, write Lean files
    specsync analyze --git main..HEAD --store .specsync.json --lean-out specs/

    # Use backend credentials from the environment
    export ANTHROPIC_API_KEY=sk-...
    git diff | specsync analyze - --json
        """
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze = subparsers.add_parser("analyze", help="Analyze a unified diff")
    analyze.add_argument("diff", nargs="?", help="Diff file, or - for stdin")
    analyze.add_argument("--git", metavar="BASE[..HEAD]", help="Read the diff from git instead of a file")
    analyze.add_argument("--root", default=".", help="Repository root for reading sources")
    analyze.add_argument("--store", help="JSON file holding records between runs (enables drift checks)")
    analyze.add_argument("--lean-out", help="Directory for generated .lean files")
    analyze.add_argument("--report", help="Write the JSON report to this file")
    analyze.add_argument("--json", action="store_true", help="Print the JSON report instead of a summary")
    analyze.add_argument("--api-key", help="Anthropic API key (or use ANTHROPIC_API_KEY env var)")
    analyze.add_argument("--fail-on-drift", action="store_true", help="Exit with status 1 when drift is detected")
    analyze.set_defaults(handler=cmd_analyze)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=os.getenv("SPECSYNC_HOST", "127.0.0.1"))
    serve.add_argument("--port", type=int, default=8000)
    serve.set_defaults(handler=cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    if args.command == "analyze" and not args.git and args.diff is None:
        parser.error("analyze needs a diff file, - for stdin, or --git")

    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
