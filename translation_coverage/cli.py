"""Command-line entry point used by build tooling."""
import argparse
import dataclasses
import logging
import os
from typing import List, Optional

from translation_coverage.app_config import EngineConfig, load_engine_config
from translation_coverage.engine import run_engine
from translation_coverage.gate import EXIT_ABORTED, GateDecision, decide, enforce, write_json_report
from translation_coverage.logging_config import LOGGER_NAME
from translation_coverage.models import NoLocalesLoadedError

logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="translation-coverage",
        description="Check that every translation key used in source code is defined in every locale.",
    )
    parser.add_argument("--config", help="Path to the YAML configuration file.")
    parser.add_argument("--project-root", help="Directory relative paths resolve against (default: cwd).")
    parser.add_argument("--source-dir", help="Source tree to scan for translation keys.")
    parser.add_argument("--locales-dir", help="Directory holding one sub-directory per locale.")
    parser.add_argument("--locales", help="Comma-separated locale codes, e.g. es,en.")
    parser.add_argument("--auto-fix", action="store_true",
                        help="Write synthesized values for missing keys to each locale's overlay file.")
    parser.add_argument("--json-report", metavar="PATH", help="Write the machine-readable report to PATH.")
    parser.add_argument("--min-coverage", type=float, metavar="PERCENT",
                        help="Fail when a locale's coverage is below PERCENT (default 100).")
    parser.add_argument("--max-placeholders", type=int, metavar="N",
                        help="Fail when a locale has more than N placeholder values (default 0).")
    parser.add_argument("--dry-run", action="store_true", help="With --auto-fix, do not write any file.")
    parser.add_argument("--no-progress", action="store_true", help="Disable the progress bar.")
    parser.add_argument("--log-level", help="Override the configured log level (e.g. DEBUG).")
    return parser


def _apply_overrides(config: EngineConfig, args: argparse.Namespace) -> EngineConfig:
    changes = {}
    if args.source_dir:
        changes['source_dir'] = os.path.join(config.project_root, args.source_dir)
    if args.locales_dir:
        changes['locales_dir'] = os.path.join(config.project_root, args.locales_dir)
    if args.locales:
        changes['locale_codes'] = [code.strip() for code in args.locales.split(',') if code.strip()]
    if args.dry_run:
        changes['dry_run'] = True
    if args.no_progress:
        changes['show_progress'] = False

    gate_changes = {}
    if args.min_coverage is not None:
        gate_changes['min_coverage_percent'] = args.min_coverage
    if args.max_placeholders is not None:
        gate_changes['max_placeholders'] = args.max_placeholders
    if gate_changes:
        changes['gate'] = dataclasses.replace(config.gate, **gate_changes)

    return dataclasses.replace(config, **changes) if changes else config


def evaluate(argv: Optional[List[str]] = None) -> GateDecision:
    """Run the engine for the given arguments and return the gate decision."""
    args = build_arg_parser().parse_args(argv)

    config = load_engine_config(args.config, args.project_root)
    if args.log_level:
        logging.getLogger(LOGGER_NAME).setLevel(getattr(logging, args.log_level.upper(), logging.INFO))
    config = _apply_overrides(config, args)

    try:
        run = run_engine(config, auto_fix=args.auto_fix)
    except NoLocalesLoadedError as e:
        lines = [str(e)] + [f"  {issue.kind.value}: {issue.detail}" for issue in e.issues]
        lines.append("ABORTED: no locale could be validated.")
        return GateDecision(exit_code=EXIT_ABORTED, passed=False, summary="\n".join(lines),
                            failures=[str(e)])

    if run.written_overlays:
        logger.info(f"Auto-fix updated {len(run.written_overlays)} overlay file(s).")

    if args.json_report:
        report_path = os.path.join(config.project_root, args.json_report)
        write_json_report(run.report, report_path)

    return decide(run.report, config.gate)


def main(argv: Optional[List[str]] = None) -> None:
    enforce(evaluate(argv))


if __name__ == "__main__":
    main()
