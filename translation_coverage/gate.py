"""Pass/fail decision and report output for build integration."""
import json
import logging
import os
import sys
from collections import defaultdict
from dataclasses import dataclass, field
from typing import List

import jsonschema

from translation_coverage.models import CoverageReport, IssueKind

logger = logging.getLogger(__name__)

EXIT_PASS = 0
EXIT_FAIL = 1
EXIT_ABORTED = 2

# Shape of CoverageReport.to_dict(); checked before the artifact is written.
REPORT_SCHEMA = {
    "type": "object",
    "required": ["usedKeys", "filesScanned", "perLocale", "issues"],
    "properties": {
        "usedKeys": {"type": "array", "items": {"type": "string"}},
        "filesScanned": {"type": "integer", "minimum": 0},
        "perLocale": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "required": ["missing", "unused", "placeholderCount", "malformedCount",
                             "total", "coveragePercent", "criticalMissing", "medicalMissing"],
                "properties": {
                    "missing": {"type": "array", "items": {"type": "string"}},
                    "unused": {"type": "array", "items": {"type": "string"}},
                    "placeholderCount": {"type": "integer", "minimum": 0},
                    "malformedCount": {"type": "integer", "minimum": 0},
                    "total": {"type": "integer", "minimum": 0},
                    "coveragePercent": {"type": "number", "minimum": 0, "maximum": 100},
                    "criticalMissing": {"type": "integer", "minimum": 0},
                    "medicalMissing": {"type": "integer", "minimum": 0},
                },
                "additionalProperties": False,
            },
        },
        "issues": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["kind", "key", "locale", "detail", "severity", "location", "categories"],
                "properties": {
                    "kind": {"enum": [kind.value for kind in IssueKind]},
                    "key": {"type": ["string", "null"]},
                    "locale": {"type": ["string", "null"]},
                    "detail": {"type": "string"},
                    "severity": {"enum": ["error", "warning", "info"]},
                    "location": {"type": ["string", "null"]},
                    "categories": {"type": "array", "items": {"type": "string"}},
                },
                "additionalProperties": False,
            },
        },
    },
    "additionalProperties": False,
}


@dataclass(frozen=True)
class GatePolicy:
    """Thresholds that turn a report into a build verdict."""
    min_coverage_percent: float = 100.0
    max_placeholders: int = 0
    treat_malformed_as_fatal: bool = False
    treat_conflicts_as_fatal: bool = False
    treat_critical_missing_as_fatal: bool = False


DEFAULT_GATE_POLICY = GatePolicy()


@dataclass(frozen=True)
class GateDecision:
    exit_code: int
    passed: bool
    summary: str
    failures: List[str] = field(default_factory=list)


def _collect_failures(report: CoverageReport, policy: GatePolicy) -> List[str]:
    failures = []
    for code, coverage in sorted(report.per_locale.items()):
        if coverage.coverage_percent < policy.min_coverage_percent:
            failures.append(
                f"{code}: coverage {coverage.coverage_percent:.1f}% is below "
                f"{policy.min_coverage_percent:.1f}% ({len(coverage.missing)} missing)"
            )
        if coverage.placeholder_count > policy.max_placeholders:
            failures.append(
                f"{code}: {coverage.placeholder_count} placeholder value(s), "
                f"at most {policy.max_placeholders} allowed"
            )
        if policy.treat_malformed_as_fatal and coverage.malformed_count:
            failures.append(f"{code}: {coverage.malformed_count} malformed value(s)")
        if policy.treat_critical_missing_as_fatal and (coverage.critical_missing or coverage.medical_missing):
            failures.append(
                f"{code}: {coverage.critical_missing} critical and "
                f"{coverage.medical_missing} medical key(s) missing"
            )

    if policy.treat_conflicts_as_fatal:
        conflicts = report.issues_of(IssueKind.KEY_TYPE_CONFLICT)
        if conflicts:
            failures.append(f"{len(conflicts)} key type conflict(s)")
    return failures


def format_summary(report: CoverageReport, failures: List[str]) -> str:
    """Render every issue grouped by locale, followed by the verdict."""
    lines = [
        "Translation coverage report",
        "=" * 60,
        f"Source files scanned: {report.files_scanned}",
        f"Translation keys used: {len(report.used_keys)}",
    ]
    for code, coverage in sorted(report.per_locale.items()):
        lines.append(
            f"  [{code}] coverage {coverage.coverage_percent:.1f}%, "
            f"{len(coverage.missing)} missing ({coverage.critical_missing} critical, "
            f"{coverage.medical_missing} medical), {coverage.placeholder_count} placeholder(s), "
            f"{coverage.malformed_count} malformed, {coverage.total} defined"
        )

    grouped = defaultdict(list)
    for issue in report.issues:
        grouped[issue.locale or "(global)"].append(issue)

    # Locale groups first, issues without a locale last.
    for group in sorted(grouped, key=lambda g: (g == "(global)", g)):
        lines.append("")
        lines.append(f"{group}:")
        for issue in grouped[group]:
            line = f"  {issue.severity.value.upper():7} {issue.kind.value}"
            if issue.key:
                line += f" {issue.key}"
            if issue.categories:
                line += f" [{', '.join(issue.categories)}]"
            line += f": {issue.detail}"
            if issue.location:
                line += f" ({issue.location})"
            lines.append(line)

    lines.append("")
    if failures:
        for failure in failures:
            lines.append(f"  - {failure}")
        lines.append("FAILED: translation coverage gate did not pass.")
    else:
        lines.append("PASSED: translation coverage gate passed.")
    return "\n".join(lines)


def decide(report: CoverageReport, policy: GatePolicy = DEFAULT_GATE_POLICY) -> GateDecision:
    """
    Map a coverage report to a pass/fail decision.

    With the default policy any missing key or any placeholder fails the
    gate; every other issue kind is reported but advisory.
    """
    failures = _collect_failures(report, policy)
    passed = not failures
    return GateDecision(
        exit_code=EXIT_PASS if passed else EXIT_FAIL,
        passed=passed,
        summary=format_summary(report, failures),
        failures=failures,
    )


def enforce(decision: GateDecision) -> None:
    """Print the summary and terminate the process with the decision's exit code."""
    print(decision.summary)
    sys.exit(decision.exit_code)


def write_json_report(report: CoverageReport, report_path: str) -> None:
    """Validate the report against REPORT_SCHEMA and write it as JSON."""
    payload = report.to_dict()
    jsonschema.validate(instance=payload, schema=REPORT_SCHEMA)

    report_dir = os.path.dirname(report_path)
    if report_dir:
        os.makedirs(report_dir, exist_ok=True)
    with open(report_path, 'w', encoding='utf-8') as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
        f.write('\n')
    logger.info("Wrote JSON coverage report to %s", report_path)
