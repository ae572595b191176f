from collections import defaultdict
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from translation_coverage.app_config import EngineConfig
from translation_coverage.key_classifier import (
    CRITICAL_CATEGORY,
    MEDICAL_CATEGORY,
    Classification,
    classify,
    key_categories,
)
from translation_coverage.models import (
    CoverageReport,
    Issue,
    IssueKind,
    LocaleCoverage,
    LocaleNamespace,
    UsageKey,
    sort_issues,
)

CALL_SITES_IN_DETAIL = 3


def coverage_percent(used_count: int, missing_count: int) -> float:
    if used_count == 0:
        return 100.0
    return 100.0 * (used_count - missing_count) / used_count


def find_key_type_conflicts(locales: Mapping[str, LocaleNamespace]) -> List[Issue]:
    """
    Report every dot-path that is a leaf somewhere and a container somewhere else.

    Both sides may be the same locale, which happens when two of its files
    disagree about the shape of a key.
    """
    containers = {code: namespace.containers() for code, namespace in locales.items()}
    issues = []
    for code, namespace in sorted(locales.items()):
        for key in sorted(namespace.keys()):
            nested_in = sorted(other for other, paths in containers.items() if key in paths)
            if nested_in:
                issues.append(Issue(
                    IssueKind.KEY_TYPE_CONFLICT,
                    f"leaf value here but a container in: {', '.join(nested_in)}",
                    key=key, locale=code,
                    location=f"{code}/{namespace.sources.get(key, '?')}",
                ))
    return issues


def find_locale_key_mismatches(locales: Mapping[str, LocaleNamespace],
                                already_reported: Optional[Mapping[str, Set[str]]] = None) -> List[Issue]:
    """
    Report keys some locale defines that another locale lacks.

    Keys listed in ``already_reported`` for a locale, typically the ones
    already flagged as missing there, are skipped.
    """
    already_reported = already_reported or {}
    defined = {code: namespace.keys() for code, namespace in locales.items()}
    all_keys = set().union(*defined.values()) if defined else set()
    issues = []
    for code in sorted(defined):
        skip = already_reported.get(code, set())
        for key in sorted(all_keys - defined[code] - skip):
            holders = sorted(other for other, keys in defined.items() if key in keys)
            issues.append(Issue(
                IssueKind.LOCALE_KEY_MISMATCH,
                f"defined in {', '.join(holders)} but not in this locale",
                key=key, locale=code,
            ))
    return issues


class CoverageValidator:
    """Compares used keys against loaded locales. Performs no I/O."""

    def __init__(self, config: EngineConfig):
        self.config = config

    def _call_sites(self, usages: Iterable[UsageKey]) -> Dict[str, List[UsageKey]]:
        sites = defaultdict(list)
        for usage in sorted(usages):
            sites[usage.key].append(usage)
        return sites

    def _locale_issues(self, code: str, namespace: LocaleNamespace, missing: Set[str],
                       sites: Dict[str, List[UsageKey]]) -> List[Issue]:
        issues = []
        for key in sorted(missing):
            key_sites = sites.get(key, [])
            detail = "not defined"
            if key_sites:
                shown = ", ".join(site.location for site in key_sites[:CALL_SITES_IN_DETAIL])
                detail = f"not defined; used at {shown}"
                if len(key_sites) > CALL_SITES_IN_DETAIL:
                    detail += f" and {len(key_sites) - CALL_SITES_IN_DETAIL} more"
            issues.append(Issue(IssueKind.MISSING_TRANSLATION, detail, key=key, locale=code,
                                location=key_sites[0].location if key_sites else None,
                                categories=key_categories(key, self.config.critical_keywords,
                                                          self.config.medical_keywords)))

        for key, value in sorted(namespace.entries.items()):
            result = classify(key, value, self.config.classifier)
            if result.classification == Classification.VALID:
                continue
            kind = (IssueKind.PLACEHOLDER_CONTAMINATION
                    if result.classification == Classification.PLACEHOLDER
                    else IssueKind.MALFORMED_VALUE)
            issues.append(Issue(kind, f"{result.rule}: {value!r}", key=key, locale=code,
                                location=f"{code}/{namespace.sources.get(key, '?')}"))
        return issues

    def validate(self, used: Iterable[str], locales: Mapping[str, LocaleNamespace],
                 usages: Sequence[UsageKey] = (), prior_issues: Sequence[Issue] = (),
                 files_scanned: int = 0) -> CoverageReport:
        """
        Build a coverage report for the used keys against every locale.

        Args:
            used: Keys referenced by source code.
            locales: Loaded namespaces by locale code.
            usages: Call sites, used only for diagnostics.
            prior_issues: Load and scan issues to carry into the report.
            files_scanned: Number of source files the keys came from.

        Returns:
            A new, immutable CoverageReport.
        """
        used_keys = frozenset(used)
        sites = self._call_sites(usages)
        issues: List[Issue] = list(prior_issues)
        per_locale: Dict[str, LocaleCoverage] = {}
        missing_by_locale: Dict[str, Set[str]] = {}

        for code, namespace in locales.items():
            defined = namespace.keys()
            missing = used_keys - defined
            missing_by_locale[code] = missing
            locale_issues = self._locale_issues(code, namespace, missing, sites)
            issues.extend(locale_issues)
            missing_issues = [i for i in locale_issues if i.kind == IssueKind.MISSING_TRANSLATION]
            per_locale[code] = LocaleCoverage(
                locale=code,
                missing=frozenset(missing),
                unused=frozenset(defined - used_keys),
                placeholder_count=sum(1 for i in locale_issues
                                      if i.kind == IssueKind.PLACEHOLDER_CONTAMINATION),
                malformed_count=sum(1 for i in locale_issues if i.kind == IssueKind.MALFORMED_VALUE),
                total=len(defined),
                coverage_percent=coverage_percent(len(used_keys), len(missing)),
                critical_missing=sum(1 for i in missing_issues if CRITICAL_CATEGORY in i.categories),
                medical_missing=sum(1 for i in missing_issues if MEDICAL_CATEGORY in i.categories),
            )

        issues.extend(find_key_type_conflicts(locales))
        issues.extend(find_locale_key_mismatches(locales, missing_by_locale))

        return CoverageReport(
            used_keys=used_keys,
            per_locale=per_locale,
            issues=sort_issues(issues),
            files_scanned=files_scanned,
        )
