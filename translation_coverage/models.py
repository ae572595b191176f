"""Shared data model for the coverage engine."""
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

# A dot-delimited path such as "clinical.notes.title".
TranslationKey = str


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


SEVERITY_RANK = {Severity.ERROR: 0, Severity.WARNING: 1, Severity.INFO: 2}


class IssueKind(str, Enum):
    MISSING_TRANSLATION = "MISSING_TRANSLATION"
    PLACEHOLDER_CONTAMINATION = "PLACEHOLDER_CONTAMINATION"
    MALFORMED_VALUE = "MALFORMED_VALUE"
    KEY_TYPE_CONFLICT = "KEY_TYPE_CONFLICT"
    LOCALE_DIRECTORY_MISSING = "LOCALE_DIRECTORY_MISSING"
    MALFORMED_LOCALE_FILE = "MALFORMED_LOCALE_FILE"
    KEY_COLLISION = "KEY_COLLISION"
    FILE_UNREADABLE = "FILE_UNREADABLE"
    LOCALE_KEY_MISMATCH = "LOCALE_KEY_MISMATCH"


DEFAULT_SEVERITY = {
    IssueKind.MISSING_TRANSLATION: Severity.ERROR,
    IssueKind.PLACEHOLDER_CONTAMINATION: Severity.ERROR,
    IssueKind.MALFORMED_VALUE: Severity.ERROR,
    IssueKind.KEY_TYPE_CONFLICT: Severity.ERROR,
    IssueKind.LOCALE_DIRECTORY_MISSING: Severity.ERROR,
    IssueKind.MALFORMED_LOCALE_FILE: Severity.ERROR,
    IssueKind.KEY_COLLISION: Severity.WARNING,
    IssueKind.FILE_UNREADABLE: Severity.WARNING,
    IssueKind.LOCALE_KEY_MISMATCH: Severity.WARNING,
}


@dataclass(frozen=True)
class Issue:
    """One finding in a coverage run."""
    kind: IssueKind
    detail: str
    key: Optional[str] = None
    locale: Optional[str] = None
    location: Optional[str] = None
    severity: Optional[Severity] = None
    # Keyword categories of the key, e.g. ("critical", "medical").
    categories: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.severity is None:
            object.__setattr__(self, 'severity', DEFAULT_SEVERITY[self.kind])

    def sort_key(self) -> Tuple:
        return (
            SEVERITY_RANK[self.severity],
            self.locale or '',
            self.key or '',
            self.kind.value,
            self.detail,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'key': self.key,
            'locale': self.locale,
            'detail': self.detail,
            'severity': self.severity.value,
            'location': self.location,
            'categories': list(self.categories),
        }


def sort_issues(issues) -> Tuple[Issue, ...]:
    """Order issues by severity, then locale, then key."""
    return tuple(sorted(issues, key=Issue.sort_key))


@dataclass(frozen=True, order=True)
class UsageKey:
    """A translation key referenced at one source location."""
    key: TranslationKey
    file: str
    line: int

    @property
    def location(self) -> str:
        return f"{self.file}:{self.line}"


@dataclass
class LocaleNamespace:
    """Merged flat view of one locale plus its separately tracked overlay layer."""
    code: str
    directory: str
    overlay_path: str
    entries: Dict[TranslationKey, Any] = field(default_factory=dict)
    sources: Dict[TranslationKey, str] = field(default_factory=dict)
    overlay_entries: Dict[TranslationKey, Any] = field(default_factory=dict)
    files: List[str] = field(default_factory=list)

    def keys(self) -> FrozenSet[TranslationKey]:
        return frozenset(self.entries)

    def containers(self) -> FrozenSet[TranslationKey]:
        """Every dot-path that has at least one key nested beneath it."""
        found = set()
        for key in self.entries:
            parts = key.split('.')
            for i in range(1, len(parts)):
                found.add('.'.join(parts[:i]))
        return frozenset(found)


@dataclass(frozen=True)
class LocaleCoverage:
    locale: str
    missing: FrozenSet[TranslationKey]
    unused: FrozenSet[TranslationKey]
    placeholder_count: int
    malformed_count: int
    total: int
    coverage_percent: float
    critical_missing: int = 0
    medical_missing: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'missing': sorted(self.missing),
            'unused': sorted(self.unused),
            'placeholderCount': self.placeholder_count,
            'malformedCount': self.malformed_count,
            'total': self.total,
            'coveragePercent': round(self.coverage_percent, 2),
            'criticalMissing': self.critical_missing,
            'medicalMissing': self.medical_missing,
        }


@dataclass(frozen=True)
class CoverageReport:
    """Immutable result of one validation run."""
    used_keys: FrozenSet[TranslationKey]
    per_locale: Mapping[str, LocaleCoverage]
    issues: Tuple[Issue, ...]
    files_scanned: int = 0

    def __post_init__(self):
        object.__setattr__(self, 'per_locale', MappingProxyType(dict(self.per_locale)))

    def issues_of(self, kind: IssueKind, locale: Optional[str] = None) -> List[Issue]:
        return [
            issue for issue in self.issues
            if issue.kind == kind and (locale is None or issue.locale == locale)
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'usedKeys': sorted(self.used_keys),
            'filesScanned': self.files_scanned,
            'perLocale': {code: cov.to_dict() for code, cov in sorted(self.per_locale.items())},
            'issues': [issue.to_dict() for issue in self.issues],
        }


class NoLocalesLoadedError(Exception):
    """Raised when not a single locale directory could be loaded."""

    def __init__(self, issues):
        self.issues = list(issues)
        super().__init__("No locale could be loaded; validation is not possible.")


class KeyConflictError(ValueError):
    """A dot-path is used both as a leaf and as a container."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Key '{key}' is both a leaf value and a container.")
