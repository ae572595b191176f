import concurrent.futures
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from translation_coverage.app_config import EngineConfig
from translation_coverage.locale_parser import parse_locale_file
from translation_coverage.models import (
    Issue,
    IssueKind,
    LocaleNamespace,
    NoLocalesLoadedError,
)

logger = logging.getLogger(__name__)


@dataclass
class LoadedLocales:
    namespaces: Dict[str, LocaleNamespace]
    issues: List[Issue] = field(default_factory=list)


class LocaleStore:
    """Loads per-language locale directories into flat merged namespaces."""

    def __init__(self, config: EngineConfig):
        self.config = config

    def _list_locale_files(self, directory: str) -> List[str]:
        """Locale documents in sorted filename order, with the overlay excluded."""
        files = []
        for name in sorted(os.listdir(directory)):
            if name == self.config.overlay_filename:
                continue
            path = os.path.join(directory, name)
            if os.path.isfile(path) and os.path.splitext(name)[1] in self.config.locale_file_extensions:
                files.append(name)
        return files

    def load_locale(self, code: str, root_dir: str) -> Tuple[Optional[LocaleNamespace], List[Issue]]:
        """
        Load and merge every document of one locale.

        Hand-authored files are merged in sorted filename order, later files
        winning on collision. The overlay file is merged last and only fills
        keys no hand-authored file defines.

        Returns:
            The namespace (None if the directory is missing) and the issues found.
        """
        directory = os.path.join(root_dir, code)
        issues: List[Issue] = []

        if not os.path.isdir(directory):
            logger.error(f"Locale directory missing for '{code}': {directory}")
            issues.append(Issue(IssueKind.LOCALE_DIRECTORY_MISSING,
                                f"Locale directory not found: {directory}",
                                locale=code, location=directory))
            return None, issues

        namespace = LocaleNamespace(
            code=code,
            directory=directory,
            overlay_path=os.path.join(directory, self.config.overlay_filename),
        )

        for name in self._list_locale_files(directory):
            result = parse_locale_file(os.path.join(directory, name))
            if not result.ok:
                logger.warning(f"Skipping locale file '{code}/{name}': {result.error}")
                issues.append(Issue(result.error_kind, result.error, locale=code, location=f"{code}/{name}"))
                continue

            issues.extend(self._duplicate_issues(code, name, result.duplicates))
            for key, value in result.entries.items():
                previous = namespace.sources.get(key)
                if previous is not None:
                    logger.warning(f"Key '{key}' in '{code}/{previous}' is overridden by '{code}/{name}'")
                    issues.append(Issue(IssueKind.KEY_COLLISION,
                                        f"defined in {previous} and {name}; {name} wins",
                                        key=key, locale=code, location=f"{code}/{name}"))
                namespace.entries[key] = value
                namespace.sources[key] = name
            namespace.files.append(name)

        issues.extend(self._merge_overlay(namespace))

        logger.info(f"Loaded {len(namespace.entries)} keys for '{code}' from {len(namespace.files)} file(s)")
        return namespace, issues

    @staticmethod
    def _duplicate_issues(code: str, name: str, duplicates) -> List[Issue]:
        issues = []
        for key in duplicates:
            logger.warning(f"Key '{key}' is defined more than once in '{code}/{name}'")
            issues.append(Issue(IssueKind.KEY_COLLISION,
                                f"defined more than once in {name}; the later entry wins",
                                key=key, locale=code, location=f"{code}/{name}"))
        return issues

    def _merge_overlay(self, namespace: LocaleNamespace) -> List[Issue]:
        overlay_name = self.config.overlay_filename
        if not os.path.isfile(namespace.overlay_path):
            return []

        result = parse_locale_file(namespace.overlay_path)
        if not result.ok:
            logger.warning(f"Skipping overlay '{namespace.code}/{overlay_name}': {result.error}")
            return [Issue(result.error_kind, result.error, locale=namespace.code,
                          location=f"{namespace.code}/{overlay_name}")]

        issues = self._duplicate_issues(namespace.code, overlay_name, result.duplicates)
        namespace.overlay_entries = dict(result.entries)
        for key, value in result.entries.items():
            if key in namespace.entries:
                issues.append(Issue(IssueKind.KEY_COLLISION,
                                    f"stale overlay entry; {namespace.sources[key]} defines it and is kept",
                                    key=key, locale=namespace.code,
                                    location=f"{namespace.code}/{overlay_name}"))
                continue
            namespace.entries[key] = value
            namespace.sources[key] = overlay_name
        namespace.files.append(overlay_name)
        return issues

    def load(self, locale_codes: Sequence[str], root_dir: Optional[str] = None) -> LoadedLocales:
        """
        Load several locales in parallel.

        Results are collected in the order of ``locale_codes``, so the merged
        output does not depend on thread scheduling.

        Raises:
            NoLocalesLoadedError: If not a single locale could be loaded.
        """
        root_dir = root_dir or self.config.locales_dir
        workers = max(1, min(len(locale_codes), self.config.max_workers))

        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self.load_locale, code, root_dir) for code in locale_codes]
            results = [future.result() for future in futures]

        loaded = LoadedLocales(namespaces={})
        for code, (namespace, issues) in zip(locale_codes, results):
            loaded.issues.extend(issues)
            if namespace is not None:
                loaded.namespaces[code] = namespace

        if not loaded.namespaces:
            logger.critical("No locale could be loaded from '%s'.", root_dir)
            raise NoLocalesLoadedError(loaded.issues)
        return loaded
