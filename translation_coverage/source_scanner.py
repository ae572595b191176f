"""Extraction of translation-key call sites from a source tree."""
import bisect
import concurrent.futures
import logging
import os
import queue
import re
import threading
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence, Set, Tuple

from tqdm import tqdm

from translation_coverage.app_config import EngineConfig
from translation_coverage.models import Issue, IssueKind, UsageKey

logger = logging.getLogger(__name__)

BINARY_SNIFF_BYTES = 8192

_QUOTED_KEY = r"""['"`]([^'"`]+)['"`]"""


@dataclass(frozen=True)
class KeyMatch:
    key: str
    offset: int


class ExtractionRule:
    """A call-site style that yields translation keys from raw text."""
    name = "rule"

    def extract(self, text: str) -> List[KeyMatch]:
        raise NotImplementedError


class RegexExtractionRule(ExtractionRule):
    def __init__(self, name: str, pattern: str, group: int = 1):
        self.name = name
        self.pattern = re.compile(pattern)
        self.group = group

    def extract(self, text: str) -> List[KeyMatch]:
        matches = []
        for m in self.pattern.finditer(text):
            key = m.group(self.group)
            # Template literals with interpolation are dynamic keys.
            if '${' in key:
                continue
            matches.append(KeyMatch(key, m.start(self.group)))
        return matches

    def __repr__(self):
        return f"RegexExtractionRule({self.name!r}, {self.pattern.pattern!r})"


DEFAULT_RULES: Tuple[ExtractionRule, ...] = (
    RegexExtractionRule("t_call", r"\bt\(\s*" + _QUOTED_KEY + r"\s*\)"),
    RegexExtractionRule("t_call_with_params", r"\bt\(\s*" + _QUOTED_KEY + r"\s*,[^)]*\)"),
    RegexExtractionRule("use_i18n_t", r"useI18n\(\)\.t\(\s*" + _QUOTED_KEY + r"\s*\)"),
    RegexExtractionRule("i18n_t", r"\bi18n\.t\(\s*" + _QUOTED_KEY + r"\s*[,)]"),
    RegexExtractionRule("translate_call", r"\btranslate\(\s*" + _QUOTED_KEY + r"\s*[,)]"),
)


def build_rules(extra_patterns: Sequence[dict]) -> List[ExtractionRule]:
    """Default rules followed by any configured ``{name, pattern}`` entries."""
    rules: List[ExtractionRule] = list(DEFAULT_RULES)
    for index, entry in enumerate(extra_patterns):
        rules.append(RegexExtractionRule(entry.get('name', f'custom_{index}'), entry['pattern'],
                                         int(entry.get('group', 1))))
    return rules


def _line_starts(text: str) -> List[int]:
    starts = [0]
    for m in re.finditer('\n', text):
        starts.append(m.end())
    return starts


@dataclass
class FileScan:
    path: str
    usages: List[UsageKey] = field(default_factory=list)
    issue: Optional[Issue] = None


@dataclass
class ScanResult:
    usages: Tuple[UsageKey, ...]
    files_scanned: int
    issues: List[Issue] = field(default_factory=list)

    @property
    def used_keys(self) -> Set[str]:
        return {usage.key for usage in self.usages}


class SourceScanner:
    def __init__(self, config: EngineConfig, rules: Optional[Sequence[ExtractionRule]] = None):
        self.config = config
        self.rules = list(rules) if rules is not None else build_rules(config.extraction_patterns)

    def iter_source_files(self, root_dir: str) -> Iterator[str]:
        """Yield scannable files under root_dir in a stable order, pruning excluded directories."""
        for dirpath, dirnames, filenames in os.walk(root_dir):
            # Pruning in place stops os.walk from descending at all.
            dirnames[:] = sorted(d for d in dirnames if d not in self.config.exclude_dirs)
            for name in sorted(filenames):
                if os.path.splitext(name)[1] not in self.config.source_extensions:
                    continue
                path = os.path.join(dirpath, name)
                # FIFOs and device nodes can block a read forever.
                if os.path.isfile(path):
                    yield path
                else:
                    logger.debug(f"Skipping non-regular file '{path}'")

    def _read_text(self, path: str) -> str:
        size = os.path.getsize(path)
        if size > self.config.max_file_bytes:
            raise ValueError(f"file is {size} bytes, limit is {self.config.max_file_bytes}")
        with open(path, 'rb') as f:
            raw = f.read()
        if b'\x00' in raw[:BINARY_SNIFF_BYTES]:
            raise ValueError("binary content")
        return raw.decode('utf-8')

    def scan_file(self, path: str, root_dir: str) -> FileScan:
        """Apply every extraction rule to one file. Read failures become an issue."""
        relative = os.path.relpath(path, root_dir).replace(os.sep, '/')
        try:
            text = self._read_text(path)
        except (OSError, UnicodeDecodeError, ValueError) as e:
            return FileScan(relative, issue=Issue(IssueKind.FILE_UNREADABLE,
                                                  f"Skipped source file: {e}", location=relative))

        starts = _line_starts(text)
        seen = set()
        usages = []
        for rule in self.rules:
            for match in rule.extract(text):
                line = bisect.bisect_right(starts, match.offset)
                usage = UsageKey(match.key, relative, line)
                if usage not in seen:
                    seen.add(usage)
                    usages.append(usage)
        return FileScan(relative, usages=usages)

    def iter_usages(self, root_dir: Optional[str] = None) -> Iterator[UsageKey]:
        """Lazily yield call sites file by file. Each call restarts the walk."""
        root_dir = root_dir or self.config.source_dir
        for path in self.iter_source_files(root_dir):
            file_scan = self.scan_file(path, root_dir)
            if file_scan.issue is not None:
                logger.warning(f"{file_scan.issue.detail} ({file_scan.path})")
            yield from file_scan.usages

    def _work(self, jobs: queue.Queue) -> None:
        while True:
            job = jobs.get()
            if job is None:
                return
            path, root_dir, future = job
            if not future.set_running_or_notify_cancel():
                continue
            try:
                future.set_result(self.scan_file(path, root_dir))
            except Exception as e:
                future.set_exception(e)

    def _start_workers(self, jobs: List[Tuple[str, str, concurrent.futures.Future]]) -> None:
        """
        Feed the jobs to daemon worker threads.

        Unlike ThreadPoolExecutor workers, daemon threads are not joined at
        interpreter exit, so a read that never returns cannot keep the
        process alive once the run has timed it out.
        """
        if not jobs:
            return
        work_queue: queue.Queue = queue.Queue()
        for job in jobs:
            work_queue.put(job)
        count = max(1, min(self.config.max_workers, len(jobs)))
        for _ in range(count):
            work_queue.put(None)
        for index in range(count):
            threading.Thread(target=self._work, args=(work_queue,), daemon=True,
                             name=f"source-scan-{index}").start()

    def scan(self, root_dir: Optional[str] = None) -> ScanResult:
        """
        Scan a source tree on daemon worker threads.

        Each file is scanned independently; results are merged here, in file
        order, once every worker has reported or timed out.

        Args:
            root_dir: Tree to scan; defaults to the configured source_dir.

        Returns:
            A ScanResult with deduplicated, sorted usages and skip issues.
        """
        root_dir = root_dir or self.config.source_dir
        paths = list(self.iter_source_files(root_dir))
        logger.info(f"Scanning {len(paths)} source file(s) under '{root_dir}'")

        usages: Set[UsageKey] = set()
        issues: List[Issue] = []
        futures = [(path, concurrent.futures.Future()) for path in paths]
        self._start_workers([(path, root_dir, future) for path, future in futures])
        try:
            with tqdm(total=len(futures), desc="Scanning sources", unit="file",
                      disable=not self.config.show_progress) as progress:
                for path, future in futures:
                    try:
                        file_scan = future.result(timeout=self.config.file_read_timeout)
                    except concurrent.futures.TimeoutError:
                        relative = os.path.relpath(path, root_dir).replace(os.sep, '/')
                        file_scan = FileScan(relative, issue=Issue(
                            IssueKind.FILE_UNREADABLE,
                            f"Skipped source file: no result after {self.config.file_read_timeout}s",
                            location=relative))
                    if file_scan.issue is not None:
                        logger.warning(f"{file_scan.issue.detail} ({file_scan.path})")
                        issues.append(file_scan.issue)
                    usages.update(file_scan.usages)
                    progress.update(1)
        finally:
            # Files no worker has picked up yet are dropped.
            for _, future in futures:
                future.cancel()

        result = ScanResult(usages=tuple(sorted(usages)), files_scanned=len(paths), issues=issues)
        logger.info(f"Found {len(result.used_keys)} distinct key(s) at {len(result.usages)} call site(s)")
        return result
