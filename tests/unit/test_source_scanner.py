import os
import threading
from unittest.mock import patch

import pytest

from translation_coverage.models import IssueKind, UsageKey
from translation_coverage.source_scanner import (
    DEFAULT_RULES,
    RegexExtractionRule,
    SourceScanner,
    build_rules,
)


def _keys(rule, text):
    return [m.key for m in rule.extract(text)]


class TestExtractionRules:
    def test_plain_call(self):
        rule = DEFAULT_RULES[0]
        assert _keys(rule, "t('a.b') + t(\"c.d\") + t(`e.f`)") == ['a.b', 'c.d', 'e.f']

    def test_call_with_params(self):
        rule = DEFAULT_RULES[1]
        assert _keys(rule, "t('greeting.hello', { name: user })") == ['greeting.hello']
        assert _keys(rule, "t('plain.key')") == []

    def test_template_interpolation_is_ignored(self):
        rule = DEFAULT_RULES[0]
        assert _keys(rule, "t(`status.${state}`)") == []

    def test_word_boundary(self):
        rule = DEFAULT_RULES[0]
        assert _keys(rule, "print('not.a.key'); set('x.y')") == []

    def test_i18n_and_translate_styles(self):
        text = "i18n.t('nav.home'); translate('nav.back', 2); useI18n().t('nav.menu')"
        found = {key for rule in DEFAULT_RULES for key in _keys(rule, text)}
        assert found == {'nav.home', 'nav.back', 'nav.menu'}

    def test_configured_patterns_are_appended(self):
        rules = build_rules([{"name": "format_message", "pattern": r"formatMessage\(\{\s*id:\s*'([^']+)'"}])
        assert len(rules) == len(DEFAULT_RULES) + 1
        assert _keys(rules[-1], "intl.formatMessage({ id: 'orders.title' })") == ['orders.title']

    def test_custom_rule_object(self, sample_project, make_config):
        rule = RegexExtractionRule("dollar_t", r"\$t\('([^']+)'\)")
        scanner = SourceScanner(make_config(), rules=[rule])
        assert scanner.rules == [rule]


class TestSourceScanner:
    def test_scan_finds_usages_with_lines(self, sample_project, make_config):
        result = SourceScanner(make_config()).scan()

        assert result.files_scanned == 2
        assert result.used_keys == {'common.title', 'common.save', 'clinical.greeting', 'clinical.patient'}
        assert UsageKey('common.title', 'components/Header.jsx', 2) in result.usages
        assert UsageKey('clinical.greeting', 'pages/Notes.tsx', 2) in result.usages
        assert UsageKey('clinical.patient', 'pages/Notes.tsx', 3) in result.usages
        assert result.issues == []

    def test_excluded_directories_are_pruned(self, sample_project, make_config):
        scanner = SourceScanner(make_config())
        visited = []
        real_walk = os.walk

        def recording_walk(top, *args, **kwargs):
            for entry in real_walk(top, *args, **kwargs):
                visited.append(entry[0])
                yield entry

        with patch('translation_coverage.source_scanner.os.walk', side_effect=recording_walk):
            files = list(scanner.iter_source_files(str(sample_project / 'src')))

        assert not any('node_modules' in path for path in visited)
        assert not any('node_modules' in path for path in files)

    def test_extension_filter(self, tmp_path, make_config, write_text):
        write_text(str(tmp_path / 'src' / 'app.js'), "t('a.b')\n")
        write_text(str(tmp_path / 'src' / 'notes.md'), "t('docs.only')\n")

        result = SourceScanner(make_config()).scan()

        assert result.used_keys == {'a.b'}
        assert result.files_scanned == 1

    def test_duplicate_matches_on_same_line_are_collapsed(self, tmp_path, make_config, write_text):
        # Matched by both the plain call rule and the i18n.t rule.
        write_text(str(tmp_path / 'src' / 'app.js'), "i18n.t('a.b');\nt('a.b');\n")

        result = SourceScanner(make_config()).scan()

        assert result.usages == (UsageKey('a.b', 'app.js', 1), UsageKey('a.b', 'app.js', 2))

    def test_unreadable_files_are_skipped_with_warning(self, tmp_path, make_config, write_text):
        write_text(str(tmp_path / 'src' / 'good.js'), "t('ok.key')\n")
        os.makedirs(tmp_path / 'src', exist_ok=True)
        with open(tmp_path / 'src' / 'latin.js', 'wb') as f:
            f.write("t('clave.señal')".encode('latin-1'))
        with open(tmp_path / 'src' / 'binary.js', 'wb') as f:
            f.write(b"t('bin.key')\x00\x01\x02")

        result = SourceScanner(make_config()).scan()

        assert result.used_keys == {'ok.key'}
        assert result.files_scanned == 3
        assert sorted(i.location for i in result.issues) == ['binary.js', 'latin.js']
        assert all(i.kind == IssueKind.FILE_UNREADABLE for i in result.issues)

    def test_oversized_files_are_skipped(self, tmp_path, make_config, write_text):
        write_text(str(tmp_path / 'src' / 'big.js'), "t('big.key')\n" + "x" * 200)

        result = SourceScanner(make_config(max_file_bytes=100)).scan()

        assert result.used_keys == set()
        assert "limit is 100" in result.issues[0].detail

    def test_timed_out_file_does_not_block_the_pass(self, tmp_path, make_config, write_text):
        write_text(str(tmp_path / 'src' / 'slow.js'), "t('slow.key')\n")
        write_text(str(tmp_path / 'src' / 'fast.js'), "t('fast.key')\n")
        scanner = SourceScanner(make_config(file_read_timeout=0.2))
        real_scan_file = scanner.scan_file
        release = threading.Event()

        def hanging_scan_file(path, root_dir):
            if path.endswith('slow.js'):
                release.wait()
            return real_scan_file(path, root_dir)

        try:
            with patch.object(scanner, 'scan_file', side_effect=hanging_scan_file):
                result = scanner.scan()
            workers = [t for t in threading.enumerate() if t.name.startswith('source-scan-')]
        finally:
            release.set()

        assert result.used_keys == {'fast.key'}
        assert [i.location for i in result.issues] == ['slow.js']
        assert result.issues[0].kind == IssueKind.FILE_UNREADABLE
        assert "no result after 0.2s" in result.issues[0].detail
        # The stuck worker must not keep the interpreter alive at exit.
        assert workers and all(t.daemon for t in workers)

    @pytest.mark.skipif(not hasattr(os, 'mkfifo'), reason="requires named pipes")
    def test_named_pipes_are_never_opened(self, tmp_path, make_config, write_text):
        write_text(str(tmp_path / 'src' / 'app.js'), "t('a.b')\n")
        os.mkfifo(tmp_path / 'src' / 'hang.js')
        scanner = SourceScanner(make_config(file_read_timeout=0.2))

        assert list(scanner.iter_source_files(str(tmp_path / 'src'))) == [str(tmp_path / 'src' / 'app.js')]
        result = scanner.scan()

        assert result.files_scanned == 1
        assert result.used_keys == {'a.b'}
        assert result.issues == []

    def test_iter_usages_is_restartable(self, sample_project, make_config):
        scanner = SourceScanner(make_config())
        first = list(scanner.iter_usages())
        second = list(scanner.iter_usages())
        assert first == second
        assert len(first) == 4
