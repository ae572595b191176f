import json
import os
import textwrap

import pytest

from translation_coverage.app_config import EngineConfig


@pytest.fixture
def write_json():
    """Write a JSON document, creating parent directories."""
    def _write(path, data):
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        return path
    return _write


@pytest.fixture
def write_text():
    def _write(path, content):
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(textwrap.dedent(content))
        return path
    return _write


@pytest.fixture
def make_config(tmp_path):
    """Build an EngineConfig rooted in tmp_path; keyword arguments override fields."""
    def _make(**overrides):
        values = dict(
            project_root=str(tmp_path),
            source_dir=str(tmp_path / 'src'),
            locales_dir=str(tmp_path / 'locales'),
            locale_codes=['es', 'en'],
            max_workers=2,
            show_progress=False,
        )
        values.update(overrides)
        return EngineConfig(**values)
    return _make


@pytest.fixture
def sample_project(tmp_path, write_json, write_text):
    """
    A small web project: two source files, one excluded dependency directory
    and es/en locales where 'en' lacks one key and 'es' has a placeholder.
    """
    write_text(str(tmp_path / 'src' / 'components' / 'Header.jsx'), """\
        export function Header() {
          return <h1>{t('common.title')}</h1>;
        }
        """)
    write_text(str(tmp_path / 'src' / 'pages' / 'Notes.tsx'), """\
        const save = t('common.save');
        const hello = t('clinical.greeting', { name });
        const label = i18n.t('clinical.patient');
        """)
    write_text(str(tmp_path / 'src' / 'node_modules' / 'lib' / 'index.js'), """\
        t('vendor.should.not.appear')
        """)

    write_json(str(tmp_path / 'locales' / 'es' / 'common.json'),
               {"common": {"title": "Notas clínicas", "save": "Guardar"}})
    write_json(str(tmp_path / 'locales' / 'es' / 'clinical.json'),
               {"clinical": {"greeting": "Hola {name}", "patient": "TODO"}})
    write_json(str(tmp_path / 'locales' / 'en' / 'common.json'),
               {"common": {"title": "Clinical notes", "save": "Save"}})
    write_json(str(tmp_path / 'locales' / 'en' / 'clinical.json'),
               {"clinical": {"greeting": "Hello {name}"}})
    return tmp_path
