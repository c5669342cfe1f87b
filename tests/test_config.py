"""
test_config.py

Tests for rust-kg.toml settings loading and validation.
"""

from __future__ import annotations

import textwrap

import pytest

from rust_kg.config import CONFIG_FILENAME, DEFAULT_SKIP_DIRS, Settings, load_settings, load_settings_near
from rust_kg.errors import ConfigError


def _write_config(tmp_path, body: str):
    p = tmp_path / CONFIG_FILENAME
    p.write_text(textwrap.dedent(body), encoding="utf-8")
    return p


def test_defaults_without_file(tmp_path):
    s = load_settings_near(tmp_path)
    assert s == Settings()
    assert s.source_root == "src"
    assert s.skip_dirs == DEFAULT_SKIP_DIRS
    assert s.workers is None


def test_load_values(tmp_path):
    _write_config(
        tmp_path,
        """\
        [rust-kg]
        source_root = "crates/core/src"
        workers = 4
        skip_dirs = ["target", "vendor"]
        snippets = false
        """,
    )
    s = load_settings_near(tmp_path)
    assert s.source_root == "crates/core/src"
    assert s.workers == 4
    assert s.skip_dirs == ("target", "vendor")
    assert s.snippets is False
    assert s.db_path == ".rustkg/graph.sqlite"


def test_file_without_table_gives_defaults(tmp_path):
    p = _write_config(tmp_path, '[other]\nkey = "value"\n')
    assert load_settings(p) == Settings()


def test_unknown_key_raises(tmp_path):
    p = _write_config(tmp_path, "[rust-kg]\ncolour = true\n")
    with pytest.raises(ConfigError, match="colour"):
        load_settings(p)


def test_invalid_toml_raises(tmp_path):
    p = _write_config(tmp_path, "[rust-kg\nworkers = \n")
    with pytest.raises(ConfigError, match="invalid TOML"):
        load_settings(p)


@pytest.mark.parametrize(
    "data",
    [
        {"workers": 0},
        {"workers": True},
        {"skip_dirs": "target"},
        {"source_root": 3},
        {"snippets": "yes"},
    ],
)
def test_bad_values_raise(data):
    with pytest.raises(ConfigError):
        Settings.from_mapping(data)


def test_missing_file_raises(tmp_path):
    with pytest.raises(ConfigError, match="cannot read"):
        load_settings(tmp_path / "absent.toml")


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def test_setup_logging_file_sink(tmp_path):
    from rust_kg.log import setup_logging

    log_file = tmp_path / "logs" / "rustkg.log"
    log = setup_logging("debug", log_file)
    log.debug("extracted {} files", 3)
    log.remove()
    assert "extracted 3 files" in log_file.read_text(encoding="utf-8")
