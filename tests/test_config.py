"""Tests for config.ini loading."""

from pathlib import Path

import pytest

from shelf.config import load_config, write_config


def test_write_then_load_defaults(tmp_path):
    config_path = tmp_path / "config.ini"
    write_config(config_path, tmp_path / "books", "Test Library")

    config = load_config(config_path)

    assert config.library_path == tmp_path / "books"
    assert config.library.name == "Test Library"
    assert config.library.permission_granted is True
    assert config.scanner.max_depth == 3
    assert config.scanner.ignore_patterns == (".DS_Store", "Thumbs.db", "@eaDir")
    assert config.covers.resize is False
    assert config.covers_dir == tmp_path / "covers"
    assert config.scratch_dir == tmp_path / "scratch"


def test_load_config_overrides(tmp_path):
    config_path = tmp_path / "config.ini"
    config_path.write_text(
        "[library]\n"
        "path = /srv/books\n"
        "permission_granted = no\n"
        "[scanner]\n"
        "max_depth = 5\n"
        "ignore_patterns = tmp, .trash\n"
        "max_concurrent_extractions = 2\n"
        "[covers]\n"
        "max_width = 200\n"
        "max_height = 300\n"
    )

    config = load_config(config_path)

    assert config.library_path == Path("/srv/books")
    assert config.library.permission_granted is False
    assert config.scanner.max_depth == 5
    assert config.scanner.ignore_patterns == ("tmp", ".trash")
    assert config.scanner.max_concurrent_extractions == 2
    assert config.covers.resize is True
    assert config.monitoring.enabled is True


def test_load_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.ini")
