# tests/test_main.py
import os
import json
import sqlite3
import asyncio
import logging
import pytest
from pathlib import Path

import media_rename_main
from media_rename.log_setup import LOGGER_NAME

@pytest.fixture(autouse=True)
def isolated_run(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("MEDIA_RENAME_"):
            monkeypatch.delenv(key)
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

@pytest.fixture
def config_path(tmp_path) -> Path:
    path = tmp_path / "config.toml"
    path.write_text(f"[default]\nundo_db_path = {json.dumps(str(tmp_path / 'undo.db'))}\nlog_level = \"WARNING\"\n", encoding='utf-8')
    return path

@pytest.fixture
def library(tmp_path):
    """Writes entity folders plus a manifest; returns (manifest path, data source)."""
    data_source = tmp_path / "library"
    def _make(*folders: str) -> Path:
        entities = []
        for folder in folders:
            (data_source / folder).mkdir(parents=True)
            (data_source / folder / "singlefile.avi").write_text("singlefile.avi", encoding='utf-8')
            entities.append({"title": "Aladdin", "year": 1992, "path": folder,
                             "files": [{"path": "singlefile.avi", "type": "VIDEO"}]})
        manifest = tmp_path / "library.json"
        manifest.write_text(json.dumps({"data_source": "library", "entities": entities}), encoding='utf-8')
        return manifest
    return _make

def run(*argv) -> int:
    return asyncio.run(media_rename_main.main_async([str(a) for a in argv]))

def _batch_ids(tmp_path: Path):
    conn = sqlite3.connect(tmp_path / "undo.db")
    try:
        return [r[0] for r in conn.execute("SELECT DISTINCT batch_id FROM rename_log")]
    finally:
        conn.close()


# --- Preview ---
def test_preview_changes_nothing(tmp_path, config_path, library):
    manifest = library("Aladdin")
    assert run("--config", config_path, "-q", "preview", manifest) == 0
    assert (tmp_path / "library" / "Aladdin" / "singlefile.avi").is_file()

def test_preview_with_collision_returns_error(config_path, library):
    manifest = library("Aladdin", "aladdin-copy")
    assert run("--config", config_path, "-q", "preview", manifest) == 1

def test_preview_bad_manifest(tmp_path, config_path):
    assert run("--config", config_path, "-q", "preview", tmp_path / "missing.json") == 1


# --- Rename & undo ---
def test_rename_defaults_to_dry_run(tmp_path, config_path, library):
    manifest = library("Aladdin")
    assert run("--config", config_path, "-q", "rename", manifest) == 0
    assert (tmp_path / "library" / "Aladdin" / "singlefile.avi").is_file()
    assert not (tmp_path / "library" / "Aladdin (1992)").exists()

def test_live_rename_then_undo(tmp_path, config_path, library):
    manifest = library("Aladdin")
    assert run("--config", config_path, "-q", "rename", manifest, "--live", "--yes") == 0
    renamed = tmp_path / "library" / "Aladdin (1992)" / "Aladdin (1992).avi"
    assert renamed.read_text(encoding='utf-8') == "singlefile.avi"
    assert not (tmp_path / "library" / "Aladdin").exists()

    batch_ids = _batch_ids(tmp_path)
    assert len(batch_ids) == 1 and batch_ids[0].startswith("run-")
    assert run("--config", config_path, "-q", "undo", "--list") == 0
    assert run("--config", config_path, "-q", "undo", batch_ids[0], "--dry-run") == 0
    assert renamed.is_file()

    assert run("--config", config_path, "-q", "undo", batch_ids[0], "--yes") == 0
    assert (tmp_path / "library" / "Aladdin" / "singlefile.avi").is_file()
    assert not (tmp_path / "library" / "Aladdin (1992)").exists()

def test_live_rename_in_quiet_mode_needs_yes(tmp_path, config_path, library):
    manifest = library("Aladdin")
    assert run("--config", config_path, "-q", "rename", manifest, "--live") == 130
    assert (tmp_path / "library" / "Aladdin" / "singlefile.avi").is_file()

def test_live_rename_with_collision_fails(tmp_path, config_path, library):
    manifest = library("Aladdin", "aladdin-copy")
    assert run("--config", config_path, "-q", "rename", manifest, "--live", "--yes") == 1
    assert (tmp_path / "library" / "Aladdin" / "singlefile.avi").is_file()
    assert (tmp_path / "library" / "aladdin-copy" / "singlefile.avi").is_file()

def test_undo_requires_batch_id(config_path):
    assert run("--config", config_path, "-q", "undo") == 1

def test_undo_unknown_batch(config_path):
    assert run("--config", config_path, "-q", "undo", "nope", "--yes") == 1


# --- Config ---
def test_config_generate(tmp_path):
    target = tmp_path / "out" / "config.toml"
    assert run("config", "generate", "--output", target) == 0
    assert "[default]" in target.read_text(encoding='utf-8')
    assert run("-q", "config", "generate", "--output", target) == 1
    assert run("-q", "config", "generate", "--output", target, "--force") == 0

def test_config_validate(config_path):
    assert run("--config", config_path, "-q", "config", "validate") == 0

def test_config_validate_invalid(tmp_path):
    bad = tmp_path / "bad.toml"
    bad.write_text('[default]\nlog_level = "LOUD"\n', encoding='utf-8')
    assert run("--config", bad, "-q", "config", "validate") == 1

def test_config_show(config_path, capsys):
    assert run("--config", config_path, "config", "show") == 0
    out = capsys.readouterr().out
    assert "movie_folder_format" in out
    assert "_profiles_" in out

def test_main_exits_with_code(tmp_path):
    with pytest.raises(SystemExit) as exc_info:
        media_rename_main.main(["-q", "config", "generate", "--output", str(tmp_path / "c.toml")])
    assert exc_info.value.code == 0
