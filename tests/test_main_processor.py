# tests/test_main_processor.py
import json
import asyncio
import argparse
import pytest
from pathlib import Path

from media_rename.enums import ProcessingStatus
from media_rename.main_processor import MainProcessor

def _manifest(tmp_path: Path, *movies) -> Path:
    """Each movie is (folder, title, year); writes '<folder>/<folder>.mkv' and '.nfo' below tmp_path/library."""
    entities = []
    for folder, title, year in movies:
        for ext in ("mkv", "nfo"):
            path = tmp_path / "library" / folder / f"{folder}.{ext}"
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(path.name, encoding='utf-8')
        entities.append({"title": title, "year": year, "path": folder, "files": [
            {"path": f"{folder}.mkv", "type": "VIDEO"},
            {"path": f"{folder}.nfo", "type": "NFO"},
        ]})
    manifest = tmp_path / "library.json"
    manifest.write_text(json.dumps({"data_source": "library", "entities": entities}), encoding='utf-8')
    return manifest

def _processor(manifest: Path, cfg, **flags) -> MainProcessor:
    args = argparse.Namespace(manifest=str(manifest), live=flags.get('live', True), yes=True, quiet=True)
    return MainProcessor(args, cfg)


def test_live_run_renames_every_entity(tmp_path, mock_cfg_helper):
    manifest = _manifest(tmp_path, ("alpha", "Alpha", 2001), ("beta", "Beta", 2002))
    processor = _processor(manifest, mock_cfg_helper)
    counts = asyncio.run(processor.run_rename())
    assert counts[ProcessingStatus.SUCCESS] == 2
    assert not MainProcessor.has_failures(counts)
    assert (tmp_path / "library" / "Alpha (2001)" / "Alpha (2001).mkv").is_file()
    assert (tmp_path / "library" / "Beta (2002)" / "Beta (2002).nfo").is_file()

def test_live_run_continues_after_partial_apply(tmp_path, mock_cfg_helper):
    manifest = _manifest(tmp_path, ("alpha", "Alpha", 2001), ("beta", "Beta", 2002))
    blocker = tmp_path / "library" / "Alpha (2001)" / "Alpha (2001).nfo"
    blocker.parent.mkdir(parents=True)
    blocker.write_text("already here", encoding='utf-8')
    processor = _processor(manifest, mock_cfg_helper)

    counts = asyncio.run(processor.run_rename())

    assert counts.get(ProcessingStatus.PARTIAL_APPLY) == 1
    assert counts.get(ProcessingStatus.SUCCESS) == 1
    assert MainProcessor.has_failures(counts)
    assert blocker.read_text(encoding='utf-8') == "already here"
    assert (tmp_path / "library" / "alpha" / "alpha.nfo").is_file()
    assert (tmp_path / "library" / "Beta (2002)" / "Beta (2002).mkv").is_file()
    assert not (tmp_path / "library" / "beta").exists()
    statuses = {plan.entity.title: status for plan, status, _ in processor.outcomes}
    assert statuses == {"Alpha": ProcessingStatus.PARTIAL_APPLY, "Beta": ProcessingStatus.SUCCESS}

def test_cleanup_warning_keeps_success(tmp_path, mock_cfg_helper, mocker):
    manifest = _manifest(tmp_path, ("alpha", "Alpha", 2001))
    mocker.patch.object(Path, 'rmdir', side_effect=PermissionError("denied"))
    processor = _processor(manifest, mock_cfg_helper)

    counts = asyncio.run(processor.run_rename())

    assert counts.get(ProcessingStatus.SUCCESS) == 1
    assert not MainProcessor.has_failures(counts)
    _, _, message = processor.outcomes[0]
    assert "warning(s)" in message and "Could not remove emptied folder" in message

def test_dry_run_touches_nothing(tmp_path, mock_cfg_helper):
    manifest = _manifest(tmp_path, ("alpha", "Alpha", 2001))
    counts = asyncio.run(_processor(manifest, mock_cfg_helper, live=False).run_rename())
    assert counts.get(ProcessingStatus.SKIPPED) == 1
    assert (tmp_path / "library" / "alpha" / "alpha.mkv").is_file()
