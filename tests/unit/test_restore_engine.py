"""Tests for dotvault.engine.restore — RestoreEngine."""

import os
import stat
import tarfile
import zipfile
from pathlib import Path

import pytest

from dotvault.core.models import (
    ArchiveFormat,
    BackupOptions,
    EngineState,
    Resolution,
    RestoreOptions,
)
from dotvault.core.scanner import scan_entry
from dotvault.engine.backup import BackupEngine
from dotvault.engine.conflicts import always_rename, always_skip
from dotvault.engine.restore import RestoreEngine


def _make_home(tmp_path: Path) -> Path:
    home = tmp_path / "home"
    nvim = home / ".config" / "nvim"
    nvim.mkdir(parents=True)
    (nvim / "init.vim").write_text("set number", encoding="utf-8")
    (home / ".netrc").write_text("machine example.com", encoding="utf-8")
    os.chmod(home / ".netrc", 0o600)
    (home / ".local" / "bin").mkdir(parents=True)
    (home / ".local" / "bin" / "hello").write_text("#!/bin/sh\necho hi\n", encoding="utf-8")
    os.chmod(home / ".local" / "bin" / "hello", 0o755)
    return home


def _backup(home: Path, dest: Path, **kwargs) -> Path:
    kwargs.setdefault("create_timestamp_subfolder", False)
    kwargs.setdefault("exclude_patterns", ())
    entries = [scan_entry(p, home) for p in ("~/.config/nvim", "~/.netrc", "~/.local")]
    result = BackupEngine(home=home).backup(entries, dest, BackupOptions(**kwargs))
    assert result.success, result.errors
    return Path(result.output_path)


@pytest.fixture(params=["tree", "zip", "tar.gz"])
def backup_source(request, tmp_path: Path) -> Path:
    home = _make_home(tmp_path)
    if request.param == "tree":
        return _backup(home, tmp_path / "backups" / "tree")
    fmt = ArchiveFormat.parse(request.param)
    return _backup(home, tmp_path / "backups" / "snap", compress=True, archive_format=fmt)


class TestRoundTrip:
    def test_restores_content_and_modes(self, backup_source: Path, tmp_path: Path):
        target = tmp_path / "restored"
        result = RestoreEngine().restore(backup_source, target)

        assert result.success is True
        assert result.errors == []
        assert result.restored_files == 3
        assert result.total_files == 3
        assert result.conflicts == []
        assert (target / ".config" / "nvim" / "init.vim").read_text(encoding="utf-8") == "set number"
        assert stat.S_IMODE((target / ".netrc").stat().st_mode) == 0o600
        assert stat.S_IMODE((target / ".local" / "bin" / "hello").stat().st_mode) == 0o755

    def test_second_restore_reports_conflicts(self, backup_source: Path, tmp_path: Path):
        target = tmp_path / "restored"
        engine = RestoreEngine()
        engine.restore(backup_source, target)
        (target / ".netrc").write_text("changed", encoding="utf-8")

        result = engine.restore(backup_source, target)
        assert len(result.conflicts) == 3
        assert all(c.resolution is Resolution.OVERWRITE for c in result.conflicts)
        assert result.restored_files == 3
        assert (target / ".netrc").read_text(encoding="utf-8") == "machine example.com"

    def test_skip_keeps_existing(self, backup_source: Path, tmp_path: Path):
        target = tmp_path / "restored"
        engine = RestoreEngine()
        engine.restore(backup_source, target)
        (target / ".netrc").write_text("changed", encoding="utf-8")

        result = engine.restore(backup_source, target, resolver=always_skip())
        assert result.success is True
        assert result.restored_files == 0
        assert result.skipped_files == 3
        assert all(c.resolution is Resolution.SKIP for c in result.conflicts)
        assert (target / ".netrc").read_text(encoding="utf-8") == "changed"

    def test_without_permissions(self, tmp_path: Path):
        home = _make_home(tmp_path)
        archive = _backup(home, tmp_path / "b" / "snap", compress=True)
        target = tmp_path / "restored"

        result = RestoreEngine().restore(
            archive, target, RestoreOptions(preserve_permissions=False),
        )
        assert result.success is True
        mode = stat.S_IMODE((target / ".local" / "bin" / "hello").stat().st_mode)
        assert not mode & stat.S_IXUSR


class TestConflicts:
    def test_rename_moves_existing_aside(self, tmp_path: Path):
        source = tmp_path / "backup"
        source.mkdir()
        (source / ".bashrc").write_text("new", encoding="utf-8")
        target = tmp_path / "home"
        target.mkdir()
        (target / ".bashrc").write_text("old", encoding="utf-8")

        result = RestoreEngine().restore(source, target, resolver=always_rename())
        assert result.restored_files == 1
        assert (target / ".bashrc").read_text(encoding="utf-8") == "new"
        assert (target / ".bashrc.bak").read_text(encoding="utf-8") == "old"
        assert any("Renamed existing file" in w for w in result.warnings)
        assert result.conflicts[0].resolution is Resolution.RENAME

    def test_resolver_sees_each_conflict(self, tmp_path: Path):
        source = tmp_path / "backup"
        source.mkdir()
        (source / ".a").write_text("a", encoding="utf-8")
        (source / ".b").write_text("b", encoding="utf-8")
        target = tmp_path / "home"
        target.mkdir()
        (target / ".a").write_text("old a", encoding="utf-8")
        (target / ".b").write_text("old b", encoding="utf-8")

        seen = []

        def resolver(conflict):
            seen.append(Path(conflict.destination_path).name)
            return Resolution.SKIP if conflict.destination_path.endswith(".a") else Resolution.OVERWRITE

        result = RestoreEngine().restore(source, target, resolver=resolver)
        assert seen == [".a", ".b"]
        assert result.conflicts[0].source_path == str(source / ".a")
        assert (target / ".a").read_text(encoding="utf-8") == "old a"
        assert (target / ".b").read_text(encoding="utf-8") == "b"
        assert result.skipped_files == 1
        assert result.restored_files == 1

    def test_overwrite_replaces_symlink_not_its_target(self, tmp_path: Path):
        source = tmp_path / "backup"
        source.mkdir()
        (source / ".gitconfig").write_text("from backup", encoding="utf-8")
        target = tmp_path / "home"
        target.mkdir()
        real = tmp_path / "dotfiles-repo.gitconfig"
        real.write_text("managed elsewhere", encoding="utf-8")
        (target / ".gitconfig").symlink_to(real)

        result = RestoreEngine().restore(source, target)
        assert result.restored_files == 1
        assert len(result.conflicts) == 1
        assert not (target / ".gitconfig").is_symlink()
        assert (target / ".gitconfig").read_text(encoding="utf-8") == "from backup"
        assert real.read_text(encoding="utf-8") == "managed elsewhere"


class TestFailures:
    def test_missing_source(self, tmp_path: Path):
        result = RestoreEngine().restore(tmp_path / "nope.zip", tmp_path / "out")
        assert result.success is False
        assert result.errors[0].startswith("Backup source not found")

    def test_unsupported_format(self, tmp_path: Path):
        rar = tmp_path / "dotfiles.rar"
        rar.write_bytes(b"Rar!\x1a\x07\x00")
        result = RestoreEngine().restore(rar, tmp_path / "out")
        assert result.success is False
        assert result.errors == [f"Unsupported archive format: {rar}"]

    def test_corrupt_zip(self, tmp_path: Path):
        bad = tmp_path / "broken.zip"
        bad.write_bytes(b"this is not a zip file")
        result = RestoreEngine().restore(bad, tmp_path / "out")
        assert result.success is False
        assert result.errors[0].startswith("Restore failed")

    def test_corrupt_tar_gz(self, tmp_path: Path):
        bad = tmp_path / "broken.tar.gz"
        bad.write_bytes(b"this is not gzip data at all")
        result = RestoreEngine().restore(bad, tmp_path / "out")
        assert result.success is False
        assert result.restored_files == 0
        assert result.errors[0].startswith("Restore failed")

    def test_zip_slip_rejected(self, tmp_path: Path):
        archive = tmp_path / "evil.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("../evil.txt", "pwned")
            zf.writestr(".profile", "export PATH")
        target = tmp_path / "out"

        result = RestoreEngine().restore(archive, target)
        assert not (tmp_path / "evil.txt").exists()
        assert (target / ".profile").read_text(encoding="utf-8") == "export PATH"
        assert any("escapes" in e for e in result.errors)
        assert result.restored_files == 1
        assert result.success is True

    def test_tar_symlink_is_warned(self, tmp_path: Path):
        archive = tmp_path / "links.tar.gz"
        with tarfile.open(archive, "w:gz") as tf:
            link = tarfile.TarInfo(".vimrc")
            link.type = tarfile.SYMTYPE
            link.linkname = "/etc/passwd"
            tf.addfile(link)
        target = tmp_path / "out"

        result = RestoreEngine().restore(archive, target)
        assert not (target / ".vimrc").exists()
        assert result.warnings == ["Skipped unsupported entry: .vimrc"]
        assert result.total_files == 0

    def test_destination_not_creatable(self, tmp_path: Path):
        source = tmp_path / "backup"
        source.mkdir()
        (source / ".x").write_text("x", encoding="utf-8")
        blocker = tmp_path / "file"
        blocker.write_text("", encoding="utf-8")

        result = RestoreEngine().restore(source, blocker / "out")
        assert result.success is False
        assert "Cannot create restore directory" in result.errors[0]


class TestProgress:
    def test_tar_totals_counted_while_streaming(self, tmp_path: Path):
        home = _make_home(tmp_path)
        archive = _backup(home, tmp_path / "b" / "snap", compress=True,
                          archive_format=ArchiveFormat.TAR_GZ)
        events = []

        result = RestoreEngine().restore(archive, tmp_path / "out", on_progress=events.append)
        assert result.total_files == 3
        assert [e.files_processed for e in events] == [1, 2, 3]
        assert all(e.total_files == 0 for e in events)
        assert all(e.status == "Restored" for e in events)

    def test_directory_totals_known_up_front(self, tmp_path: Path):
        source = tmp_path / "backup"
        source.mkdir()
        for name in ("a", "b", "c", "d"):
            (source / name).write_text("1234", encoding="utf-8")
        events = []

        RestoreEngine().restore(source, tmp_path / "out", on_progress=events.append)
        assert [e.total_files for e in events] == [4, 4, 4, 4]
        assert events[-1].bytes_processed == 16
        assert events[-1].percentage == 100

    def test_cancel_mid_run(self, tmp_path: Path):
        source = tmp_path / "backup"
        source.mkdir()
        for i in range(5):
            (source / f"f{i}").write_text("x", encoding="utf-8")
        engine = RestoreEngine()

        def on_progress(event):
            if event.files_processed == 2:
                engine.cancel()

        result = engine.restore(source, tmp_path / "out", on_progress=on_progress)
        assert result.restored_files == 2
        assert result.errors == []
        assert engine.state is EngineState.CANCELLED
        assert sorted(p.name for p in (tmp_path / "out").iterdir()) == ["f0", "f1"]

    def test_submit(self, tmp_path: Path):
        source = tmp_path / "backup"
        source.mkdir()
        (source / ".x").write_text("x", encoding="utf-8")
        engine = RestoreEngine()
        try:
            result = engine.submit(source, tmp_path / "out").result(timeout=30)
        finally:
            engine.shutdown()
        assert result.restored_files == 1
        assert engine.state is EngineState.COMPLETED
