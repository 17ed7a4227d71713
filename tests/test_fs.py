import os
import stat

import pytest

from relaymap.errors import WriteError
from relaymap.utils.fs import StagedWriter, atomic_write_text


def test_atomic_write_replaces_content(tmp_path):
    path = tmp_path / "nested" / "map.svg"
    assert atomic_write_text(path, "<svg/>\n") == 7
    atomic_write_text(path, "<svg></svg>\n")
    assert path.read_text() == "<svg></svg>\n"
    assert [p.name for p in path.parent.iterdir()] == ["map.svg"]


def test_nothing_is_replaced_before_commit(tmp_path):
    (tmp_path / "all.csv").write_text("old\n")
    with StagedWriter() as writer:
        writer.stage(tmp_path / "all.csv", "new\n")
        writer.stage(tmp_path / "map.svg", "<svg/>\n")
        assert (tmp_path / "all.csv").read_text() == "old\n"
        assert not (tmp_path / "map.svg").exists()
        written = writer.commit()

    assert [p.name for p in written] == ["all.csv", "map.svg"]
    assert (tmp_path / "all.csv").read_text() == "new\n"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["all.csv", "map.svg"]


def test_exception_discards_staged_files(tmp_path):
    (tmp_path / "all.csv").write_text("old\n")
    with pytest.raises(RuntimeError):
        with StagedWriter() as writer:
            writer.stage(tmp_path / "all.csv", "new\n")
            raise RuntimeError("boom")

    assert (tmp_path / "all.csv").read_text() == "old\n"
    assert [p.name for p in tmp_path.iterdir()] == ["all.csv"]


def test_commit_failure_names_the_path(tmp_path, monkeypatch):
    writer = StagedWriter()
    writer.stage(tmp_path / "exits.csv", "x\n")

    def broken_replace(src, dst):
        raise OSError("read-only file system")

    monkeypatch.setattr(os, "replace", broken_replace)
    with pytest.raises(WriteError) as excinfo:
        writer.commit()

    assert excinfo.value.path == tmp_path / "exits.csv"
    assert list(tmp_path.iterdir()) == []


def test_unwritable_directory_raises_write_error(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("")
    with pytest.raises(WriteError):
        atomic_write_text(blocker / "all.csv", "x\n")


def test_failed_commit_restores_earlier_outputs(tmp_path, monkeypatch):
    (tmp_path / "all.csv").write_text("old all\n")
    (tmp_path / "exits.csv").write_text("old exits\n")
    writer = StagedWriter()
    writer.stage(tmp_path / "all.csv", "new all\n")
    writer.stage(tmp_path / "guards.csv", "new guards\n")
    writer.stage(tmp_path / "exits.csv", "new exits\n")

    real_replace = os.replace

    def replace(src, dst):
        if os.path.basename(dst) == "exits.csv":
            raise OSError("device busy")
        real_replace(src, dst)

    monkeypatch.setattr(os, "replace", replace)
    with pytest.raises(WriteError) as excinfo:
        writer.commit()

    assert excinfo.value.path == tmp_path / "exits.csv"
    assert (tmp_path / "all.csv").read_text() == "old all\n"
    assert (tmp_path / "exits.csv").read_text() == "old exits\n"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["all.csv", "exits.csv"]


def test_replacement_keeps_existing_file_mode(tmp_path):
    path = tmp_path / "all.csv"
    path.write_text("old\n")
    os.chmod(path, 0o644)

    atomic_write_text(path, "new\n")
    assert stat.S_IMODE(path.stat().st_mode) == 0o644

    with StagedWriter() as writer:
        writer.stage(path, "newer\n")
        writer.commit()
    assert stat.S_IMODE(path.stat().st_mode) == 0o644


def test_new_file_gets_umask_default_mode(tmp_path):
    umask = os.umask(0o022)
    try:
        atomic_write_text(tmp_path / "map.svg", "<svg/>\n")
    finally:
        os.umask(umask)
    assert stat.S_IMODE((tmp_path / "map.svg").stat().st_mode) == 0o644
