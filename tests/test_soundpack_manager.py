"""
Tests for SoundpackManager.
"""

import os

from results import NotFoundFailure, ValidationFailure
from soundpack_manager import SOUNDPACK_MANIFEST_FILENAME
from tests.conftest import make_tree, make_zip


def make_pack(tmp_path, name="CO.AG", **extra):
    members = {SOUNDPACK_MANIFEST_FILENAME: f"NAME: {name}\nVIEW: {name}\n", "sfx/step.ogg": b"OggS1234"}
    members.update(extra)
    return make_tree(tmp_path / "src" / name, members)


def test_install_and_list(soundpack_manager, tmp_path):
    seen = []
    result = soundpack_manager.install(make_pack(tmp_path), on_progress=seen.append)

    assert result.ok
    pack = result.value
    assert pack.name == "CO.AG"
    assert (pack.path / "sfx" / "step.ogg").read_bytes() == b"OggS1234"
    assert pack.size > 0
    assert seen[-1] == 100
    assert [p.name for p in soundpack_manager.list_all()] == ["CO.AG"]


def test_install_from_zip(soundpack_manager, tmp_path):
    archive = make_zip(
        tmp_path / "rrfsounds.zip",
        {"RRFSounds/" + SOUNDPACK_MANIFEST_FILENAME: "NAME: RRF", "RRFSounds/music.ogg": b"OggS"},
    )
    result = soundpack_manager.install_task(archive).start().join(timeout=30)
    assert result.ok
    assert result.value.name == "RRFSounds"


def test_install_without_manifest_is_rejected(soundpack_manager, tmp_path):
    src = make_tree(tmp_path / "src" / "junk", {"music.ogg": b"OggS"})
    result = soundpack_manager.install(src)
    assert isinstance(result, ValidationFailure)
    assert soundpack_manager.list_all() == []


def test_install_twice_is_rejected(soundpack_manager, tmp_path):
    src = make_pack(tmp_path)
    assert soundpack_manager.install(src).ok
    assert isinstance(soundpack_manager.install(src), ValidationFailure)
    assert len(soundpack_manager.list_all()) == 1


def test_list_is_newest_first_and_skips_hidden(soundpack_manager, tmp_path):
    old = soundpack_manager.install(make_pack(tmp_path, "Old")).value
    new = soundpack_manager.install(make_pack(tmp_path, "New")).value
    os.utime(old.path, (1_000_000, 1_000_000))
    os.utime(new.path, (2_000_000, 2_000_000))
    (soundpack_manager.soundpacks_dir / ".Other.abc.staging").mkdir()

    assert [p.name for p in soundpack_manager.list_all()] == ["New", "Old"]


def test_delete_moves_pack_to_trash(soundpack_manager, tmp_path):
    pack = soundpack_manager.install(make_pack(tmp_path)).value

    result = soundpack_manager.delete(pack)

    assert result.ok
    assert result.value.parent == soundpack_manager.trash_dir
    assert (result.value / SOUNDPACK_MANIFEST_FILENAME).exists()
    assert soundpack_manager.list_all() == []
    assert isinstance(soundpack_manager.delete(pack), NotFoundFailure)
