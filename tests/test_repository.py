"""
Tests for the registry store: generic CRUD, constraints and disposal.
"""

import pytest

from database import Database, DisposableStore, RecordNotFoundError, StoreIntegrityError
from models import PackageEntity, PackageFileEntity
from repository import PackageFileRepository, PackageRepository


# ── helpers ──────────────────────────────────────────────────────────────────

def add_package(database, name="demo", manifest="{}"):
    return PackageRepository(database).insert(PackageEntity(name=name, manifest=manifest))


def add_file(database, package_id, path="a.json", digest="h1"):
    return PackageFileRepository(database).insert(
        PackageFileEntity(package_id=package_id, path=path, hash=digest)
    )


# ── CRUD ─────────────────────────────────────────────────────────────────────

def test_insert_assigns_id_and_timestamps(database):
    package = add_package(database)
    assert package.id is not None
    assert package.created_date is not None
    assert package.created_date == package.updated_date


def test_find_by_id_and_name(database):
    package = add_package(database, "demo")
    repo = PackageRepository(database)
    assert repo.find_by_id(package.id).name == "demo"
    assert repo.find_by_name("demo").id == package.id
    assert repo.find_by_id(package.id + 100) is None
    assert repo.find_by_name("other") is None


def test_find_by_ids_skips_unknown_ids(database):
    package = add_package(database)
    a = add_file(database, package.id, "a.json")
    b = add_file(database, package.id, "b.json")
    repo = PackageFileRepository(database)

    found = repo.find_by_ids(a.id, 9999, b.id, 12345)

    assert sorted(f.id for f in found) == sorted([a.id, b.id])
    assert repo.find_by_ids() == []
    assert repo.find_by_ids(9999) == []


def test_find_all_and_count_all(database):
    add_package(database, "one")
    add_package(database, "two")
    repo = PackageRepository(database)
    assert [p.name for p in repo.find_all()] == ["one", "two"]
    assert repo.count_all() == 2


def test_update_changes_path_and_keeps_identity(database):
    package = add_package(database)
    original = add_file(database, package.id, "a")
    repo = PackageFileRepository(database)

    updated = repo.update(PackageFileEntity(id=original.id, path="b"))

    stored = repo.find_by_id(original.id)
    assert stored.path == "b"
    assert stored.hash == "h1"
    assert stored.id == original.id
    assert stored.created_date == original.created_date
    assert stored.updated_date > original.updated_date
    assert updated.updated_date == stored.updated_date


def test_update_twice_keeps_increasing_updated_date(database):
    package = add_package(database)
    repo = PackageRepository(database)
    first = repo.update(PackageEntity(id=package.id, manifest="v1"))
    second = repo.update(PackageEntity(id=package.id, manifest="v2"))
    assert package.updated_date < first.updated_date < second.updated_date


def test_update_unknown_id_raises(database):
    with pytest.raises(RecordNotFoundError):
        PackageRepository(database).update(PackageEntity(id=42, manifest="x"))


def test_delete_removes_row(database):
    package = add_package(database)
    repo = PackageRepository(database)
    repo.delete(package)
    assert repo.find_by_id(package.id) is None
    with pytest.raises(RecordNotFoundError):
        repo.delete(package)


def test_deleting_package_cascades_to_files(database):
    package = add_package(database)
    add_file(database, package.id, "a.json")
    add_file(database, package.id, "b.json")
    PackageRepository(database).delete(package)
    assert PackageFileRepository(database).count_all() == 0


def test_find_by_package_id_orders_by_path(database):
    package = add_package(database)
    add_file(database, package.id, "z.json")
    add_file(database, package.id, "a.json")
    other = add_package(database, "other")
    add_file(database, other.id, "m.json")
    files = PackageFileRepository(database).find_by_package_id(package.id)
    assert [f.path for f in files] == ["a.json", "z.json"]


# ── constraints ──────────────────────────────────────────────────────────────

def test_file_for_unknown_package_is_rejected(database):
    with pytest.raises(StoreIntegrityError):
        add_file(database, 999)
    assert PackageFileRepository(database).count_all() == 0


def test_duplicate_path_within_package_is_rejected(database):
    package = add_package(database)
    add_file(database, package.id, "a.json")
    with pytest.raises(StoreIntegrityError):
        add_file(database, package.id, "a.json", "h2")


def test_same_path_in_different_packages_is_allowed(database):
    one = add_package(database, "one")
    two = add_package(database, "two")
    add_file(database, one.id, "modinfo.json")
    add_file(database, two.id, "modinfo.json")
    assert PackageFileRepository(database).count_all() == 2


def test_duplicate_package_name_is_rejected(database):
    add_package(database, "demo")
    with pytest.raises(StoreIntegrityError):
        add_package(database, "demo")


def test_failed_transaction_rolls_back_everything(database):
    packages = PackageRepository(database)
    files = PackageFileRepository(database)
    with pytest.raises(StoreIntegrityError):
        with database.session() as session:
            package = packages.insert(PackageEntity(name="demo"), session=session)
            files.insert(PackageFileEntity(package_id=package.id, path="a", hash="h"), session=session)
            files.insert(PackageFileEntity(package_id=package.id, path="a", hash="h"), session=session)
    assert packages.count_all() == 0
    assert files.count_all() == 0


# ── disposal ─────────────────────────────────────────────────────────────────

def test_database_is_a_disposable_store(database):
    assert isinstance(database, DisposableStore)


def test_reset_removes_rows_and_keeps_schema(database):
    package = add_package(database)
    add_file(database, package.id)
    database.reset()
    assert PackageRepository(database).count_all() == 0
    assert PackageFileRepository(database).count_all() == 0
    add_package(database, "again")
    assert PackageRepository(database).count_all() == 1


def test_destroy_removes_database_file(tmp_path):
    db = Database.for_file(tmp_path / "launcher.db")
    add_package(db)
    assert db.database_path == tmp_path / "launcher.db"
    assert db.database_path.exists()
    db.destroy()
    assert not (tmp_path / "launcher.db").exists()
