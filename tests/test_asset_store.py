import zipfile

import pytest

from asset_store import (
    ArchiveAssetStore,
    AssetStore,
    DirectoryAssetStore,
    find_option_documents,
    find_option_image,
    normalize_key,
    open_asset_store,
)
from tests.conftest import SAMPLE_FILES, MemoryAssetStore


def zip_fixture(tmp_path, files, name="nam.zip"):
    path = tmp_path / name
    with zipfile.ZipFile(path, "w") as zf:
        for rel, content in files.items():
            zf.writestr(rel, content)
    return path


def test_normalize_key():
    assert normalize_key("\\Roads~\\Tunnels!/") == "roads~/tunnels!"
    assert normalize_key("A/B") == normalize_key("a/b")


def test_directory_store_lists_relative_posix_paths(source_dir):
    store = DirectoryAssetStore(source_dir)
    paths = store.list_paths()
    assert paths == sorted(SAMPLE_FILES)
    assert store.read("Styles#/$2US+/us.dat") == b"us"


def test_directory_store_rejects_unknown_paths(source_dir, tmp_path):
    (tmp_path / "outside.dat").write_bytes(b"nope")
    store = DirectoryAssetStore(source_dir)
    with pytest.raises(KeyError):
        store.read("missing.dat")
    with pytest.raises(KeyError):
        store.read("../outside.dat")


def test_stores_satisfy_protocol(source_dir):
    assert isinstance(DirectoryAssetStore(source_dir), AssetStore)
    assert isinstance(MemoryAssetStore({}), AssetStore)


def test_archive_store_hides_build_root(tmp_path):
    archive = zip_fixture(
        tmp_path,
        {
            "installation/": "",
            "installation/Roads~/Highways/hw.dat": b"hw",
            "installation/Main.txt": "main",
        },
    )
    store = ArchiveAssetStore(archive, build_root_name="installation")
    assert store.list_paths() == ["Main.txt", "Roads~/Highways/hw.dat"]
    assert store.read("Roads~/Highways/hw.dat") == b"hw"
    with pytest.raises(KeyError):
        store.read("installation/Main.txt")


def test_archive_store_keeps_mixed_roots(tmp_path):
    archive = zip_fixture(tmp_path, {"installation/a.dat": b"a", "readme.txt": "r"})
    store = ArchiveAssetStore(archive, build_root_name="installation")
    assert store.list_paths() == ["installation/a.dat", "readme.txt"]


def test_archive_store_rejects_unknown_format(tmp_path):
    path = tmp_path / "nam.tar"
    path.write_bytes(b"")
    with pytest.raises(ValueError, match="Unsupported archive format"):
        ArchiveAssetStore(path)


def test_open_asset_store_picks_by_kind(source_dir, tmp_path):
    assert isinstance(open_asset_store(source_dir), DirectoryAssetStore)
    archive = zip_fixture(tmp_path, {"a.dat": b"a"})
    assert isinstance(open_asset_store(archive), ArchiveAssetStore)


def test_documents_for_root_use_main_document():
    store = MemoryAssetStore(SAMPLE_FILES)
    assert find_option_documents(store, "", "Main.txt") == "Welcome to the Network Addon Mod"


def test_documents_only_from_the_option_folder():
    store = MemoryAssetStore(SAMPLE_FILES)
    assert find_option_documents(store, "Roads~/Tunnels!", "Main.txt") == "Tunnel docs"
    # sub-folder docs do not belong to the parent
    assert find_option_documents(store, "Roads~", "Main.txt") == ""


def test_documents_are_joined():
    store = MemoryAssetStore({"Opt/a.txt": "first", "Opt/b.txt": "second", "Opt/c.dat": b"x"})
    assert find_option_documents(store, "Opt", "Main.txt") == "first\nsecond"


def test_unreadable_document_is_skipped():
    store = MemoryAssetStore({"Opt/a.txt": "first", "Opt/b.txt": "second"}, broken={"Opt/a.txt"})
    assert find_option_documents(store, "Opt", "Main.txt") == "second"


def test_image_lookup_with_default():
    store = MemoryAssetStore(SAMPLE_FILES)
    assert find_option_image(store, "Roads~/Tunnels!", "Network Addon Mod.png") == b"\x89PNG tunnels"
    assert find_option_image(store, "Extras!", "Network Addon Mod.png") == b"\x89PNG default"
    assert find_option_image(store, "", "Network Addon Mod.png") == b"\x89PNG default"


def test_image_lookup_without_default():
    store = MemoryAssetStore({"Opt/a.dat": b"x"})
    assert find_option_image(store, "Opt", "missing.png") is None


def test_open_asset_store_missing_path(tmp_path):
    with pytest.raises(FileNotFoundError):
        open_asset_store(tmp_path / "installation")


def test_directory_store_lists_folders(source_dir):
    (source_dir / "Empty!").mkdir()
    folders = DirectoryAssetStore(source_dir).list_folders()
    assert "Empty!/" in folders
    assert "Roads~/Tunnels!/" in folders
    assert all(f.endswith("/") for f in folders)


def test_archive_store_keeps_folder_entries(tmp_path):
    archive = zip_fixture(
        tmp_path,
        {
            "installation/": "",
            "installation/Empty!/": "",
            "installation/Roads~/Highways/hw.dat": b"hw",
        },
    )
    store = ArchiveAssetStore(archive, build_root_name="installation")
    assert store.list_folders() == ["Empty!/"]
    assert store.list_paths() == ["Roads~/Highways/hw.dat"]
