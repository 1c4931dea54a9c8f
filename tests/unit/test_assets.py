"""
Unit tests for the asset store.
"""

import os
from pathlib import Path

import pytest

from staticserve.assets import (
    AssetEntry,
    AssetStore,
    AssetMountError,
    AssetNotFoundError,
    make_etag,
    normalize,
)

from conftest import ALPHABET, INDEX_HTML, SITE_CSS


class TestNormalize:
    """Tests for lexical path normalization."""

    @pytest.mark.parametrize("path, expected", [
        ("/", ""),
        ("", ""),
        ("/index.html", "index.html"),
        ("css/site.css", "css/site.css"),
        ("/css//site.css", "css/site.css"),
        ("/./css/./site.css", "css/site.css"),
        ("/docs/", "docs"),
    ])
    def test_normalizes(self, path, expected):
        assert normalize(path) == expected

    @pytest.mark.parametrize("path", [
        "/..",
        "/../secret.txt",
        "/css/../../secret.txt",
        "/css/../site.css",
        "/css\\..\\secret.txt",
        "/a\x00b",
    ])
    def test_rejects_escapes(self, path):
        """Anything that could leave the root is rejected outright."""
        assert normalize(path) is None


class TestFromDirectory:
    """Tests for mounting a filesystem directory."""

    def test_loads_files(self, store: AssetStore):
        """Every visible file is in the store with its exact bytes."""
        assert store.open("index.html").content == INDEX_HTML
        assert store.open("/css/site.css").content == SITE_CSS
        assert store.open("alphabet.txt").content == ALPHABET

    def test_iteration_lists_files_only(self, store: AssetStore):
        assert sorted(store) == [
            "NOTES",
            "alphabet.txt",
            "css/site.css",
            "data.bin",
            "docs/a b.txt",
            "docs/guide.md",
            "index.html",
            "js/app.js",
        ]
        assert len(store) == 8

    def test_hidden_entries_are_skipped(self, store: AssetStore):
        """Dot files and underscore entries are not mounted."""
        assert ".env" not in store
        assert "_drafts/x.html" not in store
        assert "_drafts" not in store

    def test_outside_of_root_is_not_found(self, store: AssetStore):
        """A file next to the mount point is unreachable."""
        assert store.lookup("/../secret.txt") is None
        assert store.lookup("../secret.txt") is None
        assert "/../secret.txt" not in store

    def test_entry_metadata(self, store: AssetStore):
        entry = store.open("css/site.css")

        assert entry.size == len(SITE_CSS)
        assert entry.name == "site.css"
        assert entry.content_type == "text/css; charset=utf-8"
        assert entry.etag == make_etag(SITE_CSS)
        assert not entry.is_dir

    def test_mtime_comes_from_the_filesystem(self, asset_dir: Path):
        """Directory mounts carry the file mtime, in UTC whole seconds."""
        os.utime(asset_dir / "alphabet.txt", (1700000000.75, 1700000000.75))
        entry = AssetStore.from_directory(asset_dir).open("alphabet.txt")

        assert entry.mtime is not None
        assert entry.mtime.timestamp() == 1700000000
        assert entry.mtime.utcoffset().total_seconds() == 0

    def test_directories(self, store: AssetStore):
        """Directories are entries with sorted children."""
        docs = store.open("docs")

        assert docs.is_dir
        assert docs.children == ("a b.txt", "guide.md")
        assert store.open("/").is_dir
        assert store.open("/").children == (
            "NOTES", "alphabet.txt", "css", "data.bin", "docs", "index.html", "js",
        )

    def test_list_dir(self, store: AssetStore):
        names = [e.name for e in store.list_dir("/docs/")]
        assert names == ["a b.txt", "guide.md"]

    def test_list_dir_on_file(self, store: AssetStore):
        with pytest.raises(AssetNotFoundError):
            store.list_dir("index.html")

    def test_missing_directory(self, tmp_path: Path):
        """Mounting a path that is not a directory fails."""
        with pytest.raises(AssetMountError):
            AssetStore.from_directory(tmp_path / "nope")

    def test_symlinked_directory_is_skipped(self, asset_dir: Path, tmp_path: Path):
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "leak.txt").write_bytes(b"leak")
        try:
            (asset_dir / "link").symlink_to(outside, target_is_directory=True)
        except (OSError, NotImplementedError):
            pytest.skip("symlinks not supported")

        store = AssetStore.from_directory(asset_dir)
        assert "link/leak.txt" not in store


class TestLookup:
    """Tests for lookup/open."""

    def test_lookup_missing(self, store: AssetStore):
        assert store.lookup("/nope.html") is None

    def test_open_missing_raises(self, store: AssetStore):
        """AssetNotFoundError is a LookupError carrying the path."""
        with pytest.raises(LookupError) as exc_info:
            store.open("/nope.html")

        assert isinstance(exc_info.value, AssetNotFoundError)
        assert exc_info.value.path == "/nope.html"

    def test_contains_non_string(self, store: AssetStore):
        assert 42 not in store


class TestImmutability:
    """The store is read-only after construction."""

    def test_entries_are_frozen(self, store: AssetStore):
        entry = store.open("index.html")
        with pytest.raises(AttributeError):
            entry.content = b"changed"

    def test_mapping_is_read_only(self, store: AssetStore):
        with pytest.raises(TypeError):
            store._entries["new.txt"] = AssetEntry(path="new.txt")

    def test_requires_root(self):
        with pytest.raises(AssetMountError):
            AssetStore({"a.txt": AssetEntry(path="a.txt")})

    def test_in_memory_store(self):
        """A store can be built directly from entries."""
        store = AssetStore({
            "": AssetEntry(path="", is_dir=True, children=("a.txt",)),
            "a.txt": AssetEntry(path="a.txt", content=b"a", etag=make_etag(b"a")),
        })

        assert store.open("/a.txt").content == b"a"
        assert repr(store) == "AssetStore(origin='<memory>', files=1)"


class TestFromPackage:
    """Tests for the bundled assets."""

    def test_bundled_site(self):
        """The package ships an index page, stylesheet and script."""
        store = AssetStore.from_package()

        assert "index.html" in store
        assert "css/site.css" in store
        assert "js/app.js" in store
        assert store.open("index.html").content.startswith(b"<!DOCTYPE html>")

    def test_bundled_entries_have_no_mtime(self):
        """Package data relies on ETags alone."""
        entry = AssetStore.from_package().open("index.html")

        assert entry.mtime is None
        assert entry.etag.startswith('"')

    def test_missing_subdirectory(self):
        with pytest.raises(AssetMountError):
            AssetStore.from_package(subdir="does-not-exist")

    def test_missing_package(self):
        with pytest.raises(AssetMountError):
            AssetStore.from_package(package="no_such_package_here")
