"""Tests for the library index."""

import os
from pathlib import Path

import pytest

from conftest import make_book, scratch_entries
from shelf.errors import LibraryNotFoundError, PermissionDeniedError
from shelf.scanner import delete_books, import_book, open_book, scan_library


def _set_mtime(path: Path, mtime: float) -> Path:
    os.utime(path, (mtime, mtime))
    return path


def test_scan_library_smoke(shelf_config):
    lib = shelf_config.library_path
    make_book(lib / "Moby Dick.epub", title="Moby Dick")
    make_book(lib / "Austen" / "emma.epub", title="Emma", with_cover=False)

    result = scan_library(shelf_config)

    assert result.root == lib
    assert result.duplicates_removed == 0
    assert result.failed == 0
    by_title = {b.title: b for b in result.books}
    assert set(by_title) == {"Moby Dick", "Emma"}
    assert by_title["Moby Dick"].cover_path is not None
    assert by_title["Emma"].cover_path is None
    assert scratch_entries(shelf_config) == []


def test_scan_library_removes_duplicates_keeping_newest(shelf_config):
    lib = shelf_config.library_path
    older = _set_mtime(make_book(lib / "Moby Dick.epub"), 1_700_000_000)
    newer = _set_mtime(make_book(lib / "imports" / "moby_dick.EPUB"), 1_700_000_500)

    result = scan_library(shelf_config)

    assert result.duplicates_removed == 1
    assert [b.path for b in result.books] == [newer]
    assert newer.exists()
    assert not older.exists()


def test_scan_library_orders_newest_first(shelf_config):
    lib = shelf_config.library_path
    _set_mtime(make_book(lib / "a.epub", title="A"), 1_700_000_000)
    _set_mtime(make_book(lib / "b.epub", title="B"), 1_700_000_900)
    _set_mtime(make_book(lib / "c.epub", title="C"), 1_700_000_300)

    result = scan_library(shelf_config)

    assert [b.title for b in result.books] == ["B", "C", "A"]


def test_scan_library_falls_back_to_filename(shelf_config):
    lib = shelf_config.library_path
    (lib / "Not Really.epub").write_bytes(b"garbage")

    result = scan_library(shelf_config)

    (book,) = result.books
    assert book.title == "Not Really"
    assert book.cover_path is None
    assert book.to_public()["coverUri"] is None


def test_scan_library_permission_denied_touches_nothing(shelf_config):
    lib = shelf_config.library_path
    first = make_book(lib / "book.epub")
    second = make_book(lib / "x" / "Book.epub")

    with pytest.raises(PermissionDeniedError):
        scan_library(shelf_config, permission_granted=False)

    assert first.exists() and second.exists()
    assert not shelf_config.scratch_dir.exists()


def test_scan_library_permission_from_config(shelf_config):
    shelf_config.library.permission_granted = False
    with pytest.raises(PermissionDeniedError):
        scan_library(shelf_config)


def test_scan_library_missing_root(shelf_config, tmp_path):
    shelf_config.library.path = tmp_path / "missing"
    with pytest.raises(LibraryNotFoundError):
        scan_library(shelf_config)


def test_public_descriptor_shape(shelf_config):
    book_path = make_book(shelf_config.library_path / "moby.epub")

    (book,) = scan_library(shelf_config).books
    public = book.to_public()

    assert set(public) == {"id", "uri", "name", "title", "coverUri", "size", "lastModifiedAt"}
    assert public["uri"] == str(book_path)
    assert public["name"] == "moby"
    assert public["size"] == book_path.stat().st_size
    assert isinstance(public["lastModifiedAt"], int)


def test_open_book_hands_uri_to_opener(shelf_config):
    make_book(shelf_config.library_path / "moby.epub")
    (book,) = scan_library(shelf_config).books

    opened = []
    assert open_book(book, lambda uri: opened.append(uri) or "ok") == "ok"
    assert opened == [book.uri]


def test_open_book_missing_file(shelf_config):
    path = make_book(shelf_config.library_path / "moby.epub")
    (book,) = scan_library(shelf_config).books
    path.unlink()

    with pytest.raises(FileNotFoundError):
        open_book(book, lambda uri: uri)


def test_delete_books_removes_file_and_cover(shelf_config):
    make_book(shelf_config.library_path / "moby.epub")
    (book,) = scan_library(shelf_config).books
    assert book.cover_path.exists()

    assert delete_books([book]) == (1, 0)
    assert not book.path.exists()
    assert not book.cover_path.exists()


def test_import_book_avoids_overwrite(shelf_config, tmp_path):
    source = make_book(tmp_path / "incoming" / "Emma.epub", title="Emma")
    make_book(shelf_config.library_path / "Emma.epub", title="Old Emma")

    target = import_book(source, shelf_config)

    assert target == shelf_config.library_path / "Emma_1.epub"
    assert target.read_bytes() == source.read_bytes()


def test_import_book_rejects_non_epub(shelf_config, tmp_path):
    source = tmp_path / "notes.txt"
    source.write_text("hello")

    with pytest.raises(ValueError):
        import_book(source, shelf_config)


def test_rescans_keep_one_cached_cover_per_book(shelf_config):
    make_book(shelf_config.library_path / "moby.epub")

    for _ in range(3):
        result = scan_library(shelf_config)

    (book,) = result.books
    assert list(shelf_config.covers_dir.iterdir()) == [book.cover_path]


def test_rescan_drops_cover_of_removed_book(shelf_config):
    gone = make_book(shelf_config.library_path / "moby.epub")
    make_book(shelf_config.library_path / "emma.epub", title="Emma")
    scan_library(shelf_config)
    gone.unlink()

    (book,) = scan_library(shelf_config).books

    assert book.title == "Emma"
    assert list(shelf_config.covers_dir.iterdir()) == [book.cover_path]
