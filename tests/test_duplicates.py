"""Tests for duplicate detection and cleanup."""

import os
from datetime import datetime, timedelta
from pathlib import Path

from shelf.duplicates import dedupe, group, normalize, order_group, resolve
from shelf.models import CandidateFile
from shelf.walker import walk


def _candidate(path: Path, modified_at=None) -> CandidateFile:
    return CandidateFile(
        id=str(path),
        path=path,
        name=path.name[: -len(".epub")],
        size=1,
        modified_at=modified_at,
    )


def _write(path: Path, mtime: float) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"epub")
    os.utime(path, (mtime, mtime))
    return path


def test_normalize():
    assert normalize("Moby Dick.epub") == "moby_dick"
    assert normalize("Moby-Dick.EPUB") == "moby_dick"
    assert normalize("  moby dick ") == "moby_dick"
    assert normalize("Café") == "caf_"


def test_group_keeps_only_multi_member_buckets(tmp_path):
    files = [
        _candidate(tmp_path / "Moby Dick.epub"),
        _candidate(tmp_path / "moby_dick.epub"),
        _candidate(tmp_path / "Emma.epub"),
    ]
    groups = group(files)
    assert list(groups) == ["moby_dick"]
    assert len(groups["moby_dick"]) == 2


def test_order_group_newest_first_missing_time_last(tmp_path):
    now = datetime(2024, 1, 1)
    old = _candidate(tmp_path / "a.epub", now - timedelta(days=1))
    new = _candidate(tmp_path / "b.epub", now)
    unknown = _candidate(tmp_path / "c.epub", None)

    assert order_group([unknown, old, new]) == [new, old, unknown]


def test_order_group_ties_break_by_path(tmp_path):
    when = datetime(2024, 1, 1)
    b = _candidate(tmp_path / "b" / "x.epub", when)
    a = _candidate(tmp_path / "a" / "x.epub", when)

    assert order_group([b, a])[0] == a
    assert order_group([a, b])[0] == a


def test_resolve_keeps_newest_and_deletes_rest(tmp_path):
    base = 1_700_000_000
    _write(tmp_path / "Moby Dick.epub", base)
    _write(tmp_path / "sub" / "moby-dick.epub", base + 100)
    _write(tmp_path / "sub" / "MOBY DICK.epub", base + 50)

    removed = resolve(group(walk(tmp_path, 3)))

    assert removed == 2
    remaining = [c.path for c in walk(tmp_path, 3)]
    assert remaining == [tmp_path / "sub" / "moby-dick.epub"]


def test_resolve_continues_past_missing_members(tmp_path):
    base = 1_700_000_000
    keep = _write(tmp_path / "a" / "book.epub", base + 10)
    gone = _candidate(tmp_path / "b" / "book.epub", datetime.fromtimestamp(base))
    other = _write(tmp_path / "c" / "book.epub", base)

    groups = group(
        [
            _candidate(keep, datetime.fromtimestamp(base + 10)),
            gone,
            _candidate(other, datetime.fromtimestamp(base)),
        ]
    )
    assert resolve(groups) == 1
    assert keep.exists()
    assert not other.exists()


def test_resolve_skips_group_when_keeper_missing(tmp_path):
    older = _write(tmp_path / "a" / "book.epub", 1_700_000_000)
    phantom = _candidate(tmp_path / "b" / "book.epub", datetime(2030, 1, 1))

    groups = group([phantom, _candidate(older, datetime.fromtimestamp(1_700_000_000))])
    assert resolve(groups) == 0
    assert older.exists()


def test_resolve_ignores_same_path(tmp_path):
    path = _write(tmp_path / "book.epub", 1_700_000_000)
    twice = [_candidate(path, datetime(2024, 1, 1)), _candidate(path, datetime(2023, 1, 1))]

    assert resolve({"book": twice}) == 0
    assert path.exists()


def test_dedupe_leaves_one_survivor_per_key(tmp_path):
    base = 1_700_000_000
    _write(tmp_path / "Emma.epub", base)
    _write(tmp_path / "Moby Dick.epub", base)
    _write(tmp_path / "x" / "moby dick.epub", base + 5)

    survivors, removed = dedupe(walk(tmp_path, 3))

    assert removed == 1
    keys = [normalize(c.name) for c in survivors]
    assert sorted(keys) == ["emma", "moby_dick"]
    assert tmp_path / "x" / "moby dick.epub" in {c.path for c in survivors}


def _block_unlink(monkeypatch, blocked: Path) -> None:
    real_unlink = Path.unlink

    def _unlink(self, missing_ok=False):
        if self == blocked:
            raise PermissionError(f"Permission denied: '{self}'")
        return real_unlink(self, missing_ok=missing_ok)

    monkeypatch.setattr(Path, "unlink", _unlink)


def test_resolve_continues_past_failed_delete(tmp_path, monkeypatch):
    base = 1_700_000_000
    keep = _write(tmp_path / "a" / "book.epub", base + 20)
    locked = _write(tmp_path / "b" / "book.epub", base + 10)
    other = _write(tmp_path / "c" / "book.epub", base)
    _block_unlink(monkeypatch, locked)

    removed = resolve(group(walk(tmp_path, 3)))

    assert removed == 1
    assert keep.exists()
    assert locked.exists()
    assert not other.exists()


def test_dedupe_drops_copy_whose_delete_failed(tmp_path, monkeypatch):
    base = 1_700_000_000
    keep = _write(tmp_path / "a" / "book.epub", base + 20)
    locked = _write(tmp_path / "b" / "book.epub", base + 10)
    _block_unlink(monkeypatch, locked)

    survivors, removed = dedupe(walk(tmp_path, 3))

    assert removed == 0
    assert [c.path for c in survivors] == [keep]
    assert locked.exists()


def test_dedupe_passes_through_group_with_missing_keeper(tmp_path):
    base = 1_700_000_000
    older = _write(tmp_path / "a" / "book.epub", base)
    oldest = _write(tmp_path / "b" / "book.epub", base - 10)
    phantom = _candidate(tmp_path / "c" / "book.epub", datetime(2030, 1, 1))
    files = [
        _candidate(older, datetime.fromtimestamp(base)),
        _candidate(oldest, datetime.fromtimestamp(base - 10)),
        phantom,
    ]

    survivors, removed = dedupe(files)

    assert removed == 0
    assert [c.path for c in survivors] == [older, oldest]
    assert older.exists() and oldest.exists()
