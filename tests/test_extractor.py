"""
Tests for archive extraction: tree recreation, validation before writing and throttling.
"""

import os
import zipfile

import pytest

from ratezip import archive, extract, extract_with_rate_limit
from ratezip.errors import UnsafeEntryPath, ZipCrcError, ZipFormatError
from ratezip.writer import ZipWriter


def test_archive_then_extract_reproduces_the_tree(tmp_path, source_tree, snapshot):
    out = tmp_path / "out.zip"
    dest = tmp_path / "dest"

    archive(out, source_tree / "tree", source_tree / "single.csv")
    extract(out, dest)

    assert snapshot(dest) == snapshot(source_tree)


def test_empty_directories_are_recreated(tmp_path, source_tree):
    out = tmp_path / "out.zip"
    dest = tmp_path / "dest"

    archive(out, source_tree / "tree")
    extract(out, dest)

    assert (dest / "tree" / "empty").is_dir()
    assert os.listdir(dest / "tree" / "empty") == []


def test_missing_destination_and_ancestors_are_created(tmp_path, source_tree):
    out = tmp_path / "out.zip"
    dest = tmp_path / "a" / "b" / "c"
    archive(out, source_tree / "single.csv")

    extract(out, dest)

    assert (dest / "single.csv").read_bytes() == b"id,name\n1,foo\n"


def test_returns_created_paths_in_index_order(tmp_path):
    out = tmp_path / "out.zip"
    with zipfile.ZipFile(out, "w") as zf:
        zf.writestr("z.txt", b"z")
        zf.writestr("d/", b"")
        zf.writestr("d/a.txt", b"a")
    dest = tmp_path / "dest"

    created = extract(out, dest)

    assert created == [
        os.path.join(str(dest), "z.txt"),
        os.path.join(str(dest), "d"),
        os.path.join(str(dest), "d", "a.txt"),
    ]


def test_parent_directories_are_created_without_directory_entries(tmp_path):
    out = tmp_path / "out.zip"
    with zipfile.ZipFile(out, "w") as zf:
        zf.writestr("deep/nested/file.txt", b"content")
    dest = tmp_path / "dest"

    extract(out, dest)

    assert (dest / "deep" / "nested" / "file.txt").read_bytes() == b"content"


def test_existing_files_are_overwritten(tmp_path):
    out = tmp_path / "out.zip"
    with zipfile.ZipFile(out, "w") as zf:
        zf.writestr("f.txt", b"new")
    dest = tmp_path / "dest"
    dest.mkdir()
    (dest / "f.txt").write_bytes(b"old content that is longer")

    extract(out, dest)

    assert (dest / "f.txt").read_bytes() == b"new"


def test_missing_archive_raises_file_not_found(tmp_path):
    dest = tmp_path / "dest"

    with pytest.raises(FileNotFoundError):
        extract(tmp_path / "nope.zip", dest)

    assert not dest.exists()


def test_corrupt_archive_leaves_destination_untouched(tmp_path):
    bad = tmp_path / "bad.zip"
    bad.write_bytes(b"definitely not a zip archive" * 20)
    dest = tmp_path / "dest"

    with pytest.raises(ZipFormatError):
        extract(bad, dest)

    assert not dest.exists()


@pytest.mark.parametrize(
    "name",
    ["../evil.txt", "ok/../../evil.txt", "/etc/evil.txt", "C:/evil.txt"],
)
def test_unsafe_entry_names_are_rejected_before_writing(tmp_path, name):
    out = tmp_path / "evil.zip"
    with ZipWriter(out) as z:
        z.add_bytes("harmless.txt", b"fine")
        z.add_bytes(name, b"gotcha")
    dest = tmp_path / "dest"

    with pytest.raises(UnsafeEntryPath):
        extract(out, dest)

    assert not dest.exists()
    assert not (tmp_path / "evil.txt").exists()


def test_crc_failure_keeps_entries_already_extracted(tmp_path):
    out = tmp_path / "out.zip"
    with zipfile.ZipFile(out, "w") as zf:
        zf.writestr("first.txt", b"good", compress_type=zipfile.ZIP_STORED)
        zf.writestr("second.txt", b"BBBBBBBBBBBBBBBB", compress_type=zipfile.ZIP_STORED)
    data = out.read_bytes()
    out.write_bytes(data.replace(b"BBBBBBBBBBBBBBBB", b"BBBBBBBBCBBBBBBB", 1))
    dest = tmp_path / "dest"

    with pytest.raises(ZipCrcError):
        extract(out, dest)

    assert (dest / "first.txt").read_bytes() == b"good"


def test_rate_limit_is_shared_across_entries(tmp_path, fake_clock):
    """Two 6000-byte entries at 10000 B/s exceed the burst by 2000 bytes."""

    out = tmp_path / "out.zip"
    with zipfile.ZipFile(out, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("one.bin", os.urandom(6000))
        zf.writestr("two.bin", os.urandom(6000))

    extract_with_rate_limit(out, 10_000, tmp_path / "dest")

    assert fake_clock.now == pytest.approx(0.2)


def test_extract_within_rate_is_not_delayed(tmp_path, source_tree, fake_clock):
    out = tmp_path / "out.zip"
    archive(out, source_tree / "tree")

    extract(out, tmp_path / "dest", rate_bytes=1_000_000)

    assert fake_clock.sleeps == []


def test_throttled_extract_matches_unthrottled(tmp_path, source_tree, snapshot, fake_clock):
    out = tmp_path / "out.zip"
    archive(out, source_tree / "tree")

    extract(out, tmp_path / "fast")
    extract_with_rate_limit(out, 4096, tmp_path / "slow")

    assert snapshot(tmp_path / "slow") == snapshot(tmp_path / "fast")
    assert fake_clock.slept > 0
