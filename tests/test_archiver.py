"""
Tests for archive creation: traversal, entry naming, failure policy and throttling.
"""

import os
import time
import zipfile

import pytest

from ratezip import archive, archive_with_rate_limit, extract, walk_source
from ratezip.config import TransferConfig
from ratezip.reader import ZipReader


def _names(path):
    with zipfile.ZipFile(path) as zf:
        return zf.namelist()


def test_entry_names_are_relative_to_source_parent(tmp_path, source_tree):
    out = tmp_path / "out.zip"

    names = archive(out, source_tree / "tree", source_tree / "single.csv")

    expected = [
        "tree/",
        "tree/a.txt",
        "tree/empty/",
        "tree/sub/",
        "tree/sub/b.bin",
        "tree/sub/c.txt",
        "single.csv",
    ]
    assert names == expected
    assert _names(out) == expected


def test_children_are_visited_in_lexical_order(tmp_path):
    root = tmp_path / "root"
    root.mkdir()
    for name in ["zeta", "Alpha", "beta", "_under", "10", "2"]:
        (root / name).write_bytes(name.encode())

    names = archive(tmp_path / "out.zip", root)

    assert names == ["root/"] + [
        f"root/{n}" for n in sorted(["zeta", "Alpha", "beta", "_under", "10", "2"])
    ]


def test_directory_entry_precedes_its_children(tmp_path, source_tree):
    names = archive(tmp_path / "out.zip", source_tree / "tree")

    for i, name in enumerate(names):
        parent = name.rstrip("/").rpartition("/")[0]
        if parent:
            assert parent + "/" in names[:i]


def test_trailing_separator_does_not_change_names(tmp_path, source_tree):
    plain = archive(tmp_path / "plain.zip", str(source_tree / "tree"))
    slashed = archive(tmp_path / "slashed.zip", str(source_tree / "tree") + os.sep)

    assert plain == slashed


def test_relative_source_paths(tmp_path, source_tree, monkeypatch):
    monkeypatch.chdir(source_tree)

    names = archive(tmp_path / "out.zip", "single.csv", "tree/sub")

    assert names == ["single.csv", "sub/", "sub/b.bin", "sub/c.txt"]


def test_single_file_source_is_one_entry(tmp_path, source_tree):
    names = archive(tmp_path / "out.zip", source_tree / "single.csv")

    assert names == ["single.csv"]
    with zipfile.ZipFile(tmp_path / "out.zip") as zf:
        assert zf.read("single.csv") == (source_tree / "single.csv").read_bytes()


def test_entries_are_deflated_and_directories_carry_no_content(tmp_path, source_tree):
    out = tmp_path / "out.zip"
    archive(out, source_tree / "tree")

    with zipfile.ZipFile(out) as zf:
        for info in zf.infolist():
            if info.is_dir():
                assert info.file_size == 0
            else:
                assert info.compress_type == zipfile.ZIP_DEFLATED


def test_mode_and_mtime_are_recorded(tmp_path, source_tree):
    target = source_tree / "tree" / "a.txt"
    os.chmod(target, 0o640)
    os.utime(target, (1_600_000_000, 1_600_000_000))
    out = tmp_path / "out.zip"

    archive(out, source_tree / "tree")

    with ZipReader(out) as z:
        info = z.get_info("tree/a.txt")
    assert info.mode & 0o777 == 0o640
    assert abs(info.date_time.timestamp() - 1_600_000_000) <= 2


def test_output_parent_directories_are_created(tmp_path, source_tree):
    out = tmp_path / "deep" / "er" / "out.zip"

    archive(out, source_tree / "single.csv")

    assert out.is_file()


def test_existing_output_is_overwritten(tmp_path, source_tree):
    out = tmp_path / "out.zip"
    out.write_bytes(b"stale")

    archive(out, source_tree / "single.csv")

    assert _names(out) == ["single.csv"]


def test_missing_source_aborts_and_keeps_prior_entries(tmp_path, source_tree):
    out = tmp_path / "out.zip"

    with pytest.raises(FileNotFoundError):
        archive(
            out,
            source_tree / "tree" / "sub",
            source_tree / "does-not-exist",
            source_tree / "single.csv",
        )

    # The partial archive stays on disk and is still a valid zip
    assert _names(out) == ["sub/", "sub/b.bin", "sub/c.txt"]


def test_unwritable_output_raises_os_error(tmp_path, source_tree):
    blocker = tmp_path / "blocker"
    blocker.write_bytes(b"a file, not a directory")

    with pytest.raises(OSError):
        archive(blocker / "out.zip", source_tree / "single.csv")


def test_output_inside_source_tree_is_not_archived_into_itself(source_tree):
    out = source_tree / "tree" / "self.zip"

    names = archive(out, source_tree / "tree")

    assert "tree/self.zip" not in names


def test_symlinked_directory_is_recorded_but_not_descended(tmp_path, source_tree):
    link = source_tree / "tree" / "loop"
    os.symlink(source_tree / "tree", link)

    names = archive(tmp_path / "out.zip", source_tree / "tree")

    assert "tree/loop/" in names
    assert not any(n.startswith("tree/loop/") and n != "tree/loop/" for n in names)


def test_symlinked_file_is_stored_with_target_content(tmp_path, source_tree):
    os.symlink(source_tree / "single.csv", source_tree / "tree" / "link.csv")
    out = tmp_path / "out.zip"

    archive(out, source_tree / "tree")

    with zipfile.ZipFile(out) as zf:
        assert zf.read("tree/link.csv") == (source_tree / "single.csv").read_bytes()


def test_walk_source_yields_stat_and_type(source_tree):
    entries = list(walk_source(source_tree / "tree"))

    assert entries[0].name == "tree/"
    assert entries[0].is_dir
    files = [e for e in entries if not e.is_dir]
    assert {e.name for e in files} == {"tree/a.txt", "tree/sub/b.bin", "tree/sub/c.txt"}
    assert all(e.stat.st_size == os.path.getsize(e.path) for e in files)


def test_rate_limit_is_shared_across_all_files(tmp_path, source_tree, fake_clock):
    """20600 content bytes at 10000 B/s with a 10000-byte burst take 1.06s."""

    archive_with_rate_limit(tmp_path / "out.zip", 10_000, source_tree / "tree")

    assert fake_clock.now == pytest.approx(1.06)


def test_payload_within_rate_is_not_delayed(tmp_path, source_tree, fake_clock):
    archive(tmp_path / "out.zip", source_tree / "tree", rate_bytes=1_000_000)

    assert fake_clock.sleeps == []


@pytest.mark.parametrize("rate", [None, 0, -100])
def test_non_positive_rate_disables_throttling(tmp_path, source_tree, fake_clock, rate):
    archive(tmp_path / "out.zip", source_tree / "tree", rate_bytes=rate)

    assert fake_clock.sleeps == []


def test_rate_from_config_applies(tmp_path, source_tree, fake_clock):
    config = TransferConfig(rate_bytes=10_000, chunk_size=1024)

    archive(tmp_path / "out.zip", source_tree / "tree", config=config)

    assert fake_clock.now == pytest.approx(1.06)


def test_throughput_is_observably_capped_in_real_time(tmp_path):
    """A 100 KB payload at 50 KB/s needs at least one second past the burst."""

    payload = tmp_path / "payload.bin"
    payload.write_bytes(os.urandom(100_000))

    start = time.monotonic()
    archive(tmp_path / "fast.zip", payload)
    unthrottled = time.monotonic() - start

    start = time.monotonic()
    archive_with_rate_limit(tmp_path / "slow.zip", 50_000, payload)
    throttled = time.monotonic() - start

    assert throttled >= 0.9
    assert throttled > unthrottled


def test_dot_dot_source_is_named_after_the_directory_it_resolves_to(
    tmp_path, source_tree, snapshot, monkeypatch
):
    out = tmp_path / "out.zip"
    dest = tmp_path / "dest"
    monkeypatch.chdir(source_tree / "tree" / "sub")

    names = archive(out, "..")
    extract(out, dest)

    assert names[0] == "tree/"
    assert all(name.startswith("tree/") for name in names)
    assert snapshot(dest / "tree") == snapshot(source_tree / "tree")


def test_source_path_with_inner_dot_dot(tmp_path, source_tree):
    names = archive(tmp_path / "out.zip", source_tree / "tree" / "sub" / ".." / "empty")

    assert names == ["empty/"]
