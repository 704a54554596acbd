"""Shared fixtures for the ratezip tests."""

import os

import pytest


class FakeClock:
    """Monotonic clock that only moves when something sleeps on it."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

    @property
    def slept(self):
        return sum(self.sleeps)


@pytest.fixture
def fake_clock(monkeypatch):
    """Route every TokenBucket created during the test through a FakeClock."""

    clock = FakeClock()
    monkeypatch.setattr("ratezip.ratelimit._clock", clock)
    monkeypatch.setattr("ratezip.ratelimit._sleep", clock.sleep)
    return clock


@pytest.fixture
def source_tree(tmp_path):
    """
    Build:

        src/
          tree/
            a.txt
            empty/
            sub/
              b.bin
              c.txt
          single.csv
    """

    src = tmp_path / "src"
    tree = src / "tree"
    (tree / "empty").mkdir(parents=True)
    (tree / "sub").mkdir()
    (tree / "a.txt").write_bytes(b"alpha\n" * 100)
    (tree / "sub" / "b.bin").write_bytes(os.urandom(20_000))
    (tree / "sub" / "c.txt").write_bytes(b"")
    (src / "single.csv").write_bytes(b"id,name\n1,foo\n")
    return src


def _snapshot(root):
    """Map every path under root (relative, '/'-separated) to its bytes or None for dirs."""

    out = {}
    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = os.path.relpath(dirpath, root)
        for name in dirnames:
            out[os.path.normpath(os.path.join(rel_dir, name)).replace(os.sep, "/")] = None
        for name in filenames:
            rel = os.path.normpath(os.path.join(rel_dir, name)).replace(os.sep, "/")
            with open(os.path.join(dirpath, name), "rb") as f:
                out[rel] = f.read()
    return out


@pytest.fixture
def snapshot():
    """Return a function mapping a tree to {relative path: bytes or None}."""

    return _snapshot
