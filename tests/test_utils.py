"""Tests for skillbridge/utils.py - filesystem primitives, clock, cancellation."""

import os
import threading
from unittest.mock import patch

import pytest

from skillbridge.errors import OperationCancelled
from skillbridge.utils import (
    CancelToken,
    MonotonicClock,
    atomic_replace,
    copy_tree,
    is_staging_name,
    remove_path,
    staging_path_for,
    try_symlink,
)


class TestMonotonicClock:
    def test_strictly_increasing_when_time_stalls(self):
        clock = MonotonicClock()
        with patch("skillbridge.utils.now_ms", return_value=1000):
            assert [clock.now() for _ in range(3)] == [1000, 1001, 1002]

    def test_never_goes_backwards(self):
        clock = MonotonicClock()
        with patch("skillbridge.utils.now_ms", return_value=5000):
            first = clock.now()
        with patch("skillbridge.utils.now_ms", return_value=10):
            assert clock.now() > first

    def test_unique_across_threads(self):
        clock = MonotonicClock()
        seen: list[int] = []
        lock = threading.Lock()

        def worker():
            for _ in range(200):
                value = clock.now()
                with lock:
                    seen.append(value)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(set(seen)) == len(seen)


class TestCancelToken:
    def test_cancel(self):
        token = CancelToken()
        token.raise_if_cancelled()
        token.cancel()
        assert token.cancelled
        with pytest.raises(OperationCancelled):
            token.raise_if_cancelled()


class TestCopyTree:
    def test_copies_nested_and_skips_git(self, tmp_path):
        src = tmp_path / "src"
        (src / "refs").mkdir(parents=True)
        (src / ".git").mkdir()
        (src / "SKILL.md").write_text("x")
        (src / "refs" / "a.txt").write_text("a")
        (src / ".git" / "HEAD").write_text("ref")

        copy_tree(src, tmp_path / "dest")

        assert (tmp_path / "dest" / "refs" / "a.txt").read_text() == "a"
        assert not (tmp_path / "dest" / ".git").exists()

    def test_single_file_becomes_directory(self, tmp_path):
        src = tmp_path / "note.md"
        src.write_text("n")
        copy_tree(src, tmp_path / "dest")
        assert (tmp_path / "dest" / "note.md").read_text() == "n"

    def test_cancelled(self, tmp_path):
        src = tmp_path / "src"
        src.mkdir()
        (src / "SKILL.md").write_text("x")
        token = CancelToken()
        token.cancel()
        with pytest.raises(OperationCancelled):
            copy_tree(src, tmp_path / "dest", token)


class TestAtomicReplace:
    def test_into_empty_slot(self, tmp_path):
        staged = tmp_path / "staged"
        staged.mkdir()
        (staged / "f").write_text("new")
        assert atomic_replace(staged, tmp_path / "target") is False
        assert (tmp_path / "target" / "f").read_text() == "new"

    def test_replaces_directory(self, tmp_path):
        target = tmp_path / "target"
        target.mkdir()
        (target / "old").write_text("old")
        staged = tmp_path / "staged"
        staged.mkdir()
        (staged / "f").write_text("new")

        assert atomic_replace(staged, target) is True

        assert sorted(p.name for p in target.iterdir()) == ["f"]
        assert sorted(p.name for p in tmp_path.iterdir()) == ["target"]

    def test_replaces_link_with_link(self, tmp_path):
        a = tmp_path / "a"
        b = tmp_path / "b"
        a.mkdir()
        b.mkdir()
        target = tmp_path / "target"
        os.symlink(a, target)
        staged = tmp_path / "staged"
        os.symlink(b, staged)

        assert atomic_replace(staged, target) is True
        assert os.readlink(target) == str(b)

    def test_restores_on_failed_swap(self, tmp_path):
        target = tmp_path / "target"
        target.mkdir()
        (target / "old").write_text("old")
        staged = tmp_path / "staged"
        staged.mkdir()
        real_replace = os.replace
        calls = []

        def flaky(src, dst):
            calls.append((src, dst))
            if len(calls) == 2:
                raise OSError("disk full")
            return real_replace(src, dst)

        with patch("skillbridge.utils.os.replace", side_effect=flaky):
            with pytest.raises(OSError):
                atomic_replace(staged, target)

        assert (target / "old").read_text() == "old"


class TestRemoveAndLinks:
    def test_remove_link_keeps_target(self, tmp_path):
        real = tmp_path / "real"
        real.mkdir()
        (real / "f").write_text("x")
        link = tmp_path / "link"
        os.symlink(real, link)

        assert remove_path(link) is True
        assert (real / "f").exists()
        assert remove_path(link) is False

    def test_try_symlink_refused(self, tmp_path):
        with patch("skillbridge.utils.os.symlink", side_effect=OSError("nope")):
            assert try_symlink(tmp_path, tmp_path / "link") is False

    def test_staging_names(self, tmp_path):
        staged = staging_path_for(tmp_path / "foo")
        assert staged.parent == tmp_path
        assert is_staging_name(staged.name)
        assert not is_staging_name("foo")
