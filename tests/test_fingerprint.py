"""Tests for skillbridge/fingerprint.py - content hashing and path identity."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from skillbridge.fingerprint import (
    detect_link,
    fingerprint,
    fingerprint_path,
    fingerprint_path_or_none,
    is_under,
    lexical_path,
    normalize_path,
    path_key,
)


class TestFingerprintContent:
    def test_deterministic(self) -> None:
        assert fingerprint(b"hello") == fingerprint(b"hello")
        assert fingerprint(b"hello").startswith("sha256:")

    def test_different_content_differs(self) -> None:
        assert fingerprint(b"hello") != fingerprint(b"hello!")

    def test_line_endings_normalized(self) -> None:
        assert fingerprint(b"a\r\nb\r\n") == fingerprint(b"a\nb\n")
        assert fingerprint(b"a\rb") == fingerprint(b"a\nb")


class TestFingerprintPath:
    def test_directory_independent_of_creation_order(self, tmp_path: Path) -> None:
        a = tmp_path / "a"
        b = tmp_path / "b"
        a.mkdir()
        b.mkdir()
        (a / "x.md").write_text("x")
        (a / "y.md").write_text("y")
        (b / "y.md").write_text("y")
        (b / "x.md").write_text("x")
        assert fingerprint_path(a) == fingerprint_path(b)

    def test_file_rename_changes_fingerprint(self, tmp_path: Path) -> None:
        a = tmp_path / "a"
        b = tmp_path / "b"
        a.mkdir()
        b.mkdir()
        (a / "x.md").write_text("same")
        (b / "z.md").write_text("same")
        assert fingerprint_path(a) != fingerprint_path(b)

    def test_git_dir_ignored(self, tmp_path: Path) -> None:
        skill = tmp_path / "s"
        skill.mkdir()
        (skill / "SKILL.md").write_text("x")
        before = fingerprint_path(skill)
        (skill / ".git").mkdir()
        (skill / ".git" / "HEAD").write_text("ref")
        assert fingerprint_path(skill) == before

    def test_crlf_directory_matches_lf(self, tmp_path: Path) -> None:
        a = tmp_path / "a"
        b = tmp_path / "b"
        a.mkdir()
        b.mkdir()
        (a / "SKILL.md").write_bytes(b"line1\r\nline2\r\n")
        (b / "SKILL.md").write_bytes(b"line1\nline2\n")
        assert fingerprint_path(a) == fingerprint_path(b)

    def test_link_hashes_as_target(self, tmp_path: Path) -> None:
        real = tmp_path / "real"
        real.mkdir()
        (real / "SKILL.md").write_text("x")
        link = tmp_path / "link"
        os.symlink(real, link, target_is_directory=True)
        assert fingerprint_path(link) == fingerprint_path(real)

    def test_missing_path_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            fingerprint_path(tmp_path / "missing")
        assert fingerprint_path_or_none(tmp_path / "missing") is None


class TestPathIdentity:
    def test_normalize_resolves_links(self, tmp_path: Path) -> None:
        real = tmp_path / "real"
        real.mkdir()
        link = tmp_path / "link"
        os.symlink(real, link)
        assert normalize_path(link) == normalize_path(real)
        assert lexical_path(link) != lexical_path(real)

    def test_lexical_collapses_dots(self, tmp_path: Path) -> None:
        assert lexical_path(tmp_path / "a" / ".." / "b") == str(tmp_path / "b")

    def test_path_key_case_insensitive_tool(self, tmp_path: Path) -> None:
        assert path_key("Codex", tmp_path / "x") == path_key("codex", tmp_path / "x")

    def test_detect_link_reports_raw_target(self, tmp_path: Path) -> None:
        real = tmp_path / "real"
        real.mkdir()
        link = tmp_path / "link"
        os.symlink("real", link)
        is_link, target = detect_link(link)
        assert is_link is True
        assert target == str(real)
        assert detect_link(real) == (False, None)

    def test_detect_broken_link(self, tmp_path: Path) -> None:
        link = tmp_path / "dangling"
        os.symlink(tmp_path / "gone", link)
        is_link, target = detect_link(link)
        assert is_link is True
        assert target == str(tmp_path / "gone")

    def test_is_under(self, tmp_path: Path) -> None:
        assert is_under(tmp_path / "a" / "b", tmp_path / "a")
        assert is_under(tmp_path / "a", tmp_path / "a")
        assert not is_under(tmp_path / "ab", tmp_path / "a")
