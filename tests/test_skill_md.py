"""Tests for skillbridge/skill_md.py."""

import pytest

from conftest import make_skill
from skillbridge.skill_md import (
    find_skill_dirs,
    infer_skill_name,
    parse_skill_frontmatter,
    validate_skill_name,
)


class TestFrontmatter:
    def test_parses_flat_keys(self, tmp_path):
        path = tmp_path / "SKILL.md"
        path.write_text('---\nname: demo\ndescription: "Does things"\n---\nBody\n')
        assert parse_skill_frontmatter(path) == {"name": "demo", "description": "Does things"}

    def test_missing_name(self, tmp_path):
        path = tmp_path / "SKILL.md"
        path.write_text("---\ndescription: x\n---\n")
        assert parse_skill_frontmatter(path) is None

    def test_no_frontmatter(self, tmp_path):
        path = tmp_path / "SKILL.md"
        path.write_text("# Just markdown\n")
        assert parse_skill_frontmatter(path) is None


class TestNames:
    @pytest.mark.parametrize("name", ["demo", "Demo-2", "a.b_c"])
    def test_valid(self, name):
        assert validate_skill_name(f" {name} ") == name

    @pytest.mark.parametrize("name", ["", "../x", "a/b", ".hidden"])
    def test_invalid(self, name):
        with pytest.raises(ValueError):
            validate_skill_name(name)

    def test_infer_prefers_frontmatter(self, tmp_path):
        skill = make_skill(tmp_path, "dir-name")
        (skill / "SKILL.md").write_text("---\nname: real-name\n---\n")
        assert infer_skill_name(skill) == "real-name"

    def test_infer_falls_back_to_dir(self, tmp_path):
        skill = tmp_path / "plain"
        skill.mkdir()
        assert infer_skill_name(skill) == "plain"


class TestFindSkillDirs:
    def test_does_not_descend_into_skills(self, tmp_path):
        outer = make_skill(tmp_path / "pack", "outer")
        make_skill(outer, "inner")
        other = make_skill(tmp_path / "pack" / "group", "other")
        make_skill(tmp_path / "pack" / ".hidden", "secret")

        assert find_skill_dirs(tmp_path / "pack") == [other, outer]
