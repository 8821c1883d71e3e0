"""Tests for the SkillBridge HTTP API."""

import pytest
from fastapi.testclient import TestClient

from conftest import install_tool, make_skill
from skillbridge.errors import (
    FetchFailure,
    InvalidSkillSource,
    NotFoundError,
    TargetPathConflict,
)
from skillbridge.server import _status_for, create_app


@pytest.fixture
def client(service):
    return TestClient(create_app(service))


@pytest.fixture
def installed(client, sources):
    src = make_skill(sources, "foo")
    response = client.post("/skills/local", json={"path": str(src)})
    assert response.status_code == 201
    return response.json()


class TestStatusMapping:
    @pytest.mark.parametrize(
        ("error", "status"),
        [
            (NotFoundError("skill", "x"), 404),
            (TargetPathConflict("/p", "s", "o"), 409),
            (FetchFailure("ref", "offline"), 502),
            (InvalidSkillSource("bad"), 400),
        ],
    )
    def test_status_for(self, error, status):
        assert _status_for(error) == status


class TestSkillsEndpoints:
    def test_install_and_list(self, client, installed):
        assert installed["name"] == "foo"
        skills = client.get("/skills").json()
        assert [s["name"] for s in skills] == ["foo"]
        assert skills[0]["source_type"] == "local"

    def test_get_missing_skill(self, client):
        response = client.get("/skills/nope")
        assert response.status_code == 404
        assert "nope" in response.json()["detail"]

    def test_install_missing_path(self, client, tmp_path):
        response = client.post("/skills/local", json={"path": str(tmp_path / "gone")})
        assert response.status_code == 400

    def test_install_with_sync(self, client, home, sources):
        install_tool(home, "codex")
        src = make_skill(sources, "bar")
        body = client.post("/skills/local", json={"path": str(src), "sync": True}).json()
        assert [r["tool"] for r in body["sync"]["succeeded"]] == ["codex"]

    def test_sync_and_unsync(self, client, home, installed):
        skills_dir = install_tool(home, "codex")
        url = f"/skills/{installed['skill_id']}/tools/codex"

        body = client.put(url, json={"enabled": True}).json()
        assert body["enabled"] is True
        assert body["mode_used"] == "link"
        assert (skills_dir / "foo").is_symlink()

        body = client.put(url, json={"enabled": False}).json()
        assert body == {"tool": "codex", "enabled": False}
        assert not (skills_dir / "foo").exists()

    def test_sync_conflict(self, client, home, installed):
        skills_dir = install_tool(home, "codex")
        make_skill(skills_dir, "foo", body="Theirs.")
        url = f"/skills/{installed['skill_id']}/tools/codex"
        assert client.put(url, json={}).status_code == 409
        assert client.put(url, json={"overwrite": True}).status_code == 200

    def test_update_and_delete(self, client, installed):
        skill_id = installed["skill_id"]
        assert client.post(f"/skills/{skill_id}/update").json()["content_changed"] is False
        assert client.delete(f"/skills/{skill_id}").json()["name"] == "foo"
        assert client.get("/skills").json() == []

    def test_git_fetch_failure_is_502(self, client):
        response = client.get("/git/candidates", params={"ref": "https://example.com/x.git"})
        assert response.status_code == 502


class TestToolsAndOnboarding:
    def test_tools(self, client, home):
        install_tool(home, "goose")
        body = client.get("/tools").json()
        assert body["installed"] == ["goose"]
        assert {t["key"] for t in body["tools"]} >= {"claude_code", "goose"}

    def test_onboarding_flow(self, client, home):
        codex = install_tool(home, "codex")
        make_skill(codex, "legacy")

        plan = client.get("/onboarding").json()
        assert plan["total_skills_found"] == 1
        assert plan["groups"][0]["has_conflict"] is False

        body = client.post(
            "/onboarding/import", json={"name": "legacy", "tool": "codex"}
        ).json()
        assert body["imported"]["name"] == "legacy"

    def test_onboarding_requires_choice(self, client):
        response = client.post("/onboarding/import", json={"name": "legacy"})
        assert response.status_code == 400

    def test_new_tools(self, client, home, installed):
        install_tool(home, "codex")
        body = client.post("/sync/new-tools", json={"tools": ["codex"]}).json()
        assert [r["tool"] for r in body["succeeded"]] == ["codex"]


class TestCacheAndPreferences:
    def test_cache_settings(self, client):
        assert client.put("/cache/ttl", json={"value": 120}).json() == {"ttl_secs": 120}
        assert client.put("/cache/cleanup-days", json={"value": 0}).status_code == 400
        info = client.get("/cache").json()
        assert info["ttl_secs"] == 120
        assert client.post("/cache/clear").json() == {"removed": 0}
        assert client.post("/cache/cleanup").json() == {"removed": 0}

    def test_preferred_tools(self, client):
        assert client.get("/preferences/tools").json() == {"tools": None}
        response = client.put("/preferences/tools", json={"tools": ["codex"]})
        assert response.json() == {"tools": ["codex"]}
        assert client.put("/preferences/tools", json={"tools": ["nope"]}).status_code == 404

    def test_relocate(self, client, installed, tmp_path):
        new_root = tmp_path / "moved"
        body = client.put("/preferences/central-path", json={"path": str(new_root)}).json()
        assert body["path"] == str(new_root)
        skill = client.get(f"/skills/{installed['skill_id']}").json()
        assert skill["central_path"].startswith(str(new_root))
