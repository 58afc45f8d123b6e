"""
Tests for the HTTP surface.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from gitsee.config import GitSeeSettings
from gitsee.main import create_app

from conftest import FIRST_PASS_ANSWER, FakeCloneTransport, ScriptedLLM, submit


def github_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/repos/acme/widgets":
        return httpx.Response(200, json={
            "full_name": "acme/widgets",
            "stargazers_count": 5,
            "open_issues_count": 2,
            "created_at": "2020-01-01T00:00:00Z",
        })
    if path == "/repos/acme/widgets/contributors":
        return httpx.Response(200, json=[{"login": "a", "contributions": 10}, {"login": "b", "contributions": 5}])
    return httpx.Response(404, json={"message": "Not Found"})


@pytest.fixture
def settings(tmp_path):
    return GitSeeSettings(
        base_path=str(tmp_path / "checkouts"),
        data_dir=str(tmp_path / "data"),
        subscriber_wait_seconds=0.05,
    )


@pytest.fixture
def app(settings):
    return create_app(
        settings,
        llm_provider=ScriptedLLM([[submit(FIRST_PASS_ANSWER)]]),
        clone_transport=FakeCloneTransport(),
        github_transport=httpx.MockTransport(github_handler),
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def test_invalid_json_is_rejected(client):
    response = client.post("/api/gitsee", content="{not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid JSON body"}


def test_non_utf8_body_is_rejected(client):
    response = client.post(
        "/api/gitsee", content=b'{"owner": "\xff\xfe"}', headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid JSON body"}


def test_missing_owner_is_rejected(client):
    response = client.post("/api/gitsee", json={"repo": "widgets", "data": ["stats"]})

    assert response.status_code == 400
    assert response.json() == {"error": "Owner and repo are required"}


def test_empty_data_is_rejected(client):
    response = client.post("/api/gitsee", json={"owner": "acme", "repo": "widgets", "data": []})

    assert response.status_code == 400
    assert "Data array" in response.json()["error"]


def test_stats_request(client):
    response = client.post("/api/gitsee", json={
        "owner": "acme", "repo": "widgets", "data": ["stats"], "useCache": False,
    })

    assert response.status_code == 200
    stats = response.json()["stats"]
    assert stats["stars"] == 5
    assert stats["totalIssues"] == 2
    assert stats["totalCommits"] == 15
    assert stats["ageInYears"] > 5


def test_unknown_repository_items_are_omitted(client):
    response = client.post("/api/gitsee", json={
        "owner": "acme", "repo": "missing", "data": ["repo_info", "stats"], "useCache": False,
    })

    assert response.status_code == 200
    assert response.json() == {}


def test_handler_errors_are_scrubbed(app, client, monkeypatch):
    async def explode(request):
        raise RuntimeError("upstream rejected token ghp_abcdefghijklmnop")

    monkeypatch.setattr(app.state.orchestrator, "process", explode)

    response = client.post("/api/gitsee", json={"owner": "acme", "repo": "widgets", "data": ["stats"]})

    assert response.status_code == 500
    assert "ghp_abcdefghijklmnop" not in response.json()["error"]


def test_repositories_listing(client):
    assert client.get("/api/gitsee/repos").json() == {"repositories": []}

    client.post("/api/gitsee", json={"owner": "acme", "repo": "widgets", "data": ["stats"]})
    repositories = client.get("/api/gitsee/repos").json()["repositories"]

    assert len(repositories) == 1
    assert (repositories[0]["owner"], repositories[0]["repo"]) == ("acme", "widgets")
    assert repositories[0]["hasSnapshot"] is True


def test_event_stream_rejects_invalid_repository(client):
    response = client.get("/api/gitsee/events/acme/a%5Cb")

    assert response.status_code == 400


def test_health_and_root(client):
    health = client.get("/health").json()
    root = client.get("/").json()

    assert health["status"] == "healthy"
    assert health["service"] == "gitsee"
    assert isinstance(health["backgroundTasks"], int)
    assert health["cache"]["ttl_seconds"] == 300
    assert "POST /api/gitsee" in root["endpoints"]


def test_cors_preflight(client):
    response = client.options("/api/gitsee", headers={
        "Origin": "http://localhost:3000",
        "Access-Control-Request-Method": "POST",
    })

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


def test_background_exploration_is_stored_on_shutdown(settings):
    app = create_app(
        settings,
        llm_provider=ScriptedLLM([[submit(FIRST_PASS_ANSWER)]]),
        clone_transport=FakeCloneTransport(),
        github_transport=httpx.MockTransport(github_handler),
    )

    with TestClient(app) as client:
        client.post("/api/gitsee", json={"owner": "acme", "repo": "widgets", "data": ["stats"]})

    with TestClient(app) as client:
        response = client.post("/api/gitsee", json={"owner": "acme", "repo": "widgets", "data": ["stats"]})

    assert response.json()["exploration"] == FIRST_PASS_ANSWER


def test_missing_model_key_fails_at_startup(settings, monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

    with pytest.raises(ValueError, match="API key"):
        create_app(settings, clone_transport=FakeCloneTransport())
