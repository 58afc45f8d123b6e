"""
Tests for the GitHub client and the cached repository resources.
"""

import base64
from collections import Counter

import httpx
import pytest

from gitsee.errors import GitHubAPIError, GitHubNotFoundError
from gitsee.github import GitHubClient, GitHubConfig, RepositoryResources, format_commits, icon_resolution
from gitsee.utils import MemoryCache

REPO = "/repos/acme/widgets"


class FakeGitHub:
    """Routes requests by path and counts them"""

    def __init__(self, routes):
        self.routes = routes
        self.hits = Counter()
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.hits[path] += 1
        self.requests.append(request)
        route = self.routes.get(path)
        if route is None:
            return httpx.Response(404, json={"message": "Not Found"})
        if callable(route):
            return route(request, self.hits[path])
        status, body = route
        return httpx.Response(status, json=body)


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr("gitsee.utils.retry.calculate_delay", lambda *args: 0)


def make_resources(routes, token=None):
    github = FakeGitHub(routes)
    client = GitHubClient(GitHubConfig(token=token), transport=httpx.MockTransport(github))
    return RepositoryResources(client, MemoryCache(ttl_seconds=60)), github


REPO_INFO = {"stargazers_count": 12, "open_issues_count": 3, "created_at": "2021-06-01T00:00:00Z"}


async def test_stats_are_aggregated_and_cached():
    resources, github = make_resources({
        REPO: (200, REPO_INFO),
        f"{REPO}/contributors": (200, [{"contributions": 40}, {"contributions": 2}, {}]),
    })

    first = await resources.get_stats("acme", "widgets")
    second = await resources.get_stats("acme", "widgets")
    await resources.aclose()

    assert first == second
    assert first["stars"] == 12
    assert first["totalIssues"] == 3
    assert first["totalCommits"] == 42
    assert first["ageInYears"] == round(first["ageInYears"], 1)
    assert github.hits[REPO] == 1
    assert github.hits[f"{REPO}/contributors"] == 1


async def test_invalidate_forces_refetch():
    resources, github = make_resources({REPO: (200, REPO_INFO)})

    await resources.get_repo_info("acme", "widgets")
    resources.invalidate("acme", "widgets")
    await resources.get_repo_info("acme", "widgets")

    assert github.hits[REPO] == 2


async def test_contributors_request_limit():
    resources, github = make_resources({f"{REPO}/contributors": (200, [{"login": "a"}])})

    assert await resources.get_contributors("acme", "widgets") == [{"login": "a"}]
    assert github.requests[0].url.params["per_page"] == "50"


async def test_key_files_only_lists_existing_files():
    resources, github = make_resources({
        f"{REPO}/contents/package.json": (200, {"type": "file"}),
        f"{REPO}/contents/README.md": (200, {"type": "file"}),
        f"{REPO}/contents/Dockerfile": (500, {"message": "boom"}),
    })

    files = await resources.get_key_files("acme", "widgets")

    assert files == [
        {"name": "package.json", "path": "package.json", "type": "package"},
        {"name": "README.md", "path": "README.md", "type": "docs"},
    ]
    assert github.hits[f"{REPO}/contents/Dockerfile"] == 4


async def test_file_content_is_decoded():
    encoded = base64.b64encode(b"print('hi')\n").decode()
    resources, _ = make_resources({
        f"{REPO}/contents/src/app.py": (200, {
            "type": "file", "name": "app.py", "path": "src/app.py",
            "content": encoded[:8] + "\n" + encoded[8:], "encoding": "base64", "size": 12,
        }),
        f"{REPO}/contents/src": (200, [{"type": "file", "name": "app.py"}]),
    })

    content = await resources.get_file_content("acme", "widgets", "src/app.py")

    assert content == {"name": "app.py", "path": "src/app.py", "content": "print('hi')\n",
                       "encoding": "base64", "size": 12}
    assert await resources.get_file_content("acme", "widgets", "src") is None
    assert await resources.get_file_content("acme", "widgets", "missing.py") is None


async def test_icon_prefers_highest_resolution():
    resources, github = make_resources({
        f"{REPO}/contents/": (200, [
            {"type": "file", "name": "favicon.ico", "path": "favicon.ico"},
            {"type": "file", "name": "README.md", "path": "README.md"},
            {"type": "dir", "name": "public", "path": "public"},
        ]),
        f"{REPO}/contents/public": (200, [{"type": "file", "name": "logo512.png"}]),
        f"{REPO}/contents/public/logo512.png": (200, {"content": "aGVs\nbG8="}),
        f"{REPO}/contents/favicon.ico": (200, {"content": "aWNv"}),
    })

    icon = await resources.get_icon("acme", "widgets")

    assert icon == "data:image/png;base64,aGVsbG8="
    assert github.hits[f"{REPO}/contents/favicon.ico"] == 0


async def test_no_icon():
    resources, _ = make_resources({f"{REPO}/contents/": (200, [{"type": "file", "name": "main.go"}])})

    assert await resources.get_icon("acme", "widgets") is None


def test_icon_resolution_ordering():
    names = ["favicon.ico", "logo.svg", "apple-touch-icon.png", "icon-32x32.png", "android-chrome-512x512.png"]

    ranked = sorted(names, key=icon_resolution, reverse=True)

    assert ranked[0] == "android-chrome-512x512.png"
    assert ranked[-1] == "icon-32x32.png"


async def test_commits_summary():
    resources, github = make_resources({
        f"{REPO}/commits": (200, [{
            "sha": "0123456789abcdef",
            "commit": {"message": "Add cart\n\nLonger body",
                       "author": {"name": "Ada", "email": "ada@example.com", "date": "2024-01-02T00:00:00Z"}},
        }]),
    })

    text = await resources.get_commits("acme", "widgets")

    assert text.startswith("=== Recent Commits for acme/widgets ===")
    assert "- Add cart" in text
    assert "SHA: 01234567" in text
    assert "Longer body" not in text
    assert "since" in github.requests[0].url.params


def test_format_commits_without_commits():
    assert format_commits("acme", "widgets", []).strip() == "=== Recent Commits for acme/widgets ==="


async def test_not_found_raises():
    resources, github = make_resources({})

    with pytest.raises(GitHubNotFoundError):
        await resources.get_repo_info("acme", "widgets")
    assert github.hits[REPO] == 1


async def test_server_errors_are_retried():
    def flaky(request, attempt):
        if attempt == 1:
            return httpx.Response(503, json={"message": "unavailable"})
        return httpx.Response(200, json=REPO_INFO)

    resources, github = make_resources({REPO: flaky})

    info = await resources.get_repo_info("acme", "widgets")

    assert info == REPO_INFO
    assert github.hits[REPO] == 2


async def test_rate_limit_is_reported():
    def limited(request, attempt):
        return httpx.Response(403, headers={"x-ratelimit-remaining": "0"}, json={"message": "rate limited"})

    resources, _ = make_resources({REPO: limited})

    with pytest.raises(GitHubAPIError) as excinfo:
        await resources.get_repo_info("acme", "widgets")
    assert excinfo.value.status_code == 429


async def test_token_is_sent_as_authorization_header():
    resources, github = make_resources({REPO: (200, REPO_INFO)}, token="abc123")

    await resources.get_repo_info("acme", "widgets")

    assert github.requests[0].headers["Authorization"] == "token abc123"
