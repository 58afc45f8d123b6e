"""
Tests for RequestOrchestrator and request parsing.
"""

import asyncio

import pytest

from gitsee.agent import ExplorationLoop
from gitsee.errors import ValidationError
from gitsee.events import EventBroadcaster, EventType
from gitsee.models import ExplorationMode, RepositoryKey
from gitsee.orchestrator import (
    CLONE_FAILED_MESSAGE,
    NOT_ACCESSIBLE_MESSAGE,
    GitSeeRequest,
    RequestOrchestrator,
)
from gitsee.repository import CloneManager
from gitsee.store import ResultStore
from gitsee.utils import TaskSupervisor

from conftest import (
    FEATURES_ANSWER,
    FIRST_PASS_ANSWER,
    FakeCloneTransport,
    FakeResources,
    ScriptedLLM,
    submit,
    tool_block,
)

KEY = RepositoryKey("acme", "widgets")


class Harness:
    """Orchestrator wired to in-memory fakes"""

    def __init__(self, tmp_path, llm=None, transport=None, resources=None, subscriber_wait=0.05,
                 resources_for_token=None):
        self.llm = llm or ScriptedLLM()
        self.transport = transport or FakeCloneTransport()
        self.resources = resources or FakeResources()
        self.broadcaster = EventBroadcaster()
        self.supervisor = TaskSupervisor()
        self.store = ResultStore(str(tmp_path / "data"))
        self.clone_manager = CloneManager(str(tmp_path / "checkouts"), transport=self.transport)
        self.orchestrator = RequestOrchestrator(
            store=self.store,
            clone_manager=self.clone_manager,
            broadcaster=self.broadcaster,
            explorer=ExplorationLoop(self.llm),
            supervisor=self.supervisor,
            resources=self.resources,
            resources_for_token=resources_for_token,
            subscriber_wait_seconds=subscriber_wait,
        )
        self.events = []

    def listen(self):
        return self.broadcaster.subscribe(KEY, self.events.append)

    async def request(self, **body):
        body.setdefault("owner", KEY.owner)
        body.setdefault("repo", KEY.name)
        return await self.orchestrator.process(GitSeeRequest.from_dict(body))

    async def settle(self):
        while self.supervisor.pending:
            await self.supervisor.drain(timeout=5)

    def event_types(self):
        return [e.type.value for e in self.events]


async def test_fresh_request_returns_items_and_explores_in_background(tmp_path):
    h = Harness(tmp_path, llm=ScriptedLLM([[tool_block("overview")], [submit(FIRST_PASS_ANSWER)]]))
    h.listen()

    response = await h.request(data=["stats"], useCache=False)
    await h.settle()

    assert response == {"stats": {"stars": 3, "totalIssues": 1, "totalCommits": 7, "ageInYears": 1.5}}
    assert h.event_types() == [
        "clone_started",
        "clone_completed",
        "exploration_started",
        "exploration_progress",
        "exploration_progress",
        "exploration_completed",
    ]
    assert h.events[3].data == {"progress": "Running AI analysis..."}
    assert h.events[4].data == {"progress": "Step 1: overview"}
    assert h.events[-1].mode is ExplorationMode.FIRST_PASS
    assert h.events[-1].data == {"result": FIRST_PASS_ANSWER}

    record = await h.store.get_exploration(KEY, ExplorationMode.FIRST_PASS)
    assert record.result == FIRST_PASS_ANSWER
    snapshot = await h.store.get_snapshot(KEY)
    assert snapshot.stats == response["stats"]


async def test_second_request_is_served_from_snapshot(tmp_path):
    h = Harness(tmp_path, llm=ScriptedLLM([[submit(FIRST_PASS_ANSWER)]]))
    await h.request(data=["repo_info", "stats"])
    await h.settle()

    h.listen()
    response = await h.request(data=["repo_info", "stats"])
    await h.settle()

    assert set(response) == {"repo", "contributors", "icon", "files", "stats", "exploration"}
    assert response["repo"] == {"full_name": "acme/widgets", "stargazers_count": 3}
    assert response["contributors"] is None
    assert response["exploration"] == FIRST_PASS_ANSWER
    assert h.resources.calls == {"repo_info": 1, "stats": 1}
    assert len(h.transport.calls) == 1
    assert h.event_types() == ["exploration_completed"]


async def test_snapshot_without_fresh_exploration_has_no_exploration(tmp_path):
    h = Harness(tmp_path)
    await h.request(data=["stats"])
    await h.settle()

    response = await h.request(data=["stats"])

    assert response["exploration"] is None


async def test_use_cache_false_bypasses_snapshot(tmp_path):
    h = Harness(tmp_path)
    await h.request(data=["stats"])
    await h.settle()

    await h.request(data=["stats"], useCache=False)
    await h.settle()

    assert h.resources.calls["stats"] == 2
    assert h.resources.invalidated == [("acme", "widgets")]


async def test_failing_item_is_omitted(tmp_path):
    h = Harness(tmp_path, resources=FakeResources(failing=("contributors",)))

    response = await h.request(data=["contributors", "stats", "mystery"], useCache=False)
    await h.settle()

    assert set(response) == {"stats"}


async def test_all_items(tmp_path):
    h = Harness(tmp_path)

    response = await h.request(
        data=["repo_info", "contributors", "icon", "commits", "branches", "files", "stats", "file_content"],
        filePath="README.md",
        useCache=False,
    )
    await h.settle()

    assert set(response) == {"repo", "contributors", "icon", "commits", "branches", "files", "stats",
                             "fileContent"}
    assert response["icon"] is None
    assert response["fileContent"]["path"] == "README.md"


async def test_file_content_without_path_is_skipped(tmp_path):
    h = Harness(tmp_path)

    response = await h.request(data=["file_content"], useCache=False)
    await h.settle()

    assert response == {}
    assert "file_content" not in h.resources.calls


async def test_inline_exploration_uses_fresh_record(tmp_path):
    h = Harness(tmp_path)
    await h.store.put_exploration(KEY, ExplorationMode.FIRST_PASS, FIRST_PASS_ANSWER)
    await h.store.put_exploration(KEY, ExplorationMode.FEATURES, FEATURES_ANSWER)
    h.listen()

    response = await h.request(data=["exploration"], explorationMode="features", useCache=False)
    await h.settle()

    assert response == {"exploration": FEATURES_ANSWER}
    assert h.llm.calls == []
    completed = [e for e in h.events if e.type is EventType.EXPLORATION_COMPLETED]
    assert {e.mode for e in completed} == {ExplorationMode.FEATURES, ExplorationMode.FIRST_PASS}


async def test_inline_exploration_runs_when_stale(tmp_path):
    h = Harness(tmp_path, llm=ScriptedLLM([[submit(FEATURES_ANSWER)]]))
    await h.store.put_exploration(KEY, ExplorationMode.FIRST_PASS, FIRST_PASS_ANSWER)
    await h.store.put_exploration(KEY, ExplorationMode.FEATURES, {"summary": "old"}, timestamp_ms=0)

    response = await h.request(
        data=["exploration"], explorationMode="features",
        explorationPrompt="What can users do?", useCache=False,
    )
    await h.settle()

    assert response == {"exploration": FEATURES_ANSWER}
    assert h.llm.calls[0]["messages"][0]["content"][0]["text"] == "What can users do?"
    record = await h.store.get_exploration(KEY, ExplorationMode.FEATURES)
    assert record.result == FEATURES_ANSWER
    assert len(h.transport.calls) == 1


async def test_inline_exploration_when_clone_fails(tmp_path):
    h = Harness(tmp_path, transport=FakeCloneTransport(fail_with="repository not found"))

    response = await h.request(data=["exploration", "stats"], useCache=False)
    await h.settle()

    assert response["exploration"] == {"error": NOT_ACCESSIBLE_MESSAGE}
    assert "stats" in response
    assert len(h.transport.calls) == 1


async def test_inline_exploration_failure_is_reported_in_response(tmp_path):
    h = Harness(tmp_path, llm=ScriptedLLM([RuntimeError("model down")]))
    await h.store.put_exploration(KEY, ExplorationMode.FIRST_PASS, FIRST_PASS_ANSWER)

    response = await h.request(data=["exploration"], useCache=False)
    await h.settle()

    assert response["exploration"]["error"].startswith("Exploration failed:")
    assert await h.store.get_exploration(KEY, ExplorationMode.FEATURES) is None


async def test_background_clone_failure_is_published(tmp_path):
    h = Harness(tmp_path, transport=FakeCloneTransport(fail_with="fatal: repository not found"))
    h.listen()

    await h.request(data=["stats"], useCache=False)
    await h.settle()

    assert h.event_types() == ["clone_started", "clone_completed", "exploration_failed"]
    assert h.events[1].data["success"] is False
    assert h.events[2].error == CLONE_FAILED_MESSAGE
    assert h.events[2].mode is ExplorationMode.FIRST_PASS


async def test_background_exploration_failure_is_published(tmp_path):
    h = Harness(tmp_path, llm=ScriptedLLM([RuntimeError("model down")]))
    h.listen()

    await h.request(data=["stats"], useCache=False)
    await h.settle()

    assert h.event_types()[-1] == "exploration_failed"
    assert h.events[-1].error
    assert await h.store.get_exploration(KEY, ExplorationMode.FIRST_PASS) is None


async def test_cached_result_waits_for_late_subscriber(tmp_path):
    h = Harness(tmp_path, llm=ScriptedLLM([[submit(FIRST_PASS_ANSWER)]]), subscriber_wait=5)
    await h.request(data=["stats"])
    await h.settle()

    await h.request(data=["stats"])
    await asyncio.sleep(0.01)
    h.listen()
    await h.settle()

    assert h.event_types() == ["exploration_completed"]
    assert h.events[0].data == {"result": FIRST_PASS_ANSWER}


async def test_cached_result_is_published_after_wait_window(tmp_path):
    h = Harness(tmp_path, llm=ScriptedLLM([[submit(FIRST_PASS_ANSWER)]]), subscriber_wait=0.01)
    await h.request(data=["stats"])
    await h.settle()

    response = await h.request(data=["stats"])
    await h.settle()

    assert response["exploration"] == FIRST_PASS_ANSWER
    assert h.supervisor.pending == 0


async def test_fresh_background_record_is_replayed_not_recomputed(tmp_path):
    h = Harness(tmp_path)
    h.transport.gate = asyncio.Event()
    await h.store.put_exploration(KEY, ExplorationMode.FIRST_PASS, FIRST_PASS_ANSWER)
    h.listen()

    await h.request(data=["stats"], useCache=False)
    for _ in range(5):
        await asyncio.sleep(0)

    assert h.event_types() == ["clone_started"]

    h.transport.gate.set()
    await h.settle()

    assert h.llm.calls == []
    assert h.event_types() == ["clone_started", "clone_completed", "exploration_completed"]
    assert h.events[-1].data == {"result": FIRST_PASS_ANSWER}


async def test_token_scoped_resources_are_closed(tmp_path):
    scoped = FakeResources()
    tokens = []

    def resources_for_token(token):
        tokens.append(token)
        return scoped

    h = Harness(tmp_path, resources_for_token=resources_for_token)

    await h.request(data=["stats"], useCache=False, cloneOptions={"token": "ghp_abcdefghijklmnop"})
    await h.settle()

    assert tokens == ["ghp_abcdefghijklmnop"]
    assert scoped.calls == {"stats": 1}
    assert scoped.closed
    assert h.resources.calls == {}
    for path in (tmp_path / "data").rglob("*.json"):
        assert "ghp_abcdefghijklmnop" not in path.read_text()


async def test_invalid_repository_name_is_rejected(tmp_path):
    h = Harness(tmp_path)

    with pytest.raises(ValidationError):
        await h.request(owner="..", data=["stats"])

    assert h.transport.calls == []
    assert h.supervisor.pending == 0


@pytest.mark.parametrize("body,message", [
    ([], "JSON object"),
    ({"repo": "widgets", "data": ["stats"]}, "Owner and repo are required"),
    ({"owner": "acme", "repo": "  ", "data": ["stats"]}, "Owner and repo are required"),
    ({"owner": "acme", "repo": "widgets"}, "Data array is required"),
    ({"owner": "acme", "repo": "widgets", "data": []}, "Data array is required"),
    ({"owner": "acme", "repo": "widgets", "data": ["stats"], "explorationMode": "deep"}, "Unknown exploration mode"),
    ({"owner": "acme", "repo": "widgets", "data": ["stats"], "cloneOptions": "token"}, "cloneOptions"),
])
def test_request_validation(body, message):
    with pytest.raises(ValidationError, match=message):
        GitSeeRequest.from_dict(body)


def test_request_defaults():
    request = GitSeeRequest.from_dict({"owner": "acme", "repo": "widgets", "data": ["stats"]})

    assert request.use_cache is True
    assert request.exploration_mode is None
    assert request.clone_options is None
    assert request.key == KEY
    assert GitSeeRequest.from_dict({"owner": "a", "repo": "b", "data": ["x"], "useCache": None}).use_cache


def test_request_repr_hides_token():
    request = GitSeeRequest.from_dict({
        "owner": "acme", "repo": "widgets", "data": ["stats"],
        "cloneOptions": {"token": "ghp_abcdefghijklmnop", "branch": "main"},
    })

    assert request.clone_options.branch == "main"
    assert "ghp_abcdefghijklmnop" not in repr(request)
