"""
Shared fakes for GitSee tests.

The clone transport, model provider and REST resources are replaced with
in-memory doubles so tests never touch the network or git.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from gitsee.errors import CloneError
from gitsee.llm import AssistantMessage, ILLMProvider, ModelInfo, ModelProvider
from gitsee.repository import CloneTransport


class FakeCloneTransport(CloneTransport):
    """Writes a tiny checkout instead of running git."""

    def __init__(self, fail_with: Optional[str] = None, files: Optional[Dict[str, str]] = None):
        self.calls: List[Dict[str, Any]] = []
        self.fail_with = fail_with
        self.files = files or {"README.md": "# Widgets\n", "package.json": '{"name": "widgets"}\n'}
        self.gate: Optional[asyncio.Event] = None

    async def clone(self, url: str, destination: Path, branch: Optional[str] = None) -> None:
        self.calls.append({"url": url, "destination": destination, "branch": branch})
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if self.fail_with:
            destination.mkdir(parents=True, exist_ok=True)
            raise CloneError(self.fail_with)
        destination.mkdir(parents=True, exist_ok=True)
        for name, content in self.files.items():
            target = destination / name
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)


def text_block(text: str) -> Dict[str, Any]:
    return {"type": "text", "text": text}


def tool_block(name: str, tool_input: Optional[Dict[str, Any]] = None, tool_id: Optional[str] = None) -> Dict[str, Any]:
    return {"type": "tool_use", "id": tool_id or f"call_{name}", "name": name, "input": tool_input or {}}


def submit(answer: Any, tool_id: str = "call_submit") -> Dict[str, Any]:
    if not isinstance(answer, str):
        answer = json.dumps(answer)
    return tool_block("submit_answer", {"answer": answer}, tool_id)


class ScriptedLLM(ILLMProvider):
    """
    Model double that replays a fixed list of turns.

    Each turn is a list of content blocks or an exception to raise. When the
    script runs out, the model answers with plain text and no tool call.
    """

    def __init__(self, turns: Optional[List[Any]] = None):
        self.turns = list(turns or [])
        self.calls: List[Dict[str, Any]] = []

    @property
    def model_info(self) -> ModelInfo:
        return ModelInfo(id="scripted", name="scripted", provider=ModelProvider.ANTHROPIC, context_window=1000)

    async def create_message(self, system_prompt, messages, tools=None, temperature=0.2, max_tokens=4096):
        self.calls.append({
            "system_prompt": system_prompt,
            "messages": json.loads(json.dumps(messages)),
            "tools": [t["name"] for t in tools or []],
        })
        if not self.turns:
            return AssistantMessage(content=[], stop_reason="end_turn")
        turn = self.turns.pop(0)
        if isinstance(turn, BaseException):
            raise turn
        return AssistantMessage(content=turn, stop_reason="tool_use")


class FakeResources:
    """Stands in for RepositoryResources, counting calls per item."""

    def __init__(self, failing: tuple = ()):
        self.calls: Dict[str, int] = {}
        self.failing = failing
        self.closed = False
        self.invalidated = []

    async def _item(self, name: str, value: Any) -> Any:
        self.calls[name] = self.calls.get(name, 0) + 1
        if name in self.failing:
            from gitsee.errors import GitHubAPIError
            raise GitHubAPIError(f"{name} unavailable", status_code=500)
        return value

    async def get_repo_info(self, owner, repo):
        return await self._item("repo_info", {"full_name": f"{owner}/{repo}", "stargazers_count": 3})

    async def get_contributors(self, owner, repo):
        return await self._item("contributors", [{"login": "alice", "contributions": 7}])

    async def get_icon(self, owner, repo):
        return await self._item("icon", None)

    async def get_commits(self, owner, repo):
        return await self._item("commits", "=== Recent Commits ===")

    async def get_branches(self, owner, repo):
        return await self._item("branches", [{"name": "main"}])

    async def get_key_files(self, owner, repo):
        return await self._item("files", [{"name": "README.md", "path": "README.md", "type": "docs"}])

    async def get_stats(self, owner, repo):
        return await self._item("stats", {"stars": 3, "totalIssues": 1, "totalCommits": 7, "ageInYears": 1.5})

    async def get_file_content(self, owner, repo, path):
        return await self._item("file_content", {"name": path, "path": path, "content": "hello", "size": 5})

    def invalidate(self, owner, repo):
        self.invalidated.append((owner, repo))

    async def aclose(self):
        self.closed = True


FIRST_PASS_ANSWER = {
    "summary": "A widget shop",
    "key_files": ["package.json", "README.md"],
    "infrastructure": ["Postgres"],
    "dependencies": ["react"],
    "user_stories": ["Buy a widget"],
    "pages": ["Home"],
}

FEATURES_ANSWER = {
    "summary": "Widget features",
    "key_files": ["package.json"],
    "features": ["Checkout", "Search"],
}


@pytest.fixture
def checkout(tmp_path):
    """A small non-git checkout on disk"""
    root = tmp_path / "checkout" / "widgets"
    (root / "src" / "components").mkdir(parents=True)
    (root / "README.md").write_text("# Widgets\nA shop for widgets.\n")
    (root / "package.json").write_text('{"name": "widgets", "dependencies": {"react": "^18"}}\n')
    (root / "src" / "index.ts").write_text("export const hello = 'world';\n")
    (root / "src" / "components" / "Button.tsx").write_text("export function Button() {}\n")
    return root
