"""
Cheap per-repository data items served on the synchronous request path.

Each item is fetched through GitHubClient and cached in MemoryCache under
"<type>:<owner>/<repo>" for the configured TTL.
"""

import asyncio
import base64
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from .client import GitHubClient
from ..errors import GitHubAPIError, GitHubNotFoundError
from ..utils.cache import MemoryCache

logger = logging.getLogger(__name__)

CONTRIBUTOR_LIMIT = 50
COMMIT_LIMIT = 50
COMMIT_WINDOW_DAYS = 30

KEY_FILE_CANDIDATES = [
    # Package managers
    ("package.json", "package"),
    ("Cargo.toml", "package"),
    ("go.mod", "package"),
    ("setup.py", "package"),
    ("requirements.txt", "package"),
    ("pyproject.toml", "package"),
    ("pom.xml", "package"),
    ("build.gradle", "package"),
    ("build.gradle.kts", "package"),
    ("composer.json", "package"),
    ("Gemfile", "package"),
    ("pubspec.yaml", "package"),
    # Documentation
    ("README.md", "docs"),
    ("readme.md", "docs"),
    ("README.txt", "docs"),
    ("README.rst", "docs"),
    ("ARCHITECTURE.md", "docs"),
    ("CONTRIBUTING.md", "docs"),
    ("ROADMAP.md", "docs"),
    ("API.md", "docs"),
    ("CLAUDE.md", "docs"),
    ("AGENTS.md", "docs"),
    # Configuration
    (".env.example", "config"),
    # Database and schemas
    ("prisma/schema.prisma", "data"),
    ("schema.prisma", "data"),
    ("schema.sql", "data"),
    ("migrations.sql", "data"),
    ("seeds.sql", "data"),
    # Build and deployment
    ("Dockerfile", "build"),
    ("docker-compose.yml", "build"),
    ("docker-compose.yaml", "build"),
    ("Makefile", "build"),
    ("justfile", "build"),
    ("CMakeLists.txt", "build"),
    # Other
    ("LICENSE", "other"),
    ("LICENSE.md", "other"),
    ("LICENSE.txt", "other"),
    ("CODEOWNERS", "other"),
    (".github/CODEOWNERS", "other"),
]

ICON_SUBDIRS = ("public", "assets", "static", "images", "img")
_RESOLUTION_PATTERN = re.compile(r"(\d+)x\d+")


def _is_icon_name(name: str) -> bool:
    name = name.lower()
    return "favicon" in name or "logo" in name or "icon" in name


def icon_resolution(name: str) -> int:
    """Rough resolution guess from an icon file name, higher is better."""
    name = name.lower()
    match = _RESOLUTION_PATTERN.search(name)
    if match:
        return int(match.group(1))
    for size in (512, 256, 192, 180):
        if str(size) in name:
            return size
    if "apple-touch" in name:
        return 180
    if "android-chrome" in name:
        return 192
    if name == "favicon.ico":
        return 64
    if "logo" in name:
        return 100
    return 50


def format_commits(owner: str, repo: str, commits: List[Dict[str, Any]]) -> str:
    """Plain-text summary of recent commits"""
    lines = [f"=== Recent Commits for {owner}/{repo} ===", ""]
    for commit in commits:
        details = commit.get("commit") or {}
        author = details.get("author") or {}
        message = (details.get("message") or "").split("\n")[0]
        lines.append(f"- {message}")
        lines.append(f"   SHA: {(commit.get('sha') or '')[:8]}")
        lines.append(f"   Author: {author.get('name', 'unknown')} ({author.get('email', '')})")
        lines.append(f"   Date: {author.get('date', '')}")
        lines.append("")
    return "\n".join(lines)


class RepositoryResources:
    """
    Cached fetchers for the cheap data items of a repository.

    Failures propagate to the caller, which logs and skips the item.
    """

    def __init__(self, client: GitHubClient, cache: MemoryCache):
        self.client = client
        self.cache = cache

    async def aclose(self):
        """Close the underlying HTTP client"""
        await self.client.close()

    def invalidate(self, owner: str, repo: str):
        """Forget every cached item of a repository"""
        self.cache.invalidate(owner, repo)

    async def _cached(self, data_type: str, owner: str, repo: str, fetch) -> Any:
        key = MemoryCache.make_key(data_type, owner, repo)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit for {key}")
            return cached
        logger.debug(f"Fetching {key}")
        value = await fetch()
        if value is not None:
            self.cache.set(key, value)
        return value

    async def get_repo_info(self, owner: str, repo: str) -> Dict[str, Any]:
        return await self._cached(
            "repo", owner, repo, lambda: self.client.get_repository(owner, repo)
        )

    async def get_contributors(self, owner: str, repo: str) -> List[Dict[str, Any]]:
        return await self._cached(
            "contributors", owner, repo,
            lambda: self.client.list_contributors(owner, repo, CONTRIBUTOR_LIMIT)
        )

    async def get_branches(self, owner: str, repo: str) -> List[Dict[str, Any]]:
        return await self._cached(
            "branches", owner, repo, lambda: self.client.list_branches(owner, repo)
        )

    async def get_commits(self, owner: str, repo: str) -> str:
        """Text summary of commits from the last 30 days"""
        async def fetch():
            since = (datetime.now(timezone.utc) - timedelta(days=COMMIT_WINDOW_DAYS)).isoformat()
            commits = await self.client.list_commits(owner, repo, COMMIT_LIMIT, since=since)
            return format_commits(owner, repo, commits)

        return await self._cached("commits", owner, repo, fetch)

    async def get_key_files(self, owner: str, repo: str) -> List[Dict[str, str]]:
        """Which well-known project files exist at the repository root"""
        async def check_file(name: str, file_type: str) -> Optional[Dict[str, str]]:
            try:
                await self.client.get_content(owner, repo, name)
            except GitHubNotFoundError:
                return None
            except GitHubAPIError as e:
                logger.warning(f"Error checking {name} in {owner}/{repo}: {e}")
                return None
            return {"name": name, "path": name, "type": file_type}

        async def fetch():
            found = await asyncio.gather(*(check_file(name, t) for name, t in KEY_FILE_CANDIDATES))
            files = [f for f in found if f is not None]
            logger.info(f"Found {len(files)} key files in {owner}/{repo}")
            return files

        return await self._cached("files", owner, repo, fetch)

    async def get_file_content(self, owner: str, repo: str, path: str) -> Optional[Dict[str, Any]]:
        """
        Decoded content of a single file.

        Returns:
            {name, path, content, encoding, size}, or None for missing paths
            and directories
        """
        async def fetch():
            try:
                data = await self.client.get_content(owner, repo, path)
            except GitHubNotFoundError:
                logger.info(f"File not found: {owner}/{repo}:{path}")
                return None
            if not isinstance(data, dict) or data.get("type") != "file":
                logger.warning(f"Path {path} is not a file")
                return None

            content = data.get("content") or ""
            if data.get("encoding") == "base64" and content:
                content = base64.b64decode(content).decode("utf-8", errors="replace")
            return {
                "name": data.get("name"),
                "path": data.get("path"),
                "content": content,
                "encoding": data.get("encoding") or "utf-8",
                "size": data.get("size") or 0,
            }

        return await self._cached(f"file-content-{path}", owner, repo, fetch)

    async def get_stats(self, owner: str, repo: str) -> Dict[str, Any]:
        """Stars, open issues, total commits by top contributors and age in years"""
        async def fetch():
            info = await self.get_repo_info(owner, repo)
            contributors = await self.client.list_contributors(owner, repo, 100)
            total_commits = sum(c.get("contributions") or 0 for c in contributors)

            age_years = 0.0
            created_at = info.get("created_at")
            if created_at:
                created = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
                days = (datetime.now(timezone.utc) - created).total_seconds() / 86400
                age_years = round(days / 365.25, 1)

            return {
                "stars": info.get("stargazers_count", 0),
                "totalIssues": info.get("open_issues_count", 0),
                "totalCommits": total_commits,
                "ageInYears": age_years,
            }

        return await self._cached("stats", owner, repo, fetch)

    async def get_icon(self, owner: str, repo: str) -> Optional[str]:
        """
        Data URI of the highest-resolution icon found at the root or in a
        common asset directory, or None.
        """
        async def fetch():
            root = await self.client.get_content(owner, repo, "")
            if not isinstance(root, list):
                return None

            candidates = [
                {"name": e["name"], "path": e.get("path") or e["name"]}
                for e in root if e.get("type") == "file" and _is_icon_name(e.get("name", ""))
            ]
            subdirs = {e["name"] for e in root if e.get("type") == "dir"}
            for subdir in ICON_SUBDIRS:
                if subdir not in subdirs:
                    continue
                try:
                    entries = await self.client.get_content(owner, repo, subdir)
                except GitHubNotFoundError:
                    continue
                if isinstance(entries, list):
                    candidates.extend(
                        {"name": e["name"], "path": f"{subdir}/{e['name']}"}
                        for e in entries if e.get("type") == "file" and _is_icon_name(e.get("name", ""))
                    )

            candidates.sort(key=lambda c: icon_resolution(c["name"]), reverse=True)
            for candidate in candidates:
                try:
                    data = await self.client.get_content(owner, repo, candidate["path"])
                except GitHubNotFoundError:
                    continue
                if isinstance(data, dict) and data.get("content"):
                    content = "".join(data["content"].split())
                    return f"data:image/png;base64,{content}"
            logger.info(f"No icon found for {owner}/{repo}")
            return None

        return await self._cached("icon", owner, repo, fetch)
