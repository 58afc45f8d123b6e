"""
GitHub REST client for GitSee.

Provides async access to the read-only repository endpoints the request
path needs: metadata, contributors, branches, commits and contents.
"""

import httpx
import logging
from typing import Optional, Dict, Any, List, Callable, Awaitable
from dataclasses import dataclass

from ..errors import GitHubAPIError, GitHubNotFoundError
from ..utils.retry import retry_with_backoff

logger = logging.getLogger(__name__)


@dataclass
class GitHubConfig:
    """GitHub API configuration"""
    token: Optional[str] = None
    api_url: str = "https://api.github.com"
    api_version: str = "2022-11-28"
    timeout: float = 30.0


class GitHubClient:
    """
    Async GitHub API client.

    Uses a persistent HTTP client; anonymous access works when no token is
    configured, subject to GitHub's lower rate limit.
    """

    def __init__(self, config: GitHubConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize GitHub client.

        Args:
            config: GitHub configuration
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        self._headers = {
            "Accept": "application/vnd.github.v3+json",
            "X-GitHub-Api-Version": config.api_version
        }
        if config.token:
            self._headers["Authorization"] = f"token {config.token}"

    async def __aenter__(self):
        """Context manager entry"""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        await self.close()

    async def connect(self):
        """Initialize HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.config.timeout,
                follow_redirects=True,
                transport=self._transport
            )

    async def close(self):
        """Close HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            await self.connect()
        return self._client

    def _repo_url(self, owner: str, repo: str, path: str = "") -> str:
        base = f"{self.config.api_url}/repos/{owner}/{repo}"
        return f"{base}/{path}" if path else base

    @retry_with_backoff(max_retries=3)
    async def _request(
        self,
        method: str,
        url: str,
        **kwargs
    ) -> Any:
        """
        Make an API request.

        Returns:
            Response JSON

        Raises:
            GitHubNotFoundError: Resource not found
            GitHubAPIError: Other API errors
        """
        client = await self._get_client()

        try:
            response = await client.request(
                method,
                url,
                headers=self._headers,
                **kwargs
            )
            response.raise_for_status()
            return response.json() if response.content else {}

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 404:
                raise GitHubNotFoundError(f"Resource not found: {url}") from e
            if status == 403 and e.response.headers.get("x-ratelimit-remaining") == "0":
                raise GitHubAPIError("GitHub API rate limit exceeded", status_code=429) from e
            raise GitHubAPIError(
                f"GitHub API error ({status}): {e.response.text[:200]}",
                status_code=status
            ) from e
        except httpx.RequestError as e:
            raise GitHubAPIError(f"Network error talking to GitHub: {str(e)}") from e

    async def _paginate(
        self,
        fetch: Callable[[Dict[str, Any]], Awaitable[List[Dict[str, Any]]]],
        limit: int
    ) -> List[Dict[str, Any]]:
        """Collect up to limit items, 100 per page"""
        if limit <= 100:
            return list(await fetch({"per_page": limit}))[:limit]

        results: List[Dict[str, Any]] = []
        page = 1
        while len(results) < limit:
            batch = await fetch({"per_page": min(100, limit - len(results)), "page": page})
            if not batch:
                break
            results.extend(batch)
            page += 1
        return results[:limit]

    # ========================================================================
    # Repository Operations
    # ========================================================================

    async def get_repository(self, owner: str, repo: str) -> Dict[str, Any]:
        """Repository metadata as returned by GitHub"""
        return await self._request("GET", self._repo_url(owner, repo))

    async def list_contributors(self, owner: str, repo: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Contributors ordered by contribution count"""
        url = self._repo_url(owner, repo, "contributors")
        return await self._paginate(lambda params: self._request("GET", url, params=params), limit)

    async def list_branches(self, owner: str, repo: str, limit: int = 50) -> List[Dict[str, Any]]:
        url = self._repo_url(owner, repo, "branches")
        return await self._paginate(lambda params: self._request("GET", url, params=params), limit)

    async def list_commits(
        self,
        owner: str,
        repo: str,
        limit: int = 50,
        since: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Recent commits, newest first.

        Args:
            since: ISO 8601 lower bound on commit date
        """
        url = self._repo_url(owner, repo, "commits")

        def fetch(params: Dict[str, Any]):
            if since:
                params = {**params, "since": since}
            return self._request("GET", url, params=params)

        return await self._paginate(fetch, limit)

    # ========================================================================
    # Content Operations
    # ========================================================================

    async def get_content(self, owner: str, repo: str, path: str = "") -> Any:
        """
        Raw contents API response.

        Returns:
            A dict for a file, a list of entries for a directory

        Raises:
            GitHubNotFoundError: Path does not exist
        """
        return await self._request("GET", self._repo_url(owner, repo, f"contents/{path.lstrip('/')}"))
