"""
Local repository checkout management.

The CloneManager guarantees a usable shallow checkout of a repository exists
under a deterministic path, with at most one clone in flight per repository.
Callers may fire-and-forget (start_in_background), block (ensure_cloned) or
just peek at the state (get_outcome_if_available).

Example:
    manager = CloneManager("/tmp/gitsee")
    key = RepositoryKey("acme", "widgets")
    manager.start_in_background(key)
    outcome = await manager.ensure_cloned(key)  # joins the running clone
"""

import asyncio
import logging
import shutil
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from pathlib import Path
from typing import Dict, Optional, Tuple
from urllib.parse import quote

from git import Repo, GitCommandError

from ..errors import CloneError
from ..logging_config import scrub_credentials
from ..models import CloneOptions, CloneOutcome, CloneStatus, RepositoryKey

logger = logging.getLogger(__name__)


class CloneTransport(ABC):
    """Performs the actual clone into a destination directory."""

    @abstractmethod
    async def clone(self, url: str, destination: Path, branch: Optional[str] = None) -> None:
        """
        Clone url into destination (shallow, single branch, no tags).

        Raises:
            CloneError: If the clone fails
        """
        pass


class GitCloneTransport(CloneTransport):
    """Clone transport backed by GitPython."""

    async def clone(self, url: str, destination: Path, branch: Optional[str] = None) -> None:
        clone_kwargs = {
            "depth": 1,
            "single_branch": True,
            "no_tags": True,
            "branch": branch,
        }
        clone_kwargs = {k: v for k, v in clone_kwargs.items() if v is not None}

        # Blocking operation, run in thread pool
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                lambda: Repo.clone_from(url, str(destination), **clone_kwargs),
            )
        except GitCommandError as e:
            detail = (e.stderr or "").strip() or str(e)
            raise CloneError(
                f"git clone exited with status {e.status}: {scrub_credentials(detail)}"
            ) from None


def build_clone_url(key: RepositoryKey, options: Optional[CloneOptions] = None) -> str:
    """
    Build the HTTPS clone URL, embedding credentials when supplied.

    The returned URL must only be handed to the transport; log
    display_clone_url instead.
    """
    credentials = ""
    if options is not None and options.token:
        user = options.username or "x-access-token"
        credentials = f"{quote(user, safe='')}:{quote(options.token, safe='')}@"
    return f"https://{credentials}github.com/{key.owner}/{key.name}.git"


def display_clone_url(key: RepositoryKey) -> str:
    """Clone URL for display (without credentials)."""
    return f"https://github.com/{key.owner}/{key.name}.git"


class CloneManager:
    """
    Manages shallow repository checkouts with in-flight deduplication.

    The in-flight map is the single source of truth for "is a clone running".
    Finished outcomes are kept in a small bounded cache so a caller asking
    right after completion sees the result without relying on timing.
    """

    def __init__(
        self,
        base_path: str,
        transport: Optional[CloneTransport] = None,
        completed_cache_size: int = 128,
    ):
        """
        Initialize clone manager.

        Args:
            base_path: Directory under which checkouts live as owner/repo
            transport: Clone transport (defaults to GitPython)
            completed_cache_size: Number of finished outcomes to remember
        """
        self.base_path = Path(base_path)
        self._transport = transport or GitCloneTransport()
        self._in_flight: Dict[RepositoryKey, asyncio.Task] = {}
        self._completed: "OrderedDict[RepositoryKey, CloneOutcome]" = OrderedDict()
        self._completed_cache_size = completed_cache_size

        logger.info(f"Initialized CloneManager (base path: {self.base_path})")

    def local_path(self, key: RepositoryKey) -> Path:
        """Deterministic checkout path for a repository."""
        for part in (key.owner, key.name):
            if not part or part in (".", "..") or "/" in part or "\\" in part:
                raise ValueError(f"Invalid repository path component: {part!r}")
        return self.base_path / key.owner / key.name

    @staticmethod
    def is_valid_checkout(path: Path) -> bool:
        """A checkout is valid if it holds .git metadata or any files."""
        if not path.is_dir():
            return False
        if (path / ".git").exists():
            return True
        return any(path.iterdir())

    def is_in_flight(self, key: RepositoryKey) -> bool:
        return key in self._in_flight

    def start_in_background(
        self,
        key: RepositoryKey,
        options: Optional[CloneOptions] = None,
    ) -> bool:
        """
        Start a clone without waiting for it.

        Returns:
            True if a new operation was registered, False if one was already running
        """
        if key in self._in_flight:
            logger.debug(f"Clone for {key} already in flight")
            return False
        self._register(key, options)
        return True

    async def ensure_cloned(
        self,
        key: RepositoryKey,
        options: Optional[CloneOptions] = None,
    ) -> CloneOutcome:
        """
        Ensure a checkout exists, joining a running clone if there is one.

        A running clone is checked before the filesystem so a partially
        written directory is never mistaken for a finished checkout.

        Returns:
            CloneOutcome for the checkout
        """
        task = self._in_flight.get(key)
        if task is not None:
            logger.debug(f"Joining in-flight clone for {key}")
            return await asyncio.shield(task)

        path = self.local_path(key)
        if self.is_valid_checkout(path):
            return CloneOutcome(success=True, local_path=str(path))

        task = self._register(key, options)
        return await asyncio.shield(task)

    def get_outcome_if_available(
        self,
        key: RepositoryKey,
    ) -> Tuple[CloneStatus, Optional[CloneOutcome]]:
        """
        Non-blocking status lookup.

        Returns:
            Tuple of (CloneStatus, outcome or None while running/not started)
        """
        if key in self._in_flight:
            return CloneStatus.RUNNING, None

        outcome = self._completed.get(key)
        if outcome is not None:
            return (CloneStatus.DONE if outcome.success else CloneStatus.FAILED), outcome

        path = self.local_path(key)
        if self.is_valid_checkout(path):
            return CloneStatus.DONE, CloneOutcome(success=True, local_path=str(path))

        return CloneStatus.NOT_STARTED, None

    def _register(self, key: RepositoryKey, options: Optional[CloneOptions]) -> asyncio.Task:
        task = asyncio.create_task(self._run_clone(key, options), name=f"clone:{key}")
        self._in_flight[key] = task

        def _finished(t: asyncio.Task):
            if self._in_flight.get(key) is t:
                del self._in_flight[key]
            if t.cancelled():
                return
            self._remember(key, t.result())

        task.add_done_callback(_finished)
        return task

    def _remember(self, key: RepositoryKey, outcome: CloneOutcome):
        self._completed[key] = outcome
        self._completed.move_to_end(key)
        while len(self._completed) > self._completed_cache_size:
            self._completed.popitem(last=False)

    async def _run_clone(
        self,
        key: RepositoryKey,
        options: Optional[CloneOptions],
    ) -> CloneOutcome:
        """Run one clone attempt. Never raises; failures become outcomes."""
        started = time.monotonic()
        path = None

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        try:
            path = self.local_path(key)
            if self.is_valid_checkout(path):
                return CloneOutcome(success=True, local_path=str(path), duration_ms=elapsed_ms())

            if path.exists():
                shutil.rmtree(path)
            path.parent.mkdir(parents=True, exist_ok=True)

            branch = options.branch if options else None
            logger.info(
                f"Cloning {display_clone_url(key)} into {path}"
                + (f" (branch {branch})" if branch else "")
            )
            await self._transport.clone(build_clone_url(key, options), path, branch)

            duration = elapsed_ms()
            logger.info(f"Cloned {key} in {duration}ms")
            return CloneOutcome(success=True, local_path=str(path), duration_ms=duration)

        except Exception as e:
            error = scrub_credentials(str(e)) or type(e).__name__
            logger.error(f"Clone of {key} failed: {error}")
            if path is not None:
                shutil.rmtree(path, ignore_errors=True)
            return CloneOutcome(
                success=False,
                local_path=str(path) if path is not None else "",
                error=error,
                duration_ms=elapsed_ms(),
            )

    async def cleanup_old_checkouts(self, max_age_hours: float) -> int:
        """
        Remove checkouts whose last-modified time exceeds max_age_hours.

        Checkouts with a clone in flight are skipped.

        Returns:
            Number of checkouts removed
        """
        loop = asyncio.get_running_loop()
        busy = {self.local_path(k) for k in self._in_flight}
        return await loop.run_in_executor(None, self._sweep, max_age_hours, busy)

    def _sweep(self, max_age_hours: float, busy: set) -> int:
        if not self.base_path.is_dir():
            return 0

        cutoff = time.time() - max_age_hours * 3600
        removed = 0
        for owner_dir in self.base_path.iterdir():
            if not owner_dir.is_dir():
                continue
            for checkout in owner_dir.iterdir():
                if not checkout.is_dir() or checkout in busy:
                    continue
                try:
                    if checkout.stat().st_mtime >= cutoff:
                        continue
                    shutil.rmtree(checkout)
                    removed += 1
                    self._completed.pop(RepositoryKey(owner_dir.name, checkout.name), None)
                except OSError as e:
                    logger.warning(f"Failed to remove old checkout {checkout}: {e}")

        if removed:
            logger.info(f"Removed {removed} checkout(s) older than {max_age_hours}h")
        return removed

    def __repr__(self) -> str:
        return f"CloneManager({self.base_path}, in_flight={len(self._in_flight)})"
