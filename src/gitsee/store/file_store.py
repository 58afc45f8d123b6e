"""
File-backed result store.

Layout (one directory per repository under the data dir):

    <data_dir>/<owner>_<repo>-<hash>/snapshot.json
    <data_dir>/<owner>_<repo>-<hash>/exploration-<mode>.json

Directory names normalize non-alphanumeric characters and append a short
hash of the exact (owner, repo) pair, so two repositories never share a
directory. Records are never expired automatically; staleness is a read-time
query and deletion happens only through purge_older_than.
"""

import asyncio
import hashlib
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import StoreError
from ..models import (
    BasicDataSnapshot,
    ExplorationMode,
    ExplorationRecord,
    RepositoryKey,
    now_ms,
)

logger = logging.getLogger(__name__)

SNAPSHOT_FILE = "snapshot.json"
EXPLORATION_PREFIX = "exploration-"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def storage_dir_name(key: RepositoryKey) -> str:
    """Collision-resistant directory name for a repository."""
    digest = hashlib.sha1(f"{key.owner}\0{key.name}".encode("utf-8")).hexdigest()[:10]
    owner = _UNSAFE_CHARS.sub("_", key.owner)
    name = _UNSAFE_CHARS.sub("_", key.name)
    return f"{owner}_{name}-{digest}"


def is_record_fresh(record: Optional[ExplorationRecord], max_age_hours: float, now: Optional[int] = None) -> bool:
    """True when now minus the record timestamp is below the window."""
    if record is None:
        return False
    current = now_ms() if now is None else now
    return current - record.timestamp_ms < max_age_hours * 3600 * 1000


class ResultStore:
    """
    Durable store for BasicDataSnapshot and ExplorationRecord.

    All public methods are coroutines; file I/O runs in the default executor.
    Writes go to a temporary file first and are moved into place so readers
    never see a partially written document.
    """

    def __init__(self, data_dir: str):
        self.data_dir = Path(data_dir)
        logger.info(f"Initialized ResultStore (data dir: {self.data_dir})")

    def _repo_dir(self, key: RepositoryKey) -> Path:
        return self.data_dir / storage_dir_name(key)

    @staticmethod
    def _exploration_file(mode: ExplorationMode) -> str:
        return f"{EXPLORATION_PREFIX}{mode.value}.json"

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    # Snapshots

    async def put_snapshot(self, key: RepositoryKey, snapshot: BasicDataSnapshot) -> None:
        """
        Overwrite the snapshot of a repository.

        Raises:
            StoreError: If the snapshot cannot be written
        """
        path = self._repo_dir(key) / SNAPSHOT_FILE
        await self._run(self._write_json, path, snapshot.to_dict())
        logger.debug(f"Stored snapshot for {key}")

    async def get_snapshot(self, key: RepositoryKey) -> Optional[BasicDataSnapshot]:
        """Read the snapshot of a repository, or None if absent or unreadable."""
        path = self._repo_dir(key) / SNAPSHOT_FILE
        data = await self._run(self._read_json, path)
        if data is None:
            return None
        try:
            return BasicDataSnapshot.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring malformed snapshot for {key}: {e}")
            return None

    # Explorations

    async def put_exploration(
        self,
        key: RepositoryKey,
        mode: ExplorationMode,
        result: Any,
        timestamp_ms: Optional[int] = None,
    ) -> ExplorationRecord:
        """
        Store (replace) the exploration result for (key, mode).

        Raises:
            StoreError: If the record cannot be written
        """
        record = ExplorationRecord(
            mode=mode,
            result=result,
            timestamp_ms=now_ms() if timestamp_ms is None else timestamp_ms,
            owner=key.owner,
            repo=key.name,
        )
        path = self._repo_dir(key) / self._exploration_file(mode)
        await self._run(self._write_json, path, record.to_dict())
        logger.info(f"Stored {mode.value} exploration for {key}")
        return record

    async def get_exploration(
        self,
        key: RepositoryKey,
        mode: ExplorationMode,
    ) -> Optional[ExplorationRecord]:
        """Read the exploration record for (key, mode), or None."""
        path = self._repo_dir(key) / self._exploration_file(mode)
        data = await self._run(self._read_json, path)
        if data is None:
            return None
        try:
            return ExplorationRecord.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring malformed {mode.value} exploration for {key}: {e}")
            return None

    async def is_fresh(
        self,
        key: RepositoryKey,
        mode: ExplorationMode,
        max_age_hours: float,
        now: Optional[int] = None,
    ) -> bool:
        """Whether a stored exploration exists and is younger than max_age_hours."""
        record = await self.get_exploration(key, mode)
        return is_record_fresh(record, max_age_hours, now)

    # Maintenance

    async def list_repositories(self) -> List[Dict[str, Any]]:
        """
        List known repositories with their stored modes.

        Returns:
            List of {owner, repo, modes, lastExploration, hasSnapshot}, most
            recently explored first
        """
        return await self._run(self._scan)

    async def purge_older_than(self, max_age_hours: float) -> int:
        """
        Delete exploration records of repositories whose newest exploration
        predates the cutoff. Snapshots are kept.

        Returns:
            Number of exploration files deleted
        """
        return await self._run(self._purge, max_age_hours)

    def _scan(self) -> List[Dict[str, Any]]:
        if not self.data_dir.is_dir():
            return []

        repositories = []
        for repo_dir in sorted(self.data_dir.iterdir()):
            if not repo_dir.is_dir():
                continue
            entry = self._describe(repo_dir)
            if entry is not None:
                repositories.append(entry)

        repositories.sort(key=lambda r: r["lastExploration"] or 0, reverse=True)
        return repositories

    def _describe(self, repo_dir: Path) -> Optional[Dict[str, Any]]:
        owner = repo = None
        modes = []
        latest = None

        for path in sorted(repo_dir.glob(f"{EXPLORATION_PREFIX}*.json")):
            data = self._read_json(path)
            if not data:
                continue
            owner, repo = data.get("owner", owner), data.get("repo", repo)
            modes.append(data.get("mode"))
            timestamp = data.get("timestamp")
            if isinstance(timestamp, (int, float)) and (latest is None or timestamp > latest):
                latest = int(timestamp)

        snapshot = self._read_json(repo_dir / SNAPSHOT_FILE)
        if snapshot:
            owner = owner or snapshot.get("owner")
            repo = repo or snapshot.get("repoName")

        if not owner or not repo:
            return None

        return {
            "owner": owner,
            "repo": repo,
            "modes": modes,
            "lastExploration": latest,
            "hasSnapshot": snapshot is not None,
        }

    def _purge(self, max_age_hours: float) -> int:
        if not self.data_dir.is_dir():
            return 0

        cutoff = now_ms() - max_age_hours * 3600 * 1000
        deleted = 0
        for repo_dir in self.data_dir.iterdir():
            if not repo_dir.is_dir():
                continue
            files = list(repo_dir.glob(f"{EXPLORATION_PREFIX}*.json"))
            timestamps = [
                (self._read_json(f) or {}).get("timestamp") for f in files
            ]
            timestamps = [t for t in timestamps if isinstance(t, (int, float))]
            if not files or (timestamps and max(timestamps) >= cutoff):
                continue
            for f in files:
                try:
                    f.unlink()
                    deleted += 1
                except OSError as e:
                    logger.warning(f"Failed to delete {f}: {e}")

        if deleted:
            logger.info(f"Purged {deleted} exploration record(s) older than {max_age_hours}h")
        return deleted

    # File helpers

    @staticmethod
    def _read_json(path: Path) -> Optional[Dict[str, Any]]:
        if not path.is_file():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to read {path}: {e}")
            return None
        return data if isinstance(data, dict) else None

    @staticmethod
    def _write_json(path: Path, data: Dict[str, Any]) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, default=str)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to write {path}: {e}")
            raise StoreError(f"Failed to write {path.name}: {e}") from e
