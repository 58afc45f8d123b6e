"""
RequestOrchestrator - Per-request coordination of cache, clone, exploration
and event publication.

The synchronous response is built only from the snapshot store and the cheap
REST items, unless the caller explicitly asks for an exploration result
inline. Everything else (cloning, the default-mode exploration, replaying
cached results to late stream subscribers) runs as supervised background
tasks and is observed through the event stream.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .agent import ExplorationLoop, StepRecord
from .errors import (
    ExplorationError,
    StoreError,
    SubscriberTimeoutError,
    ValidationError,
    format_error_concise,
)
from .events import EventBroadcaster
from .github import RepositoryResources
from .logging_config import scrub_credentials
from .models import (
    BasicDataSnapshot,
    CloneOptions,
    CloneOutcome,
    CloneStatus,
    ExplorationMode,
    RepositoryKey,
)
from .repository import CloneManager
from .store import ResultStore, is_record_fresh
from .utils import TaskSupervisor

logger = logging.getLogger(__name__)

DATA_TYPES = (
    "repo_info",
    "contributors",
    "icon",
    "commits",
    "branches",
    "files",
    "stats",
    "file_content",
    "exploration",
)

BACKGROUND_MODE = ExplorationMode.FIRST_PASS
INLINE_DEFAULT_MODE = ExplorationMode.FEATURES
CLONE_FAILED_MESSAGE = "Repository clone failed"
NOT_ACCESSIBLE_MESSAGE = "Repository not accessible for exploration"


@dataclass
class GitSeeRequest:
    """A parsed POST /api/gitsee body"""
    owner: str
    repo: str
    data: List[str]
    file_path: Optional[str] = None
    exploration_mode: Optional[ExplorationMode] = None
    exploration_prompt: Optional[str] = None
    clone_options: Optional[CloneOptions] = field(default=None, repr=False)
    use_cache: bool = True

    @property
    def key(self) -> RepositoryKey:
        return RepositoryKey(self.owner, self.repo)

    @classmethod
    def from_dict(cls, body: Any) -> "GitSeeRequest":
        """
        Validate and parse a request body.

        Raises:
            ValidationError: If required fields are missing or malformed
        """
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object")

        owner, repo = body.get("owner"), body.get("repo")
        if not isinstance(owner, str) or not owner.strip() or not isinstance(repo, str) or not repo.strip():
            raise ValidationError("Owner and repo are required")

        data = body.get("data")
        if not isinstance(data, list) or not data:
            raise ValidationError("Data array is required and must not be empty")

        try:
            mode = ExplorationMode.parse(body.get("explorationMode"), default=None)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        clone_options = body.get("cloneOptions")
        if clone_options is not None and not isinstance(clone_options, dict):
            raise ValidationError("cloneOptions must be an object")

        file_path = body.get("filePath")
        prompt = body.get("explorationPrompt")
        return cls(
            owner=owner.strip(),
            repo=repo.strip(),
            data=[str(item) for item in data],
            file_path=file_path if isinstance(file_path, str) and file_path else None,
            exploration_mode=mode,
            exploration_prompt=prompt if isinstance(prompt, str) and prompt else None,
            clone_options=CloneOptions.from_dict(clone_options),
            use_cache=body.get("useCache") is not False,
        )


class RequestOrchestrator:
    """
    Decides, per request, the fastest correct response.

    Responsibilities:
    1. Short-circuit from the snapshot store when caching is allowed
    2. Start the background clone and default-mode exploration
    3. Fetch the requested cheap items, each independently failure-tolerant
    4. Run an exploration inline when explicitly requested
    5. Persist the snapshot gathered by this request
    """

    def __init__(
        self,
        store: ResultStore,
        clone_manager: CloneManager,
        broadcaster: EventBroadcaster,
        explorer: ExplorationLoop,
        supervisor: TaskSupervisor,
        resources: RepositoryResources,
        resources_for_token: Optional[Callable[[str], RepositoryResources]] = None,
        staleness_hours: float = 24.0,
        subscriber_wait_seconds: float = 10.0,
    ):
        self.store = store
        self.clone_manager = clone_manager
        self.broadcaster = broadcaster
        self.explorer = explorer
        self.supervisor = supervisor
        self.resources = resources
        self.resources_for_token = resources_for_token
        self.staleness_hours = staleness_hours
        self.subscriber_wait_seconds = subscriber_wait_seconds

    async def process(self, request: GitSeeRequest) -> Dict[str, Any]:
        """
        Handle one request.

        Returns:
            Response dict with one field per requested item that produced data
        """
        key = request.key
        # Rejects owner/repo values that cannot name a checkout directory
        try:
            self.clone_manager.local_path(key)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        if request.use_cache:
            cached = await self._respond_from_snapshot(key)
            if cached is not None:
                return cached
            logger.info(f"No cached data found for {key}, fetching fresh")
        else:
            logger.info(f"useCache=false, fetching fresh data for {key}")

        self._start_background_work(key, request.clone_options)

        logger.info(f"Processing request for {key} with data: [{', '.join(request.data)}]")
        response: Dict[str, Any] = {}
        resources = self._resources_for(request.clone_options)
        if not request.use_cache:
            resources.invalidate(key.owner, key.name)
        try:
            for data_type in request.data:
                try:
                    await self._fetch_item(data_type, request, resources, response)
                except Exception as e:
                    logger.error(f"Error processing {data_type} for {key}: {format_error_concise(e)}")
        finally:
            if resources is not self.resources:
                await resources.aclose()

        snapshot = BasicDataSnapshot(
            owner=key.owner,
            repo=key.name,
            repo_info=response.get("repo"),
            contributors=response.get("contributors"),
            files=response.get("files"),
            stats=response.get("stats"),
            icon=response.get("icon"),
        )
        try:
            await self.store.put_snapshot(key, snapshot)
        except StoreError as e:
            logger.error(f"Could not persist snapshot for {key}: {e}")

        return response

    # ------------------------------------------------------------------
    # Cached path
    # ------------------------------------------------------------------

    async def _respond_from_snapshot(self, key: RepositoryKey) -> Optional[Dict[str, Any]]:
        snapshot = await self.store.get_snapshot(key)
        if snapshot is None:
            return None

        logger.info(f"Using cached data for {key}")
        record = await self.store.get_exploration(key, BACKGROUND_MODE)
        exploration = None
        if is_record_fresh(record, self.staleness_hours):
            exploration = record.result
            self._schedule_replay(key, BACKGROUND_MODE, record.result)

        return {
            "repo": snapshot.repo_info,
            "contributors": snapshot.contributors,
            "icon": snapshot.icon,
            "files": snapshot.files,
            "stats": snapshot.stats,
            "exploration": exploration,
        }

    def _schedule_replay(self, key: RepositoryKey, mode: ExplorationMode, result: Any) -> None:
        self.supervisor.spawn(
            self._replay_when_subscribed(key, mode, result),
            name=f"replay:{key}:{mode.value}",
        )

    async def _replay_when_subscribed(self, key: RepositoryKey, mode: ExplorationMode, result: Any) -> None:
        """Publish a stored result once a stream client is listening, or after the wait window"""
        try:
            await self.broadcaster.wait_for_first_subscriber(key, self.subscriber_wait_seconds)
        except SubscriberTimeoutError:
            logger.warning(f"Timeout waiting for a subscriber, emitting cached {mode.value} anyway for {key}")
        self.broadcaster.exploration_completed(key, mode, result)

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    def _start_background_work(self, key: RepositoryKey, options: Optional[CloneOptions]) -> None:
        logger.info(f"Starting background clone for {key}")
        self.broadcaster.clone_started(key)
        self.clone_manager.start_in_background(key, options)

        def on_failure(error: BaseException) -> None:
            self.broadcaster.exploration_failed(key, BACKGROUND_MODE, format_error_concise(error))

        self.supervisor.spawn(
            self._background_pipeline(key, options),
            name=f"explore:{key}:{BACKGROUND_MODE.value}",
            on_failure=on_failure,
        )

    async def _background_pipeline(self, key: RepositoryKey, options: Optional[CloneOptions]) -> None:
        """
        Report the clone, then either replay a fresh stored exploration or
        run a new one.
        """
        mode = BACKGROUND_MODE
        record = await self.store.get_exploration(key, mode)
        outcome = await self._await_clone(key, options)
        self.broadcaster.clone_completed(key, outcome)

        if is_record_fresh(record, self.staleness_hours):
            logger.info(f"Recent {mode.value} exploration found for {key}, replaying cached result")
            self._schedule_replay(key, mode, record.result)
            return

        if not outcome.success:
            logger.error(f"Repository clone failed for background exploration: {key}")
            self.broadcaster.exploration_failed(key, mode, CLONE_FAILED_MESSAGE)
            return

        logger.info(f"Auto-starting {mode.value} exploration for {key}")
        self.broadcaster.exploration_started(key, mode)
        self.broadcaster.exploration_progress(key, mode, "Running AI analysis...")

        result = await self._explore(key, mode, outcome.local_path)
        stored = await self.store.put_exploration(key, mode, result)
        logger.info(f"Background {mode.value} exploration completed for {key}")
        self.broadcaster.exploration_completed(key, mode, stored.result)

    async def _await_clone(self, key: RepositoryKey, options: Optional[CloneOptions]) -> CloneOutcome:
        """
        Outcome of the clone this request started.

        A clone that already finished (successfully or not) is reported as is
        rather than attempted again.
        """
        status, outcome = self.clone_manager.get_outcome_if_available(key)
        if status in (CloneStatus.DONE, CloneStatus.FAILED):
            return outcome
        return await self.clone_manager.ensure_cloned(key, options)

    async def _explore(
        self,
        key: RepositoryKey,
        mode: ExplorationMode,
        local_path: str,
        prompt: Optional[str] = None,
    ) -> Any:
        """
        Run the exploration loop.

        Raises:
            ExplorationError: If the loop terminated in the error state
        """
        def on_step(step: StepRecord) -> None:
            self.broadcaster.exploration_progress(key, mode, step.describe())

        outcome = await self.explorer.explore(local_path, mode, prompt=prompt, on_step=on_step)
        if not outcome.succeeded:
            raise ExplorationError(outcome.error or f"{mode.value} exploration produced no answer")
        return outcome.result

    # ------------------------------------------------------------------
    # Synchronous items
    # ------------------------------------------------------------------

    def _resources_for(self, options: Optional[CloneOptions]) -> RepositoryResources:
        if options and options.token and self.resources_for_token is not None:
            return self.resources_for_token(options.token)
        return self.resources

    async def _fetch_item(
        self,
        data_type: str,
        request: GitSeeRequest,
        resources: RepositoryResources,
        response: Dict[str, Any],
    ) -> None:
        owner, repo = request.owner, request.repo

        if data_type == "repo_info":
            response["repo"] = await resources.get_repo_info(owner, repo)
        elif data_type == "contributors":
            response["contributors"] = await resources.get_contributors(owner, repo)
            logger.info(f"Contributors result: {len(response['contributors'] or [])} found")
        elif data_type == "icon":
            response["icon"] = await resources.get_icon(owner, repo)
        elif data_type == "commits":
            response["commits"] = await resources.get_commits(owner, repo)
        elif data_type == "branches":
            response["branches"] = await resources.get_branches(owner, repo)
        elif data_type == "files":
            response["files"] = await resources.get_key_files(owner, repo)
        elif data_type == "stats":
            response["stats"] = await resources.get_stats(owner, repo)
        elif data_type == "file_content":
            if not request.file_path:
                logger.warning("File content requested but no filePath provided")
                return
            response["fileContent"] = await resources.get_file_content(owner, repo, request.file_path)
        elif data_type == "exploration":
            response["exploration"] = await self._inline_exploration(request)
        else:
            logger.warning(f"Unknown data type: {data_type} (supported: {', '.join(DATA_TYPES)})")

    async def _inline_exploration(self, request: GitSeeRequest) -> Any:
        """
        Exploration result on the synchronous path.

        Failures are returned as {"error": ...} rather than raised.
        """
        key = request.key
        mode = request.exploration_mode or INLINE_DEFAULT_MODE

        record = await self.store.get_exploration(key, mode)
        if is_record_fresh(record, self.staleness_hours):
            logger.info(f"Using cached {mode.value} exploration for {key}")
            self.broadcaster.exploration_completed(key, mode, record.result)
            return record.result

        logger.info(f"Running {mode.value} exploration inline for {key}")
        outcome = await self._await_clone(key, request.clone_options)
        if not outcome.success:
            logger.error(f"Repository clone failed or not available for {key}")
            return {"error": NOT_ACCESSIBLE_MESSAGE}

        try:
            result = await self._explore(key, mode, outcome.local_path, prompt=request.exploration_prompt)
        except ExplorationError as e:
            logger.error(f"Failed to run {mode.value} exploration for {key}: {e}")
            return {"error": f"Exploration failed: {scrub_credentials(str(e))}"}

        try:
            await self.store.put_exploration(key, mode, result)
        except StoreError as e:
            logger.error(f"Could not persist {mode.value} exploration for {key}: {e}")

        self.broadcaster.exploration_completed(key, mode, result)
        logger.info(f"{mode.value} exploration completed and cached for {key}")
        return result
