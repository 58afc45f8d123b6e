"""
Main entry point for GitSee - repository exploration service.

create_app() is the composition root: it builds the single broadcaster,
clone manager, result store, exploration loop, task supervisor and REST
resources, and wires them into the request orchestrator.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from .agent import ExplorationLoop
from .config import GitSeeSettings
from .errors import ErrorFormatter, ValidationError, format_error_concise
from .events import EventBroadcaster, event_stream
from .github import GitHubClient, GitHubConfig, RepositoryResources
from .llm import ILLMProvider, create_llm_provider
from .models import RepositoryKey
from .orchestrator import GitSeeRequest, RequestOrchestrator
from .repository import CloneManager, CloneTransport
from .store import ResultStore
from .tools import create_default_tool_executor
from .utils import MemoryCache, TaskSupervisor

logger = logging.getLogger(__name__)

SHUTDOWN_DRAIN_SECONDS = 30.0


def create_app(
    settings: Optional[GitSeeSettings] = None,
    llm_provider: Optional[ILLMProvider] = None,
    clone_transport: Optional[CloneTransport] = None,
    github_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Runtime settings (defaults to GitSeeSettings.from_env())
        llm_provider: Model adapter (defaults to create_llm_provider() from settings)
        clone_transport: Clone transport (defaults to GitPython)
        github_transport: httpx transport for GitHub calls (tests use MockTransport)

    Returns:
        Configured FastAPI app; components are available on app.state
    """
    settings = settings or GitSeeSettings.from_env()

    if llm_provider is None:
        llm_provider = create_llm_provider(
            provider_type=settings.llm_provider,
            model_id=settings.llm_model_id,
            api_key=settings.llm_api_key,
        )

    broadcaster = EventBroadcaster()
    supervisor = TaskSupervisor()
    clone_manager = CloneManager(settings.base_path, transport=clone_transport)
    store = ResultStore(settings.data_dir)
    explorer = ExplorationLoop(
        llm_provider=llm_provider,
        tool_executor=create_default_tool_executor(),
        max_steps=settings.max_steps,
    )
    cache = MemoryCache(ttl_seconds=settings.cache_ttl_seconds)
    resources = RepositoryResources(
        GitHubClient(GitHubConfig(token=settings.github_token), transport=github_transport),
        cache,
    )

    def resources_for_token(token: str) -> RepositoryResources:
        return RepositoryResources(GitHubClient(GitHubConfig(token=token), transport=github_transport), cache)

    orchestrator = RequestOrchestrator(
        store=store,
        clone_manager=clone_manager,
        broadcaster=broadcaster,
        explorer=explorer,
        supervisor=supervisor,
        resources=resources,
        resources_for_token=resources_for_token,
        staleness_hours=settings.staleness_hours,
        subscriber_wait_seconds=settings.subscriber_wait_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.checkout_max_age_hours is not None:
            removed = await clone_manager.cleanup_old_checkouts(settings.checkout_max_age_hours)
            logger.info(f"Removed {removed} idle checkout(s)")
        if settings.purge_after_hours is not None:
            purged = await store.purge_older_than(settings.purge_after_hours)
            logger.info(f"Purged {purged} stale exploration record(s)")
        yield
        await supervisor.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
        await resources.aclose()

    app = FastAPI(title="GitSee - Repository Exploration Service", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.broadcaster = broadcaster
    app.state.supervisor = supervisor
    app.state.clone_manager = clone_manager
    app.state.store = store
    app.state.explorer = explorer
    app.state.resources = resources
    app.state.orchestrator = orchestrator

    @app.post("/api/gitsee")
    async def gitsee(request: Request):
        """
        Repository data endpoint.

        Returns the requested items; exploration progress is pushed over the
        event stream.
        """
        try:
            body = await request.json()
        except ValueError:  # JSONDecodeError or UnicodeDecodeError
            return JSONResponse(status_code=400, content={"error": "Invalid JSON body"})

        try:
            parsed = GitSeeRequest.from_dict(body)
            response = await orchestrator.process(parsed)
        except ValidationError as e:
            logger.warning(f"Rejected request: {e}")
            return JSONResponse(status_code=400, content=ErrorFormatter.format_error_body(e))
        except Exception as e:
            logger.error(f"GitSee handler error: {format_error_concise(e)}", exc_info=True)
            return JSONResponse(status_code=500, content=ErrorFormatter.format_error_body(e))

        return JSONResponse(content=response)

    @app.get("/api/gitsee/events/{owner}/{repo}")
    async def events(owner: str, repo: str, request: Request):
        """Server-sent event stream of lifecycle events for one repository"""
        key = RepositoryKey(owner, repo)
        try:
            clone_manager.local_path(key)
        except ValueError as e:
            return JSONResponse(status_code=400, content=ErrorFormatter.format_error_body(e))

        return StreamingResponse(
            event_stream(
                broadcaster,
                key,
                heartbeat_seconds=settings.heartbeat_seconds,
                is_disconnected=request.is_disconnected,
            ),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @app.get("/api/gitsee/repos")
    async def repositories():
        """Repositories with stored explorations"""
        return {"repositories": await store.list_repositories()}

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "gitsee",
            "backgroundTasks": supervisor.pending,
            "cache": cache.get_stats(),
        }

    @app.get("/")
    async def root():
        """Root endpoint with service info"""
        return {
            "name": "GitSee",
            "description": "GitHub repository exploration with background AI analysis",
            "version": "v0.1.0",
            "endpoints": [
                "POST /api/gitsee",
                "GET /api/gitsee/events/{owner}/{repo}",
                "GET /api/gitsee/repos",
                "GET /health",
            ],
        }

    return app
