"""
Core data types shared across GitSee components.

Repository identity, clone options and outcomes, exploration modes and the
persisted record shapes all live here so the clone manager, store, broadcaster
and orchestrator agree on one vocabulary.
"""

import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, Optional


SCHEMA_VERSION = "1.0.0"


def now_ms() -> int:
    """Wall-clock time in milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RepositoryKey:
    """Case-sensitive (owner, name) identity of a repository."""
    owner: str
    name: str

    def __str__(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True)
class CloneOptions:
    """Options for a single clone operation."""
    branch: Optional[str] = None
    username: Optional[str] = None
    token: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["CloneOptions"]:
        if not data:
            return None
        return cls(
            branch=data.get("branch"),
            username=data.get("username"),
            token=data.get("token"),
        )


@dataclass(frozen=True)
class CloneOutcome:
    """Result of one clone attempt. Immutable once produced."""
    success: bool
    local_path: str
    error: Optional[str] = None
    duration_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "localPath": self.local_path,
            "error": self.error,
            "durationMs": self.duration_ms,
        }


class CloneStatus(Enum):
    """Non-blocking view of a checkout's state."""
    NOT_STARTED = "not_started"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class ExplorationMode(Enum):
    """Exploration variants; each is an independent cache entry."""
    GENERIC = "generic"
    FIRST_PASS = "first_pass"
    FEATURES = "features"
    SERVICES = "services"

    @classmethod
    def parse(cls, value: Any, default: "ExplorationMode") -> "ExplorationMode":
        if value is None or value == "":
            return default
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            raise ValueError(
                f"Unknown exploration mode: {value}. "
                f"Supported: {', '.join(m.value for m in cls)}"
            )


@dataclass
class ExplorationRecord:
    """Stored exploration result for one (repository, mode)."""
    mode: ExplorationMode
    result: Any  # dict payload or raw text
    timestamp_ms: int
    owner: str
    repo: str
    schema_version: str = SCHEMA_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "result": self.result,
            "timestamp": self.timestamp_ms,
            "owner": self.owner,
            "repo": self.repo,
            "version": self.schema_version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExplorationRecord":
        return cls(
            mode=ExplorationMode(data["mode"]),
            result=data.get("result"),
            timestamp_ms=int(data["timestamp"]),
            owner=data["owner"],
            repo=data["repo"],
            schema_version=data.get("version", SCHEMA_VERSION),
        )


@dataclass
class BasicDataSnapshot:
    """Aggregate of the cheap REST results for a repository."""
    owner: str
    repo: str
    repo_info: Any = None
    contributors: Any = None
    files: Any = None
    stats: Any = None
    icon: Any = None
    timestamp_ms: int = field(default_factory=now_ms)
    schema_version: str = SCHEMA_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repo": self.repo_info,
            "contributors": self.contributors,
            "files": self.files,
            "stats": self.stats,
            "icon": self.icon,
            "timestamp": self.timestamp_ms,
            "owner": self.owner,
            "repoName": self.repo,
            "version": self.schema_version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BasicDataSnapshot":
        return cls(
            owner=data["owner"],
            repo=data["repoName"],
            repo_info=data.get("repo"),
            contributors=data.get("contributors"),
            files=data.get("files"),
            stats=data.get("stats"),
            icon=data.get("icon"),
            timestamp_ms=int(data.get("timestamp", 0)),
            schema_version=data.get("version", SCHEMA_VERSION),
        )


@dataclass
class FirstPassSummary:
    """Structured answer of the first_pass mode."""
    summary: str
    key_files: list = field(default_factory=list)
    infrastructure: list = field(default_factory=list)
    dependencies: list = field(default_factory=list)
    user_stories: list = field(default_factory=list)
    pages: list = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class FeaturesSummary:
    """Structured answer of the features mode."""
    summary: str
    key_files: list = field(default_factory=list)
    features: list = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
