"""
Read-only inspection tools over a local checkout.

None of these tools modify the checkout. Problems such as a missing file,
a path outside the checkout or a search timeout are returned to the model as
text so the exploration can continue.
"""

import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from git import Repo, GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from .base import BaseToolHandler, ExplorationContext, ToolDefinition, ToolResponse, ToolCategory

logger = logging.getLogger(__name__)

OVERVIEW_DEPTH = 3
OUTPUT_CHAR_LIMIT = 10_000
LINE_WIDTH = 200
SEARCH_TIMEOUT_SECONDS = 5.0
SEARCH_EXCLUDES = ("dist", "node_modules", ".git")
TRUNCATION_NOTE = "\n\n[... output truncated to 10,000 characters ...]"


def truncate_output(text: str, limit: int = OUTPUT_CHAR_LIMIT) -> str:
    """Cap text at limit characters, noting the truncation."""
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_NOTE


def resolve_inside(repo_path: str, relative: str) -> Optional[Path]:
    """
    Resolve relative against repo_path.

    Returns:
        The resolved path, or None if it escapes the checkout
    """
    root = Path(repo_path).resolve()
    candidate = (root / relative.lstrip("/")).resolve()
    if candidate != root and root not in candidate.parents:
        return None
    return candidate


def render_tree(paths: Iterable[str], depth: int = OVERVIEW_DEPTH) -> str:
    """
    Render file paths as an indented tree, collapsing anything below depth.

    Directories cut off at the depth limit show how many files they hold.
    """
    root: Dict[str, Any] = {}
    for path in paths:
        node = root
        parts = [p for p in path.split("/") if p]
        for part in parts[:-1]:
            node = node.setdefault(part, {})
        if parts:
            node.setdefault(parts[-1], None)

    def count_files(node: Dict[str, Any]) -> int:
        return sum(1 if child is None else count_files(child) for child in node.values())

    lines: List[str] = ["."]

    def walk(node: Dict[str, Any], level: int):
        dirs = sorted(k for k, v in node.items() if v is not None)
        files = sorted(k for k, v in node.items() if v is None)
        indent = "  " * level
        for name in dirs:
            child = node[name]
            if level + 1 >= depth:
                lines.append(f"{indent}{name}/ ({count_files(child)} files)")
            else:
                lines.append(f"{indent}{name}/")
                walk(child, level + 1)
        for name in files:
            lines.append(f"{indent}{name}")

    walk(root, 0)
    return "\n".join(lines)


def list_checkout_files(repo_path: str) -> List[str]:
    """
    List tracked files of a checkout, falling back to a directory walk when
    the path is not a git repository.
    """
    try:
        repo = Repo(repo_path)
        output = repo.git.ls_tree("-r", "--name-only", "HEAD")
        return [line for line in output.splitlines() if line]
    except (InvalidGitRepositoryError, NoSuchPathError, GitCommandError, ValueError) as e:
        logger.debug(f"ls-tree unavailable for {repo_path} ({type(e).__name__}), walking directory")

    files = []
    for current, dirnames, filenames in os.walk(repo_path):
        dirnames[:] = [d for d in dirnames if d not in SEARCH_EXCLUDES]
        rel = os.path.relpath(current, repo_path)
        for filename in filenames:
            files.append(filename if rel == "." else f"{rel}/{filename}".replace(os.sep, "/"))
    return files


class RepoOverviewHandler(BaseToolHandler):
    """Tool to show the layout of the checkout"""

    @property
    def name(self) -> str:
        return "overview"

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.INSPECTION

    def get_definition(self, context: Optional[ExplorationContext] = None) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=(
                "Get a high-level view of the codebase architecture and structure. "
                "Use this to understand the project layout and identify where specific "
                "functionality might be located. Call this when you need to orient yourself "
                "in an unfamiliar codebase or locate which directories might contain relevant "
                "code. Don't call this if you already know which specific files you need."
            ),
            input_schema={"type": "object", "properties": {}},
            category=self.category
        )

    async def execute(self, input_data: Dict[str, Any], context: ExplorationContext) -> ToolResponse:
        """Execute: Render the repository tree"""
        if not os.path.isdir(context.repo_path):
            return self._success_response("Repository not cloned yet", metadata={"exists": False})

        try:
            loop = asyncio.get_running_loop()
            files = await loop.run_in_executor(None, list_checkout_files, context.repo_path)
        except OSError as e:
            return self._error_response(e)

        tree = render_tree(files, OVERVIEW_DEPTH)
        return self._success_response(truncate_output(tree), metadata={"files": len(files)})


class FileSummaryHandler(BaseToolHandler):
    """Tool to read the head of a file"""

    @property
    def name(self) -> str:
        return "inspect_file"

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.INSPECTION

    def get_definition(self, context: Optional[ExplorationContext] = None) -> ToolDefinition:
        lines = context.file_lines if context else 80
        return ToolDefinition(
            name=self.name,
            description=(
                "Get a summary of what a specific file contains and its role in the codebase. "
                "Use this when you have identified a potentially relevant file and need to "
                "understand what it exports and what its main responsibility is. "
                f"Only the first {lines} lines of the file will be returned. Call this with a "
                "hypothesis like 'This file probably handles user authentication'. "
                "Don't call this to browse random files."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "file_path": {
                        "type": "string",
                        "description": "Path to the file relative to the repository root"
                    },
                    "hypothesis": {
                        "type": "string",
                        "description": "What you think this file contains, based on its name/location"
                    }
                },
                "required": ["file_path"]
            },
            category=self.category
        )

    def validate_input(self, input_data: Dict[str, Any]) -> None:
        self._require_string(input_data, "file_path")

    async def execute(self, input_data: Dict[str, Any], context: ExplorationContext) -> ToolResponse:
        """Execute: Read the first lines of a file"""
        file_path = input_data["file_path"]
        full_path = resolve_inside(context.repo_path, file_path)
        if full_path is None:
            return self._success_response(
                f"Path outside repository: {file_path}",
                metadata={"error": True}
            )
        if not full_path.is_file():
            return self._success_response("File not found", metadata={"exists": False})

        try:
            head = []
            with open(full_path, "r", encoding="utf-8", errors="replace") as f:
                for line_number, line in enumerate(f):
                    if line_number >= context.file_lines:
                        break
                    line = line.rstrip("\n")
                    head.append(line[:LINE_WIDTH] + "..." if len(line) > LINE_WIDTH else line)
        except OSError as e:
            return self._error_response(e)

        return self._success_response("\n".join(head), metadata={"exists": True, "lines": len(head)})


class FulltextSearchHandler(BaseToolHandler):
    """Tool to search the checkout with ripgrep"""

    def __init__(self, timeout: float = SEARCH_TIMEOUT_SECONDS, rg_binary: str = "rg"):
        self.timeout = timeout
        self.rg_binary = rg_binary

    @property
    def name(self) -> str:
        return "search_text"

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.INSPECTION

    def get_definition(self, context: Optional[ExplorationContext] = None) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=(
                "Search the entire codebase for a specific term. Use this when you need to find "
                "a specific function, component, or file, or when the user provided specific "
                "text that might be present in the codebase. Don't call this if you do not have "
                "specific text to search for."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "The term to search for"
                    }
                },
                "required": ["query"]
            },
            category=self.category
        )

    def validate_input(self, input_data: Dict[str, Any]) -> None:
        self._require_string(input_data, "query")

    def build_command(self, query: str) -> List[str]:
        command = [self.rg_binary]
        for excluded in SEARCH_EXCLUDES:
            command.extend(["--glob", f"!{excluded}"])
        command.extend([
            "-C", "2",
            "-n",
            "--max-count", "10",
            "--max-columns", "200",
            "--", query, "./",
        ])
        return command

    async def execute(self, input_data: Dict[str, Any], context: ExplorationContext) -> ToolResponse:
        """Execute: Run a bounded ripgrep search"""
        query = input_data["query"]

        if not os.path.isdir(context.repo_path):
            return self._success_response("Repository not cloned yet", metadata={"exists": False})
        if shutil.which(self.rg_binary) is None:
            return self._success_response(
                "Search unavailable: ripgrep (rg) is not installed",
                metadata={"error": True}
            )

        process = await asyncio.create_subprocess_exec(
            *self.build_command(query),
            cwd=context.repo_path,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        try:
            output, truncated = await asyncio.wait_for(
                self._read_capped(process.stdout), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            await self._kill(process)
            return self._success_response(
                f"Search timed out after {self.timeout:.0f}s",
                metadata={"error": True, "timeout": True}
            )

        if truncated:
            await self._kill(process)
            return self._success_response(truncate_output(output), metadata={"truncated": True})

        stderr = await process.stderr.read()
        return_code = await process.wait()

        if return_code == 0:
            return self._success_response(output, metadata={"matches": True})
        if return_code == 1:
            return self._success_response(f'No matches found for "{query}"', metadata={"matches": False})
        return self._success_response(
            f"Error searching: rg exited with code {return_code}: {stderr.decode(errors='replace').strip()}",
            metadata={"error": True}
        )

    @staticmethod
    async def _read_capped(stream: asyncio.StreamReader):
        """Read until EOF or until the output cap is exceeded."""
        chunks = []
        size = 0
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                return b"".join(chunks).decode(errors="replace"), False
            chunks.append(chunk)
            size += len(chunk)
            if size > OUTPUT_CHAR_LIMIT:
                return b"".join(chunks).decode(errors="replace"), True

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process):
        if process.returncode is None:
            process.kill()
        await process.wait()
