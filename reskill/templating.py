"""
Prompt template rendering with asynchronous context directives.

Templates are Jinja2 markdown files. Besides ordinary variable interpolation
they may call two directives:

    {{ context("src/core") }}     pack a file or a whole directory tree
    {{ read("a.md, b.md") }}      inline one or more files verbatim

Jinja renders synchronously, so directives cannot do their I/O inline.
Rendering is therefore split in two phases:

1. ``render()`` expands the template. Every directive call returns a unique
   placeholder token and schedules its I/O as an asyncio task.
2. ``resolve_all()`` awaits all scheduled tasks and swaps each token for its
   value. A directive that fails is replaced by a readable error marker and
   never affects the others.

Usage:
    renderer = TemplateRenderer(cwd=Path("."))
    path = renderer.locate("agents/auditor")
    text = await renderer.render_file(path, {"module_path": "src/foo"})
"""

import uuid
import asyncio
import logging
from pathlib import Path
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from jinja2 import Environment, FileSystemLoader

from .errors import TemplateNotFoundError, TemplateRenderError
from .utils import (
    get_default_filesystem_root,
    get_prompt_search_paths,
    list_files_with_gitignore,
)

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "__RESKILL_ASYNC_"

PendingDirectives = Dict[str, "asyncio.Future[str]"]


def normalize_variables(variables: Mapping) -> Dict[str, Any]:
    """Return a copy of variables with constitution.patterns always a list."""
    normalized = dict(variables)
    constitution = normalized.get("constitution")
    if isinstance(constitution, Mapping):
        patterns = constitution.get("patterns")
        if patterns is not None and not isinstance(patterns, (list, tuple)):
            normalized["constitution"] = {**constitution, "patterns": [patterns]}
    return normalized


# ---------------------------------------------------------------------------
# Directive I/O
# ---------------------------------------------------------------------------


def _resolve(cwd: Path, raw_path: str) -> Path:
    path = Path(raw_path).expanduser()
    return path if path.is_absolute() else cwd / path


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")


def pack_directory(directory: Path) -> str:
    """Concatenate every non-ignored file under directory into one text blob."""
    blocks = []
    for rel_path in list_files_with_gitignore(directory):
        content = _read_text(directory / rel_path)
        blocks.append(f'<file path="{rel_path}">\n{content}\n</file>')
    return "\n".join(blocks)


def _build_context(cwd: Path, raw_path: str) -> str:
    # A blank path would resolve to cwd and pack the whole working tree
    if not raw_path.strip():
        return f"[Path not found: {raw_path}]"

    target = _resolve(cwd, raw_path)
    if not target.exists():
        return f"[Path not found: {raw_path}]"

    try:
        if target.is_dir():
            logger.info(f"Analyzing codebase at: {raw_path}")
            content = pack_directory(target)
        else:
            content = _read_text(target)
    except (OSError, ValueError) as e:
        logger.debug(f"context({raw_path}) failed: {e}")
        return f"[Error generating context for {raw_path}]"

    return f'<CODEBASE_CONTEXT path="{raw_path}">\n{content}\n</CODEBASE_CONTEXT>'


def _split_paths(paths: Union[str, Sequence[str], None]) -> List[str]:
    if paths is None:
        return []
    if isinstance(paths, str):
        paths = paths.split(",")
    return [str(p).strip() for p in paths if p is not None and str(p).strip()]


def _read_files(cwd: Path, paths: Union[str, Sequence[str], None]) -> str:
    results = []
    for raw_path in _split_paths(paths):
        target = _resolve(cwd, raw_path)
        if not target.exists():
            results.append(f"[File not found: {raw_path}]")
            continue
        try:
            results.append(_read_text(target))
        except (OSError, ValueError) as e:
            logger.debug(f"read({raw_path}) failed: {e}")
            results.append(f"[Error reading file {raw_path}]")
    return "\n\n".join(results)


async def build_context(cwd: Path, raw_path: str) -> str:
    return await asyncio.to_thread(_build_context, cwd, raw_path)


async def read_files(cwd: Path, paths: Union[str, Sequence[str], None]) -> str:
    return await asyncio.to_thread(_read_files, cwd, paths)


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------


class TemplateRenderer:
    """Locates prompt templates and renders them into literal prompt text."""

    def __init__(
        self,
        cwd: Optional[Union[str, Path]] = None,
        search_paths: Optional[Sequence[Union[str, Path]]] = None,
    ):
        """
        Args:
            cwd: Directory that relative directive paths resolve against.
                Defaults to the current working directory.
            search_paths: Template directories in priority order. Defaults to
                user overrides, bundled prompts, then initialized prompts.
        """
        self.cwd = Path(cwd) if cwd else get_default_filesystem_root()
        if search_paths is None:
            search_paths = get_prompt_search_paths(self.cwd)
        self.search_paths = [Path(p) for p in search_paths]

    def locate(
        self,
        template_name: str,
        search_paths: Optional[Sequence[Union[str, Path]]] = None,
    ) -> Path:
        """Return the first existing '<template_name>.md' across the search paths.

        Raises:
            TemplateNotFoundError: If no search path holds the template.
        """
        file_name = template_name if template_name.endswith(".md") else f"{template_name}.md"
        dirs = [Path(p) for p in search_paths] if search_paths is not None else self.search_paths

        tried = []
        for index, directory in enumerate(dirs):
            candidate = directory / file_name
            if candidate.is_file():
                if index == 0 and search_paths is None:
                    logger.info(f"Using user override: {candidate}")
                return candidate
            tried.append(candidate)

        raise TemplateNotFoundError(template_name, tried)

    def _build_environment(
        self, pending: PendingDirectives, loader_dir: Optional[Path]
    ) -> Environment:
        loop = asyncio.get_running_loop()

        def schedule(coro) -> str:
            token = f"{TOKEN_PREFIX}{uuid.uuid4().hex}__"
            pending[token] = loop.create_task(coro)
            return token

        env = Environment(
            loader=FileSystemLoader(str(loader_dir)) if loader_dir else None,
            # Prompts are markdown; escaping would corrupt code samples
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        env.globals["context"] = lambda path: schedule(build_context(self.cwd, str(path)))
        env.globals["read"] = lambda paths: schedule(read_files(self.cwd, paths))
        return env

    def render(
        self,
        template_source: str,
        variables: Mapping,
        loader_dir: Optional[Path] = None,
    ) -> Tuple[str, PendingDirectives]:
        """Expand a template, returning text with placeholder tokens and their pending tasks.

        Must be called while an event loop is running, since directive I/O is
        scheduled on it.

        Raises:
            TemplateRenderError: If the template is malformed or fails to evaluate.
        """
        pending: PendingDirectives = {}
        env = self._build_environment(pending, loader_dir)
        try:
            template = env.from_string(template_source)
            rendered = template.render(normalize_variables(variables))
        except Exception as e:
            for task in pending.values():
                task.cancel()
            raise TemplateRenderError(str(e)) from e
        return rendered, pending

    async def resolve_all(self, rendered_text: str, pending: PendingDirectives) -> str:
        """Await every pending directive and substitute its value for its token."""
        if not pending:
            return rendered_text

        tokens = list(pending)
        results = await asyncio.gather(*(pending[t] for t in tokens), return_exceptions=True)

        for token, result in zip(tokens, results):
            if isinstance(result, BaseException):
                logger.debug(f"Directive {token} failed: {result!r}")
                result = f"[Error resolving {token}]"
            rendered_text = rendered_text.replace(token, result)
        return rendered_text

    async def render_file(self, template_path: Union[str, Path], variables: Mapping) -> str:
        """Render a template file and resolve all of its directives."""
        template_path = Path(template_path)
        source = template_path.read_text(encoding="utf-8")
        rendered, pending = self.render(source, variables, loader_dir=template_path.parent)
        return await self.resolve_all(rendered, pending)
