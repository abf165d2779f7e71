import os
import logging
import platform
from pathlib import Path
from typing import Any, List, Optional, Tuple

import pathspec
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Bundled prompt templates shipped with the package
PACKAGE_PROMPTS_DIR = Path(__file__).parent / "prompts"


def get_app_data_dir() -> Path:
    """Determine OS-specific application data directory for Reskill."""
    system = platform.system()
    user_home = Path.home()

    if system == "Windows":
        root = user_home / "AppData" / "Local" / "Reskill"
    elif system == "Darwin":
        root = user_home / "Library" / "Application Support" / "Reskill"
    else:  # Linux and others
        root = user_home / ".local" / "share" / "reskill"

    return root


def load_all_dotenv():
    """Load .env from current directory and global app data directory."""
    load_dotenv()
    global_env = get_app_data_dir() / ".env"
    if global_env.exists():
        load_dotenv(dotenv_path=global_env, override=False)


def get_default_filesystem_root() -> Path:
    """Return the current working directory as the default filesystem root."""
    return Path(os.getcwd()).resolve()


def get_prompt_search_paths(root: Optional[Path] = None) -> List[Path]:
    """Directories searched for prompt templates, highest priority first.

    1. <root>/.agent/prompts   user overrides
    2. package prompts         bundled defaults
    3. <root>/.reskill/prompts prompts copied in by `init`
    """
    root = Path(root) if root else get_default_filesystem_root()
    return [
        root / ".agent" / "prompts",
        PACKAGE_PROMPTS_DIR,
        root / ".reskill" / "prompts",
    ]


# ---------------------------------------------------------------------------
# Gitignore-aware directory walking
# ---------------------------------------------------------------------------

# Directories that are never packed into codebase context
_EXCLUDED_DIRS = {
    # VCS
    ".git",
    ".hg",
    ".svn",
    # JavaScript
    "node_modules",
    "dist",
    # Python
    "__pycache__",
    ".venv",
    "venv",
    ".mypy_cache",
    ".pytest_cache",
    ".ruff_cache",
    ".tox",
    # Reskill scratch space
    ".agent",
}


def _load_gitignore_spec(directory: Path) -> Optional[pathspec.PathSpec]:
    """Load a single .gitignore file from a directory, returning a PathSpec or None."""
    gitignore_file = directory / ".gitignore"
    if not gitignore_file.is_file():
        return None
    try:
        with open(gitignore_file, "r", encoding="utf-8") as f:
            return pathspec.PathSpec.from_lines("gitwildmatch", f)
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"Ignoring unreadable {gitignore_file}: {e}")
        return None


def _is_ignored_by_specs(
    rel_path: str, is_dir: bool, specs: List[Tuple[Path, Any]], root: Path
) -> bool:
    """Check if a relative path is ignored by any gitignore spec.

    Args:
        rel_path: Path relative to root, using forward slashes
        is_dir: Whether the path is a directory
        specs: List of (spec_directory, PathSpec) tuples
        root: The walk root
    """
    # gitignore patterns like "build/" only match with a trailing slash
    match_path = rel_path + "/" if is_dir else rel_path

    for spec_dir, spec in specs:
        spec_rel_str = spec_dir.relative_to(root).as_posix()

        if spec_rel_str == ".":
            path_for_match = match_path
        else:
            # Nested gitignore: match relative to that gitignore's dir
            prefix = spec_rel_str + "/"
            if not rel_path.startswith(prefix):
                continue
            path_for_match = match_path[len(prefix) :]

        if spec.match_file(path_for_match):
            return True

    return False


def list_files_with_gitignore(root: Path) -> List[str]:
    """List all files under root (relative, posix style), respecting .gitignore.

    Uses os.walk with directory pruning so ignored dirs are never descended into.
    Specs from nested .gitignore files are picked up as they are encountered.
    """
    root = Path(root)
    results = []
    gitignore_specs: List[Tuple[Path, Any]] = []

    for dirpath_str, dirnames, filenames in os.walk(root, topdown=True):
        dirpath = Path(dirpath_str)

        dir_spec = _load_gitignore_spec(dirpath)
        if dir_spec is not None:
            gitignore_specs.append((dirpath, dir_spec))

        pruned = []
        for d in dirnames:
            if d in _EXCLUDED_DIRS:
                continue
            child_rel = (dirpath / d).relative_to(root).as_posix()
            if _is_ignored_by_specs(child_rel, True, gitignore_specs, root):
                continue
            pruned.append(d)
        dirnames[:] = sorted(pruned)

        for fname in filenames:
            if fname.endswith((".swp", ".swo", ".pyc", ".pyo")):
                continue
            rel_file = (dirpath / fname).relative_to(root).as_posix()
            if _is_ignored_by_specs(rel_file, False, gitignore_specs, root):
                continue
            results.append(rel_file)

    return sorted(results)
