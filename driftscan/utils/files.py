"""File discovery for scans.

Walks a project root, prunes dependency/build/cache directories, applies
include/exclude globs and returns project-relative POSIX paths in sorted order
so downstream aggregation never depends on filesystem iteration order.
"""

import fnmatch
import os
from pathlib import Path
from typing import Any

from driftscan.ast_extractors.base import detect_language
from driftscan.exceptions import ProjectRootError
from driftscan.utils.logging import logger

SKIP_DIRS: set[str] = {
    # Version control
    ".git",
    ".hg",
    ".svn",

    # Dependencies
    "node_modules",
    "vendor",
    "bower_components",

    # Build artifacts
    "dist",
    "build",
    "out",
    "target",
    "bin",
    "obj",

    # Python virtual environments and caches
    ".venv",
    "venv",
    "virtualenv",
    "__pycache__",
    ".pytest_cache",
    ".mypy_cache",
    ".ruff_cache",
    ".tox",

    # Tool state
    ".drift",
    ".idea",
    ".vscode",
    ".next",
    ".nuxt",
    "coverage",
}


def matches_any(path: str, patterns: list[str]) -> bool:
    """True when ``path`` or its basename matches one of the glob patterns.

    ``**/`` prefixes also match at the root, so ``**/tests/*`` catches
    ``tests/a.py``.
    """
    name = path.rsplit("/", 1)[-1]
    for pattern in patterns:
        if fnmatch.fnmatch(path, pattern) or fnmatch.fnmatch(name, pattern):
            return True
        if pattern.startswith("**/") and fnmatch.fnmatch(path, pattern[3:]):
            return True
    return False


class FileWalker:
    """Collects analyzable source files under a project root."""

    def __init__(self, root_path: Path | str, config: dict[str, Any] | None = None,
                 include: list[str] | None = None, exclude: list[str] | None = None,
                 follow_symlinks: bool = False):
        """Initialize the file walker.

        Args:
            root_path: Root directory to walk
            config: Runtime configuration (uses scan.max_file_size/include/exclude)
            include: Globs a file must match (empty means every supported file)
            exclude: Globs that remove files or whole directories
            follow_symlinks: Whether to follow symbolic links
        """
        self.root_path = Path(root_path)
        scan_cfg = (config or {}).get("scan", {})
        self.max_file_size = scan_cfg.get("max_file_size", 2 * 1024 * 1024)
        self.include = list(include if include is not None else scan_cfg.get("include", []))
        self.exclude = list(exclude if exclude is not None else scan_cfg.get("exclude", []))
        self.follow_symlinks = follow_symlinks
        self.stats = {
            "total_files": 0,
            "source_files": 0,
            "large_files": 0,
            "excluded_files": 0,
            "skipped_dirs": 0,
        }

    def walk(self) -> list[str]:
        """Return sorted project-relative POSIX paths of supported source files.

        Raises:
            ProjectRootError: if the root is missing or unreadable
        """
        if not self.root_path.is_dir() or not os.access(self.root_path, os.R_OK):
            raise ProjectRootError(
                f"Project root is not a readable directory: {self.root_path}",
                {"root": str(self.root_path)},
            )

        files: list[str] = []
        for dirpath, dirnames, filenames in os.walk(self.root_path, followlinks=self.follow_symlinks):
            current = Path(dirpath)
            kept = []
            for d in dirnames:
                rel_dir = (current / d).relative_to(self.root_path).as_posix()
                if d in SKIP_DIRS or d.endswith(".egg-info") or matches_any(rel_dir, self.exclude) \
                        or matches_any(rel_dir + "/", self.exclude):
                    self.stats["skipped_dirs"] += 1
                    continue
                kept.append(d)
            dirnames[:] = kept

            for filename in filenames:
                self.stats["total_files"] += 1
                rel = self._accept(current / filename)
                if rel:
                    files.append(rel)

        files.sort()
        logger.debug(f"[SCAN] Discovered {len(files)} source files under {self.root_path}")
        return files

    def _accept(self, file: Path) -> str | None:
        if detect_language(file.name) is None:
            return None
        relative_path = file.relative_to(self.root_path).as_posix()
        if self.exclude and matches_any(relative_path, self.exclude):
            self.stats["excluded_files"] += 1
            return None
        if self.include and not matches_any(relative_path, self.include):
            self.stats["excluded_files"] += 1
            return None
        try:
            if not self.follow_symlinks and file.is_symlink():
                return None
            if file.stat().st_size >= self.max_file_size:
                self.stats["large_files"] += 1
                return None
        except OSError:
            return None
        self.stats["source_files"] += 1
        return relative_path


def read_source(path: Path | str) -> str | None:
    """Read a source file as text; None (with a warning) when unreadable."""
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            return f.read()
    except OSError as e:
        logger.warning(f"[SCAN] Skipping unreadable file {path}: {e}")
        return None
