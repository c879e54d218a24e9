# capcheck — Capability Guard Checker
# Copyright (C) 2026 capcheck Project Contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""Source discovery for the text provider.

Primary strategy: git ls-files (if .git/ exists)
Fallback: recursive directory walk with .capcheckignore support
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

# Build output, dependency caches and tool state in ArkTS/TS projects
DEFAULT_IGNORE_PATTERNS = {
    ".git",
    ".hg",
    ".svn",
    "node_modules",
    "oh_modules",
    ".hvigor",
    ".idea",
    ".preview",
    "build",
    "dist",
    "*.d.ts",
    "*.d.ets",
}

SOURCE_EXTENSIONS = (".ets", ".ts")

IGNORE_FILE = ".capcheckignore"


def _load_ignore_patterns(target_dir: Path) -> set[str]:
    """Load .capcheckignore patterns from the target directory."""
    ignore_file = target_dir / IGNORE_FILE
    patterns = set(DEFAULT_IGNORE_PATTERNS)

    if ignore_file.exists():
        for line in ignore_file.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if line and not line.startswith("#"):
                patterns.add(line)

    return patterns


def _should_ignore(path: Path, ignore_patterns: set[str]) -> bool:
    """Check if a path matches any ignore pattern."""
    for pattern in ignore_patterns:
        if pattern.startswith("*"):
            suffix = pattern.lstrip("*")
            if path.name.endswith(suffix):
                return True
        elif path.name == pattern or pattern in path.parts:
            return True
    return False


def get_files_git(target_dir: Path) -> list[Path] | None:
    """Get tracked and untracked-but-not-ignored files using git ls-files.

    Returns None if git is not available or target_dir is not a git repo.
    """
    try:
        result = subprocess.run(
            ["git", "ls-files", "--cached", "--others", "--exclude-standard"],
            cwd=str(target_dir),
            capture_output=True,
            text=True,
            timeout=30,
        )
    except FileNotFoundError:
        logger.debug("git not found in PATH")
        return None
    except subprocess.TimeoutExpired:
        logger.warning("git ls-files timed out")
        return None

    if result.returncode != 0:
        logger.debug("git ls-files failed: %s", result.stderr)
        return None

    return sorted(Path(line) for line in result.stdout.splitlines() if line)


def get_files_directory(target_dir: Path) -> list[Path]:
    """Get files via recursive directory walk (fallback when git is not available)."""
    ignore_patterns = _load_ignore_patterns(target_dir)
    files = []

    for item in target_dir.rglob("*"):
        if item.is_file():
            rel_path = item.relative_to(target_dir)
            if not _should_ignore(rel_path, ignore_patterns):
                files.append(rel_path)

    return sorted(files)


def filter_sources(
    all_files: Iterable[Path],
    extensions: Iterable[str] = SOURCE_EXTENSIONS,
    ignore_patterns: set[str] | None = None,
) -> list[Path]:
    """Keep source files with one of ``extensions``, minus ignored paths."""
    wanted = {ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in extensions}
    patterns = ignore_patterns if ignore_patterns is not None else DEFAULT_IGNORE_PATTERNS
    return [
        f for f in all_files
        if f.suffix.lower() in wanted and not _should_ignore(f, patterns)
    ]


def discover_sources(
    target_dir: Path,
    extensions: Iterable[str] = SOURCE_EXTENSIONS,
) -> tuple[list[Path], str]:
    """Discover source files to analyze, relative to ``target_dir``.

    Returns:
        tuple of (files, manifest_source) where manifest_source is
        "git" or "directory".

    Raises:
        FileNotFoundError / NotADirectoryError for a bad target.
    """
    target_dir = target_dir.resolve()

    if not target_dir.exists():
        raise FileNotFoundError(f"Target directory does not exist: {target_dir}")

    if not target_dir.is_dir():
        raise NotADirectoryError(f"Target path is not a directory: {target_dir}")

    ignore_patterns = _load_ignore_patterns(target_dir)

    if (target_dir / ".git").exists():
        files = get_files_git(target_dir)
        if files is not None:
            sources = filter_sources(files, extensions, ignore_patterns)
            logger.info("Using git-derived file list (%d sources)", len(sources))
            return sources, "git"

    files = get_files_directory(target_dir)
    sources = filter_sources(files, extensions, ignore_patterns)
    logger.info("Using directory walk (%d sources)", len(sources))
    return sources, "directory"
