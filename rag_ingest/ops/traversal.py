"""
Bounded breadth-first directory traversal.

Directories are processed level by level so results spread evenly across
sibling subtrees and the pending queue grows predictably. Symlink cycles are
defeated by de-duplicating directories on their resolved path.
"""

import os
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from ..errors import FatalJobError
from ..ingest.extractors import file_extension
from ..telemetry import get_logger


logger = get_logger(__name__)


@dataclass
class TraversalResult:
    """Files found by a traversal plus what went wrong along the way."""

    files: List[Path] = field(default_factory=list)
    extensions_seen: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    directories_processed: int = 0
    cancelled: bool = False


def scan_directory(
    root: Path | str,
    extensions: Iterable[str],
    recursive: bool = True,
    max_items: Optional[int] = None,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> TraversalResult:
    """
    Find files under ``root`` whose extension is in ``extensions``.

    Args:
        root: Directory to start from
        extensions: Lower-case extensions without the leading dot
        recursive: Descend into subdirectories
        max_items: Stop once this many files are found (None = unbounded)
        should_cancel: Checked before each directory is listed

    Returns:
        TraversalResult with files in breadth-first discovery order

    Raises:
        FatalJobError: root does not exist or is not a directory
    """
    root = Path(root)
    if not root.exists() or not root.is_dir():
        raise FatalJobError(f"Invalid directory path: {root}")

    wanted = {ext.lower() for ext in extensions}
    result = TraversalResult()
    seen_exts: set[str] = set()

    queue: deque[Path] = deque([root])
    visited = {root.resolve()}

    def capped() -> bool:
        return max_items is not None and len(result.files) >= max_items

    while queue and not capped():
        if should_cancel is not None and should_cancel():
            result.cancelled = True
            break

        current = queue.popleft()
        result.directories_processed += 1

        if result.directories_processed % 100 == 0:
            logger.debug(
                "traversal_progress",
                directories=result.directories_processed,
                files=len(result.files),
            )

        try:
            with os.scandir(current) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            message = f"Failed to read directory {current}: {e}"
            logger.warning("directory_unreadable", directory=str(current), error=str(e))
            result.errors.append(message)
            continue

        subdirs: List[Path] = []
        for entry in entries:
            if capped():
                break
            try:
                if entry.is_file():
                    ext = file_extension(entry.name)
                    if ext in wanted:
                        result.files.append(Path(entry.path))
                        if ext not in seen_exts:
                            seen_exts.add(ext)
                            result.extensions_seen.append(ext)
                elif recursive and entry.is_dir():
                    subdirs.append(Path(entry.path))
            except OSError as e:
                logger.debug("entry_skipped", path=entry.path, error=str(e))

        if not recursive or capped():
            continue

        for subdir in subdirs:
            try:
                real = subdir.resolve(strict=True)
            except (OSError, RuntimeError) as e:
                # Broken or looping symlink
                logger.debug("directory_skipped", directory=str(subdir), error=str(e))
                continue
            if real in visited:
                continue
            visited.add(real)
            queue.append(subdir)

    logger.info(
        "traversal_finished",
        root=str(root),
        directories=result.directories_processed,
        files=len(result.files),
        cancelled=result.cancelled,
    )
    return result
