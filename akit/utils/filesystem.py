"""Filesystem utilities for akit.

Directory traversal uses an explicit work stack rather than recursion so
deeply nested skill trees cannot exhaust the interpreter stack.
"""

import os
import shutil
from collections.abc import Iterator
from datetime import datetime, timezone
from pathlib import Path

SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def ensure_directory(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to ensure exists

    Returns:
        The directory path
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def walk_files(root: Path) -> Iterator[tuple[Path, Path]]:
    """Yield every regular file below a directory.

    Entries are visited in sorted order so callers get a deterministic
    sequence.

    Args:
        root: Directory to walk

    Yields:
        Tuples of (absolute file path, path relative to root)
    """
    stack: list[tuple[Path, Path]] = [(root, Path())]
    while stack:
        directory, relative = stack.pop()
        children = sorted(directory.iterdir(), key=lambda p: p.name)
        subdirs: list[tuple[Path, Path]] = []
        for child in children:
            if child.is_dir() and not child.is_symlink():
                subdirs.append((child, relative / child.name))
            else:
                yield child, relative / child.name
        # Reverse so the alphabetically first subdirectory is popped first
        stack.extend(reversed(subdirs))


def walk_directories(root: Path) -> list[Path]:
    """List every directory below root, deepest first.

    Args:
        root: Directory to walk

    Returns:
        Subdirectories ordered so children always precede their parents
    """
    found: list[Path] = []
    stack = [root]
    while stack:
        directory = stack.pop()
        for child in directory.iterdir():
            if child.is_dir() and not child.is_symlink():
                found.append(child)
                stack.append(child)
    return sorted(found, key=lambda p: len(p.parts), reverse=True)


def count_files(path: Path) -> int:
    """Count regular files in a directory tree (1 for a plain file)."""
    if not path.exists():
        return 0
    if not path.is_dir():
        return 1
    return sum(1 for _ in walk_files(path))


def directory_size(path: Path) -> int:
    """Total size in bytes of a file or every file in a directory tree."""
    if not path.exists():
        return 0
    if not path.is_dir():
        return path.stat().st_size
    return sum(file_path.stat().st_size for file_path, _ in walk_files(path))


def copy_file(src: Path, dest: Path) -> Path:
    """Copy a file to a destination.

    Args:
        src: Source file path
        dest: Destination path (file or directory)

    Returns:
        Path to the copied file
    """
    if dest.is_dir():
        dest = dest / src.name
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(src, dest)
    return dest


def copy_directory(src: Path, dest: Path) -> int:
    """Copy a directory tree file by file, merging into dest.

    Args:
        src: Source directory path
        dest: Destination directory path

    Returns:
        Number of files copied
    """
    dest.mkdir(parents=True, exist_ok=True)
    copied = 0
    for file_path, relative in walk_files(src):
        target = dest / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(file_path, target)
        copied += 1
    return copied


def remove_path(path: Path) -> int:
    """Remove a file or a directory tree.

    Args:
        path: File or directory to remove

    Returns:
        Number of files removed (0 if the path didn't exist)
    """
    if not path.exists() and not path.is_symlink():
        return 0
    if path.is_dir() and not path.is_symlink():
        removed = count_files(path)
        shutil.rmtree(path)
        return removed
    path.unlink()
    return 1


def prune_empty_directories(root: Path, include_root: bool = True) -> list[Path]:
    """Remove empty directories below root, bottom-up.

    Directories that still hold files are left alone, so anything a user
    added survives.

    Args:
        root: Directory to prune
        include_root: Also remove root itself if it ends up empty

    Returns:
        Directories that were removed
    """
    removed: list[Path] = []
    if not root.is_dir():
        return removed

    candidates = walk_directories(root)
    if include_root:
        candidates.append(root)

    for directory in candidates:
        try:
            if not any(directory.iterdir()):
                directory.rmdir()
                removed.append(directory)
        except OSError:
            continue
    return removed


def atomic_write_text(path: Path, content: str) -> None:
    """Write a text file so readers never observe a partial write.

    Content goes to a sibling temp file which is flushed to disk and then
    renamed over the target.

    Args:
        path: Destination file
        content: Text to write
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(f"{path.name}.tmp")
    with open(temp_path, "w", encoding="utf-8") as f:
        f.write(content)
        f.flush()
        os.fsync(f.fileno())
    os.replace(temp_path, path)


def iso_timestamp(moment: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    moment = moment or datetime.now(timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def path_timestamp(moment: datetime | None = None) -> str:
    """Timestamp safe for use in file names (':' and '.' become '-')."""
    return iso_timestamp(moment).replace(":", "-").replace(".", "-")


def unique_path(path: Path) -> Path:
    """Return path, or path with a numeric suffix if it already exists."""
    if not path.exists():
        return path
    counter = 1
    while True:
        candidate = path.with_name(f"{path.name}-{counter}")
        if not candidate.exists():
            return candidate
        counter += 1


def format_size(num_bytes: int) -> str:
    """Format a byte count for display.

    Args:
        num_bytes: Size in bytes

    Returns:
        Human readable size, e.g. "0 B", "1.5 KB", "12.34 MB"
    """
    if num_bytes <= 0:
        return "0 B"

    size = float(num_bytes)
    unit = 0
    while size >= 1024 and unit < len(SIZE_UNITS) - 1:
        size /= 1024
        unit += 1

    text = f"{size:.2f}".rstrip("0").rstrip(".")
    return f"{text} {SIZE_UNITS[unit]}"
