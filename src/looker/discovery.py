"""Find and read the C source files under a codebase root."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
import logging
import os
from pathlib import Path

from looker.search.builder import SKIP_IO_ERROR, SKIP_TOO_LARGE
from looker.search.models import SkippedFile, SourceFile


logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = (".c", ".h")
DEFAULT_SKIP_DIRS = (".git", ".hg", ".svn")


def discover_source_files(
    root: str | Path,
    *,
    extensions: Iterable[str] = DEFAULT_EXTENSIONS,
    skip_dirs: Iterable[str] = DEFAULT_SKIP_DIRS,
    index_dir: str | Path | None = None,
) -> list[Path]:
    """Walk ``root`` and return qualifying files in sorted relative-path order.

    Directories named in ``skip_dirs`` and the index directory itself are never
    descended. Symlinked directories are not followed.
    """
    root_path = Path(root)
    suffixes = {suffix.lower() for suffix in extensions}
    skipped_names = set(skip_dirs)
    excluded = _resolve_or_none(index_dir)

    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root_path, onerror=_log_walk_error):
        current = Path(dirpath)
        dirnames[:] = sorted(
            name for name in dirnames if name not in skipped_names and not _is_excluded(current / name, excluded)
        )
        for filename in filenames:
            candidate = current / filename
            if candidate.suffix.lower() in suffixes and candidate.is_file():
                found.append(candidate)

    found.sort(key=lambda path: path.relative_to(root_path).as_posix())
    logger.debug("Discovered %d source files under %s", len(found), root_path)
    return found


def read_source_files(
    root: str | Path,
    paths: Sequence[Path],
    *,
    max_file_bytes: int,
) -> tuple[list[SourceFile], list[SkippedFile]]:
    """Read ``paths`` into ``SourceFile`` values keyed by their POSIX path relative to ``root``.

    Unreadable and oversize files are reported instead of raised.
    """
    root_path = Path(root)
    sources: list[SourceFile] = []
    skipped: list[SkippedFile] = []

    for path in paths:
        relative = _relative_posix(root_path, path)
        try:
            stat = path.stat()
            if stat.st_size > max_file_bytes:
                logger.warning("Skipping %s: %d bytes exceeds limit of %d", relative, stat.st_size, max_file_bytes)
                skipped.append(
                    SkippedFile(
                        path=relative,
                        reason=SKIP_TOO_LARGE,
                        message=f"{stat.st_size} bytes exceeds limit of {max_file_bytes}",
                    )
                )
                continue
            with path.open("rb") as handle:
                content = handle.read()
        except OSError as exc:
            logger.warning("Skipping %s: %s", relative, exc)
            skipped.append(SkippedFile(path=relative, reason=SKIP_IO_ERROR, message=str(exc)))
            continue
        sources.append(SourceFile(path=relative, content=content, mtime_ns=stat.st_mtime_ns))

    return sources, skipped


def _relative_posix(root: Path, path: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


def _resolve_or_none(path: str | Path | None) -> Path | None:
    if path is None:
        return None
    return Path(path).resolve()


def _is_excluded(directory: Path, excluded: Path | None) -> bool:
    if excluded is None:
        return False
    return directory.resolve() == excluded


def _log_walk_error(exc: OSError) -> None:
    logger.warning("Cannot read directory %s: %s", exc.filename, exc.strerror)
