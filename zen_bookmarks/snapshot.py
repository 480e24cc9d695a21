"""Private point-in-time copies of live browser databases.

The browser keeps places.sqlite open (usually in WAL mode) while it runs.
Opening that file directly risks lock contention with the browser, so every
query works on a uniquely named copy of the main file plus whichever
sidecars exist. The copy is removed again once the query is done, on every
exit path.
"""
import asyncio
import itertools
import logging
import os
import shutil
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Iterable, List

logger = logging.getLogger(__name__)

SIDECAR_SUFFIXES = ("-wal", "-shm")
# SQLite may create any of these next to a copy it opened
_CLEANUP_SUFFIXES = ("-wal", "-shm", "-journal")

_counter = itertools.count()


class SourceAbsentError(FileNotFoundError):
    """The source database does not exist (browser not installed or never run)."""


class SnapshotError(OSError):
    """The main database file could not be copied."""


def unique_name(prefix: str, suffix: str = "") -> str:
    """Generate a name no other invocation in any process can produce.

    Combines the process id, a nanosecond timestamp and a process-wide
    counter, so two calls in the same instant still differ.
    """
    return f"{prefix}_{os.getpid()}_{time.time_ns()}_{next(_counter)}{suffix}"


def _sidecar(path: Path, suffix: str) -> Path:
    return path.with_name(path.name + suffix)


def _remove(path: Path) -> bool:
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning("Could not remove snapshot file %s: %s", path, e)
        return False
    return True


@dataclass
class Snapshot:
    """A main-file copy plus the sidecar copies that succeeded."""
    source: Path
    path: Path
    sidecars: List[Path] = field(default_factory=list)

    @property
    def created_files(self) -> List[Path]:
        return [self.path, *self.sidecars]


def acquire_snapshot(
    source: Path,
    scratch_dir: Path,
    prefix: str = "zen_snapshot",
    sidecar_suffixes: Iterable[str] = SIDECAR_SUFFIXES,
) -> Snapshot:
    """Copy a database and its sidecars to a unique scratch location.

    Args:
        source: Path to the live database file
        scratch_dir: Directory to place the copies in
        prefix: Name prefix for the copies
        sidecar_suffixes: Sidecar suffixes to copy when present

    Returns:
        Snapshot describing every file that was created

    Raises:
        SourceAbsentError: If the source database doesn't exist
        SnapshotError: If the main file could not be copied
    """
    source = Path(source)
    if not source.exists():
        raise SourceAbsentError(f"Database not found at {source}")

    scratch_dir = Path(scratch_dir)
    destination = scratch_dir / unique_name(prefix, ".db")

    try:
        scratch_dir.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, destination)
    except OSError as e:
        _remove(destination)
        raise SnapshotError(f"Failed to copy {source} to {destination}: {e}") from e

    snapshot = Snapshot(source=source, path=destination)
    logger.debug("Copied %s to %s", source, destination)

    # A missing sidecar only costs freshness, so failures here are not fatal
    for suffix in sidecar_suffixes:
        sidecar_source = _sidecar(source, suffix)
        if not sidecar_source.exists():
            continue
        sidecar_copy = _sidecar(destination, suffix)
        try:
            shutil.copyfile(sidecar_source, sidecar_copy)
        except OSError as e:
            logger.warning("Failed to copy sidecar %s, continuing without it: %s", sidecar_source, e)
            _remove(sidecar_copy)
            continue
        snapshot.sidecars.append(sidecar_copy)
        logger.debug("Copied sidecar %s", sidecar_source)

    return snapshot


def release_snapshot(snapshot: Snapshot) -> None:
    """Remove every file belonging to a snapshot. Safe to call twice."""
    paths = list(snapshot.created_files)
    paths.extend(_sidecar(snapshot.path, suffix) for suffix in _CLEANUP_SUFFIXES)

    removed = sum(1 for path in dict.fromkeys(paths) if _remove(path))
    logger.debug("Released snapshot %s (%d files removed)", snapshot.path, removed)


def _release_when_done(acquire: "asyncio.Future[Snapshot]") -> None:
    if acquire.cancelled() or acquire.exception() is not None:
        return
    release_snapshot(acquire.result())


@asynccontextmanager
async def open_snapshot(
    source: Path,
    scratch_dir: Path,
    prefix: str = "zen_snapshot",
    sidecar_suffixes: Iterable[str] = SIDECAR_SUFFIXES,
) -> AsyncIterator[Snapshot]:
    """Async context manager: copy on entry, remove the copies on exit.

    Copying and removal run in a worker thread so a large places.sqlite
    doesn't stall the event loop. If the caller is cancelled while the copy
    is still running, the copy is removed as soon as the worker finishes.

    Raises:
        SourceAbsentError: If the source database doesn't exist
        SnapshotError: If the main file could not be copied
    """
    acquire = asyncio.ensure_future(
        asyncio.to_thread(acquire_snapshot, source, scratch_dir, prefix, tuple(sidecar_suffixes))
    )
    try:
        snapshot = await asyncio.shield(acquire)
    except asyncio.CancelledError:
        # The worker thread can't be interrupted; clean up after it instead
        acquire.add_done_callback(_release_when_done)
        raise

    try:
        yield snapshot
    finally:
        await asyncio.to_thread(release_snapshot, snapshot)
