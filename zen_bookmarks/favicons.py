"""Favicon materialization.

The host renders icons from file paths, not bytes, so each icon found for a
result is written to its own scratch file. Those files belong to the host
once their path is returned: it can hand one back with release_favicon(),
and reap_favicons() bounds how many pile up between invocations.
"""
import hashlib
import logging
import os
import time
from pathlib import Path
from typing import Optional

from zen_bookmarks.places import FaviconBlob
from zen_bookmarks.snapshot import unique_name

logger = logging.getLogger(__name__)

FAVICON_PREFIX = "zen_favicon"
DEFAULT_GRACE_SECONDS = 60.0

_MAGIC_EXTENSIONS = (
    (b"\x89PNG\r\n\x1a\n", ".png"),
    (b"\x00\x00\x01\x00", ".ico"),
    (b"\xff\xd8\xff", ".jpg"),
    (b"GIF87a", ".gif"),
    (b"GIF89a", ".gif"),
)


def url_hash(url: str) -> str:
    """SHA256 hash prefix of a URL, used in icon file names."""
    return hashlib.sha256(url.encode()).hexdigest()[:16]


def guess_extension(data: bytes) -> str:
    """Pick a file extension from the image's magic bytes."""
    for magic, extension in _MAGIC_EXTENSIONS:
        if data.startswith(magic):
            return extension
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return ".webp"
    head = data[:256].lstrip().lower()
    if head.startswith(b"<svg") or (head.startswith(b"<?xml") and b"<svg" in head):
        return ".svg"
    return ".png"


def _find_identical(data: bytes, url: str, scratch_dir: Path) -> Optional[Path]:
    """Find an icon already written for this URL with the same bytes.

    A reused icon gets its mtime refreshed so the reaper treats it as new.
    """
    for path in Path(scratch_dir).glob(f"{FAVICON_PREFIX}_{url_hash(url)}_*"):
        try:
            if path.stat().st_size != len(data) or path.read_bytes() != data:
                continue
            os.utime(path)
        except OSError:
            continue
        return path
    return None


def materialize(blob: FaviconBlob, url: str, scratch_dir: Path) -> Optional[Path]:
    """Write icon bytes to a uniquely named scratch file.

    Args:
        blob: Icon bytes to write
        url: Bookmark URL the icon belongs to
        scratch_dir: Directory for the icon file

    Returns:
        Path to the icon file (an existing one when its bytes are identical),
        or None if it couldn't be written
    """
    existing = _find_identical(blob.data, url, scratch_dir)
    if existing is not None:
        logger.debug("Reusing favicon %s for %s", existing, url)
        return existing

    name = unique_name(f"{FAVICON_PREFIX}_{url_hash(url)}", guess_extension(blob.data))
    path = Path(scratch_dir) / name

    try:
        path.write_bytes(blob.data)
    except OSError as e:
        logger.warning("Failed to write favicon for %s to %s: %s", url, path, e)
        try:
            path.unlink()
        except OSError:
            pass
        return None

    logger.debug("Wrote favicon for %s to %s", url, path)
    return path


def _is_favicon_file(path: Path, scratch_dir: Path) -> bool:
    try:
        resolved = path.resolve()
        return resolved.parent == Path(scratch_dir).resolve() and resolved.name.startswith(FAVICON_PREFIX + "_")
    except OSError:
        return False


def release_favicon(path: Path, scratch_dir: Path) -> bool:
    """Delete an icon the host no longer needs.

    Only files this module wrote (inside scratch_dir, with the favicon
    prefix) are touched.

    Args:
        path: Icon path previously returned in a match result
        scratch_dir: Scratch directory icons are written to

    Returns:
        True if deleted, False if refused or already gone
    """
    path = Path(path)
    if not _is_favicon_file(path, scratch_dir):
        logger.warning("Refusing to release non-favicon path %s", path)
        return False

    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning("Failed to release favicon %s: %s", path, e)
        return False
    return True


def reap_favicons(
    scratch_dir: Path,
    max_age_seconds: float,
    max_files: int,
    grace_seconds: float = DEFAULT_GRACE_SECONDS,
) -> int:
    """Delete expired icons, then the oldest ones beyond max_files.

    Icons younger than grace_seconds never count against max_files, so
    icons handed to the host by a recent or overlapping call stay on disk
    long enough to be rendered.

    Args:
        scratch_dir: Scratch directory icons are written to
        max_age_seconds: Icons older than this are deleted
        max_files: Maximum number of icons to keep
        grace_seconds: Icons younger than this are exempt from max_files

    Returns:
        Number of icons deleted
    """
    scratch_dir = Path(scratch_dir)
    if not scratch_dir.is_dir():
        return 0

    entries = []
    for path in scratch_dir.glob(f"{FAVICON_PREFIX}_*"):
        try:
            entries.append((path.stat().st_mtime, path))
        except OSError:
            continue

    # Newest first
    entries.sort(key=lambda x: x[0], reverse=True)
    now = time.time()
    cutoff = now - max_age_seconds
    grace_cutoff = now - grace_seconds

    removed = 0
    for index, (mtime, path) in enumerate(entries):
        if mtime >= cutoff and (index < max_files or mtime >= grace_cutoff):
            continue
        try:
            path.unlink()
            removed += 1
        except OSError as e:
            logger.debug("Could not reap favicon %s: %s", path, e)

    if removed:
        logger.debug("Reaped %d favicon files from %s", removed, scratch_dir)
    return removed
