"""Bookmark query runner: snapshot, query, rank, clean up."""
import asyncio
import logging
import re
import subprocess
from contextlib import AsyncExitStack
from pathlib import Path
from typing import List, Optional, Sequence

from zen_bookmarks.config import Config, get_config
from zen_bookmarks.favicons import materialize, reap_favicons, release_favicon
from zen_bookmarks.places import FaviconLookup, query_bookmarks
from zen_bookmarks.ranking import MatchResult, project
from zen_bookmarks.snapshot import SnapshotError, SourceAbsentError, open_snapshot

logger = logging.getLogger(__name__)

# Trigger token, a required space, then the filter
QUERY_PATTERN = re.compile(r"^(?:b|bookmark\w*) (.*)$", re.IGNORECASE | re.DOTALL)


def parse_query(text: str) -> Optional[str]:
    """Extract the filter from launcher text such as "b github".

    Args:
        text: Raw query typed into the launcher

    Returns:
        The filter (empty string for an unfiltered query), or None if the
        text is not a bookmark query
    """
    match = QUERY_PATTERN.match(text or "")
    if match is None:
        return None
    return match.group(1).strip()


def open_url(url: str, command: Sequence[str]) -> subprocess.Popen:
    """Open a URL in the browser, detached from this process.

    Args:
        url: URL to open
        command: Browser launch command; the URL is appended as the last argument

    Returns:
        The launched process

    Raises:
        ValueError: If url is empty
        OSError: If the browser command can't be started
    """
    if not url:
        raise ValueError("url is required")

    args = [*command, url]
    logger.debug("Launching %s", args)
    return subprocess.Popen(
        args,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )


class BookmarkRunner:
    """Answers bookmark queries from fresh snapshots of the browser's databases.

    Holds configuration only. Every call takes its own snapshots and drops
    them before returning, so overlapping calls never share files.
    """

    def __init__(self, config: Config):
        self.config = config

    async def match(self, query: str) -> List[MatchResult]:
        """Run a raw launcher query ("b <filter>" / "bookmark <filter>")."""
        filter_text = parse_query(query)
        if filter_text is None:
            return []
        return await self.search(filter_text)

    async def search(self, filter_text: str = "") -> List[MatchResult]:
        """Find bookmarks whose title or URL contains filter_text.

        Args:
            filter_text: Case-insensitive substring; empty returns every bookmark

        Returns:
            Ranked match results ordered by title. Empty when the database is
            missing or unreadable.
        """
        source = self.config.source
        scratch_dir = self.config.scratch_dir

        if not source.bookmarks_db_path.exists():
            logger.debug("Bookmarks database not found at %s", source.bookmarks_db_path)
            return []

        favicon_config = self.config.favicons
        await asyncio.to_thread(
            reap_favicons,
            scratch_dir,
            favicon_config.max_age_seconds,
            favicon_config.max_files,
            favicon_config.grace_seconds,
        )

        async with AsyncExitStack() as stack:
            try:
                bookmarks_snapshot = await stack.enter_async_context(
                    open_snapshot(source.bookmarks_db_path, scratch_dir, "zen_bookmarks")
                )
            except (SourceAbsentError, SnapshotError) as e:
                logger.warning("Could not snapshot bookmarks database: %s", e)
                return []

            records = await query_bookmarks(bookmarks_snapshot.path, filter_text)
            if not records:
                return []

            favicons_snapshot_path = None
            if source.favicons_db_path.exists():
                try:
                    favicons_snapshot = await stack.enter_async_context(
                        open_snapshot(source.favicons_db_path, scratch_dir, "zen_favicons")
                    )
                    favicons_snapshot_path = favicons_snapshot.path
                except (SourceAbsentError, SnapshotError) as e:
                    logger.warning("Could not snapshot favicons database, continuing without icons: %s", e)

            lookup = await stack.enter_async_context(FaviconLookup(favicons_snapshot_path))

            results = []
            for record in records:
                favicon_path = None
                blob = await lookup.lookup(record.url)
                if blob is not None:
                    favicon_path = await asyncio.to_thread(materialize, blob, record.url, scratch_dir)
                results.append(project(record, filter_text, favicon_path))

        logger.debug("Query %r produced %d results", filter_text, len(results))
        return results

    def open(self, url: str) -> subprocess.Popen:
        """Open a bookmark URL with the configured browser command."""
        return open_url(url, self.config.browser_command)

    def release_favicon(self, path: Path) -> bool:
        """Hand a materialized icon back for deletion."""
        return release_favicon(Path(path), self.config.scratch_dir)


# Global runner instance
_runner: Optional[BookmarkRunner] = None


def get_runner() -> BookmarkRunner:
    """Get or create the global runner instance.

    Returns:
        BookmarkRunner using the global config
    """
    global _runner

    if _runner is None:
        _runner = BookmarkRunner(get_config())

    return _runner
