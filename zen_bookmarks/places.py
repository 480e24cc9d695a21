"""Read-only queries against snapshots of places.sqlite and favicons.sqlite."""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlsplit
from urllib.request import pathname2url

import aiosqlite

from zen_bookmarks.snapshot import unique_name

logger = logging.getLogger(__name__)


BOOKMARKS_QUERY = """
    SELECT moz_bookmarks.title, moz_places.url
    FROM moz_bookmarks
    JOIN moz_places ON moz_bookmarks.fk = moz_places.id
    WHERE moz_bookmarks.title IS NOT NULL AND moz_bookmarks.title != ''
"""

BOOKMARKS_FILTER = """
    AND (moz_bookmarks.title LIKE ? ESCAPE '\\' OR moz_places.url LIKE ? ESCAPE '\\')
"""

BOOKMARKS_ORDER = " ORDER BY moz_bookmarks.title"

FAVICON_QUERY = """
    SELECT moz_icons.data, moz_icons.width, moz_pages_w_icons.page_url
    FROM moz_icons
    JOIN moz_icons_to_pages ON moz_icons.id = moz_icons_to_pages.icon_id
    JOIN moz_pages_w_icons ON moz_icons_to_pages.page_id = moz_pages_w_icons.id
    WHERE {condition} AND moz_icons.data IS NOT NULL
    ORDER BY moz_icons.width DESC
    LIMIT 1
"""

FAVICON_EXACT = FAVICON_QUERY.format(condition="moz_pages_w_icons.page_url = ?")
FAVICON_BY_HOST = FAVICON_QUERY.format(condition="moz_pages_w_icons.page_url LIKE ? ESCAPE '\\'")


@dataclass
class BookmarkRecord:
    """A bookmark row: both fields are non-empty."""
    title: str
    url: str


@dataclass
class FaviconBlob:
    """Raw icon bytes for a page."""
    data: bytes
    width: Optional[int]
    page_url: str


def connection_name(prefix: str = "zen_bookmarks") -> str:
    """Unique label for a database handle, used to tell concurrent handles apart in logs."""
    return unique_name(prefix)


def like_pattern(text: str) -> str:
    """Build a LIKE substring pattern that matches text literally."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def decode_text(raw: bytes) -> str:
    """Decode a TEXT column, replacing invalid UTF-8 instead of failing the row."""
    return raw.decode("utf-8", "replace")


def open_readonly(path: Path) -> aiosqlite.Connection:
    """Open a SQLite file through a read-only URI.

    Args:
        path: Path to the database (a snapshot, never the live file)

    Returns:
        aiosqlite connection, usable as an async context manager or awaitable
    """
    uri = f"file:{pathname2url(str(Path(path)))}?mode=ro"
    return aiosqlite.connect(uri, uri=True)


async def query_bookmarks(snapshot_path: Path, filter_text: str = "") -> List[BookmarkRecord]:
    """Fetch titled bookmarks from a places.sqlite snapshot.

    Args:
        snapshot_path: Path to the snapshot copy
        filter_text: Substring to match against title or URL. SQLite LIKE folds
            ASCII letters only, so non-ASCII text must match case exactly.
            Empty means every bookmark.

    Returns:
        Bookmark records ordered by title, or an empty list if the snapshot
        can't be opened or queried
    """
    name = connection_name()
    sql = BOOKMARKS_QUERY
    params: tuple = ()
    if filter_text:
        sql += BOOKMARKS_FILTER
        pattern = like_pattern(filter_text)
        params = (pattern, pattern)
    sql += BOOKMARKS_ORDER

    logger.debug("[%s] Querying %s with filter %r", name, snapshot_path, filter_text)

    try:
        async with open_readonly(snapshot_path) as db:
            db.text_factory = decode_text
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
            await cursor.close()
    except (aiosqlite.Error, OSError) as e:
        logger.warning("[%s] Bookmark query failed on %s: %s", name, snapshot_path, e)
        return []

    records = []
    for title, url in rows:
        if not title or not url:
            continue
        records.append(BookmarkRecord(title=str(title), url=str(url)))

    logger.debug("[%s] Found %d bookmarks", name, len(records))
    return records


class FaviconLookup:
    """One read-only handle on a favicons.sqlite snapshot, shared by every
    lookup in a single invocation.

    If the snapshot can't be opened, every lookup yields None.
    """

    def __init__(self, snapshot_path: Optional[Path]):
        self.snapshot_path = snapshot_path
        self.name = connection_name("zen_favicons")
        self._connection: Optional[aiosqlite.Connection] = None

    async def __aenter__(self) -> "FaviconLookup":
        if self.snapshot_path is None:
            return self
        try:
            self._connection = await open_readonly(self.snapshot_path)
            self._connection.text_factory = decode_text
        except (aiosqlite.Error, OSError) as e:
            logger.warning("[%s] Could not open favicon snapshot %s: %s", self.name, self.snapshot_path, e)
            self._connection = None
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def _fetch(self, sql: str, param: str) -> Optional[FaviconBlob]:
        try:
            cursor = await self._connection.execute(sql, (param,))
            row = await cursor.fetchone()
            await cursor.close()
        except (aiosqlite.Error, OSError) as e:
            logger.debug("[%s] Favicon query failed for %r: %s", self.name, param, e)
            return None

        if row is None or row[0] is None:
            return None
        return FaviconBlob(data=bytes(row[0]), width=row[1], page_url=row[2])

    async def lookup(self, url: str) -> Optional[FaviconBlob]:
        """Find the widest icon for a URL, falling back to any page on its host.

        Args:
            url: Bookmark URL

        Returns:
            FaviconBlob or None if nothing was found
        """
        if self._connection is None or not url:
            return None

        blob = await self._fetch(FAVICON_EXACT, url)
        if blob is not None:
            return blob

        try:
            host = urlsplit(url).hostname
        except ValueError:
            host = None
        if not host:
            return None

        blob = await self._fetch(FAVICON_BY_HOST, like_pattern(host))
        if blob is not None:
            logger.debug("[%s] Using host favicon from %s for %s", self.name, blob.page_url, url)
        return blob


async def query_favicon(snapshot_path: Path, url: str) -> Optional[FaviconBlob]:
    """Look up a single favicon on a favicons.sqlite snapshot."""
    async with FaviconLookup(snapshot_path) as lookup:
        return await lookup.lookup(url)
