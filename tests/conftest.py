"""Shared fixtures for tests."""
import sqlite3
import pytest
from pathlib import Path

from zen_bookmarks.config import Config, FaviconConfig, SourceLocation


PNG_16 = b"\x89PNG\r\n\x1a\n" + b"icon-16"
PNG_32 = b"\x89PNG\r\n\x1a\n" + b"icon-32"
ICO_GITHUB = b"\x00\x00\x01\x00" + b"github-about"

SAMPLE_BOOKMARKS = [
    # (title, url)
    ("Stack Overflow", "https://stackoverflow.com"),
    ("GitHub", "https://github.com"),
    ("Gitter Chat", "https://gitter.im"),
    ("Python Docs", "https://docs.python.org"),
    ("My Projects", "https://github.com/me"),
    ("", "https://untitled.example.com"),
    (None, "https://null-title.example.com"),
    ("100% Coverage", "https://coverage.example.com"),
]

SAMPLE_ICONS = [
    # (page_url, width, data)
    ("https://docs.python.org", 16, PNG_16),
    ("https://docs.python.org", 32, PNG_32),
    ("https://docs.python.org", 64, None),
    ("https://github.com/about", 16, ICO_GITHUB),
]


def create_places_db(path: Path, bookmarks=SAMPLE_BOOKMARKS) -> Path:
    """Create a minimal places.sqlite with the Firefox bookmark tables."""
    conn = sqlite3.connect(path)
    conn.executescript("""
        CREATE TABLE moz_places (
            id INTEGER PRIMARY KEY,
            url LONGVARCHAR,
            title LONGVARCHAR
        );
        CREATE TABLE moz_bookmarks (
            id INTEGER PRIMARY KEY,
            type INTEGER,
            fk INTEGER DEFAULT NULL,
            parent INTEGER,
            title LONGVARCHAR
        );
    """)
    # Folder row without a place, must never show up
    conn.execute("INSERT INTO moz_bookmarks (type, fk, parent, title) VALUES (2, NULL, 0, 'toolbar')")
    for title, url in bookmarks:
        cursor = conn.execute("INSERT INTO moz_places (url, title) VALUES (?, ?)", (url, title))
        conn.execute(
            "INSERT INTO moz_bookmarks (type, fk, parent, title) VALUES (1, ?, 1, ?)",
            (cursor.lastrowid, title),
        )
    conn.commit()
    conn.close()
    return path


def create_favicons_db(path: Path, icons=SAMPLE_ICONS) -> Path:
    """Create a minimal favicons.sqlite with the Firefox icon tables."""
    conn = sqlite3.connect(path)
    conn.executescript("""
        CREATE TABLE moz_icons (
            id INTEGER PRIMARY KEY,
            icon_url TEXT,
            width INTEGER NOT NULL DEFAULT 0,
            data BLOB
        );
        CREATE TABLE moz_pages_w_icons (
            id INTEGER PRIMARY KEY,
            page_url TEXT NOT NULL
        );
        CREATE TABLE moz_icons_to_pages (
            page_id INTEGER NOT NULL,
            icon_id INTEGER NOT NULL,
            PRIMARY KEY (page_id, icon_id)
        );
    """)
    page_ids = {}
    for page_url, width, data in icons:
        if page_url not in page_ids:
            cursor = conn.execute("INSERT INTO moz_pages_w_icons (page_url) VALUES (?)", (page_url,))
            page_ids[page_url] = cursor.lastrowid
        cursor = conn.execute(
            "INSERT INTO moz_icons (icon_url, width, data) VALUES (?, ?, ?)",
            (f"{page_url}/favicon-{width}", width, data),
        )
        conn.execute(
            "INSERT INTO moz_icons_to_pages (page_id, icon_id) VALUES (?, ?)",
            (page_ids[page_url], cursor.lastrowid),
        )
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def profile_dir(tmp_path):
    """A profile directory (initially empty)."""
    directory = tmp_path / "profile"
    directory.mkdir()
    return directory


@pytest.fixture
def scratch_dir(tmp_path):
    """Scratch directory for snapshots and icons."""
    directory = tmp_path / "scratch"
    directory.mkdir()
    return directory


@pytest.fixture
def places_db(profile_dir):
    """places.sqlite with sample bookmarks."""
    return create_places_db(profile_dir / "places.sqlite")


@pytest.fixture
def favicons_db(profile_dir):
    """favicons.sqlite with sample icons."""
    return create_favicons_db(profile_dir / "favicons.sqlite")


@pytest.fixture
def config(profile_dir, scratch_dir):
    """Config pointing at the fixture profile and scratch directory."""
    return Config(
        source=SourceLocation.from_profile_dir(profile_dir),
        scratch_dir=scratch_dir,
        browser_command=["true"],
        favicons=FaviconConfig(),
    )


@pytest.fixture
def icon_bytes():
    """The raw icon payloads stored by favicons_db."""
    return {"png_16": PNG_16, "png_32": PNG_32, "ico_github": ICO_GITHUB}


@pytest.fixture
def make_places_db():
    """Factory for places.sqlite files with custom bookmarks."""
    return create_places_db


@pytest.fixture
def make_favicons_db():
    """Factory for favicons.sqlite files with custom icons."""
    return create_favicons_db


@pytest.fixture
def scratch_files(scratch_dir):
    """Callable listing every file currently in the scratch directory."""
    def _list():
        return sorted(p.name for p in scratch_dir.iterdir())
    return _list
