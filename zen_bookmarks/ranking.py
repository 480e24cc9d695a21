"""Relevance scoring and projection of bookmark rows into match results."""
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from zen_bookmarks.places import BookmarkRecord


BASE_RELEVANCE = 0.8
TITLE_CONTAINS_RELEVANCE = 0.9
TITLE_PREFIX_RELEVANCE = 1.0


@dataclass
class MatchResult:
    """A ranked bookmark, as handed to the host."""
    display_text: str
    url: str
    favicon_path: Optional[Path]
    relevance: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "display_text": self.display_text,
            "url": self.url,
            "favicon_path": str(self.favicon_path) if self.favicon_path else None,
            "relevance": self.relevance,
        }


def rank(title: str, filter_text: str) -> float:
    """Score a bookmark title against the filter.

    A title prefix match beats a title substring match, which beats
    everything else (URL-only matches, or no filter at all).
    """
    relevance = BASE_RELEVANCE
    if not filter_text:
        return relevance

    folded_title = title.casefold()
    folded_filter = filter_text.casefold()
    if folded_filter in folded_title:
        relevance = TITLE_CONTAINS_RELEVANCE
    if folded_title.startswith(folded_filter):
        relevance = TITLE_PREFIX_RELEVANCE
    return relevance


def display_text(title: str, url: str) -> str:
    if url:
        return f"{title} - {url}"
    return title


def project(record: BookmarkRecord, filter_text: str, favicon_path: Optional[Path] = None) -> MatchResult:
    """Build the host-facing result for a bookmark row."""
    return MatchResult(
        display_text=display_text(record.title, record.url),
        url=record.url,
        favicon_path=favicon_path,
        relevance=rank(record.title, filter_text),
    )
