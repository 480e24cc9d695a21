"""MCP server exposing Zen browser bookmarks to a search host."""
import json
import logging
from typing import Any, List

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from zen_bookmarks.config import get_config
from zen_bookmarks.ranking import MatchResult
from zen_bookmarks.runner import get_runner, parse_query

logger = logging.getLogger(__name__)


def _text(text: str) -> List[TextContent]:
    return [TextContent(type="text", text=text)]


def _format_results(results: List[MatchResult], empty_message: str) -> List[TextContent]:
    if not results:
        return _text(empty_message)
    return _text(json.dumps([r.to_dict() for r in results], indent=2))


async def health_check_tool() -> List[TextContent]:
    """Report where the server looks for the browser's databases."""
    config = get_config()
    status = {
        "bookmarks_db_path": str(config.source.bookmarks_db_path),
        "bookmarks_db_exists": config.source.bookmarks_db_path.exists(),
        "favicons_db_path": str(config.source.favicons_db_path),
        "favicons_db_exists": config.source.favicons_db_path.exists(),
        "scratch_dir": str(config.scratch_dir),
    }
    return _text(json.dumps(status, indent=2))


async def search_bookmarks_tool(filter_text: str) -> List[TextContent]:
    """Tool handler for search_bookmarks.

    Args:
        filter_text: Substring to look for in titles and URLs (empty = all)

    Returns:
        List of TextContent with JSON match results
    """
    results = await get_runner().search(filter_text)
    return _format_results(results, f"No bookmarks found matching: {filter_text}")


async def run_query_tool(query: str) -> List[TextContent]:
    """Tool handler for run_query: raw launcher text with its trigger token."""
    if parse_query(query) is None:
        return _text(f"Not a bookmark query: {query!r} (expected 'b <filter>' or 'bookmark <filter>')")
    results = await get_runner().match(query)
    return _format_results(results, f"No bookmarks found for query: {query}")


async def open_bookmark_tool(url: str) -> List[TextContent]:
    """Tool handler for open_bookmark."""
    try:
        get_runner().open(url)
    except OSError as e:
        logger.warning("Failed to launch browser for %s: %s", url, e)
        return _text(f"Could not open {url}: {e}")
    return _text(f"Opened {url}")


async def release_favicon_tool(path: str) -> List[TextContent]:
    """Tool handler for release_favicon."""
    if get_runner().release_favicon(path):
        return _text(f"Released {path}")
    return _text(f"Nothing released for {path}")


def create_server() -> Server:
    """Create and configure the MCP server.

    Returns:
        Configured Server instance
    """
    server = Server("zen-bookmarks-mcp")

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """List available tools."""
        return [
            Tool(
                name="health_check",
                description="Show the configured bookmark and favicon database paths and whether they exist.",
                inputSchema={"type": "object", "properties": {}},
            ),
            Tool(
                name="search_bookmarks",
                description=(
                    "Search Zen browser bookmarks by title or URL (case-insensitive substring). "
                    "An empty filter returns every bookmark. Results are ordered by title and carry "
                    "display_text, url, favicon_path and relevance."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "filter": {
                            "type": "string",
                            "description": "Substring to match against bookmark titles and URLs"
                        }
                    },
                },
            ),
            Tool(
                name="run_query",
                description="Run a launcher-style query such as 'b github' or 'bookmark docs'.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "query": {
                            "type": "string",
                            "description": "Launcher text starting with 'b ' or 'bookmark '"
                        }
                    },
                    "required": ["query"]
                },
            ),
            Tool(
                name="open_bookmark",
                description="Open a bookmark URL in the Zen browser.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "url": {"type": "string", "description": "URL to open"}
                    },
                    "required": ["url"]
                },
            ),
            Tool(
                name="release_favicon",
                description="Delete a favicon file previously returned in a search result once it has been rendered.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "path": {"type": "string", "description": "favicon_path from a search result"}
                    },
                    "required": ["path"]
                },
            ),
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: Any) -> list[TextContent]:
        """Handle tool calls."""
        arguments = arguments or {}
        if name == "health_check":
            return await health_check_tool()
        elif name == "search_bookmarks":
            return await search_bookmarks_tool(arguments.get("filter", "") or "")
        elif name == "run_query":
            return await run_query_tool(arguments.get("query", ""))
        elif name == "open_bookmark":
            url = arguments.get("url", "")
            if not url:
                return _text("Error: 'url' parameter is required")
            return await open_bookmark_tool(url)
        elif name == "release_favicon":
            path = arguments.get("path", "")
            if not path:
                return _text("Error: 'path' parameter is required")
            return await release_favicon_tool(path)
        else:
            raise ValueError(f"Unknown tool: {name}")

    return server


async def main():
    """Main entry point for the MCP server."""
    server = create_server()

    async with stdio_server() as (read_stream, write_stream):
        initialization_options = server.create_initialization_options()
        await server.run(read_stream, write_stream, initialization_options)
