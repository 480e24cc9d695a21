"""Tests for server tool registration and tool handlers."""
import asyncio
import json

import pytest

from zen_bookmarks import config as config_module
from zen_bookmarks import runner as runner_module
from zen_bookmarks.server import (
    create_server,
    health_check_tool,
    open_bookmark_tool,
    release_favicon_tool,
    run_query_tool,
    search_bookmarks_tool,
)


@pytest.fixture
def global_config(config, monkeypatch):
    """Point the global config and runner at the fixture profile."""
    monkeypatch.setattr(config_module, "_config", config)
    monkeypatch.setattr(runner_module, "_runner", None)
    return config


class TestServerTools:
    def test_server_creates(self):
        server = create_server()
        assert server.name == "zen-bookmarks-mcp"

    def test_all_tools_registered(self):
        from mcp.types import ListToolsRequest

        server = create_server()

        async def check():
            result = await server.request_handlers[ListToolsRequest](None)
            return result.root.tools

        tools = asyncio.run(check())
        tool_names = [t.name for t in tools]

        expected = [
            "health_check",
            "search_bookmarks",
            "run_query",
            "open_bookmark",
            "release_favicon",
        ]

        assert len(tools) == 5
        for name in expected:
            assert name in tool_names, f"Missing tool: {name}"


@pytest.mark.asyncio
class TestToolHandlers:
    async def test_health_check(self, global_config, places_db):
        content = await health_check_tool()
        status = json.loads(content[0].text)
        assert status["bookmarks_db_exists"] is True
        assert status["favicons_db_exists"] is False
        assert status["bookmarks_db_path"] == str(places_db)

    async def test_search_returns_json(self, global_config, places_db):
        content = await search_bookmarks_tool("git")
        results = json.loads(content[0].text)
        assert [r["display_text"] for r in results] == [
            "GitHub - https://github.com",
            "Gitter Chat - https://gitter.im",
            "My Projects - https://github.com/me",
        ]
        assert results[0]["relevance"] == 1.0
        assert results[0]["favicon_path"] is None

    async def test_search_no_results(self, global_config, places_db):
        content = await search_bookmarks_tool("xyznonexistent")
        assert "No bookmarks found" in content[0].text

    async def test_search_missing_database(self, global_config):
        content = await search_bookmarks_tool("git")
        assert "No bookmarks found" in content[0].text

    async def test_run_query(self, global_config, places_db):
        content = await run_query_tool("b stack")
        results = json.loads(content[0].text)
        assert [r["url"] for r in results] == ["https://stackoverflow.com"]

    async def test_run_query_not_bookmark_query(self, global_config, places_db):
        content = await run_query_tool("stack")
        assert "Not a bookmark query" in content[0].text

    async def test_open_bookmark(self, global_config, monkeypatch):
        launched = []
        monkeypatch.setattr(runner_module.subprocess, "Popen", lambda args, **kwargs: launched.append(args))
        content = await open_bookmark_tool("https://github.com")
        assert launched == [["true", "https://github.com"]]
        assert "Opened" in content[0].text

    async def test_open_bookmark_launch_failure(self, global_config, monkeypatch):
        def failing_popen(args, **kwargs):
            raise FileNotFoundError("flatpak")

        monkeypatch.setattr(runner_module.subprocess, "Popen", failing_popen)
        content = await open_bookmark_tool("https://github.com")
        assert "Could not open" in content[0].text

    async def test_release_favicon(self, global_config, places_db, favicons_db):
        content = await search_bookmarks_tool("python")
        icon = json.loads(content[0].text)[0]["favicon_path"]
        released = await release_favicon_tool(icon)
        assert "Released" in released[0].text

    async def test_release_foreign_path(self, global_config, tmp_path):
        other = tmp_path / "keep.txt"
        other.write_text("x")
        content = await release_favicon_tool(str(other))
        assert "Nothing released" in content[0].text
        assert other.exists()
