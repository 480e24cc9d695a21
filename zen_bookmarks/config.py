"""Configuration for the Zen bookmarks MCP server."""
import configparser
import os
import shlex
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


PLACES_DB_NAME = "places.sqlite"
FAVICONS_DB_NAME = "favicons.sqlite"
FALLBACK_PROFILE_NAME = "Default (release)"
DEFAULT_BROWSER_COMMAND = ["flatpak", "run", "app.zen_browser.zen"]


def get_zen_root() -> Path:
    """Get the directory holding Zen's profiles.ini.

    Returns:
        Path to the Zen root directory (may not exist)
    """
    home = Path.home()
    if os.name == "nt":  # Windows
        appdata = os.environ.get("APPDATA")
        base = Path(appdata) if appdata else home / "AppData" / "Roaming"
        return base / "zen"
    elif sys.platform == "darwin":  # macOS
        return home / "Library" / "Application Support" / "zen"
    elif os.name == "posix":  # Linux
        # Flatpak install first, then a native one
        flatpak_root = home / ".var" / "app" / "app.zen_browser.zen" / ".zen"
        if flatpak_root.exists():
            return flatpak_root
        native_root = home / ".zen"
        if native_root.exists():
            return native_root
        return flatpak_root
    else:
        raise OSError(f"Unsupported operating system: {os.name}")


def _resolve_profile_path(root: Path, path: str, is_relative: bool) -> Path:
    return root / path if is_relative else Path(path)


def get_zen_profile_dir(root: Optional[Path] = None) -> Path:
    """Find the default Zen profile directory from profiles.ini.

    Prefers the install's default profile, then a profile flagged
    Default=1, then the first profile listed. Never raises for a missing
    or unreadable profiles.ini.

    Args:
        root: Zen root directory. If None, uses the platform default.

    Returns:
        Path to the profile directory (may not exist)
    """
    if root is None:
        root = get_zen_root()

    fallback = root / FALLBACK_PROFILE_NAME
    ini_path = root / "profiles.ini"
    if not ini_path.exists():
        return fallback

    parser = configparser.ConfigParser(interpolation=None)
    try:
        parser.read(ini_path, encoding="utf-8")
    except configparser.Error:
        return fallback

    # [Install<hash>] Default= may be relative to root or absolute; Path join handles both
    for section in parser.sections():
        if section.startswith("Install") and parser.has_option(section, "Default"):
            return root / parser.get(section, "Default")

    profiles = [parser[s] for s in parser.sections() if s.startswith("Profile") and "Path" in parser[s]]
    chosen = next((p for p in profiles if p.get("Default") == "1"), None)
    if chosen is None and profiles:
        chosen = profiles[0]
    if chosen is None:
        return fallback

    return _resolve_profile_path(root, chosen["Path"], chosen.get("IsRelative", "1") == "1")


@dataclass(frozen=True)
class SourceLocation:
    """Where the browser keeps its bookmark and favicon databases."""
    bookmarks_db_path: Path
    favicons_db_path: Path

    @classmethod
    def from_profile_dir(cls, profile_dir: Path) -> "SourceLocation":
        """Build the sibling places/favicons paths inside a profile directory."""
        profile_dir = Path(profile_dir)
        return cls(
            bookmarks_db_path=profile_dir / PLACES_DB_NAME,
            favicons_db_path=profile_dir / FAVICONS_DB_NAME,
        )

    @classmethod
    def from_env(cls) -> "SourceLocation":
        """Create source paths from environment variables."""
        profile_str = os.environ.get("ZEN_PROFILE_DIR")
        profile_dir = Path(profile_str).expanduser() if profile_str else get_zen_profile_dir()
        location = cls.from_profile_dir(profile_dir)

        places = os.environ.get("ZEN_PLACES_DB")
        favicons = os.environ.get("ZEN_FAVICONS_DB")
        return cls(
            bookmarks_db_path=Path(places).expanduser() if places else location.bookmarks_db_path,
            favicons_db_path=Path(favicons).expanduser() if favicons else location.favicons_db_path,
        )


@dataclass
class FaviconConfig:
    """Bounds on materialized favicon files left for the host."""
    max_age_seconds: float = 3600.0  # Icons older than this get reaped
    max_files: int = 500  # Keep at most this many icons on disk
    grace_seconds: float = 60.0  # Icons younger than this ignore max_files

    @classmethod
    def from_env(cls) -> "FaviconConfig":
        """Create config from environment variables."""
        return cls(
            max_age_seconds=float(os.environ.get("ZEN_FAVICON_MAX_AGE", "3600")),
            max_files=int(os.environ.get("ZEN_FAVICON_MAX_FILES", "500")),
            grace_seconds=float(os.environ.get("ZEN_FAVICON_GRACE", "60")),
        )


@dataclass
class Config:
    """Main configuration for the Zen bookmarks MCP server."""
    source: SourceLocation
    scratch_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))
    browser_command: List[str] = field(default_factory=lambda: list(DEFAULT_BROWSER_COMMAND))
    favicons: FaviconConfig = field(default_factory=FaviconConfig)
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> "Config":
        """Create config from environment variables."""
        scratch_str = os.environ.get("ZEN_SCRATCH_DIR")
        command_str = os.environ.get("ZEN_BROWSER_COMMAND")

        return cls(
            source=SourceLocation.from_env(),
            scratch_dir=Path(scratch_str) if scratch_str else Path(tempfile.gettempdir()),
            browser_command=shlex.split(command_str) if command_str else list(DEFAULT_BROWSER_COMMAND),
            favicons=FaviconConfig.from_env(),
            log_level=os.environ.get("ZEN_LOG_LEVEL", "WARNING").upper(),
        )


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global config instance.

    Returns:
        Config loaded from environment
    """
    global _config

    if _config is None:
        _config = Config.from_env()

    return _config
