"""Config management for Shelf.

Reads `config.ini` from the data directory (beside the executable / main.py
unless DATA_DIR is set). When running as PyInstaller onefile, PROJECT_ROOT is
the directory containing the executable.
"""

from __future__ import annotations

import configparser
import dataclasses
import os
import pathlib
import sys
from typing import Optional

from .logging_config import get_logger

logger = get_logger(__name__)


def _get_project_root() -> pathlib.Path:
    if getattr(sys, "frozen", False):
        return pathlib.Path(sys.executable).resolve().parent
    return pathlib.Path(__file__).resolve().parents[1]


PROJECT_ROOT = _get_project_root()

# DATA_DIR holds all per-machine state (config.ini, shelf.log, covers/, scratch/).
DATA_DIR = pathlib.Path(os.environ.get("DATA_DIR", str(PROJECT_ROOT)))
DEFAULT_CONFIG_PATH = DATA_DIR / "config.ini"


@dataclasses.dataclass
class LibraryConfig:
    path: pathlib.Path
    name: str = "My Library"
    # Storage permission as reported by the host shell. No scan runs without it.
    permission_granted: bool = True


@dataclasses.dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8080


@dataclasses.dataclass
class ScannerConfig:
    max_depth: int = 3
    ignore_patterns: tuple[str, ...] = (".DS_Store", "Thumbs.db", "@eaDir")
    max_concurrent_extractions: int = 4
    package_search_depth: int = 8
    cover_search_depth: int = 3


@dataclasses.dataclass
class CoverConfig:
    """Cover cache settings. A zero max size keeps the original bytes."""

    max_width: int = 0
    max_height: int = 0
    quality: int = 85

    @property
    def resize(self) -> bool:
        return self.max_width > 0 and self.max_height > 0


@dataclasses.dataclass
class MonitoringConfig:
    enabled: bool = True
    debounce_seconds: int = 2


@dataclasses.dataclass
class ShelfConfig:
    library: LibraryConfig
    server: ServerConfig = dataclasses.field(default_factory=ServerConfig)
    scanner: ScannerConfig = dataclasses.field(default_factory=ScannerConfig)
    covers: CoverConfig = dataclasses.field(default_factory=CoverConfig)
    monitoring: MonitoringConfig = dataclasses.field(default_factory=MonitoringConfig)
    data_dir: pathlib.Path = DATA_DIR

    @property
    def library_path(self) -> pathlib.Path:
        return self.library.path

    @property
    def server_host(self) -> str:
        return self.server.host

    @property
    def server_port(self) -> int:
        return self.server.port

    @property
    def covers_dir(self) -> pathlib.Path:
        return self.data_dir / "covers"

    @property
    def scratch_dir(self) -> pathlib.Path:
        return self.data_dir / "scratch"


def _parse_bool(value: str, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_list(value: str) -> tuple[str, ...]:
    return tuple(p.strip() for p in value.split(",") if p.strip())


def load_config(config_path: Optional[pathlib.Path] = None) -> ShelfConfig:
    """Load configuration from config.ini.

    Defaults to `config.ini` in the data directory.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    parser = configparser.ConfigParser()
    parser.read(path)

    library = LibraryConfig(
        path=pathlib.Path(
            parser.get("library", "path", fallback="/path/to/books")
        ).expanduser(),
        name=parser.get("library", "name", fallback="My Library"),
        permission_granted=_parse_bool(
            parser.get("library", "permission_granted", fallback="true"), True
        ),
    )

    server = ServerConfig(
        host=parser.get("server", "host", fallback="127.0.0.1"),
        port=parser.getint("server", "port", fallback=8080),
    )

    scanner = ScannerConfig(
        max_depth=parser.getint("scanner", "max_depth", fallback=3),
        ignore_patterns=_parse_list(
            parser.get(
                "scanner",
                "ignore_patterns",
                fallback=".DS_Store,Thumbs.db,@eaDir",
            )
        ),
        max_concurrent_extractions=parser.getint(
            "scanner", "max_concurrent_extractions", fallback=4
        ),
        package_search_depth=parser.getint(
            "scanner", "package_search_depth", fallback=8
        ),
        cover_search_depth=parser.getint(
            "scanner", "cover_search_depth", fallback=3
        ),
    )

    covers = CoverConfig(
        max_width=parser.getint("covers", "max_width", fallback=0),
        max_height=parser.getint("covers", "max_height", fallback=0),
        quality=parser.getint("covers", "quality", fallback=85),
    )

    monitoring = MonitoringConfig(
        enabled=_parse_bool(
            parser.get("monitoring", "enabled", fallback="true"), True
        ),
        debounce_seconds=parser.getint(
            "monitoring", "debounce_seconds", fallback=2
        ),
    )

    return ShelfConfig(
        library=library,
        server=server,
        scanner=scanner,
        covers=covers,
        monitoring=monitoring,
        data_dir=path.parent,
    )


_cached_config: Optional[ShelfConfig] = None


def get_config() -> ShelfConfig:
    """Return the cached config singleton. Loads from disk on first call."""
    global _cached_config
    if _cached_config is None:
        _cached_config = load_config()
    return _cached_config


def reset_config_cache() -> None:
    """Clear the cached config (useful for tests)."""
    global _cached_config
    _cached_config = None


def write_config(
    config_path: pathlib.Path, library_path: pathlib.Path, library_name: str
) -> None:
    """Write a default config.ini pointing at the given library."""
    parser = configparser.ConfigParser()

    parser["library"] = {
        "path": str(library_path.expanduser()),
        "name": library_name,
        "permission_granted": "true",
    }
    parser["server"] = {
        "host": "127.0.0.1",
        "port": "8080",
    }
    parser["scanner"] = {
        "max_depth": "3",
        "ignore_patterns": ".DS_Store,Thumbs.db,@eaDir",
        "max_concurrent_extractions": "4",
        "package_search_depth": "8",
        "cover_search_depth": "3",
    }
    parser["covers"] = {
        "max_width": "0",
        "max_height": "0",
        "quality": "85",
    }
    parser["monitoring"] = {
        "enabled": "true",
        "debounce_seconds": "2",
    }

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w") as handle:
        parser.write(handle)
    logger.debug(f"Wrote config to {config_path}")
