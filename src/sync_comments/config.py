"""Configuration loader for sync-comments."""

from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from common.config import ConfigSingleton, find_config_path, load_yaml

load_dotenv()

CONFIG_DIR = Path(__file__).resolve().parents[2] / "configs"
CONFIG_ENV_VAR = "COMMENT_SYNC_CONFIG"


@dataclass
class YouTubeConfig:
    base_url: str = "https://www.googleapis.com/youtube/v3"
    api_key_env: str = "YOUTUBE_API_KEY"
    request_timeout: int = 30


@dataclass
class SyncConfig:
    page_size: int = 50
    inter_page_delay_ms: int = 400
    cache_limit: int = 2500


@dataclass
class StoreConfig:
    backend: str = "sql"  # "sql" or "memory"
    database_url_env: str = "DATABASE_URL"
    echo: bool = False


@dataclass
class OutputConfig:
    local_dir: str = "output"
    s3_prefix: str = "comments"


@dataclass
class Config:
    youtube: YouTubeConfig = field(default_factory=YouTubeConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    output: OutputConfig = field(default_factory=OutputConfig)


def load_config(config_name: str | None = None) -> Config:
    """Load configuration from a YAML file.

    Args:
        config_name: Name of a file in configs/ (without .yaml) or a path.
                     If None, uses COMMENT_SYNC_CONFIG or "prod".
    """
    path = find_config_path(config_name, CONFIG_DIR, env_var=CONFIG_ENV_VAR)
    return parse_config(load_yaml(path))


def parse_config(data: dict) -> Config:
    """Parse config dictionary into Config object."""
    youtube = data.get("youtube", {})
    sync = data.get("sync", {})
    store = data.get("store", {})
    output = data.get("output", {})

    return Config(
        youtube=YouTubeConfig(
            base_url=youtube.get("base_url", YouTubeConfig.base_url),
            api_key_env=youtube.get("api_key_env", YouTubeConfig.api_key_env),
            request_timeout=youtube.get("request_timeout", YouTubeConfig.request_timeout),
        ),
        sync=SyncConfig(
            page_size=sync.get("page_size", SyncConfig.page_size),
            inter_page_delay_ms=sync.get("inter_page_delay_ms", SyncConfig.inter_page_delay_ms),
            cache_limit=sync.get("cache_limit", SyncConfig.cache_limit),
        ),
        store=StoreConfig(
            backend=store.get("backend", StoreConfig.backend),
            database_url_env=store.get("database_url_env", StoreConfig.database_url_env),
            echo=store.get("echo", StoreConfig.echo),
        ),
        output=OutputConfig(
            local_dir=output.get("local_dir", OutputConfig.local_dir),
            s3_prefix=output.get("s3_prefix", OutputConfig.s3_prefix),
        ),
    )


_manager = ConfigSingleton(load_config)
get_config = _manager.get
set_config = _manager.set
reset_config = _manager.reset
