"""Configuration management for the Orchestra sync engine."""

import os
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

# Load .env file from config directory or project root
_config_env = Path(__file__).parent.parent.parent / "config" / ".env"
if _config_env.exists():
    load_dotenv(_config_env)
else:
    load_dotenv()

AUDIO_EXTENSIONS: Tuple[str, ...] = (
    ".flac",
    ".mp3",
    ".m4a",
    ".aac",
    ".wav",
    ".alac",
    ".ogg",
    ".opus",
    ".wma",
)

ENV_PREFIX = "ORCHESTRA_SYNC_"


def _env(name: str, default: str) -> str:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(f"{ENV_PREFIX}{name}")
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration."""

    def __init__(self) -> None:
        """Initialize configuration from environment variables."""
        # Database settings
        default_db_path = str(Path.home() / ".orchestra-sync" / "sync.db")
        self.database_path = Path(_env("DATABASE_PATH", default_db_path))

        # Logging settings
        self.log_level = _env("LOG_LEVEL", "INFO").upper()
        log_file = os.getenv(f"{ENV_PREFIX}LOG_FILE")
        self.log_file: Optional[Path] = Path(log_file) if log_file else None

        # Scanning settings
        self.audio_only = _env_bool("AUDIO_ONLY", True)
        self.audio_extensions = AUDIO_EXTENSIONS
        self.default_excludes = tuple(
            pattern.strip()
            for pattern in _env("DEFAULT_EXCLUDES", "").split(",")
            if pattern.strip()
        )

        # Hashing settings (bytes read per chunk)
        self.hash_chunk_size = int(_env("HASH_CHUNK_SIZE", str(1024 * 1024)))

        # Device sync source
        library_root = os.getenv(f"{ENV_PREFIX}LIBRARY_ROOT")
        self.library_root: Optional[Path] = Path(library_root) if library_root else None

        # Background execution
        self.max_concurrent_syncs = int(_env("MAX_CONCURRENT_SYNCS", "2"))

        # Ensure directories exist
        self._ensure_directories()

    @property
    def scan_extensions(self) -> Optional[Tuple[str, ...]]:
        """Extensions a scan is restricted to, or None for every file."""
        return self.audio_extensions if self.audio_only else None

    def _ensure_directories(self) -> None:
        """Ensure required directories exist."""
        self.database_path.parent.mkdir(parents=True, exist_ok=True)


_config: Optional[Config] = None


def get_config() -> Config:
    """Get the process-wide application configuration."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next call re-reads the environment."""
    global _config
    _config = None
