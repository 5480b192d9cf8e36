from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    val = raw.strip().lower()
    if val in {"1", "true", "yes", "y", "on"}:
        return True
    if val in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclass(frozen=True)
class Settings:
    """Static settings for the knowledge base service.

    Everything is read from ``FOLIO_*`` environment variables once, at import.
    The database location is re-resolved per store (see ``kb_db.default_db_path``)
    so tests can point ``FOLIO_DATA_DIR`` somewhere else.
    """

    root_dir: Path = Path(__file__).resolve().parents[2]
    data_dir: Path = Path(os.environ.get("FOLIO_DATA_DIR", str(root_dir / ".folio-data")))
    log_path: Path = data_dir / "folio.log"
    log_level: str = os.environ.get("FOLIO_LOG_LEVEL", "INFO")
    log_max_bytes: int = int(os.environ.get("FOLIO_LOG_MAX_BYTES", str(1_000_000)))
    log_backup_count: int = int(os.environ.get("FOLIO_LOG_BACKUP_COUNT", "3"))
    log_to_file: bool = _env_bool("FOLIO_LOG_TO_FILE", True)
    host: str = os.environ.get("FOLIO_HOST", "127.0.0.1")
    port: int = int(os.environ.get("FOLIO_PORT", "8020"))

    # =========================================================================
    # Knowledge base limits
    # =========================================================================
    search_limit: int = int(os.environ.get("FOLIO_SEARCH_LIMIT", "20"))
    excerpt_length: int = int(os.environ.get("FOLIO_EXCERPT_LENGTH", "150"))
    # Ancestor walks (breadcrumbs, move validation) stop here and report corruption.
    max_tree_depth: int = int(os.environ.get("FOLIO_MAX_TREE_DEPTH", "64"))
    recent_pages_per_user: int = int(os.environ.get("FOLIO_RECENT_LIMIT", "100"))
    activity_limit: int = int(os.environ.get("FOLIO_ACTIVITY_LIMIT", "20"))

    # Seed the built-in demo space on first start of an empty database.
    seed_demo_data: bool = _env_bool("FOLIO_SEED_DEMO", False)


settings = Settings()
