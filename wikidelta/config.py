"""Configuration paths for local wikidelta state."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("WIKIDELTA_HOME", str(Path.home() / ".wikidelta"))).expanduser()
STATE_DIR = BASE_DIR / "state"
ARTIFACT_DB = STATE_DIR / "artifacts.db"
HISTORY_FILE = STATE_DIR / "threshold_history.json"
CONFIG_FILE = BASE_DIR / "config.toml"
SUPPORTED_EXTENSIONS = {".py"}


def ensure_base_dirs() -> None:
    """Create base directories for local storage if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
    STATE_DIR.mkdir(parents=True, exist_ok=True)


def project_db_path(project_root: Path) -> Path:
    """Artifact database for one project, keyed by its directory name."""
    name = Path(project_root).resolve().name.replace(" ", "_") or "root"
    return STATE_DIR / f"{name}.db"
