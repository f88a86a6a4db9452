"""
courier/config.py
JSON config persisted to courier_config.json.
Holds the store location and the per-type import toggles.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from courier.store.base import MAX_QUERY_PARAMS

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "courier_config.json"

DEFAULT_CONFIG = {
    "db_path": "messages.db",
    "import_sms": True,
    "import_mms": True,
    "max_query_params": MAX_QUERY_PARAMS,
    "parts_dir": None,
}


@dataclass
class ImportSettings:
    """Toggles consumed by the importer. Each gates one writing phase."""
    import_sms: bool = True
    import_mms: bool = True

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "ImportSettings":
        return cls(
            import_sms=bool(config.get("import_sms", True)),
            import_mms=bool(config.get("import_mms", True)),
        )


def _config_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path.cwd()
    return root / CONFIG_FILENAME


def load_config(project_root: Optional[Path] = None) -> Dict[str, Any]:
    """Load config from courier_config.json. Returns defaults if missing."""
    path = _config_path(project_root)
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return {**DEFAULT_CONFIG, **data}
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Config load failed: {e}")
    return dict(DEFAULT_CONFIG)


def save_config(config: Dict[str, Any], project_root: Optional[Path] = None) -> Path:
    """Persist config to courier_config.json."""
    path = _config_path(project_root)
    path.write_text(json.dumps(config, indent=2), encoding="utf-8")
    return path


def resolve_db_path(config: Dict[str, Any], project_root: Optional[Path] = None) -> Path:
    """db_path from config, relative paths anchored at the project root."""
    db_path = Path(config.get("db_path") or DEFAULT_CONFIG["db_path"])
    if not db_path.is_absolute():
        db_path = (project_root or Path.cwd()) / db_path
    return db_path
