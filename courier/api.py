"""
courier/api.py
─────────────────────────────────────────────────────────────────────────────
courier — Dual-mode API layer

TWO USAGE MODES:
  1. Importable module:
         from courier.api import CourierAPI
         api = CourierAPI(db_path=Path("messages.db"))
         summary = api.run_import(Path("sms.xml").read_bytes(), "text/xml")

  2. FastAPI HTTP server (local UI posts the backup file body):
         python -m courier.api                   # default: port 8766
         python -m courier.api --port 9000
         uvicorn courier.api:app --port 8766

ENDPOINTS:
  POST /import    — request body is the backup; Content-Type drives format detection
  GET  /threads   — conversation threads with last-message metadata
  GET  /health    — server status and row counts
  GET  /config    — current courier_config.json
  POST /config    — update courier_config.json

One import runs at a time per database; a concurrent POST /import gets 409.
The server binds to 127.0.0.1 by default.
"""

from __future__ import annotations

import argparse
import logging
import threading
from contextlib import asynccontextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import Body, FastAPI, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from courier import __version__
from courier.config import ImportSettings, load_config, save_config
from courier.errors import FormatError, ImportInProgressError
from courier.importer import MessagesImporter
from courier.models.record import INVALID_FORMAT_MESSAGE, ImportSummary
from courier.store.base import MAX_QUERY_PARAMS, MMS_TABLE, SMS_TABLE
from courier.store.sqlite_store import SQLiteMessageStore

logger = logging.getLogger(__name__)


def summary_to_dict(summary: ImportSummary) -> Dict[str, Any]:
    return {
        "outcome":          summary.outcome.value,
        "message":          summary.message,
        "format":           summary.format.value if summary.format else None,
        "imported":         summary.imported,
        "failed":           summary.failed,
        "sms":              asdict(summary.sms),
        "mms":              asdict(summary.mms),
        "payload_failures": summary.payload_failures,
        "threads_repaired": summary.threads_repaired,
        "repair_failures":  summary.repair_failures,
    }


# ═══════════════════════════════════════════════════════════════════════════
# IMPORTABLE CLASS
# ═══════════════════════════════════════════════════════════════════════════

class CourierAPI:
    """
    Pure-Python wrapper: one store and one importer per database.

    Usage:
        api     = CourierAPI(db_path=Path("messages.db"))
        summary = api.run_import(raw, "application/json", import_mms=False)
        threads = api.get_threads(limit=20)
    """

    def __init__(self, db_path: Path = Path("messages.db"), config_root: Optional[Path] = None):
        self.db_path     = Path(db_path)
        self.config_root = config_root
        self._store: Optional[SQLiteMessageStore] = None
        self._importer: Optional[MessagesImporter] = None
        self._open_lock = threading.Lock()

    # ── INTERNAL ──────────────────────────────────────────────────────────

    def _get_importer(self) -> MessagesImporter:
        with self._open_lock:
            if self._importer is None:
                config = load_config(self.config_root)
                parts_dir = config.get("parts_dir")
                self._store = SQLiteMessageStore(
                    self.db_path,
                    max_variables = config.get("max_query_params") or MAX_QUERY_PARAMS,
                    parts_dir     = Path(parts_dir) if parts_dir else None,
                )
                self._importer = MessagesImporter(
                    self._store,
                    ImportSettings.from_config(config),
                    chunk_size = self._store.max_variables,
                )
            return self._importer

    def close(self) -> None:
        if self._store is not None:
            self._store.close()
            self._store = None
            self._importer = None

    # ── IMPORT ────────────────────────────────────────────────────────────

    def run_import(
        self,
        raw:          bytes,
        content_type: Optional[str] = None,
        import_sms:   Optional[bool] = None,
        import_mms:   Optional[bool] = None,
    ) -> Dict[str, Any]:
        """
        Import one backup. Toggles left as None fall back to config.
        Raises FormatError or ImportInProgressError.
        """
        importer = self._get_importer()
        settings = ImportSettings(
            import_sms = importer.settings.import_sms if import_sms is None else import_sms,
            import_mms = importer.settings.import_mms if import_mms is None else import_mms,
        )
        logger.info(f"Import requested | {len(raw)} bytes | db={self.db_path}")
        summary = importer.import_backup(raw, content_type, settings=settings)
        return summary_to_dict(summary)

    # ── QUERY ─────────────────────────────────────────────────────────────

    def get_threads(self, limit: int = 100, offset: int = 0) -> List[Dict[str, Any]]:
        limit  = min(int(limit), 500)
        offset = max(int(offset), 0)
        self._get_importer()
        return self._store.threads()[offset:offset + limit]

    def get_counts(self) -> Dict[str, int]:
        self._get_importer()
        return {
            "sms": self._store.count(SMS_TABLE),
            "mms": self._store.count(MMS_TABLE),
        }


# ═══════════════════════════════════════════════════════════════════════════
# FASTAPI HTTP APP
# ═══════════════════════════════════════════════════════════════════════════

class ConfigUpdate(BaseModel):
    db_path:          Optional[str]  = None
    import_sms:       Optional[bool] = None
    import_mms:       Optional[bool] = None
    max_query_params: Optional[int]  = None
    parts_dir:        Optional[str]  = None


def build_app(db_path: Path = Path("messages.db"), config_root: Optional[Path] = None) -> FastAPI:
    """Build the FastAPI application around one CourierAPI instance."""
    _api = CourierAPI(db_path=db_path, config_root=config_root)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        _api.close()

    _app = FastAPI(
        title       = "courier",
        description = "Local SMS/MMS backup import service",
        version     = __version__,
        docs_url    = "/docs",
        redoc_url   = None,
        lifespan    = lifespan,
    )

    @_app.post("/import", summary="Import a backup file")
    async def import_backup(
        request:    Request,
        import_sms: Optional[bool] = Query(None, description="Override config toggle"),
        import_mms: Optional[bool] = Query(None, description="Override config toggle"),
    ):
        """
        Body is the raw backup (XML or JSON). Content-Type is used for format
        detection; anything not declared XML is sniffed for an XML declaration.
        """
        raw = await request.body()
        content_type = request.headers.get("content-type")
        try:
            return await run_in_threadpool(
                _api.run_import, raw, content_type, import_sms, import_mms
            )
        except FormatError as exc:
            raise HTTPException(status_code=400, detail=f"{INVALID_FORMAT_MESSAGE}: {exc}")
        except ImportInProgressError as exc:
            raise HTTPException(status_code=409, detail=str(exc))

    @_app.get("/threads", summary="List conversation threads")
    def get_threads(
        limit:  int = Query(100, ge=1, le=500),
        offset: int = Query(0,   ge=0),
    ):
        try:
            data = _api.get_threads(limit=limit, offset=offset)
        except Exception as exc:
            raise HTTPException(status_code=500, detail=str(exc))
        return {"count": len(data), "threads": data}

    @_app.get("/health", summary="Health check")
    def health():
        return {
            "status":  "ok",
            "db_path": str(_api.db_path),
            "counts":  _api.get_counts(),
            "version": __version__,
        }

    @_app.get("/config", summary="Get config")
    def get_config():
        return {"config": load_config(config_root)}

    @_app.post("/config", summary="Save config")
    def save_config_endpoint(update: ConfigUpdate = Body(...)):
        """Persist config. Takes effect for the next server start."""
        config = load_config(config_root)
        config.update(update.model_dump(exclude_none=True))
        save_config(config, config_root)
        return {"status": "ok", "config": config}

    return _app


# Module-level app instance for uvicorn courier.api:app
app = build_app()


# ═══════════════════════════════════════════════════════════════════════════
# CLI ENTRYPOINT: python -m courier.api
# ═══════════════════════════════════════════════════════════════════════════

def main(argv=None) -> None:
    parser = argparse.ArgumentParser(
        prog        = "courier-api",
        description = "courier import server — localhost only",
    )
    parser.add_argument("--port", type=int, default=8766,
                        help="Port to bind (default: 8766)")
    parser.add_argument("--db",   type=str, default="messages.db",
                        help="Path to the message database (default: messages.db)")
    parser.add_argument("--host", type=str, default="127.0.0.1",
                        help="Host to bind — keep on localhost")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level  = logging.INFO,
        format = '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    )
    uvicorn.run(build_app(db_path=Path(args.db)), host=args.host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()
