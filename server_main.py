#!/usr/bin/env python3
"""Habit Grid Server - serves the habit grid and runs periodicity reconciliation."""

import os
import random
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

# Add server path
sys.path.insert(0, str(Path(__file__).parent))

from api.routes import router as api_router
from api.routes import set_dispatcher
from config.config_loader import load_config
from core.app_paths import resolve_data_path
from habitgrid.dispatcher import ActionDispatcher
from habitgrid.engine import HabitEngine
from habitgrid.evaluator import TIE_BREAK_COLUMN, TIE_BREAKS
from habitgrid.locking import RequestLock
from habitgrid.models import parse_day


def build_storage(config: dict[str, Any]):
    """Create the configured store backend."""
    storage_cfg = config.get("storage", {})
    backend = storage_cfg.get("backend", "sqlite")
    if backend == "sheets":
        from habitgrid.sheets import SheetStorage

        return SheetStorage.from_service_account(
            str(resolve_data_path(storage_cfg.get("credentials_file", "service_account.json"))),
            storage_cfg["sheet_id"],
            habits_worksheet=storage_cfg.get("habits_worksheet", "Habits"),
            snapshots_worksheet=storage_cfg.get("snapshots_worksheet", "Snapshots"),
        )
    if backend != "sqlite":
        raise ValueError(f"Unknown storage backend: {backend}")
    from habitgrid.storage import HabitStorage

    return HabitStorage(str(resolve_data_path(storage_cfg.get("path", "habits.db"), create_parents=True)))


def build_dispatcher(config: dict[str, Any], storage=None) -> ActionDispatcher:
    grid_cfg = config.get("grid", {})
    engine_cfg = config.get("engine", {})
    tie_break = engine_cfg.get("tie_break", TIE_BREAK_COLUMN)
    if tie_break not in TIE_BREAKS:
        raise ValueError(f"engine.tie_break must be one of {', '.join(TIE_BREAKS)}, got {tie_break!r}")
    engine = HabitEngine(
        storage if storage is not None else build_storage(config),
        tie_break=tie_break,
        rng=random.Random(),
        start_date=parse_day(grid_cfg.get("start_date")),
        days_ahead=int(grid_cfg.get("days_ahead", 30)),
    )
    return ActionDispatcher(engine, RequestLock(float(engine_cfg.get("lock_timeout", 10))))


class ServerApp:
    def __init__(self):
        self.config = None
        self.dispatcher = None
        self.start_time = None

    def initialize(self, config: dict[str, Any] | None = None):
        """Load configuration and wire the store, engine and dispatcher."""
        self.start_time = datetime.now()
        self.config = config or load_config("server_config.json")
        logger.info("Configuration loaded")
        self.dispatcher = build_dispatcher(self.config)
        logger.info(f"Habit store ready ({self.config.get('storage', {}).get('backend', 'sqlite')})")
        set_dispatcher(self.dispatcher)

    def cleanup(self):
        storage = getattr(self.dispatcher.engine, "storage", None) if self.dispatcher else None
        if storage is not None and hasattr(storage, "close"):
            storage.close()
        set_dispatcher(None)


# Global server instance
server_app = None

app = FastAPI(
    title="Habit Grid Server",
    description="Habit tracking grid with periodicity reconciliation",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("HABITGRID_CORS_ORIGINS", "*").split(","),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Habit Grid Server", "status": "running"}


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(timespec="seconds"),
        "ready": server_app is not None and server_app.dispatcher is not None,
    }


@app.on_event("startup")
async def startup_event():
    """Initialize server on startup."""
    global server_app
    server_app = ServerApp()
    server_app.initialize()
    logger.info("Server startup complete")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    if server_app:
        server_app.cleanup()
    logger.info("Server shutdown complete")


def setup_logging(config: dict[str, Any]):
    log_cfg = config.get("logging", {})
    level = log_cfg.get("level", "INFO")
    log_file = resolve_data_path(log_cfg.get("file", "logs/server_{time:YYYY-MM-DD}.log"), create_parents=True)
    logger.remove()
    logger.add(
        str(log_file),
        rotation="1 day",
        retention="30 days",
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}",
    )
    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:HH:mm:ss}</green> | <level>{level}</level> | <cyan>{name}:{function}:{line}</cyan> | {message}",
    )


def main():
    """Main server entry point."""
    config = load_config("server_config.json")
    setup_logging(config)

    logger.info("Starting Habit Grid Server...")

    server_cfg = config.get("server", {})
    host = server_cfg.get("host", "localhost")
    port = int(server_cfg.get("port", 8000))

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="warning",
        access_log=False,
        reload=False,
    )


if __name__ == "__main__":
    main()
