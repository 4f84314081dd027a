"""API routes for the habit grid web client.

The client posts every action to a single endpoint as ``{"action", ...payload}``,
usually with a ``text/plain`` content type to avoid CORS preflight, so the body
is parsed by hand instead of through a pydantic model.
"""

import json
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from loguru import logger
from pydantic import BaseModel, Field

from habitgrid.dispatcher import ActionDispatcher, error

# Dispatcher is injected by server_main after the store is initialised
dispatcher: ActionDispatcher | None = None


def set_dispatcher(instance: ActionDispatcher | None):
    """Set dispatcher instance after initialization."""
    global dispatcher
    dispatcher = instance


router = APIRouter(prefix="/api/v1")


def _require_dispatcher() -> ActionDispatcher:
    if dispatcher is None:
        raise HTTPException(status_code=503, detail="Habit grid unavailable")
    return dispatcher


class CellUpdateRequest(BaseModel):
    habitName: str = Field(min_length=1)
    dateStr: str = Field(min_length=10, description="YYYY-MM-DD")
    val: int | None = None
    note: str | None = None


class PeriodicityRequest(BaseModel):
    habitName: str = Field(min_length=1)
    periodicity: str = ""


@router.post("/exec")
async def execute(request: Request) -> Any:
    disp = _require_dispatcher()
    body = await request.body()
    try:
        payload = json.loads(body.decode("utf-8") or "{}")
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning(f"Rejected malformed request body: {e}")
        return error("Malformed JSON body")
    return await _run(disp, payload)


@router.get("/grid")
async def read_grid() -> Any:
    return await _run(_require_dispatcher(), {"action": "read"})


@router.post("/cell")
async def update_cell(req: CellUpdateRequest) -> Any:
    payload: dict[str, Any] = {"action": "update", "habitName": req.habitName, "dateStr": req.dateStr}
    if req.val is not None:
        payload["val"] = req.val
    if req.note is not None:
        payload["note"] = req.note
    return await _run(_require_dispatcher(), payload)


@router.post("/periodicity")
async def update_periodicity(req: PeriodicityRequest) -> Any:
    payload = {"action": "updateHabitPeriodicity", "habitName": req.habitName, "periodicity": req.periodicity}
    return await _run(_require_dispatcher(), payload)


@router.post("/snapshot")
async def save_snapshot() -> Any:
    return await _run(_require_dispatcher(), {"action": "saveSnapshot"})


async def _run(disp: ActionDispatcher, payload: Any) -> Any:
    # dispatcher blocks on the request lock and the store
    return await run_in_threadpool(disp.handle, payload)
