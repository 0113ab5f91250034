from __future__ import annotations

import logging
from typing import Literal
from urllib.parse import quote

from fastapi import Depends, FastAPI, File, Form, Query, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from allocator.export import export_records
from allocator.metrics_summary import compute_summary
from allocator.params import STORE_PATH, ParamsError, normalize_params
from allocator.storage import JsonFileWeekStore, WeekStore
from allocator.weekly import WeeklyRunError, run_week
from api.schemas import RunResponse, WeeklyParamsModel, WeeksResponse


app = FastAPI(title="Stock Allocator API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_store() -> WeekStore:
    return JsonFileWeekStore(STORE_PATH)


def _json(data: object, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(data))


def _error(exc: Exception, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


def _not_found(week_id: str) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": f"week {week_id} not found", "type": "NotFound"})


@app.post("/weeks/{week_id}/process")
def process_week(
    week_id: str,
    file: UploadFile = File(...),
    params: str = Form(default="{}"),
    store: WeekStore = Depends(get_store),
):
    try:
        model = WeeklyParamsModel.model_validate_json(params)
        weekly = normalize_params({"week_id": week_id, **model.model_dump()})
        run = run_week(file.file.read(), weekly, store, filename=file.filename)
        body = RunResponse(
            week_id=run.output.week_id,
            baseline_missing=run.baseline_missing,
            prev_week_used=run.prev_week_used,
            record_count=len(run.records),
            output=run.output.to_dict(),
        )
        return _json(body.model_dump())
    except (ParamsError, ValidationError) as exc:
        return _error(exc, 400)
    except WeeklyRunError as exc:
        return _error(exc, 500)
    except Exception as exc:
        logger.exception("process_week failed")
        return _error(exc, 500)


@app.get("/weeks")
def list_weeks(store: WeekStore = Depends(get_store)):
    try:
        return _json(WeeksResponse(weeks=store.list_keys()).model_dump())
    except Exception as exc:
        logger.exception("list_weeks failed")
        return _error(exc, 500)


@app.get("/weeks/{week_id}")
def get_week(week_id: str, store: WeekStore = Depends(get_store)):
    try:
        output = store.load(week_id)
        if output is None:
            return _not_found(week_id)
        return _json(output.to_dict())
    except Exception as exc:
        logger.exception("get_week failed")
        return _error(exc, 500)


@app.delete("/weeks/{week_id}")
def delete_week(week_id: str, store: WeekStore = Depends(get_store)):
    try:
        store.delete(week_id)
        return _json({"deleted": week_id})
    except Exception as exc:
        logger.exception("delete_week failed")
        return _error(exc, 500)


@app.delete("/weeks")
def clear_weeks(store: WeekStore = Depends(get_store)):
    try:
        store.clear_all()
        return _json({"cleared": True})
    except Exception as exc:
        logger.exception("clear_weeks failed")
        return _error(exc, 500)


@app.get("/weeks/{week_id}/summary")
def week_summary(
    week_id: str,
    include_other_years: bool = Query(default=True),
    store: WeekStore = Depends(get_store),
):
    try:
        output = store.load(week_id)
        if output is None:
            return _not_found(week_id)
        return _json(compute_summary(output.records, include_other_years=include_other_years))
    except Exception as exc:
        logger.exception("week_summary failed")
        return _error(exc, 500)


@app.get("/weeks/{week_id}/export/{fmt}")
def export_week(
    week_id: str,
    fmt: Literal["json", "csv", "xlsx"],
    subset: Literal["all", "low_stock", "reallocation", "reallocation_with_stock"] = Query(default="all"),
    store: WeekStore = Depends(get_store),
):
    try:
        output = store.load(week_id)
        if output is None:
            return _not_found(week_id)
        payload, filename, media_type = export_records(output.records, fmt=fmt, subset=subset, week_id=week_id)
        # Header values are latin-1; week ids may not be.
        disposition = f"attachment; filename*=UTF-8''{quote(filename)}"
        return Response(content=payload, media_type=media_type, headers={"Content-Disposition": disposition})
    except Exception as exc:
        logger.exception("export_week failed")
        return _error(exc, 500)
