"""FastAPI application for card generation and schedule management."""

from __future__ import annotations

import functools
import logging

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import FileResponse, JSONResponse, Response
from pydantic import BaseModel, EmailStr, Field

from cardstudio.errors import NotFoundError, ScheduleBusyError, StorageError, ValidationError
from cardstudio.models import (
    CardGenerationConfig,
    CardGenerationResult,
    Frequency,
    GenerationHistoryEntry,
    Product,
    Schedule,
    ScheduleExecution,
    SearchCriteria,
)
from cardstudio.services import Services, build_services
from cardstudio.storage.blobs import ARTIFACT_ROUTE, LocalBlobStore
from cardstudio.utils.urls import verify_token

logger = logging.getLogger(__name__)

app = FastAPI(title="Card Studio API")


class GenerateRequest(BaseModel):
    product: Product
    config: CardGenerationConfig = Field(default_factory=CardGenerationConfig)


class ScheduleCreate(BaseModel):
    name: str
    enabled: bool = True
    frequency: Frequency = Frequency.DAILY
    time: str = "09:00"
    weekdays: list[int] = Field(default_factory=lambda: [1, 3, 5])
    day_of_month: int = 1
    criteria: SearchCriteria = Field(default_factory=SearchCriteria)
    config: CardGenerationConfig = Field(default_factory=CardGenerationConfig)
    notify_email: EmailStr | None = None


class ScheduleUpdate(BaseModel):
    name: str | None = None
    enabled: bool | None = None
    frequency: Frequency | None = None
    time: str | None = None
    weekdays: list[int] | None = None
    day_of_month: int | None = None
    criteria: SearchCriteria | None = None
    config: CardGenerationConfig | None = None
    notify_email: EmailStr | None = None


@functools.lru_cache(maxsize=1)
def get_services() -> Services:
    return build_services()


@app.exception_handler(ValidationError)
async def validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse({"detail": str(exc)}, status_code=400)


@app.exception_handler(NotFoundError)
async def not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse({"detail": str(exc)}, status_code=404)


@app.exception_handler(ScheduleBusyError)
async def schedule_busy(request: Request, exc: ScheduleBusyError) -> JSONResponse:
    return JSONResponse({"detail": str(exc)}, status_code=409)


@app.exception_handler(StorageError)
async def storage_unavailable(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Storage failure on %s: %s", request.url.path, exc)
    return JSONResponse({"detail": "Storage unavailable"}, status_code=503)


@app.post("/cards", response_model=CardGenerationResult)
async def generate_cards(payload: GenerateRequest, services: Services = Depends(get_services)) -> CardGenerationResult:
    return await services.generator.generate_cards(payload.product, payload.config)


@app.get("/cards/history", response_model=list[GenerationHistoryEntry])
async def generation_history(
    limit: int = Query(20, ge=1, le=100), services: Services = Depends(get_services)
) -> list[GenerationHistoryEntry]:
    return await services.generator.history(limit)


@app.get("/schedules", response_model=list[Schedule])
async def list_schedules(services: Services = Depends(get_services)) -> list[Schedule]:
    return await services.schedules.list_schedules()


@app.post("/schedules", response_model=Schedule, status_code=201)
async def create_schedule(payload: ScheduleCreate, services: Services = Depends(get_services)) -> Schedule:
    fields = payload.model_dump(exclude={"name"})
    return await services.schedules.create_schedule(payload.name, **fields)


@app.post("/schedules/run-due", response_model=list[ScheduleExecution])
async def run_due_schedules(services: Services = Depends(get_services)) -> list[ScheduleExecution]:
    return await services.schedules.run_due_schedules()


@app.get("/schedules/{schedule_id}", response_model=Schedule)
async def get_schedule(schedule_id: str, services: Services = Depends(get_services)) -> Schedule:
    return await services.schedules.get_schedule(schedule_id)


@app.patch("/schedules/{schedule_id}", response_model=Schedule)
async def update_schedule(
    schedule_id: str, payload: ScheduleUpdate, services: Services = Depends(get_services)
) -> Schedule:
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No changes supplied")
    return await services.schedules.update_schedule(schedule_id, **changes)


@app.delete("/schedules/{schedule_id}", status_code=204)
async def delete_schedule(schedule_id: str, services: Services = Depends(get_services)) -> Response:
    await services.schedules.delete_schedule(schedule_id)
    return Response(status_code=204)


@app.post("/schedules/{schedule_id}/weekdays/{day}", response_model=Schedule)
async def toggle_weekday(schedule_id: str, day: int, services: Services = Depends(get_services)) -> Schedule:
    return await services.schedules.toggle_weekday(schedule_id, day)


@app.post("/schedules/{schedule_id}/run", response_model=ScheduleExecution)
async def run_schedule(schedule_id: str, services: Services = Depends(get_services)) -> ScheduleExecution:
    return await services.schedules.run_schedule(schedule_id)


@app.get("/executions", response_model=list[ScheduleExecution])
async def executions(
    limit: int = Query(20, ge=1, le=100), services: Services = Depends(get_services)
) -> list[ScheduleExecution]:
    return await services.schedules.executions(limit)


@app.get(ARTIFACT_ROUTE + "/{name}")
async def download_artifact(
    name: str, token: str = Query(...), services: Services = Depends(get_services)
) -> FileResponse:
    if not verify_token(token, f"{ARTIFACT_ROUTE}/{name}"):
        raise HTTPException(status_code=403, detail="Invalid or expired token")
    store = services.blob_store
    if not isinstance(store, LocalBlobStore):
        raise HTTPException(status_code=404, detail="Artifacts are not served locally")
    path = store.path_for(name)
    if not path.exists():
        raise HTTPException(status_code=404, detail="Artifact not found")
    return FileResponse(path)
