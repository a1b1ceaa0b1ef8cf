"""FastAPI routes for emitting events and reading projected state."""

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from eventstate.api.schemas import EmitEventRequest, HealthResponse, StateResponse
from eventstate.events.feed import FeedHealth
from eventstate.events.registry import InvalidArgumentError
from eventstate.events.store import DuplicateEventError
from eventstate.models import Event
from eventstate.registry import Registry

router = APIRouter(prefix="/api", tags=["events"])


def get_registry() -> Registry:
    """Dependency placeholder, replaced at app startup."""
    raise RuntimeError("Registry not initialized")


@router.get("/health")
async def health(registry: Registry = Depends(get_registry)) -> HealthResponse:
    store = registry.get_store()
    body = HealthResponse(
        status="failed" if registry.health is FeedHealth.FAILED else "ok",
        feed=registry.health.value,
        hydrated=store is not None and store.hydrated,
        sequence=store.sequence if store is not None else None,
    )
    if registry.health is FeedHealth.FAILED:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=body.model_dump(),
        )
    return body


@router.get("/state")
async def get_state(registry: Registry = Depends(get_registry)) -> StateResponse:
    store = registry.get_store()
    if store is None:
        raise HTTPException(status_code=503, detail="Store not created")
    return StateResponse(state=store.get_state(), sequence=store.sequence)


@router.post("/events", status_code=status.HTTP_201_CREATED)
async def emit_event(
    request: EmitEventRequest,
    registry: Registry = Depends(get_registry),
) -> Event:
    try:
        return await registry.emit(request.model_dump())
    except InvalidArgumentError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DuplicateEventError as e:
        raise HTTPException(status_code=409, detail=str(e))
