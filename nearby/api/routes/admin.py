from dataclasses import asdict

from fastapi import APIRouter, Depends

from nearby.api.deps import get_store
from nearby.engine.locations import LOCATION_PRESETS
from nearby.engine.store import PresenceStore
from nearby.schemas.entities import Report
from nearby.schemas.enums import ResetReason
from nearby.schemas.requests import ReportCreateRequest

router = APIRouter()


@router.post("/reports", response_model=Report, status_code=201, tags=["reports"])
def create_report(
    payload: ReportCreateRequest,
    store: PresenceStore = Depends(get_store),
):
    return store.add_report(
        reporter_id=payload.reporter_id,
        reported_user_id=payload.reported_user_id,
        reason=payload.reason,
        details=payload.details,
    )


@router.post("/reset", tags=["admin"])
def manual_reset(store: PresenceStore = Depends(get_store)):
    at = store.reset_all(ResetReason.manual)
    return {"ok": True, "lastResetAt": at}


@router.get("/location-presets", tags=["locations"])
def location_presets():
    return {"items": [asdict(p) for p in LOCATION_PRESETS]}
