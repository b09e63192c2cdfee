from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from nearby.api.deps import get_store
from nearby.core.config import DEFAULT_RADIUS_KM
from nearby.core.errors import EngineError
from nearby.engine.store import PresenceStore
from nearby.schemas.entities import Presence
from nearby.schemas.requests import PresenceSetRequest

router = APIRouter()


# ------------------------------------------------------------------
# PRESENCE
# ------------------------------------------------------------------

@router.post("/presences", response_model=Presence, status_code=201)
def set_presence(
    payload: PresenceSetRequest,
    store: PresenceStore = Depends(get_store),
):
    try:
        return store.set_presence(
            user_id=payload.user_id,
            lat=payload.lat,
            lng=payload.lng,
            label=payload.location_label,
        )
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.delete("/presences/{user_id}")
def remove_presence(user_id: str, store: PresenceStore = Depends(get_store)):
    removed = store.remove_presence(user_id)
    return {"ok": True, "removed": removed}


# ------------------------------------------------------------------
# NEARBY
# ------------------------------------------------------------------

@router.get("/nearby")
def list_nearby(
    lat: float = Query(..., allow_inf_nan=False),
    lng: float = Query(..., allow_inf_nan=False),
    radius_km: float = Query(DEFAULT_RADIUS_KM, alias="radiusKm", ge=0, allow_inf_nan=False),
    self_user_id: Optional[str] = Query(None, alias="selfUserId"),
    store: PresenceStore = Depends(get_store),
):
    listings = store.list_nearby(lat, lng, radius_km, self_user_id=self_user_id)
    return {"items": listings}
