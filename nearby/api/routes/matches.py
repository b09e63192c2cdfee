from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger

from nearby.api.deps import get_store
from nearby.core.errors import EngineError
from nearby.engine.store import PresenceStore
from nearby.schemas.entities import Message
from nearby.schemas.requests import MessageCreateRequest

router = APIRouter(prefix="/matches", tags=["matches"])


@router.get("")
def list_matches(
    user_id: str = Query(..., alias="userId", min_length=1),
    store: PresenceStore = Depends(get_store),
):
    return {"items": store.list_matches_for_user(user_id.strip())}


@router.post("/{match_id}/close")
def close_match(match_id: str, store: PresenceStore = Depends(get_store)):
    if store.get_match(match_id) is None:
        raise HTTPException(status_code=404, detail="Match not found")
    store.close_match(match_id)
    return {"ok": True}


# ---------- MESSAGING ----------

@router.get("/{match_id}/messages")
def list_messages(match_id: str, store: PresenceStore = Depends(get_store)):
    return {"items": store.list_messages(match_id)}


@router.post("/{match_id}/messages", response_model=Message, status_code=201)
def send_message(
    match_id: str,
    payload: MessageCreateRequest,
    store: PresenceStore = Depends(get_store),
):
    try:
        return store.append_message(match_id, payload.from_user, payload.text)
    except EngineError as e:
        logger.info(f"Message rejected | match={match_id} reason={e}")
        raise HTTPException(status_code=e.status_code, detail=str(e))
