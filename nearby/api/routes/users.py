from fastapi import APIRouter, Depends, HTTPException, Response
from loguru import logger

from nearby.api.deps import get_store
from nearby.engine.store import PresenceStore
from nearby.schemas.entities import UserProfile
from nearby.schemas.requests import UserUpsertRequest

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=UserProfile)
def upsert_user(
    payload: UserUpsertRequest,
    response: Response,
    store: PresenceStore = Depends(get_store),
):
    profile = store.upsert_user(
        nickname=payload.nickname,
        tags=payload.tags,
        user_id=payload.id,
        bio=payload.bio,
        vibe=payload.vibe,
        budget=payload.budget,
    )
    response.status_code = 200 if payload.id else 201
    return profile


@router.get("")
def list_users(store: PresenceStore = Depends(get_store)):
    return {"items": store.list_users()}


@router.get("/{user_id}", response_model=UserProfile)
def get_user(user_id: str, store: PresenceStore = Depends(get_store)):
    user = store.get_user(user_id)
    if not user:
        logger.debug(f"User lookup miss | user={user_id}")
        raise HTTPException(status_code=404, detail="not found")
    return user
