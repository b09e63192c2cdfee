from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger

from nearby.api.deps import get_store
from nearby.core.errors import EngineError
from nearby.engine.store import PresenceStore
from nearby.schemas.entities import Match, Proposal, ProposalLists
from nearby.schemas.requests import ProposalAcceptRequest, ProposalCreateRequest

router = APIRouter(prefix="/proposals", tags=["proposals"])


@router.post("", response_model=Proposal, status_code=201)
def create_proposal(
    payload: ProposalCreateRequest,
    store: PresenceStore = Depends(get_store),
):
    try:
        return store.create_proposal(payload.from_user, payload.to_user)
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("", response_model=ProposalLists)
def list_proposals(
    user_id: str = Query(..., alias="userId", min_length=1),
    store: PresenceStore = Depends(get_store),
):
    return store.list_proposals_for_user(user_id.strip())


@router.post("/{proposal_id}/accept", response_model=Match)
def accept_proposal(
    proposal_id: str,
    payload: ProposalAcceptRequest,
    store: PresenceStore = Depends(get_store),
):
    try:
        return store.accept_proposal(proposal_id, payload.accepter_id)
    except EngineError as e:
        logger.info(f"Accept rejected | proposal={proposal_id} reason={e}")
        raise HTTPException(status_code=e.status_code, detail=str(e))
