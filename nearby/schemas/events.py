from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel

from nearby.schemas.entities import Match, Message, Presence, Proposal
from nearby.schemas.enums import EventType


class BroadcastEvent(BaseModel):
    type: EventType
    payload: Dict[str, Any]

    def to_json(self) -> str:
        return self.model_dump_json()


def _dump(model) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


# ---------------------------
# Event builders
# ---------------------------

def presence_updated(presence: Presence) -> BroadcastEvent:
    return BroadcastEvent(type=EventType.presence_update, payload=_dump(presence))


def presence_removed(user_id: str) -> BroadcastEvent:
    return BroadcastEvent(type=EventType.presence_remove, payload={"userId": user_id})


def proposal_created(proposal: Proposal) -> BroadcastEvent:
    return BroadcastEvent(type=EventType.proposal_created, payload=_dump(proposal))


def proposal_accepted(proposal_id: str, match: Match) -> BroadcastEvent:
    return BroadcastEvent(
        type=EventType.proposal_accepted,
        payload={"proposalId": proposal_id, "match": _dump(match)},
    )


def match_closed(match_id: str) -> BroadcastEvent:
    return BroadcastEvent(type=EventType.match_closed, payload={"matchId": match_id})


def message_created(message: Message) -> BroadcastEvent:
    return BroadcastEvent(type=EventType.message_new, payload=_dump(message))


def reset_ran(at: datetime) -> BroadcastEvent:
    return BroadcastEvent(type=EventType.reset_run, payload={"at": at.isoformat()})
