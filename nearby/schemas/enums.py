from enum import Enum

class ProposalStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    declined = "declined"

class EventType(str, Enum):
    presence_update = "presence:update"
    presence_remove = "presence:remove"
    proposal_created = "proposal:created"
    proposal_accepted = "proposal:accepted"
    match_closed = "match:closed"
    message_new = "message:new"
    reset_run = "reset:run"

class ResetReason(str, Enum):
    auto = "auto"
    manual = "manual"
