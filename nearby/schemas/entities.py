"""
In-memory entities owned by the presence store.

Each model is serialised with camelCase aliases, so a Presence goes out as
{"userId": ..., "gridLat": ..., "expiresAt": ...}.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from nearby.schemas.base import BaseSchema
from nearby.schemas.enums import ProposalStatus


class UserProfile(BaseSchema):
    id: str
    nickname: str
    age_verified: bool = True
    tags: List[str] = Field(default_factory=list)
    bio: Optional[str] = None
    vibe: Optional[str] = None
    budget: Optional[str] = None
    created_at: datetime
    last_active_at: datetime


class Presence(BaseSchema):
    user_id: str
    lat: float
    lng: float
    grid_lat: float
    grid_lng: float
    location_label: Optional[str] = None
    since: datetime
    expires_at: datetime = Field(..., description="Next daily reset boundary")


class Proposal(BaseSchema):
    id: str
    from_user: str = Field(..., alias="from")
    to_user: str = Field(..., alias="to")
    created_at: datetime
    status: ProposalStatus = ProposalStatus.pending
    responded_at: Optional[datetime] = None
    match_id: Optional[str] = None


class Match(BaseSchema):
    id: str
    user_a: str
    user_b: str
    created_at: datetime
    closed_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.closed_at is None

    def involves(self, user_id: str) -> bool:
        return user_id in (self.user_a, self.user_b)

    def pairs(self, a: str, b: str) -> bool:
        return {self.user_a, self.user_b} == {a, b}


class Message(BaseSchema):
    id: str
    match_id: str
    from_user: str = Field(..., alias="from")
    text: str
    sent_at: datetime


class Report(BaseSchema):
    id: str
    reporter_id: str
    reported_user_id: str
    reason: str
    details: Optional[str] = None
    created_at: datetime


class NearbyListing(BaseSchema):
    user: UserProfile
    presence: Presence
    distance_km: float
    affinity_score: float


class ProposalLists(BaseSchema):
    incoming: List[Proposal] = Field(default_factory=list)
    outgoing: List[Proposal] = Field(default_factory=list)
