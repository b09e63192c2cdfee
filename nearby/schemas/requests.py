from typing import List, Optional

from pydantic import Field, field_validator, model_validator

from nearby.core.match_config import MESSAGE_MAX_LENGTH, REPORT_DETAILS_MAX_LENGTH
from nearby.engine.locations import find_preset
from nearby.schemas.base import RequestSchema


# ---------- users ----------
class UserUpsertRequest(RequestSchema):
    id: Optional[str] = None
    nickname: str = Field(..., min_length=1)
    tags: List[str] = Field(default_factory=list)
    bio: Optional[str] = None
    vibe: Optional[str] = None
    budget: Optional[str] = None

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, value):
        # Accept ["a", "b"] or "a, b"
        if value is None:
            return []
        if isinstance(value, str):
            return [t.strip() for t in value.split(",") if t.strip()]
        if isinstance(value, list):
            return [str(t).strip() for t in value if str(t).strip()]
        return []


# ---------- presence ----------
class PresenceSetRequest(RequestSchema):
    user_id: str = Field(..., min_length=1)
    lat: Optional[float] = None
    lng: Optional[float] = None
    location_label: Optional[str] = None
    preset_key: Optional[str] = None
    location_key: Optional[str] = None
    location_term: Optional[str] = None

    @model_validator(mode="after")
    def resolve_location(self):
        if self.lat is not None and self.lng is not None:
            return self

        term = self.preset_key or self.location_key or self.location_term
        preset = find_preset(term) if term else None
        if preset is None:
            raise ValueError("location is required")

        self.lat = preset.lat
        self.lng = preset.lng
        self.location_label = preset.label
        return self


# ---------- proposals ----------
class ProposalCreateRequest(RequestSchema):
    from_user: str = Field(..., alias="from", min_length=1)
    to_user: str = Field(..., alias="to", min_length=1)


class ProposalAcceptRequest(RequestSchema):
    accepter_id: Optional[str] = None
    user_id: Optional[str] = None

    @model_validator(mode="after")
    def require_accepter(self):
        self.accepter_id = self.accepter_id or self.user_id
        if not self.accepter_id:
            raise ValueError("accepterId is required")
        return self


# ---------- messages ----------
class MessageCreateRequest(RequestSchema):
    from_user: str = Field(..., alias="from", min_length=1)
    text: str = Field(..., min_length=1, max_length=MESSAGE_MAX_LENGTH)


# ---------- reports ----------
class ReportCreateRequest(RequestSchema):
    reporter_id: str = Field(..., min_length=1)
    reported_user_id: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=1)
    details: Optional[str] = None

    @field_validator("details")
    @classmethod
    def cap_details(cls, value):
        if not value:
            return None
        return value[:REPORT_DETAILS_MAX_LENGTH]
