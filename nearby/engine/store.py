from __future__ import annotations

import math
import threading
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional

from loguru import logger

from nearby.core.errors import Forbidden, InvalidArgument, InvalidState, NotFound
from nearby.core.match_config import (
    AFFINITY_DISTANCE_BASE,
    AFFINITY_DISTANCE_PENALTY,
    AFFINITY_MAX_TAGS,
    AFFINITY_TAG_WEIGHT,
    COORD_DECIMALS,
    SELF_LISTING_BONUS,
)
from nearby.engine.geo import distance_km, to_grid
from nearby.engine.locations import get_preset
from nearby.engine.reset import next_reset_boundary, utcnow
from nearby.schemas import events
from nearby.schemas.entities import (
    Match,
    Message,
    NearbyListing,
    Presence,
    Proposal,
    ProposalLists,
    Report,
    UserProfile,
)
from nearby.schemas.enums import ProposalStatus, ResetReason
from nearby.schemas.events import BroadcastEvent

Publisher = Callable[[BroadcastEvent], None]


def _new_id() -> str:
    return str(uuid.uuid4())


def affinity_score(user: UserProfile, distance: float) -> float:
    tag_bonus = min(len(user.tags), AFFINITY_MAX_TAGS) * AFFINITY_TAG_WEIGHT
    distance_score = max(0, AFFINITY_DISTANCE_BASE - distance * AFFINITY_DISTANCE_PENALTY)
    return tag_bonus + distance_score


class PresenceStore:
    """
    Owns every collection of the service: users, presences, proposals,
    matches, message threads and reports.

    Each operation runs under one lock. Mutations publish their events
    while still holding it, so subscribers see events in commit order;
    the publisher must only hand the event off, never block.
    """

    def __init__(
        self,
        publish: Optional[Publisher] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._publish_fn = publish
        self._clock = clock
        self._lock = threading.RLock()

        self.users: Dict[str, UserProfile] = {}
        self.presences: Dict[str, Presence] = {}
        self.proposals: Dict[str, Proposal] = {}
        self.matches: Dict[str, Match] = {}
        self.messages: Dict[str, List[Message]] = {}
        self.reports: List[Report] = []
        self.last_reset_at: Optional[datetime] = None

    def _publish(self, event: BroadcastEvent) -> None:
        if self._publish_fn is None:
            return
        try:
            self._publish_fn(event)
        except Exception:
            logger.exception(f"Broadcast failed | type={event.type.value}")

    # ---------- USERS ----------

    def upsert_user(
        self,
        nickname: str,
        tags: List[str],
        user_id: Optional[str] = None,
        bio: Optional[str] = None,
        vibe: Optional[str] = None,
        budget: Optional[str] = None,
        age_verified: bool = True,
    ) -> UserProfile:
        with self._lock:
            now = self._clock()
            user_id = (user_id or "").strip() or _new_id()
            existing = self.users.get(user_id)

            profile = UserProfile(
                id=user_id,
                nickname=nickname,
                age_verified=age_verified,
                tags=list(tags),
                bio=bio,
                vibe=vibe,
                budget=budget,
                created_at=existing.created_at if existing else now,
                last_active_at=now,
            )
            self.users[user_id] = profile

        logger.info(f"User upserted | user={user_id} new={existing is None}")
        return profile

    def get_user(self, user_id: str) -> Optional[UserProfile]:
        with self._lock:
            return self.users.get(user_id)

    def list_users(self) -> List[UserProfile]:
        with self._lock:
            return list(self.users.values())

    # ---------- PRESENCE ----------

    def set_presence(
        self,
        user_id: str,
        lat: float,
        lng: float,
        label: Optional[str] = None,
    ) -> Presence:
        if not (math.isfinite(lat) and math.isfinite(lng)):
            raise InvalidArgument("lat and lng must be finite numbers")

        with self._lock:
            if user_id not in self.users:
                raise NotFound("User not found")

            now = self._clock()
            grid_lat, grid_lng = to_grid(lat, lng)
            presence = Presence(
                user_id=user_id,
                lat=round(lat, COORD_DECIMALS),
                lng=round(lng, COORD_DECIMALS),
                grid_lat=grid_lat,
                grid_lng=grid_lng,
                location_label=label,
                since=now,
                expires_at=next_reset_boundary(now),
            )
            self.presences[user_id] = presence
            self._publish(events.presence_updated(presence))

        logger.info(f"Presence set | user={user_id} grid=({grid_lat}, {grid_lng})")
        return presence

    def get_presence(self, user_id: str) -> Optional[Presence]:
        with self._lock:
            return self.presences.get(user_id)

    def remove_presence(self, user_id: str) -> bool:
        with self._lock:
            removed = self.presences.pop(user_id, None) is not None
            if removed:
                self._publish(events.presence_removed(user_id))

        logger.info(f"Presence remove | user={user_id} removed={removed}")
        return removed

    def list_nearby(
        self,
        lat: float,
        lng: float,
        radius_km: float,
        self_user_id: Optional[str] = None,
    ) -> List[NearbyListing]:
        results: List[NearbyListing] = []
        with self._lock:
            # Linear scan; grid fields are not used as an index.
            for presence in self.presences.values():
                user = self.users.get(presence.user_id)
                if user is None:
                    continue

                distance = distance_km(lat, lng, presence.lat, presence.lng)
                if not distance <= radius_km:
                    continue

                score = affinity_score(user, distance)
                if self_user_id is not None and presence.user_id == self_user_id:
                    score += SELF_LISTING_BONUS

                results.append(
                    NearbyListing(
                        user=user,
                        presence=presence,
                        distance_km=distance,
                        affinity_score=score,
                    )
                )

        results.sort(key=lambda r: (r.distance_km, -r.affinity_score))
        return results

    # ---------- PROPOSALS ----------

    def create_proposal(self, from_user: str, to_user: str) -> Proposal:
        if from_user == to_user:
            raise InvalidArgument("Cannot propose to self")

        with self._lock:
            now = self._clock()
            match = self._find_active_match(from_user, to_user)
            if match is not None:
                # Already matched: hand back a view of the match, store nothing.
                logger.info(f"Proposal short-circuit | from={from_user} to={to_user} match={match.id}")
                return Proposal(
                    id=_new_id(),
                    from_user=from_user,
                    to_user=to_user,
                    created_at=now,
                    status=ProposalStatus.accepted,
                    responded_at=match.created_at,
                    match_id=match.id,
                )

            proposal = Proposal(
                id=_new_id(),
                from_user=from_user,
                to_user=to_user,
                created_at=now,
            )
            self.proposals[proposal.id] = proposal
            self._publish(events.proposal_created(proposal))

        logger.info(f"Proposal created | id={proposal.id} from={from_user} to={to_user}")
        return proposal

    def accept_proposal(self, proposal_id: str, accepter_id: str) -> Match:
        with self._lock:
            proposal = self.proposals.get(proposal_id)
            if proposal is None:
                raise NotFound("Proposal not found")

            if proposal.to_user != accepter_id:
                raise Forbidden("Only the recipient can accept")

            if proposal.status == ProposalStatus.accepted and proposal.match_id:
                existing = self.matches.get(proposal.match_id)
                if existing is not None:
                    return existing

            match = self._find_or_create_match(proposal.from_user, proposal.to_user)
            proposal.status = ProposalStatus.accepted
            proposal.match_id = match.id
            proposal.responded_at = self._clock()
            self._publish(events.proposal_accepted(proposal.id, match))

        logger.info(f"Proposal accepted | id={proposal_id} match={match.id}")
        return match

    def list_proposals_for_user(self, user_id: str) -> ProposalLists:
        with self._lock:
            incoming = [p for p in self.proposals.values() if p.to_user == user_id]
            outgoing = [p for p in self.proposals.values() if p.from_user == user_id]

        incoming.sort(key=lambda p: p.created_at, reverse=True)
        outgoing.sort(key=lambda p: p.created_at, reverse=True)
        return ProposalLists(incoming=incoming, outgoing=outgoing)

    # ---------- MATCHES ----------

    def _find_active_match(self, user_a: str, user_b: str) -> Optional[Match]:
        return next(
            (m for m in self.matches.values() if m.is_open and m.pairs(user_a, user_b)),
            None,
        )

    def _find_or_create_match(self, user_a: str, user_b: str) -> Match:
        existing = self._find_active_match(user_a, user_b)
        if existing is not None:
            return existing

        match = Match(
            id=_new_id(),
            user_a=user_a,
            user_b=user_b,
            created_at=self._clock(),
        )
        self.matches[match.id] = match
        logger.info(f"Match opened | id={match.id} pair=({user_a}, {user_b})")
        return match

    def create_match(self, user_a: str, user_b: str) -> Match:
        # Direct path: no broadcast, unlike accept_proposal.
        with self._lock:
            return self._find_or_create_match(user_a, user_b)

    def get_match(self, match_id: str) -> Optional[Match]:
        with self._lock:
            return self.matches.get(match_id)

    def close_match(self, match_id: str) -> None:
        with self._lock:
            match = self.matches.get(match_id)
            if match is None or not match.is_open:
                return
            match.closed_at = self._clock()
            self._publish(events.match_closed(match_id))

        logger.info(f"Match closed | id={match_id}")

    def list_matches_for_user(self, user_id: str) -> List[Match]:
        with self._lock:
            results = [m for m in self.matches.values() if m.involves(user_id)]
        results.sort(key=lambda m: m.created_at, reverse=True)
        return results

    # ---------- MESSAGING ----------

    def append_message(self, match_id: str, from_user: str, text: str) -> Message:
        with self._lock:
            match = self.matches.get(match_id)
            if match is None or not match.is_open:
                raise InvalidState("Match is not active")

            message = Message(
                id=_new_id(),
                match_id=match_id,
                from_user=from_user,
                text=text,
                sent_at=self._clock(),
            )
            self.messages.setdefault(match_id, []).append(message)
            self._publish(events.message_created(message))

        logger.debug(f"Message appended | match={match_id} from={from_user} len={len(text)}")
        return message

    def list_messages(self, match_id: str) -> List[Message]:
        with self._lock:
            return list(self.messages.get(match_id, []))

    # ---------- REPORTS ----------

    def add_report(
        self,
        reporter_id: str,
        reported_user_id: str,
        reason: str,
        details: Optional[str] = None,
    ) -> Report:
        report = Report(
            id=_new_id(),
            reporter_id=reporter_id,
            reported_user_id=reported_user_id,
            reason=reason,
            details=details,
            created_at=self._clock(),
        )
        with self._lock:
            self.reports.append(report)

        logger.warning(f"Report filed | reporter={reporter_id} reported={reported_user_id} reason={reason}")
        return report

    # ---------- RESET ----------

    def reset_all(self, reason: ResetReason = ResetReason.manual) -> datetime:
        """
        Purge ephemeral state: presences and proposals go, open matches are
        closed. Users, closed matches, messages and reports are kept.
        """
        with self._lock:
            now = self._clock()

            presence_count = len(self.presences)
            for user_id in list(self.presences):
                self._publish(events.presence_removed(user_id))
            self.presences.clear()

            closed = 0
            for match in self.matches.values():
                if match.is_open:
                    match.closed_at = now
                    closed += 1
                    self._publish(events.match_closed(match.id))

            proposal_count = len(self.proposals)
            self.proposals.clear()

            self.last_reset_at = now
            self._publish(events.reset_ran(now))

        logger.info(
            f"Reset run | reason={ResetReason(reason).value} presences={presence_count} "
            f"matches_closed={closed} proposals={proposal_count}"
        )
        return now

    # ---------- DEMO DATA ----------

    def seed_demo_users(self) -> None:
        """Install the demo profiles with presences, without broadcasting."""
        with self._lock:
            now = self._clock()
            expires_at = next_reset_boundary(now)

            for seed in DEMO_USERS:
                preset = get_preset(seed["preset"])
                if preset is None:
                    continue

                user = UserProfile(
                    id=seed["id"],
                    nickname=seed["nickname"],
                    tags=seed["tags"],
                    bio=seed.get("bio"),
                    vibe=seed.get("vibe"),
                    budget=seed.get("budget"),
                    created_at=now,
                    last_active_at=now,
                )
                self.users[user.id] = user

                grid_lat, grid_lng = to_grid(preset.lat, preset.lng)
                self.presences[user.id] = Presence(
                    user_id=user.id,
                    lat=preset.lat,
                    lng=preset.lng,
                    grid_lat=grid_lat,
                    grid_lng=grid_lng,
                    location_label=preset.label,
                    since=now,
                    expires_at=expires_at,
                )

        logger.info(f"Seeded {len(DEMO_USERS)} demo users")


DEMO_USERS = [
    {
        "id": "demo-aya",
        "nickname": "Aya",
        "tags": ["静かに飲みたい", "新しい出会い歓迎"],
        "bio": "恵比寿のワインバーを開拓中。おすすめを交換しましょう。",
        "vibe": "ゆったり",
        "budget": "5000〜7000円",
        "preset": "ebisu",
    },
    {
        "id": "demo-ryo",
        "nickname": "Ryo",
        "tags": ["サクッと一杯", "はしご酒"],
        "bio": "渋谷でライブ帰り。もう一杯どうですか。",
        "vibe": "にぎやか",
        "budget": "3000円未満",
        "preset": "shibuya",
    },
    {
        "id": "demo-sara",
        "nickname": "Sara",
        "tags": ["英語でOK", "旅の話がしたい"],
        "bio": "六本木ヒルズ周辺にいます。海外のおしゃべりができる人歓迎。",
        "vibe": "静かなバー",
        "budget": "5000〜7000円",
        "preset": "roppongi",
    },
    {
        "id": "demo-daichi",
        "nickname": "Daichi",
        "tags": ["仕事の話歓迎", "静かに飲みたい"],
        "bio": "銀座で打ち合わせ終わり。軽く振り返りませんか。",
        "vibe": "ゆったり",
        "budget": "7000円以上",
        "preset": "ginza",
    },
    {
        "id": "demo-hina",
        "nickname": "Hina",
        "tags": ["旅の話がしたい", "じっくり会話"],
        "bio": "京都を旅行中。地元の穴場を教えてください。",
        "vibe": "カジュアル",
        "budget": "3000〜5000円",
        "preset": "kyoto",
    },
]
