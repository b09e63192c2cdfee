import threading

import pytest

from nearby.core.errors import Forbidden, InvalidArgument, InvalidState, NotFound
from nearby.engine.reset import next_reset_boundary
from nearby.engine.store import PresenceStore, affinity_score
from nearby.schemas.enums import EventType, ProposalStatus, ResetReason


def _types(events):
    return [e.type for e in events]


@pytest.fixture
def pair(store):
    a = store.upsert_user("Aki", ["wine"], user_id="a")
    b = store.upsert_user("Ben", ["beer", "jazz"], user_id="b")
    return a, b


# ---------- USERS ----------

def test_upsert_generates_id(store, published):
    user = store.upsert_user("Aki", ["wine", "wine"])
    assert user.id
    assert user.tags == ["wine", "wine"]
    assert user.created_at == user.last_active_at
    assert store.get_user(user.id) == user
    assert published == []


def test_upsert_existing_keeps_created_at_and_overwrites_rest(store):
    first = store.upsert_user("Aki", ["wine"], user_id="a", bio="hi", vibe="calm")
    second = store.upsert_user("Aki2", [], user_id="a", budget="3000")

    assert second.created_at == first.created_at
    assert second.last_active_at > first.last_active_at
    assert second.nickname == "Aki2"
    assert second.bio is None and second.vibe is None
    assert second.budget == "3000"
    assert len(store.list_users()) == 1


def test_upsert_blank_id_creates_new_user(store):
    user = store.upsert_user("Aki", [], user_id="   ")
    assert user.id.strip() == user.id and user.id


# ---------- PRESENCE ----------

def test_set_presence_requires_user(store, published):
    with pytest.raises(NotFound):
        store.set_presence("ghost", 35.0, 139.0)
    assert store.presences == {}
    assert published == []


@pytest.mark.parametrize("lat, lng", [(float("nan"), 139.0), (35.0, float("inf")), (float("-inf"), 139.0)])
def test_set_presence_rejects_non_finite_coordinates(store, published, pair, lat, lng):
    with pytest.raises(InvalidArgument):
        store.set_presence("a", lat, lng)
    assert store.presences == {}
    assert published == []


def test_set_presence_stamps_grid_and_expiry(store, published, pair):
    presence = store.set_presence("a", 35.65951234567, 139.7005, label="渋谷")

    assert presence.lat == 35.659512
    assert presence.location_label == "渋谷"
    assert presence.expires_at == next_reset_boundary(presence.since)
    assert (presence.grid_lat, presence.grid_lng) != (0, 0)
    assert _types(published) == [EventType.presence_update]
    assert published[0].payload["userId"] == "a"
    assert "gridLat" in published[0].payload


def test_set_presence_overwrites_previous(store, pair):
    store.set_presence("a", 35.0, 139.0, label="first")
    second = store.set_presence("a", 36.0, 140.0)

    assert len(store.presences) == 1
    assert store.get_presence("a") == second
    assert second.location_label is None


def test_remove_presence_only_broadcasts_real_removals(store, published, pair):
    store.set_presence("a", 35.0, 139.0)
    published.clear()

    assert store.remove_presence("a") is True
    assert store.remove_presence("a") is False
    assert _types(published) == [EventType.presence_remove]
    assert published[0].payload == {"userId": "a"}


# ---------- NEARBY ----------

def test_affinity_score_formula(store):
    user = store.upsert_user("Many", ["a", "b", "c", "d", "e", "f", "g"])
    assert affinity_score(user, 0) == 10 + 20
    assert affinity_score(user, 2) == 10 + 10
    assert affinity_score(user, 10) == 10


def test_nearby_filters_by_radius_and_sorts_by_distance(store):
    coords = {"u0": (35.0, 139.0), "u1": (35.01, 139.0), "u2": (35.03, 139.0), "u3": (35.2, 139.0)}
    for uid, (lat, lng) in coords.items():
        store.upsert_user(uid, [], user_id=uid)
        store.set_presence(uid, lat, lng)

    listings = store.list_nearby(35.0, 139.0, 5)

    assert [l.user.id for l in listings] == ["u0", "u1", "u2"]
    distances = [l.distance_km for l in listings]
    assert distances == sorted(distances)
    assert all(d <= 5 for d in distances)


def test_nearby_ties_break_on_affinity(store):
    store.upsert_user("few", ["x"], user_id="few")
    store.upsert_user("many", ["x", "y", "z"], user_id="many")
    store.set_presence("few", 35.0, 139.0)
    store.set_presence("many", 35.0, 139.0)

    assert [l.user.id for l in store.list_nearby(35.0, 139.0, 1)] == ["many", "few"]


def test_nearby_self_sorts_first(store):
    store.upsert_user("me", [], user_id="me")
    store.upsert_user("popular", ["a", "b", "c", "d", "e"], user_id="popular")
    store.set_presence("me", 35.0, 139.0)
    store.set_presence("popular", 35.0, 139.0)

    listings = store.list_nearby(35.0, 139.0, 3, self_user_id="me")

    assert listings[0].user.id == "me"
    assert listings[0].affinity_score == 100 + 20


def test_nearby_skips_presence_without_user(store, pair):
    store.set_presence("a", 35.0, 139.0)
    del store.users["a"]
    assert store.list_nearby(35.0, 139.0, 5) == []


def test_nearby_never_returns_listings_with_unknown_distance(store, pair):
    store.set_presence("a", 35.0, 139.0)
    assert store.list_nearby(float("nan"), 139.0, 5) == []
    assert store.list_nearby(35.0, 139.0, float("nan")) == []
    assert [l.user.id for l in store.list_nearby(35.0, 139.0, float("inf"))] == ["a"]


def test_set_then_list_round_trip(store, pair):
    store.set_presence("b", 35.6629, 139.731)
    listings = store.list_nearby(35.6629, 139.731, 0)
    assert [l.user.id for l in listings] == ["b"]
    assert listings[0].distance_km <= 0.01


def test_remove_scenario(store, published):
    store.upsert_user("U1", [], user_id="U1")
    store.upsert_user("U2", [], user_id="U2")
    store.set_presence("U1", 35.0, 139.0)

    seen = store.list_nearby(35.0, 139.0001, 5, self_user_id="U2")
    assert [l.user.id for l in seen] == ["U1"]
    assert seen[0].distance_km <= 0.01

    store.remove_presence("U1")
    assert store.list_nearby(35.0, 139.0001, 5, self_user_id="U2") == []
    assert published[-1].type == EventType.presence_remove
    assert published[-1].payload["userId"] == "U1"


# ---------- PROPOSALS ----------

def test_self_proposal_rejected(store, published, pair):
    with pytest.raises(InvalidArgument):
        store.create_proposal("a", "a")
    assert store.proposals == {}
    assert published == []


def test_propose_and_accept_opens_one_match(store, published, pair):
    proposal = store.create_proposal("a", "b")
    assert proposal.status == ProposalStatus.pending

    match = store.accept_proposal(proposal.id, "b")

    assert {match.user_a, match.user_b} == {"a", "b"}
    assert match.is_open
    assert len(store.matches) == 1
    assert proposal.status == ProposalStatus.accepted
    assert proposal.match_id == match.id
    assert proposal.responded_at is not None
    assert _types(published) == [EventType.proposal_created, EventType.proposal_accepted]
    assert published[1].payload["proposalId"] == proposal.id
    assert published[1].payload["match"]["id"] == match.id


def test_proposal_for_matched_pair_is_synthetic(store, published, pair):
    match = store.accept_proposal(store.create_proposal("a", "b").id, "b")
    published.clear()

    again = store.create_proposal("b", "a")

    assert again.status == ProposalStatus.accepted
    assert again.match_id == match.id
    assert again.responded_at == match.created_at
    assert again.id not in store.proposals
    assert len(store.proposals) == 1
    assert published == []


def test_accept_by_wrong_user_is_forbidden(store, pair):
    proposal = store.create_proposal("a", "b")
    for intruder in ("a", "zed"):
        with pytest.raises(Forbidden):
            store.accept_proposal(proposal.id, intruder)
    assert proposal.status == ProposalStatus.pending
    assert store.matches == {}


def test_accept_missing_proposal(store):
    with pytest.raises(NotFound):
        store.accept_proposal("nope", "b")


def test_accept_is_idempotent(store, published, pair):
    proposal = store.create_proposal("a", "b")
    first = store.accept_proposal(proposal.id, "b")
    second = store.accept_proposal(proposal.id, "b")

    assert first is second
    assert _types(published).count(EventType.proposal_accepted) == 1


def test_crossed_proposals_share_one_match(store, pair):
    ab = store.create_proposal("a", "b")
    ba = store.create_proposal("b", "a")

    m1 = store.accept_proposal(ab.id, "b")
    m2 = store.accept_proposal(ba.id, "a")

    assert m1 is m2
    assert len(store.matches) == 1


def test_list_proposals_partitions_newest_first(store, pair):
    store.upsert_user("Cho", [], user_id="c")
    p1 = store.create_proposal("a", "b")
    p2 = store.create_proposal("c", "b")
    p3 = store.create_proposal("b", "a")

    lists = store.list_proposals_for_user("b")

    assert [p.id for p in lists.incoming] == [p2.id, p1.id]
    assert [p.id for p in lists.outgoing] == [p3.id]


# ---------- MATCHES ----------

def test_create_match_is_silent_and_reuses_open_match(store, published):
    m1 = store.create_match("a", "b")
    m2 = store.create_match("b", "a")
    assert m1 is m2
    assert published == []


def test_close_match_broadcasts_once(store, published):
    match = store.create_match("a", "b")

    store.close_match(match.id)
    closed_at = match.closed_at
    store.close_match(match.id)
    store.close_match("missing")

    assert closed_at is not None
    assert match.closed_at == closed_at
    assert _types(published) == [EventType.match_closed]
    assert published[0].payload == {"matchId": match.id}


def test_closed_match_frees_the_pair(store, pair):
    old = store.create_match("a", "b")
    store.close_match(old.id)

    proposal = store.create_proposal("a", "b")
    assert proposal.status == ProposalStatus.pending

    new = store.accept_proposal(proposal.id, "b")
    assert new.id != old.id
    assert new.is_open and not old.is_open


def test_list_matches_includes_closed_newest_first(store):
    m1 = store.create_match("a", "b")
    m2 = store.create_match("a", "c")
    store.create_match("b", "c")
    store.close_match(m1.id)

    assert [m.id for m in store.list_matches_for_user("a")] == [m2.id, m1.id]


# ---------- MESSAGING ----------

def test_messages_keep_arrival_order(store, published):
    match = store.create_match("a", "b")
    for i, sender in enumerate(["a", "b", "a"]):
        store.append_message(match.id, sender, f"msg {i}")

    thread = store.list_messages(match.id)
    assert [m.text for m in thread] == ["msg 0", "msg 1", "msg 2"]
    assert _types(published) == [EventType.message_new] * 3
    assert published[0].payload["from"] == "a"


def test_message_to_missing_or_closed_match(store):
    with pytest.raises(InvalidState):
        store.append_message("missing", "a", "hi")

    match = store.create_match("a", "b")
    store.close_match(match.id)
    with pytest.raises(InvalidState):
        store.append_message(match.id, "a", "hi")
    assert store.list_messages(match.id) == []


def test_list_messages_unknown_match_is_empty(store):
    assert store.list_messages("missing") == []


# ---------- REPORTS ----------

def test_add_report_is_silent(store, published):
    report = store.add_report("a", "b", "spam", details="too many pings")
    assert store.reports == [report]
    assert report.details == "too many pings"
    assert published == []


# ---------- RESET ----------

def test_reset_purges_ephemeral_state(store, published, pair):
    store.set_presence("a", 35.0, 139.0)
    store.set_presence("b", 35.0, 139.0)
    match = store.accept_proposal(store.create_proposal("a", "b").id, "b")
    store.append_message(match.id, "a", "hi")
    store.create_proposal("b", "c")
    store.add_report("a", "b", "rude")
    published.clear()

    at = store.reset_all(ResetReason.manual)

    assert store.presences == {}
    assert store.proposals == {}
    assert match.closed_at == at
    assert store.last_reset_at == at
    assert set(store.users) == {"a", "b"}
    assert len(store.list_messages(match.id)) == 1
    assert len(store.reports) == 1
    assert _types(published) == [
        EventType.presence_remove,
        EventType.presence_remove,
        EventType.match_closed,
        EventType.reset_run,
    ]
    assert published[-1].payload == {"at": at.isoformat()}


def test_reset_twice_is_idempotent(store, published, pair):
    store.set_presence("a", 35.0, 139.0)
    match = store.create_match("a", "b")

    first = store.reset_all("auto")
    closed_at = match.closed_at
    published.clear()
    second = store.reset_all("manual")

    assert second > first
    assert store.last_reset_at == second
    assert match.closed_at == closed_at
    assert store.presences == {} and store.proposals == {}
    assert _types(published) == [EventType.reset_run]


# ---------- PUBLISHING ----------

def test_failing_publisher_does_not_fail_mutation(clock):
    def explode(event):
        raise RuntimeError("socket gone")

    store = PresenceStore(publish=explode, clock=clock)
    store.upsert_user("Aki", [], user_id="a")

    presence = store.set_presence("a", 35.0, 139.0)
    assert store.get_presence("a") == presence


def test_store_without_publisher(clock):
    store = PresenceStore(clock=clock)
    store.upsert_user("Aki", [], user_id="a")
    store.set_presence("a", 35.0, 139.0)
    assert store.remove_presence("a")


def test_concurrent_mutations(store, published):
    def worker(n):
        uid = f"user-{n}"
        store.upsert_user(uid, [], user_id=uid)
        for _ in range(20):
            store.set_presence(uid, 35.0, 139.0 + n / 1000)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(store.presences) == 8
    assert len(published) == 8 * 20


def test_reads_wait_for_writer_lock(store, pair):
    seen = []

    def reader():
        seen.append(store.get_user("a"))
        seen.append(store.get_presence("a"))
        seen.append(store.get_match("missing"))

    with store._lock:
        store.set_presence("a", 35.0, 139.0)
        t = threading.Thread(target=reader)
        t.start()
        t.join(timeout=0.1)
        assert seen == []
    t.join()

    assert seen[0].id == "a"
    assert seen[1].lat == 35.0
    assert seen[2] is None


# ---------- DEMO DATA ----------

def test_seed_demo_users(store, published):
    store.seed_demo_users()
    assert len(store.users) == 5
    assert set(store.presences) == set(store.users)
    assert store.get_presence("demo-aya").location_label == "恵比寿"
    assert published == []
