import pytest

from engagement.clients.directory import UNKNOWN_USER
from engagement.services.ranking import TopKRanker, order_actors, recent_interactors


def test_count_then_recency_ordering():
    counts = {"A": 5, "B": 5, "C": 3}
    last_seen = {"A": "2026-03-10T12:00:00", "B": "2026-03-10T08:00:00", "C": "2026-03-11T00:00:00"}

    assert order_actors(counts, last_seen)[:2] == ["A", "B"]
    assert order_actors(counts, last_seen) == ["A", "B", "C"]


def test_full_ties_keep_encounter_order():
    counts = {"x": 1, "y": 1, "z": 1}
    same = {a: "2026-03-10T12:00:00" for a in counts}

    assert order_actors(counts, same) == ["x", "y", "z"]


@pytest.mark.asyncio
async def test_rank_truncates_and_enriches(directory, seed):
    await seed(users=["A", "B", "C"])
    counts = {"A": 5, "B": 5, "C": 3}
    last_seen = {"A": "2026-03-10T12:00:00", "B": "2026-03-10T08:00:00", "C": "2026-03-09T00:00:00"}

    top = await TopKRanker(directory).rank(counts, last_seen, k=2)

    assert [e.actor_id for e in top] == ["A", "B"]
    assert top[0].display_name == "A"
    assert top[0].interaction_count == 5
    assert top[0].last_interaction == "2026-03-10T12:00:00"


@pytest.mark.asyncio
async def test_rank_drops_unknown_actors_and_backfills(directory, seed):
    await seed(users=["B", "C"])
    counts = {"ghost": 9, "B": 4, "C": 2}

    top = await TopKRanker(directory).rank(counts, {}, k=2)

    assert [e.actor_id for e in top] == ["B", "C"]


@pytest.mark.asyncio
async def test_rank_keeps_unknown_user_placeholder(directory, seed):
    await seed(users=[{"user_id": "nameless"}, "B"])

    top = await TopKRanker(directory).rank({"nameless": 3, "B": 1}, {}, k=5)

    assert [e.actor_id for e in top] == ["nameless", "B"]
    assert top[0].display_name == UNKNOWN_USER


@pytest.mark.asyncio
async def test_rank_with_nothing_to_rank(directory):
    assert await TopKRanker(directory).rank({}, {}, k=5) == []
    assert await TopKRanker(directory).rank({"A": 1}, {}, k=0) == []


def test_recent_interactors_use_event_snapshots():
    events = [
        ("u1", {"display_name": "Ada (today)"}, "2026-03-12T10:00:00"),
        (None, None, "2026-03-12T09:00:00"),
        ("u2", {"display_name": "Bo"}, "2026-03-11T10:00:00"),
        ("u1", {"display_name": "Ada (old)"}, "2026-03-10T10:00:00"),
    ]

    top = recent_interactors(events, k=10)

    assert [e.actor_id for e in top] == ["u1", "u2"]
    assert top[0].interaction_count == 2
    assert top[0].display_name == "Ada (today)"
    assert top[0].last_interaction == "2026-03-12T10:00:00"
