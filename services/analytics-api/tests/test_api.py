import httpx
import pytest

from engagement.dependencies import get_analytics, get_recorder
from engagement.main import app


@pytest.fixture
async def client(recorder, analytics):
    app.dependency_overrides[get_recorder] = lambda: recorder
    app.dependency_overrides[get_analytics] = lambda: analytics
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")

    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_view_dedup_over_http(client):
    body = {
        "entity_id": "i1",
        "entity_type": "item",
        "actor": {"user_id": "u1", "username": "u1"},
        "device_info": {"browser": "Safari 17", "is_mobile": True},
    }

    first = await client.post("/events/views", json=body)
    second = await client.post("/events/views", json=body)

    assert first.status_code == 201
    assert first.json()["event_id"] == second.json()["event_id"]

    item = (await client.get("/analytics/items/i1")).json()
    assert item["totals"]["view"] == 1


@pytest.mark.asyncio
async def test_anonymous_view_over_http(client):
    for _ in range(2):
        resp = await client.post("/events/views", json={"entity_id": "i1", "entity_type": "item"})
        assert resp.status_code == 201

    item = (await client.get("/analytics/items/i1")).json()
    assert item["totals"]["view"] == 2
    assert item["unique_totals"]["view"] == 0


@pytest.mark.asyncio
async def test_interaction_validation(client):
    base = {"entity_id": "i1", "entity_type": "item", "actor": {"user_id": "u1"}}

    view_kind = await client.post("/events/interactions", json={**base, "kind": "view"})
    no_actor = await client.post(
        "/events/interactions", json={"entity_id": "i1", "entity_type": "item", "kind": "like"}
    )
    bad_type = await client.post(
        "/events/interactions", json={**base, "entity_type": "playlist", "kind": "like"}
    )

    assert view_kind.status_code == 422
    assert no_actor.status_code == 422
    assert bad_type.status_code == 422


@pytest.mark.asyncio
async def test_rollup_and_range_over_http(client, seed):
    await seed(users=["o1", "u2"], items=[("i1", "o1", "A"), ("i2", "o1", "B")])
    for item_id in ("i1", "i2"):
        resp = await client.post(
            "/events/interactions",
            json={
                "entity_id": item_id,
                "entity_type": "item",
                "kind": "like",
                "actor": {"user_id": "u2", "username": "u2"},
            },
        )
        assert resp.status_code == 201

    rollup = (await client.get("/analytics/owners/o1/rollup")).json()
    assert rollup["totals"]["like"] == 2
    assert rollup["unique_totals"]["like"] == 1
    assert rollup["top_likers"][0]["actor_id"] == "u2"

    in_range = (
        await client.get("/analytics/owners/o1/range", params={"start": "2026-03-10", "end": "2026-03-10"})
    ).json()
    assert in_range["totals_in_range"]["like"] == 2
    assert in_range["series_in_range"]["like"] == [{"date": "2026-03-10", "count": 2}]

    out_of_range = (
        await client.get("/analytics/owners/o1/range", params={"start": "2026-03-11", "end": "2026-03-31"})
    ).json()
    assert out_of_range["totals_in_range"]["like"] == 0


@pytest.mark.asyncio
async def test_range_requires_bounds_or_preset(client):
    missing = await client.get("/analytics/owners/o1/range", params={"start": "2026-03-10"})
    bad_preset = await client.get("/analytics/owners/o1/range", params={"preset": "1y"})
    preset = await client.get("/analytics/owners/o1/range", params={"preset": "7d"})

    assert missing.status_code == 400
    assert bad_preset.status_code == 422
    assert preset.status_code == 200


@pytest.mark.asyncio
async def test_profile_analytics_over_http(client, seed):
    await seed(users=["o1", "u1"], follows=[("u1", "o1")])
    await client.post(
        "/events/views",
        json={"entity_id": "o1", "entity_type": "profile", "actor": {"user_id": "u1", "display_name": "Ada"}},
    )

    profile = (await client.get("/analytics/profiles/o1")).json()

    assert profile["profile_views"] == 1
    assert profile["follower_count"] == 1
    assert profile["recent_profile_viewers"][0]["display_name"] == "Ada"


@pytest.mark.asyncio
async def test_item_range_and_recent_over_http(client):
    like = {"entity_id": "i1", "entity_type": "item", "kind": "like", "actor": {"user_id": "u2", "username": "u2"}}
    assert (await client.post("/events/interactions", json=like)).status_code == 201
    await client.post("/events/views", json={"entity_id": "i1", "entity_type": "item"})

    in_range = (
        await client.get("/analytics/items/i1/range", params={"start": "2026-03-10", "end": "2026-03-10"})
    ).json()
    before = (
        await client.get("/analytics/items/i1/range", params={"start": "2026-03-01", "end": "2026-03-09"})
    ).json()
    recent = (await client.get("/analytics/items/i1/recent", params={"kind": "like"})).json()
    missing = await client.get("/analytics/items/i1/range", params={"end": "2026-03-10"})
    bad_kind = await client.get("/analytics/items/i1/recent", params={"kind": "share"})

    assert in_range["entity_type"] == "item"
    assert in_range["totals_in_range"]["like"] == 1
    assert in_range["totals_in_range"]["view"] == 1
    assert before["totals_in_range"]["like"] == 0
    assert [e["actor_id"] for e in recent] == ["u2"]
    assert missing.status_code == 400
    assert bad_kind.status_code == 422


@pytest.mark.asyncio
async def test_profile_range_over_http(client):
    await client.post("/events/views", json={"entity_id": "o1", "entity_type": "profile"})

    resp = await client.get("/analytics/profiles/o1/range", params={"preset": "all"})

    assert resp.status_code == 200
    assert resp.json()["totals_in_range"]["view"] == 1
    assert resp.json()["source"] == "all"
