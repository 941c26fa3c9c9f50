from datetime import datetime

import pytest

from engagement.domain import EntityType, EventKind
from engagement.services.rollup import RollupAggregator

DAY1 = datetime(2026, 3, 10, 9, 0)
DAY2 = datetime(2026, 3, 11, 9, 0)


@pytest.mark.asyncio
async def test_actor_liking_two_items_counts_once_in_unique_totals(store, rollups, seed):
    await seed(users=["o1", "u2"], items=[("i1", "o1", "A"), ("i2", "o1", "B")])
    await store.apply_update("i1", EntityType.ITEM, EventKind.LIKE, "u2", DAY1)
    await store.apply_update("i2", EntityType.ITEM, EventKind.LIKE, "u2", DAY1)

    rollup = await rollups.get_profile_rollup("o1")

    assert rollup.totals[EventKind.LIKE] == 2
    assert rollup.unique_totals[EventKind.LIKE] == 1
    naive = sum(s.unique_count(EventKind.LIKE) for _, s in rollup.items)
    assert naive == 2
    assert rollup.unique_totals[EventKind.LIKE] < naive


@pytest.mark.asyncio
async def test_rollup_totals_and_series_sum_children(store, rollups, seed):
    await seed(users=["o1"], items=[("i1", "o1", "A"), ("i2", "o1", "B"), ("i3", "o1", "C")])
    await store.apply_update("i1", EntityType.ITEM, EventKind.VIEW, "u1", DAY1)
    await store.apply_update("i2", EntityType.ITEM, EventKind.VIEW, "u2", DAY1)
    await store.apply_update("i2", EntityType.ITEM, EventKind.VIEW, None, DAY2)
    await store.apply_update("i3", EntityType.ITEM, EventKind.COMMENT, "u1", DAY2)
    # Not owned by o1
    await store.apply_update("other", EntityType.ITEM, EventKind.VIEW, "u9", DAY1)

    rollup = await rollups.get_profile_rollup("o1")

    per_item = {item.item_id: s for item, s in rollup.items}
    for kind in EventKind:
        assert rollup.totals[kind] == sum(s.total_count[kind] for s in per_item.values())
    assert rollup.series(EventKind.VIEW) == [
        {"date": "2026-03-10", "count": 2},
        {"date": "2026-03-11", "count": 1},
    ]
    assert rollup.unique_actors[EventKind.VIEW] == {"u1", "u2"}
    assert rollup.actor_counts[EventKind.COMMENT] == {"u1": 1}


@pytest.mark.asyncio
async def test_last_seen_is_latest_across_items(store, rollups, seed):
    await seed(users=["o1"], items=[("i1", "o1", "A"), ("i2", "o1", "B")])
    await store.apply_update("i1", EntityType.ITEM, EventKind.VIEW, "u1", DAY2)
    await store.apply_update("i2", EntityType.ITEM, EventKind.VIEW, "u1", DAY1)

    rollup = await rollups.get_profile_rollup("o1")

    assert rollup.actor_counts[EventKind.VIEW]["u1"] == 2
    assert rollup.last_seen[EventKind.VIEW]["u1"] == DAY2.isoformat()


@pytest.mark.asyncio
async def test_failing_child_is_skipped(store, directory, seed):
    await seed(users=["o1"], items=[("good", "o1", "A"), ("bad", "o1", "B")])
    await store.apply_update("good", EntityType.ITEM, EventKind.LIKE, "u1", DAY1)

    class FlakyStore:
        async def get_summary(self, entity_id, entity_type):
            if entity_id == "bad":
                raise TimeoutError("read timed out")
            return await store.get_summary(entity_id, entity_type)

    rollup = await RollupAggregator(FlakyStore(), directory).get_profile_rollup("o1")

    assert rollup.skipped == ["bad"]
    assert [item.item_id for item, _ in rollup.items] == ["good"]
    assert rollup.totals[EventKind.LIKE] == 1


@pytest.mark.asyncio
async def test_owner_without_items_is_empty(rollups, seed):
    await seed(users=["o1"])

    rollup = await rollups.get_profile_rollup("o1")

    assert rollup.items == []
    assert all(v == 0 for v in rollup.totals.values())


@pytest.mark.asyncio
async def test_include_profile_merges_profile_summary(store, rollups, seed):
    await seed(users=["o1"], items=[("i1", "o1", "A")])
    await store.apply_update("i1", EntityType.ITEM, EventKind.VIEW, "u1", DAY1)
    await store.apply_update("o1", EntityType.PROFILE, EventKind.VIEW, "u1", DAY1)
    await store.apply_update("o1", EntityType.PROFILE, EventKind.FOLLOW, "u2", DAY1)

    items_only = await rollups.get_profile_rollup("o1")
    with_profile = await rollups.get_profile_rollup("o1", include_profile=True)

    assert items_only.totals[EventKind.VIEW] == 1
    assert items_only.totals[EventKind.FOLLOW] == 0
    assert with_profile.totals[EventKind.VIEW] == 2
    assert with_profile.unique_totals[EventKind.VIEW] == 1
    assert with_profile.totals[EventKind.FOLLOW] == 1
