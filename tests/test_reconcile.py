"""Tests for atlas_dedup — batch reconciliation against the store."""

import pytest

from atlas_dedup.blacklist import Blacklist
from atlas_dedup.engine import plan_reconcile, reconcile
from tests.conftest import WARSAW, FakeStore, make_record, offset_north

pytestmark = pytest.mark.asyncio


def _at(metres):
    return offset_north(WARSAW, metres)


def _palace_group():
    """Three records of one landmark plus an unrelated neighbour."""
    x = make_record(
        "store-1", "Palace of Culture", WARSAW.lat, WARSAW.lng,
        external_ref="ChIJx", image_url="https://img.example/x.jpg",
    )
    y_at, z_at, m_at = _at(300), _at(600), _at(2_000)
    y = make_record("store-2", "Palace of Culture (Main Hall)", y_at.lat, y_at.lng, external_ref="ChIJy")
    z = make_record(
        "store-3", "Palace of Culture - Tower", z_at.lat, z_at.lng,
        canonical_map_url="https://maps.example/?q=z", description="Stalinist high-rise",
    )
    museum = make_record("store-4", "Warsaw Uprising Museum", m_at.lat, m_at.lng)
    # seed order deliberately not the score order
    return [y, z, x, museum]


class TestPlan:
    async def test_groups_around_seed(self):
        plan = plan_reconcile(_palace_group())
        [group] = plan.groups
        assert group.survivor.id == "store-1"
        assert [r.id for r in group.losers] == ["store-2", "store-3"]
        assert group.scores == {"store-2": 10.0, "store-3": 3.0, "store-1": 15.0}
        assert [r.id for r in plan.singletons] == ["store-4"]

    async def test_exception_group_is_left_alone(self):
        a = make_record("store-1", "Ministry of Foreign Affairs", city="Moscow", country="Russia")
        there = _at(200)
        b = make_record("store-2", "Ministry of Foreign Affairs", there.lat, there.lng, city="Moscow", country="Russia")
        plan = plan_reconcile([a, b])
        assert plan.groups == []
        assert len(plan.singletons) == 2

    async def test_invalid_coordinates_never_grouped(self):
        a = make_record("store-1", "Grand Theatre", 0.0, 0.0)
        b = make_record("store-2", "Grand Theatre", 0.0, 0.0)
        assert plan_reconcile([a, b]).groups == []

    async def test_near_miss_goes_to_review(self):
        a = make_record("store-1", "Palace of Culture and Science")
        there = _at(200)
        b = make_record("store-2", "Culture and Science Palace", there.lat, there.lng)
        plan = plan_reconcile([a, b])
        assert plan.groups == []
        [pair] = plan.review_pairs
        assert (pair.record_a_id, pair.record_b_id) == ("store-1", "store-2")
        assert pair.token_similarity == 1.0
        assert pair.distance_m == pytest.approx(200, abs=1)


class TestReconcile:
    async def test_survivor_enriched_losers_deleted(self, blacklist, recording_sleep):
        records = _palace_group()
        store = FakeStore(records)

        result = await reconcile(records, store, blacklist, sleep=recording_sleep)

        assert store.updated == [
            ("store-1", {"canonical_map_url": "https://maps.example/?q=z", "description": "Stalinist high-rise"})
        ]
        assert store.deleted == ["store-2", "store-3"]
        assert result.deleted_ids == ["store-2", "store-3"]
        assert [r.id for r in result.kept] == ["store-1", "store-4"]
        assert result.kept[0].description == "Stalinist high-rise"
        assert result.errors == 0
        assert recording_sleep.delays == [0.3, 0.3]

        assert blacklist.ids == {2, 3}
        assert Blacklist.load(blacklist.path).ids == {2, 3}

    async def test_failed_delete_is_counted_not_blacklisted(self, blacklist, recording_sleep):
        records = _palace_group()
        store = FakeStore(records, fail_delete={"store-2"})

        result = await reconcile(records, store, blacklist, sleep=recording_sleep)

        assert result.errors == 1
        assert result.deleted_ids == ["store-3"]
        assert "store-2" in [r.id for r in result.kept]
        assert blacklist.ids == {3}
        # the delay follows every attempt, failed or not
        assert recording_sleep.delays == [0.3, 0.3]

    async def test_row_already_gone_counts_as_deleted(self, blacklist, recording_sleep):
        records = _palace_group()
        store = FakeStore(records)
        del store.records["store-2"]

        result = await reconcile(records, store, blacklist, sleep=recording_sleep)

        assert result.errors == 0
        assert result.deleted_ids == ["store-2", "store-3"]
        assert "store-2" not in [r.id for r in result.kept]
        assert blacklist.ids == {2, 3}
        assert recording_sleep.delays == [0.3, 0.3]

    async def test_failed_blacklist_save_still_reports(self, blacklist, recording_sleep, monkeypatch):
        def broken_save():
            raise OSError("disk full")

        monkeypatch.setattr(blacklist, "save", broken_save)
        records = _palace_group()
        store = FakeStore(records)

        result = await reconcile(records, store, blacklist, sleep=recording_sleep)

        assert store.deleted == ["store-2", "store-3"]
        assert result.deleted_ids == ["store-2", "store-3"]
        assert result.errors == 1
        assert result.summary()["blacklist_saved"] is False
        # still applied in memory for this process
        assert blacklist.ids == {2, 3}

    async def test_failed_update_keeps_original_and_continues(self, blacklist, recording_sleep):
        records = _palace_group()
        store = FakeStore(records, fail_update={"store-1"})

        result = await reconcile(records, store, blacklist, sleep=recording_sleep)

        assert result.errors == 1
        assert result.kept[0].id == "store-1"
        assert result.kept[0].description is None
        assert store.deleted == ["store-2", "store-3"]

    async def test_dry_run_touches_nothing(self, blacklist, recording_sleep):
        records = _palace_group()
        store = FakeStore(records)

        result = await reconcile(records, store, blacklist, dry_run=True, sleep=recording_sleep)

        assert store.updated == []
        assert store.deleted == []
        assert recording_sleep.delays == []
        assert len(blacklist) == 0
        assert not blacklist.path.exists()

        summary = result.summary()
        assert summary["dry_run"] is True
        assert summary["groups"] == 1
        assert summary["scheduled_deletions"] == 2
        assert summary["deleted"] == 0
        assert summary["survivors"] == 2

    async def test_already_blacklisted_rows_are_skipped(self, blacklist, recording_sleep):
        blacklist.add(["store-2"])
        records = _palace_group()
        store = FakeStore(records)

        result = await reconcile(records, store, blacklist, sleep=recording_sleep)

        assert store.deleted == ["store-3"]
        assert "store-2" not in [r.id for r in result.kept]

    async def test_custom_delay(self, blacklist, recording_sleep):
        records = _palace_group()
        await reconcile(records, FakeStore(records), blacklist, delay=0.0, sleep=recording_sleep)
        assert recording_sleep.delays == [0.0, 0.0]

    async def test_nothing_to_do(self, blacklist, recording_sleep):
        records = [make_record("store-1", "Palace of Culture")]
        result = await reconcile(records, FakeStore(records), blacklist, sleep=recording_sleep)
        assert result.summary()["groups"] == 0
        assert [r.id for r in result.kept] == ["store-1"]
        assert not blacklist.path.exists()
