"""
Tests for local_store.py - file-backed store, change signal, seeding.
"""

import asyncio
import json

from conftest import HOUR_MS, make_report
from safetymap.models.report import ReportStatus, ZoneType
from safetymap.seed_data import DEMO_REPORT_IDS, initial_reports
from safetymap.services.local_store import LAST_UPDATED_KEY, REPORTS_KEY, LocalStore
from safetymap.services.normalize import now_ms


class Recorder:
    """Collects subscription deliveries."""

    def __init__(self):
        self.snapshots = []
        self.timestamps = []

    def on_reports(self, reports):
        self.snapshots.append(list(reports))

    def on_last_updated(self, ts):
        self.timestamps.append(ts)


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


class TestPersistedLayout:
    """The two named entries."""

    def test_entries_written(self, local_store, store_path):
        async def scenario():
            await local_store.add_report(make_report())

        asyncio.run(scenario())
        entries = json.loads(store_path.read_text())
        assert set(entries) == {REPORTS_KEY, LAST_UPDATED_KEY}
        assert isinstance(entries[LAST_UPDATED_KEY], str)
        stored = json.loads(entries[REPORTS_KEY])
        assert stored[0]["title"] == "Abduction in X"
        assert "abductedCount" not in stored[0]
        assert stored[0]["position"] == {"lat": 10.0, "lng": 7.0}

    def test_survives_new_instance(self, store_path):
        async def scenario():
            await LocalStore(store_path).add_report(make_report(id="keep-me"))
            return await LocalStore(store_path).fetch_reports()

        assert [r.id for r in asyncio.run(scenario())] == ["keep-me"]


class TestWrites:
    """add_report / update_status."""

    def test_add_assigns_id_and_prepends(self, local_store):
        async def scenario():
            first = await local_store.add_report(make_report(title="first"))
            second = await local_store.add_report(make_report(title="second"))
            return first, second, await local_store.fetch_reports()

        first, second, stored = asyncio.run(scenario())
        assert first.id.startswith("RPT-")
        assert [r.title for r in stored] == ["second", "first"]

    def test_status_patch_preserves_other_fields(self, local_store):
        async def scenario():
            r = await local_store.add_report(make_report(status=ReportStatus.PENDING, abducted_count=4))
            await local_store.update_status(r.id, ReportStatus.VERIFIED)
            return await local_store.fetch_reports()

        (stored,) = asyncio.run(scenario())
        assert stored.status == ReportStatus.VERIFIED
        assert stored.abducted_count == 4

    def test_dismiss_deletes_and_repeat_is_tolerated(self, local_store):
        async def scenario():
            rec = Recorder()
            r = await local_store.add_report(make_report())
            unsubscribe = local_store.subscribe(rec.on_reports, rec.on_last_updated)
            await settle()
            await local_store.update_status(r.id, ReportStatus.DISMISSED)
            await local_store.update_status(r.id, ReportStatus.DISMISSED)
            await local_store.update_status(r.id, ReportStatus.RESOLVED)
            unsubscribe()
            return r, rec, await local_store.fetch_reports()

        r, rec, stored = asyncio.run(scenario())
        assert r.id not in {s.id for s in stored}
        assert all(r.id not in {s.id for s in snap} for snap in rec.snapshots[1:])


class TestSeeding:
    """Bootstrap data."""

    def test_first_subscription_seeds(self, local_store):
        async def scenario():
            rec = Recorder()
            unsubscribe = local_store.subscribe(rec.on_reports, rec.on_last_updated)
            await settle()
            unsubscribe()
            return rec

        rec = asyncio.run(scenario())
        assert len(rec.snapshots) == 1
        assert {r.id for r in rec.snapshots[0]} == {r.id for r in initial_reports()}
        assert len(rec.timestamps) == 1

    def test_seed_if_empty_is_idempotent(self, local_store):
        async def scenario():
            assert await local_store.seed_if_empty() is True
            count = await local_store.count()
            assert await local_store.seed_if_empty() is False
            return count, await local_store.count()

        first, second = asyncio.run(scenario())
        assert first == second == len(initial_reports())

    def test_seed_skipped_when_populated(self, local_store):
        async def scenario():
            await local_store.add_report(make_report())
            await local_store.seed_if_empty()
            return await local_store.count()

        assert asyncio.run(scenario()) == 1

    def test_missing_demo_records_patched_on_load(self, local_store):
        async def scenario():
            await local_store.add_report(make_report(id="user-1"))
            rec = Recorder()
            unsubscribe = local_store.subscribe(rec.on_reports, rec.on_last_updated)
            await settle()
            unsubscribe()
            return rec, await local_store.fetch_reports()

        rec, stored = asyncio.run(scenario())
        ids = {r.id for r in stored}
        assert set(DEMO_REPORT_IDS) <= ids
        assert "user-1" in ids
        assert {r.id for r in rec.snapshots[0]} == ids


class TestSyncThreats:
    """Batch ingestion."""

    def test_end_to_end_dedup(self, local_store):
        t = now_ms()

        async def scenario():
            await local_store.add_report(make_report(title="Abduction in X", lat=10.0, lng=7.0, timestamp=t))
            before = await local_store.count()
            added = await local_store.sync_threats([
                make_report(title="Kidnapping near X", description="Same event", lat=10.02, lng=7.01,
                            timestamp=t + HOUR_MS, status=ReportStatus.PENDING),
                make_report(title="Attack in Y", description="Different event", lat=11.8, lng=7.0,
                            timestamp=t, status=ReportStatus.PENDING),
            ])
            return before, added, await local_store.fetch_reports()

        before, added, stored = asyncio.run(scenario())
        assert added == 1
        assert len(stored) == before + 1
        new = stored[0]
        assert new.title == "Attack in Y"
        assert new.status == ReportStatus.VERIFIED
        assert new.id

    def test_empty_store_is_seeded_first(self, local_store):
        async def scenario():
            added = await local_store.sync_threats([
                make_report(title="Fresh", description="f", lat=4.8, lng=6.9, ztype=ZoneType.EVENT_GATHERING),
            ])
            return added, await local_store.count()

        added, count = asyncio.run(scenario())
        assert added == 1
        assert count == len(initial_reports()) + 1

    def test_all_duplicates_adds_nothing(self, local_store):
        async def scenario():
            existing = await local_store.add_report(make_report(source_url="https://a.example/1"))
            added = await local_store.sync_threats([
                make_report(title="Other", description="o", lat=0, lng=0, source_url="https://a.example/1"),
            ])
            return existing, added, await local_store.count()

        _, added, count = asyncio.run(scenario())
        assert added == 0
        assert count == 1

    def test_bulk_cleanup_is_noop(self, local_store):
        async def scenario():
            await local_store.seed_if_empty()
            return await local_store.run_bulk_cleanup(), await local_store.count()

        removed, count = asyncio.run(scenario())
        assert removed == 0
        assert count == len(initial_reports())


class TestChangeSignal:
    """Multi-instance updates and unsubscribe safety."""

    def test_other_instance_sees_writes(self, store_path):
        async def scenario():
            writer, reader = LocalStore(store_path), LocalStore(store_path)
            rec = Recorder()
            unsubscribe = reader.subscribe(rec.on_reports, rec.on_last_updated)
            await settle()
            await writer.add_report(make_report(id="from-writer"))
            unsubscribe()
            return rec

        rec = asyncio.run(scenario())
        assert len(rec.snapshots) == 2
        assert rec.snapshots[-1][0].id == "from-writer"

    def test_unsubscribe_twice_stops_delivery(self, local_store):
        async def scenario():
            rec = Recorder()
            unsubscribe = local_store.subscribe(rec.on_reports, rec.on_last_updated)
            await settle()
            unsubscribe()
            unsubscribe()
            await local_store.add_report(make_report())
            return rec

        rec = asyncio.run(scenario())
        assert len(rec.snapshots) == 1

    def test_unsubscribe_before_first_delivery(self, local_store):
        async def scenario():
            rec = Recorder()
            unsubscribe = local_store.subscribe(rec.on_reports, rec.on_last_updated)
            unsubscribe()
            await settle()
            return rec

        rec = asyncio.run(scenario())
        assert rec.snapshots == []
        assert rec.timestamps == []

    def test_unsubscribe_inside_callback_suppresses_timestamp(self, local_store):
        async def scenario():
            rec = Recorder()
            handle = {}

            def on_reports(reports):
                rec.on_reports(reports)
                handle["unsubscribe"]()

            handle["unsubscribe"] = local_store.subscribe(on_reports, rec.on_last_updated)
            await settle()
            await local_store.add_report(make_report())
            return rec

        rec = asyncio.run(scenario())
        assert len(rec.snapshots) == 1
        assert rec.timestamps == []
