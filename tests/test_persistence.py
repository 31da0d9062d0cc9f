"""Tests for PersistenceSync and BackgroundSaver."""

from __future__ import annotations

import asyncio
import json

from cms_sync.content.fallback import FallbackSnapshot
from cms_sync.content.tree import ContentTree
from cms_sync.core.remote import ContentRepository
from cms_sync.sync.loader import RemoteContentLoader
from cms_sync.sync.persistence import BackgroundSaver, PersistenceSync
from cms_sync.sync.tracker import ChangeTracker

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup(store, content=None, batch_size=50):
    tree = ContentTree(content or {})
    tracker = ChangeTracker(tree)
    repository = ContentRepository(store)
    sync = PersistenceSync(repository, tracker, tree, batch_size=batch_size)
    return sync, tracker, tree


def _content_rows(store):
    return store.tables["cms_content"]


def _row(store, page, key):
    matches = [
        r
        for r in _content_rows(store)
        if r["page_slug"] == page and r["content_key"] == key
    ]
    assert len(matches) <= 1, "duplicate rows"
    return matches[0] if matches else None


# ---------------------------------------------------------------------------
# save()
# ---------------------------------------------------------------------------


class TestSave:
    """Tests for PersistenceSync.save()."""

    async def test_coalesced_edits_write_one_row(self, store):
        """Three edits to one key produce exactly one upsert of the last value."""
        store.seed("cms_pages", [{"slug": "home", "name": "Home"}])
        sync, tracker, _ = _setup(store)
        for value in ("A", "B", "C"):
            tracker.record_edit("home", "hero", "title", "en", value)

        result = await sync.save()

        assert result.success
        upserts = store.calls_for("upsert", "cms_content")
        assert len(upserts) == 1
        rows = upserts[0][2]
        assert len(rows) == 1
        assert rows[0]["content_en"] == "C"
        assert result.saved_keys == ["home/hero.title"]
        assert not tracker.has_changes

    async def test_second_save_is_a_noop(self, store):
        store.seed("cms_pages", [{"slug": "home", "name": "Home"}])
        sync, tracker, _ = _setup(store)
        tracker.record_edit("home", "hero", "title", "en", "Hi")
        await sync.save()
        calls_before = len(store.calls)

        result = await sync.save()

        assert result.success
        assert result.is_noop
        assert len(store.calls) == calls_before

    async def test_partial_edit_keeps_other_languages(self, store):
        store.seed("cms_pages", [{"slug": "home", "name": "Home"}])
        sync, tracker, _ = _setup(
            store,
            {
                "home": {
                    "hero": {
                        "title": {
                            "en": "Hello",
                            "sv": "Hej",
                            "de": "Hallo",
                            "pl": "Cześć",
                        }
                    }
                }
            },
        )
        tracker.record_edit("home", "hero", "title", "en", "Hi there")

        await sync.save()

        row = _row(store, "home", "hero.title")
        assert row["content_en"] == "Hi there"
        assert row["content_sv"] == "Hej"
        assert row["content_de"] == "Hallo"
        assert row["content_pl"] == "Cześć"

    async def test_list_value_round_trips(self, store):
        store.seed("cms_pages", [{"slug": "home", "name": "Home"}])
        sync, tracker, _ = _setup(store)
        tracker.record_edit("home", "steps", "items", "en", ["one", "two", "three"])

        await sync.save()

        row = _row(store, "home", "steps.items")
        assert row["content_type"] == "array"
        assert json.loads(row["content_en"]) == ["one", "two", "three"]

        reloaded = ContentTree()
        loader = RemoteContentLoader(ContentRepository(store), reloaded)
        await loader.load()
        assert reloaded.get_value("home", "steps", "items", "en") == [
            "one",
            "two",
            "three",
        ]

    async def test_repeat_save_updates_same_row(self, store):
        store.seed("cms_pages", [{"slug": "home", "name": "Home"}])
        sync, tracker, _ = _setup(store)
        tracker.record_edit("home", "hero", "title", "en", "First")
        await sync.save()
        tracker.record_edit("home", "hero", "title", "en", "Second")
        await sync.save()

        assert len(_content_rows(store)) == 1
        assert _row(store, "home", "hero.title")["content_en"] == "Second"

    async def test_save_keeps_existing_field_label(self, store):
        store.seed("cms_pages", [{"slug": "home", "name": "Home"}])
        store.seed(
            "cms_content",
            [
                {
                    "page_slug": "home",
                    "section": "hero",
                    "content_key": "hero.title",
                    "field_label": "Main headline",
                    "content_en": "Hello",
                }
            ],
        )
        sync, tracker, _ = _setup(store)
        tracker.record_edit("home", "hero", "title", "en", "Hi")

        await sync.save()

        (rows,) = [c[2] for c in store.calls_for("upsert", "cms_content")]
        assert "field_label" not in rows[0]
        row = _row(store, "home", "hero.title")
        assert row["field_label"] == "Main headline"
        assert row["content_en"] == "Hi"

    async def test_unknown_page_is_skipped(self, store):
        """One unresolvable row never aborts the rest."""
        store.seed("cms_pages", [{"slug": "home", "name": "Home"}])
        sync, tracker, _ = _setup(store)
        tracker.record_edit("ghost", "s", "f", "en", "x")
        tracker.record_edit("home", "s", "f", "en", "y")

        result = await sync.save()

        assert not result.success
        assert result.failure_count == 1
        assert result.failures[0].page == "ghost"
        assert result.failures[0].reason == "unknown page"
        assert result.saved_keys == ["home/s.f"]
        # The failed field stays pending for the next save.
        assert tracker.pending_fields() == {("ghost", "s", "f")}

    async def test_row_failure_stays_pending(self, store):
        store.seed("cms_pages", [{"slug": "home", "name": "Home"}])
        store.reject = lambda table, row: row["content_key"] == "s.bad"
        sync, tracker, _ = _setup(store)
        tracker.record_edit("home", "s", "bad", "en", "x")
        tracker.record_edit("home", "s", "good", "en", "y")

        result = await sync.save()

        assert [f.content_key for f in result.failures] == ["s.bad"]
        assert tracker.pending_fields() == {("home", "s", "bad")}

        store.clear_failures()
        retry = await sync.save()
        assert retry.success
        assert retry.saved_keys == ["home/s.bad"]

    async def test_page_lookup_failure(self, store):
        store.fail("select", "cms_pages")
        sync, tracker, _ = _setup(store)
        tracker.record_edit("home", "s", "f", "en", "x")

        result = await sync.save()

        assert not result.success
        assert "Could not resolve pages" in result.error
        assert tracker.has_changes
        assert not store.calls_for("upsert")

    async def test_edit_during_save_stays_pending(self, store):
        """An edit arriving mid-save is saved by the next call, not lost."""
        store.seed("cms_pages", [{"slug": "home", "name": "Home"}])
        store.delay = 0.01
        sync, tracker, _ = _setup(store)
        tracker.record_edit("home", "s", "f", "en", "first")

        task = asyncio.create_task(sync.save())
        await asyncio.sleep(0)
        tracker.record_edit("home", "s", "f", "en", "second")
        result = await task

        assert result.success
        assert tracker.has_changes
        assert _row(store, "home", "s.f")["content_en"] == "first"

        await sync.save()
        assert _row(store, "home", "s.f")["content_en"] == "second"
        assert not tracker.has_changes

    async def test_concurrent_saves_do_not_duplicate(self, store):
        store.seed("cms_pages", [{"slug": "home", "name": "Home"}])
        store.delay = 0.01
        sync, tracker, _ = _setup(store)
        tracker.record_edit("home", "s", "f", "en", "v")

        first, second = await asyncio.gather(sync.save(), sync.save())

        assert first.success and second.success
        assert len(store.calls_for("upsert", "cms_content")) == 1
        assert len(_content_rows(store)) == 1


# ---------------------------------------------------------------------------
# Bulk writes
# ---------------------------------------------------------------------------


FALLBACK = {
    "content": {
        "home": {
            "hero": {"title": {"en": "Welcome"}, "subtitle": {"en": "Hi"}},
            "steps": {"items": {"en": ["a", "b"]}},
        },
        "unknown": {"s": {"f": {"en": "x"}}},
    }
}


class TestForceResync:
    """Tests for force_resync() from the pristine fallback."""

    async def test_replaces_remote_content(self, store):
        store.seed("cms_pages", [{"slug": "home", "name": "Home"}])
        store.seed(
            "cms_content",
            [{"page_slug": "home", "section": "x", "content_key": "x.stale", "content_en": "corrupt"}],
        )
        sync, _, tree = _setup(store)
        tree.set_value("home", "hero", "title", "en", "In-memory edit")

        result = await sync.force_resync(FallbackSnapshot(FALLBACK))

        assert result.success
        assert result.deleted == 1
        assert result.written == 3
        assert result.pages == ["home"]
        assert result.skipped_pages == ["unknown"]
        assert _row(store, "home", "x.stale") is None
        assert _row(store, "home", "hero.title")["content_en"] == "Welcome"
        orders = [r["display_order"] for r in _content_rows(store)]
        assert orders == [0, 1, 2]

    async def test_batches_with_row_fallback(self, store):
        store.seed("cms_pages", [{"slug": "home", "name": "Home"}])
        store.reject = lambda table, row: row["content_key"] == "hero.subtitle"
        sync, _, _ = _setup(store, batch_size=2)

        result = await sync.force_resync(FallbackSnapshot(FALLBACK))

        inserts = store.calls_for("insert", "cms_content")
        # Batch 1 fails, two single-row retries, then batch 2.
        assert [len(c[2]) for c in inserts] == [2, 1, 1, 1]
        assert result.written == 2
        assert [f.content_key for f in result.failures] == ["hero.subtitle"]
        assert not result.success

    async def test_reloads_tree_when_loader_given(self, store):
        store.seed("cms_pages", [{"slug": "home", "name": "Home"}])
        sync, _, tree = _setup(store)
        loader = RemoteContentLoader(ContentRepository(store), tree)

        await sync.force_resync(FallbackSnapshot(FALLBACK), loader=loader)

        assert tree.get_value("home", "steps", "items", "en") == ["a", "b"]

    async def test_failed_page_delete_leaves_page_untouched(self, store):
        store.seed(
            "cms_pages",
            [{"slug": "home", "name": "Home"}, {"slug": "about", "name": "About"}],
        )
        store.seed(
            "cms_content",
            [
                {"page_slug": "home", "section": "x", "content_key": "x.stale", "content_en": "old"},
                {"page_slug": "about", "section": "intro", "content_key": "intro.text", "content_en": "Edited"},
            ],
        )
        store.fail("delete", "cms_content", when=lambda f: f["page_slug"] == "about")
        fallback = {
            "content": {
                "home": {"hero": {"title": {"en": "Welcome"}}},
                "about": {"intro": {"text": {"en": "Pristine"}}},
            }
        }
        sync, _, _ = _setup(store)

        result = await sync.force_resync(FallbackSnapshot(fallback))

        assert not result.success
        assert result.error is None
        assert result.pages == ["home"]
        assert result.failed_pages == ["about"]
        assert result.deleted == 1
        assert result.written == 1
        assert _row(store, "home", "x.stale") is None
        assert _row(store, "home", "hero.title")["content_en"] == "Welcome"
        # Not duplicated on top of the rows that could not be cleared.
        assert _row(store, "about", "intro.text")["content_en"] == "Edited"
        assert "Blocked:  1" in result.summary()

    async def test_page_lookup_failure_is_reported(self, store):
        store.fail("select", "cms_pages")
        sync, _, _ = _setup(store)

        result = await sync.force_resync(FallbackSnapshot(FALLBACK))

        assert result.error
        assert not store.calls_for("delete")


class TestPushAll:
    async def test_upserts_current_tree(self, store):
        store.seed("cms_pages", [{"slug": "home", "name": "Home"}])
        sync, _, _ = _setup(store, FALLBACK["content"])

        result = await sync.push_all()

        assert result.written == 3
        assert result.skipped_pages == ["unknown"]
        assert not store.calls_for("delete")

        again = await sync.push_all()
        assert again.written == 3
        assert len(_content_rows(store)) == 3


# ---------------------------------------------------------------------------
# BackgroundSaver
# ---------------------------------------------------------------------------


class TestBackgroundSaver:
    async def test_burst_is_saved_once(self, store):
        store.seed("cms_pages", [{"slug": "home", "name": "Home"}])
        sync, tracker, _ = _setup(store)
        saver = BackgroundSaver(sync, interval=0.05)
        saver.start()
        try:
            for value in ("a", "b", "c"):
                tracker.record_edit("home", "s", "f", "en", value)
            await asyncio.sleep(0.2)
        finally:
            await saver.stop()

        assert len(store.calls_for("upsert", "cms_content")) == 1
        assert _row(store, "home", "s.f")["content_en"] == "c"
        assert not saver.running

    async def test_stop_flushes_pending(self, store):
        store.seed("cms_pages", [{"slug": "home", "name": "Home"}])
        sync, tracker, _ = _setup(store)
        saver = BackgroundSaver(sync, interval=10)
        saver.start()
        tracker.record_edit("home", "s", "f", "en", "late")

        result = await saver.stop()

        assert result is not None and result.success
        assert _row(store, "home", "s.f")["content_en"] == "late"
