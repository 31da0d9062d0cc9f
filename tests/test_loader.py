"""Tests for RemoteContentLoader."""

from __future__ import annotations

from cms_sync.content.fallback import FallbackSnapshot
from cms_sync.core.remote import ContentRepository
from cms_sync.errors import TransportError
from cms_sync.sync.loader import RemoteContentLoader
from cms_sync.sync.tracker import ChangeTracker

FALLBACK = {
    "content": {
        "hero": {"hero": {"title": {"en": "Welcome", "sv": "Välkommen"}}},
    }
}


def _setup(store, fallback=FALLBACK):
    tree = FallbackSnapshot(fallback).tree()
    tracker = ChangeTracker(tree)
    loader = RemoteContentLoader(ContentRepository(store), tree, tracker)
    return loader, tree, tracker


class TestLoad:
    """Merging remote rows over the fallback seed."""

    async def test_empty_store_keeps_fallback(self, store):
        """Empty remote content leaves the fallback values readable."""
        loader, tree, _ = _setup(store)

        result = await loader.load()

        assert not result.degraded
        assert result.merged == 0
        assert tree.get_value("hero", "hero", "title", "en") == "Welcome"

    async def test_bracketed_column_loads_as_list(self, store):
        store.seed("cms_pages", [{"slug": "home", "name": "Home"}])
        store.seed(
            "cms_content",
            [
                {
                    "page_slug": "home",
                    "section": "how",
                    "content_key": "how.steps",
                    "content_en": '["Step 1","Step 2"]',
                }
            ],
        )
        loader, tree, _ = _setup(store)

        await loader.load()

        assert tree.get_value("home", "how", "steps", "en") == [
            "Step 1",
            "Step 2",
        ]

    async def test_remote_wins_over_fallback(self, store):
        store.seed("cms_pages", [{"slug": "hero", "name": "Hero"}])
        store.seed(
            "cms_content",
            [
                {
                    "page_slug": "hero",
                    "section": "hero",
                    "content_key": "hero.title",
                    "content_type": "text",
                    "content_en": "Hello from the store",
                }
            ],
        )
        loader, tree, _ = _setup(store)

        result = await loader.load()

        assert result.merged == 1
        assert tree.get_value("hero", "hero", "title", "en") == "Hello from the store"
        # The remote row replaces the whole field.
        assert tree.get_value("hero", "hero", "title", "sv") == "Hello from the store"

    async def test_orphan_rows_are_dropped(self, store, caplog):
        store.seed("cms_pages", [{"slug": "home", "name": "Home"}])
        store.seed(
            "cms_content",
            [
                {"page_slug": "ghost", "section": "s", "content_key": "s.f", "content_en": "x"},
                {"page_slug": "home", "section": "s", "content_key": "s.f", "content_en": "y"},
            ],
        )
        loader, tree, _ = _setup(store, fallback={})

        result = await loader.load()

        assert result.orphans == ["ghost/s.f"]
        assert "ghost" not in tree.pages()
        assert tree.get_value("home", "s", "f", "en") == "y"
        assert "unknown pages" in caplog.text

    async def test_pending_fields_are_not_overwritten(self, store):
        store.seed("cms_pages", [{"slug": "hero", "name": "Hero"}])
        store.seed(
            "cms_content",
            [
                {
                    "page_slug": "hero",
                    "section": "hero",
                    "content_key": "hero.title",
                    "content_en": "Remote",
                }
            ],
        )
        loader, tree, tracker = _setup(store)
        tracker.record_edit("hero", "hero", "title", "en", "Local edit")

        result = await loader.load()

        assert result.skipped_pending == 1
        assert tree.get_value("hero", "hero", "title", "en") == "Local edit"

    async def test_rows_follow_display_order(self, store):
        store.seed("cms_pages", [{"slug": "home", "name": "Home"}])
        store.seed(
            "cms_content",
            [
                {"page_slug": "home", "section": "s", "content_key": "s.b", "content_en": "B", "display_order": 2},
                {"page_slug": "home", "section": "s", "content_key": "s.a", "content_en": "A", "display_order": 1},
            ],
        )
        loader, tree, _ = _setup(store, fallback={})

        await loader.load()

        assert list(tree.get_section_fields("home", "s")) == ["a", "b"]


class TestDegradedLoad:
    """Transport failures leave the seeded tree untouched."""

    async def test_transport_error_is_not_raised(self, store, caplog):
        store.fail("select", "cms_content", TransportError("https://x", "refused"))
        loader, tree, _ = _setup(store)

        result = await loader.load()

        assert result.degraded
        assert "refused" in result.error
        assert tree.get_value("hero", "hero", "title", "en") == "Welcome"
        assert loader.last_result is result
        assert "Remote content unavailable" in caplog.text

    async def test_page_list_failure(self, store):
        store.fail("select", "cms_pages")
        loader, tree, _ = _setup(store)

        result = await loader.load()

        assert result.degraded
        assert len(tree) == 1
