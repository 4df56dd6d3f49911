"""
Tests for suggestline.reconcile.session: debounced saves, regeneration and
reload races, using in-memory fakes for the store and suggestion source.

Run: python3 -m pytest test_session.py
From: python/
"""

import asyncio
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent))

from suggestline.config import ReconcileSettings
from suggestline.models import RegenerationResponse
from suggestline.reconcile.session import ReviewSession
from suggestline.regenerate import RegenerationError, build_regeneration_request, clean_regenerated_text

PAYLOAD = {
    "sectionName": "Experience",
    "type": "experience",
    "entries": [
        {
            "id": "e1",
            "company": {"original": "Acme"},
            "title": {"original": "Engineer", "suggested": "Senior Engineer"},
            "bullets": [
                {"id": "b1", "original": "Built APIs", "suggested": "Built payment APIs"},
                {"id": "b2", "original": "Wrote docs"},
            ],
        }
    ],
}


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeStore:
    def __init__(self, payload=PAYLOAD, saved=None, latency=0.0):
        self.payload = payload
        self.saved = saved
        self.latency = latency
        self.saves = []
        self.started = 0

    async def fetch(self):
        return self.payload, self.saved

    async def save(self, records):
        self.started += 1
        if self.latency:
            await asyncio.sleep(self.latency)
        self.saves.append(records)
        self.saved = records


class FakeSource:
    def __init__(self, text="Built **secure** payment APIs", error=None, during=None):
        self.text = text
        self.error = error
        self.during = during
        self.requests = []

    async def regenerate(self, request):
        self.requests.append(request)
        if self.during is not None:
            await self.during()
        if self.error is not None:
            raise self.error
        return RegenerationResponse(suggested=self.text)


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


FAST = ReconcileSettings(save_delay=0.01, regeneration_marker_ttl=1.0)
SLOW = ReconcileSettings(save_delay=30.0, regeneration_marker_ttl=1.0)


# ---------------------------------------------------------------------------
# Debounced saves
# ---------------------------------------------------------------------------

def test_burst_of_edits_becomes_one_save():
    hook_calls = []

    async def on_saved():
        hook_calls.append(True)

    async def scenario():
        store = FakeStore()
        session = ReviewSession(store, settings=FAST, on_saved=on_saved)
        await session.reload()
        session.accept_bullet("b1")
        session.update_bullet("b2", "Wrote onboarding docs")
        session.reject_field("e1", "title")
        assert session.has_pending_save
        await asyncio.sleep(0.1)
        await session.close()
        return store, session

    store, session = asyncio.run(scenario())
    assert len(store.saves) == 1
    assert session.save_count == 1
    assert hook_calls == [True]
    assert store.saves[0][0]["bullets"] == ["Built payment APIs", "Wrote onboarding docs"]
    assert store.saves[0][0]["fields"] == [
        {"key": "company", "value": "Acme"},
        {"key": "title", "value": "Engineer"},
    ]


def test_flush_saves_immediately_and_close_writes_pending_edit():
    async def scenario():
        store = FakeStore()
        session = ReviewSession(store, settings=SLOW)
        await session.reload()
        session.accept_field("e1", "title")
        await session.flush()
        flushed = len(store.saves)
        session.update_field("e1", "company", "Acme Inc")
        await session.close()
        return store, flushed, session

    store, flushed, session = asyncio.run(scenario())
    assert flushed == 1
    assert len(store.saves) == 2
    assert store.saves[-1][0]["fields"][0] == {"key": "company", "value": "Acme Inc"}
    assert not session.has_pending_save


def test_close_without_edits_does_not_write():
    async def scenario():
        store = FakeStore()
        session = ReviewSession(store, settings=SLOW)
        await session.reload()
        await session.close()
        return store

    assert asyncio.run(scenario()).saves == []


def test_edits_during_slow_write_do_not_abort_it():
    settings = ReconcileSettings(save_delay=0.02)

    async def scenario():
        store = FakeStore(latency=0.05)
        session = ReviewSession(store, settings=settings)
        await session.reload()
        for n in range(5):
            session.update_bullet("b2", f"Wrote docs v{n}")
            await asyncio.sleep(0.04)
        completed_while_editing = len(store.saves)
        await session.close()
        return store, completed_while_editing, session

    store, completed_while_editing, session = asyncio.run(scenario())
    assert completed_while_editing >= 1
    assert len(store.saves) == store.started
    assert store.saves[-1][0]["bullets"][1] == "Wrote docs v4"
    assert session.save_count == len(store.saves)
    assert not session.has_pending_save


def test_mutation_before_reload_is_an_error():
    session = ReviewSession(FakeStore())
    with pytest.raises(RuntimeError):
        session.accept_bullet("b1")


def test_reload_with_bad_payload_clears_section():
    async def scenario():
        session = ReviewSession(FakeStore(payload="not json"))
        return await session.reload(), session

    section, session = asyncio.run(scenario())
    assert section is None
    assert session.section is None


def test_reload_applies_saved_records():
    saved = [{"fieldOrder": ["company", "title"], "fields": [{"key": "title", "value": "Staff Engineer"}], "bullets": []}]

    async def scenario():
        session = ReviewSession(FakeStore(saved=saved))
        return await session.reload()

    section = asyncio.run(scenario())
    title = section.find_entry("e1").fields["title"]
    assert (title.suggested, title.final) == (None, "Staff Engineer")


# ---------------------------------------------------------------------------
# Regeneration
# ---------------------------------------------------------------------------

def test_regeneration_request_context():
    async def scenario():
        session = ReviewSession(FakeStore())
        return await session.reload()

    section = asyncio.run(scenario())
    request = build_regeneration_request(section, "b2")
    assert request.bullet_id == "b2"
    assert request.bullet_text == "Wrote docs"
    assert request.context.section_name == "Experience"
    assert request.context.metadata == {"company": "Acme", "title": "Senior Engineer"}
    assert request.context.other_bullets == ["Built payment APIs"]
    assert request.model_dump(by_alias=True)["bulletId"] == "b2"
    assert build_regeneration_request(section, "zz") is None


def test_clean_regenerated_text():
    assert clean_regenerated_text('  "Led migration to cloud"  ') == "Led migration to cloud"
    assert clean_regenerated_text("• Led migration") == "Led migration"
    assert clean_regenerated_text("- Led migration") == "Led migration"
    assert clean_regenerated_text("") == ""


def test_regeneration_survives_reload_until_marker_expires():
    clock = FakeClock()

    async def scenario():
        store = FakeStore()
        source = FakeSource()
        session = ReviewSession(store, source=source, settings=SLOW, clock=clock)
        await session.reload()
        await session.regenerate_bullet("b1")
        assert session.section.find_bullet("b1").suggested == "Built secure payment APIs"
        assert "b1" in session.recently_regenerated

        clock.now += 0.5
        refreshed = await session.reload()
        kept = refreshed.find_bullet("b1").suggested

        clock.now += 1.0
        assert session.recently_regenerated == {}
        reverted = (await session.reload()).find_bullet("b1").suggested
        await session.close()
        return kept, reverted, source

    kept, reverted, source = asyncio.run(scenario())
    assert kept == "Built secure payment APIs"
    assert reverted == "Built payment APIs"
    assert source.requests[0].context.other_bullets == ["Wrote docs"]


def test_failed_regeneration_leaves_state_untouched():
    async def scenario():
        session = ReviewSession(FakeStore(), source=FakeSource(error=ConnectionError("boom")), settings=SLOW)
        await session.reload()
        before = session.section
        with pytest.raises(RegenerationError):
            await session.regenerate_bullet("b1")
        with pytest.raises(RegenerationError):
            await session.regenerate_bullet("missing")
        return before, session

    before, session = asyncio.run(scenario())
    assert session.section is before
    assert not session.has_pending_save
    assert session.recently_regenerated == {}


def test_regeneration_without_source():
    async def scenario():
        session = ReviewSession(FakeStore())
        await session.reload()
        with pytest.raises(RegenerationError):
            await session.regenerate_bullet("b1")

    asyncio.run(scenario())


def test_regeneration_after_section_unloaded():
    store = FakeStore()

    async def unload():
        store.payload = "not json"
        await session.reload()

    session = ReviewSession(store, source=FakeSource(during=unload), settings=SLOW)

    async def scenario():
        await session.reload()
        with pytest.raises(RegenerationError):
            await session.regenerate_bullet("b1")

    asyncio.run(scenario())
    assert session.section is None
    assert session.recently_regenerated == {}
    assert not session.has_pending_save


def test_regeneration_for_bullet_removed_meanwhile():
    store = FakeStore()
    without_b1 = {
        "sectionName": "Experience",
        "type": "experience",
        "entries": [{"id": "e1", "company": {"original": "Acme"}, "bullets": [{"id": "b2", "original": "Wrote docs"}]}],
    }

    async def drop_bullet():
        store.payload = without_b1
        await session.reload()

    session = ReviewSession(store, source=FakeSource(during=drop_bullet), settings=SLOW)

    async def scenario():
        await session.reload()
        return await session.regenerate_bullet("b1")

    section = asyncio.run(scenario())
    assert section is session.section
    assert section.find_bullet("b1") is None
    assert session.recently_regenerated == {}
    assert not session.has_pending_save
    assert store.saves == []
