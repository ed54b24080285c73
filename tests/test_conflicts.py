"""Tests for remote version conflict detection.

Covers:
- Same version: no conflict
- Version bump with only unmanaged changes: no conflict, remote_changed
- Managed field change: conflict naming exactly that field
- Baseline (not draft) is compared with the remote
- Check never mutates the draft
- Failed check keeps the previous state
- Closing the module mid-check records no state
- keep-local / use-portal resolution
"""

from __future__ import annotations

import asyncio
import copy

import pytest

from lm_module_sync.sync.conflicts import ConflictDetector
from lm_module_sync.sync.drafts import DraftManager
from lm_module_sync.sync.errors import ErrorKind
from lm_module_sync.sync.events import EventBus, EventKind
from lm_module_sync.sync.models import Resolution


@pytest.fixture
def drafts(store):
    return DraftManager(store)


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def detector(drafts, events):
    return ConflictDetector(drafts, events)


@pytest.fixture
async def loaded(drafts, identity):
    return (await drafts.load_details(identity)).value


class TestCheckForConflict:
    async def test_same_version_no_conflict(self, detector, identity, loaded):
        result = await detector.check_for_conflict(identity)
        assert result.success
        assert not result.value.has_conflict
        assert not result.value.remote_changed
        assert result.value.portal_version == 3

    async def test_unmanaged_change_is_not_a_conflict(
        self, detector, store, identity, loaded
    ):
        store.bump(lastModifiedBy="bob")
        state = (await detector.check_for_conflict(identity)).value
        assert not state.has_conflict
        assert state.remote_changed
        assert state.portal_version == 4
        assert state.conflicting_fields == []

    async def test_managed_change_reported(
        self, detector, store, identity, loaded
    ):
        store.bump(displayName="CPU (portal)")
        state = (await detector.check_for_conflict(identity)).value
        assert state.has_conflict
        assert state.conflicting_fields == ["displayName"]
        assert detector.get_state(identity) == state

    async def test_equivalent_id_list_not_a_conflict(
        self, detector, store, identity, loaded
    ):
        store.bump(accessGroupIds="2,1")
        state = (await detector.check_for_conflict(identity)).value
        assert not state.has_conflict

    async def test_compares_baseline_not_draft(
        self, detector, drafts, store, identity, loaded
    ):
        # Local edit to the same value the portal now has is still a conflict
        drafts.update_field(identity, "description", "new text")
        store.bump(description="new text")
        state = (await detector.check_for_conflict(identity)).value
        assert state.conflicting_fields == ["description"]

    async def test_check_does_not_touch_draft(
        self, detector, drafts, store, identity, loaded
    ):
        drafts.update_field(identity, "name", "mine")
        before = (
            copy.deepcopy(loaded.original),
            copy.deepcopy(loaded.draft),
            set(loaded.dirty_fields),
            loaded.version,
        )
        store.bump(name="theirs", displayName="other")
        await detector.check_for_conflict(identity)
        assert (
            loaded.original,
            loaded.draft,
            loaded.dirty_fields,
            loaded.version,
        ) == before

    async def test_failed_check_keeps_previous_state(
        self, detector, store, identity, loaded
    ):
        store.bump(displayName="CPU (portal)")
        first = (await detector.check_for_conflict(identity)).value
        store.fail = True
        result = await detector.check_for_conflict(identity)
        assert not result.success
        assert result.error.kind == ErrorKind.REMOTE_UNREACHABLE
        assert detector.get_state(identity) == first

    async def test_without_draft_not_found(self, detector, identity):
        result = await detector.check_for_conflict(identity)
        assert not result.success
        assert result.error.kind == ErrorKind.NOT_FOUND

    async def test_close_during_check_records_nothing(
        self, gated_store, identity
    ):
        gated_store.gated = False
        drafts = DraftManager(gated_store)
        detector = ConflictDetector(drafts)
        drafts.attach(identity)
        await drafts.load_details(identity)
        gated_store.bump(displayName="CPU (portal)")
        gated_store.gated = True

        task = asyncio.create_task(detector.check_for_conflict(identity))
        assert await asyncio.to_thread(gated_store.started.wait, 5)
        drafts.detach(identity)
        gated_store.release.set()
        result = await task

        assert not result.success
        assert result.error.kind == ErrorKind.NOT_FOUND
        assert detector.get_state(identity) is None
        assert drafts.get(identity) is None

    async def test_conflict_event_emitted(
        self, detector, events, store, identity, loaded
    ):
        seen = []
        events.subscribe(seen.append)
        store.bump(lastModifiedBy="bob")
        await detector.check_for_conflict(identity)
        assert seen == []
        store.bump(tags="linux,cpu")
        await detector.check_for_conflict(identity)
        assert [e.kind for e in seen] == [EventKind.CONFLICT]
        assert seen[0].module_key == identity.key
        assert seen[0].payload["conflicting_fields"] == ["tags"]


class TestResolveConflict:
    async def test_keep_local_clears_state_only(
        self, detector, drafts, store, identity, loaded
    ):
        drafts.update_field(identity, "name", "mine")
        store.bump(displayName="other")
        await detector.check_for_conflict(identity)
        result = await detector.resolve_conflict(identity, Resolution.KEEP_LOCAL)
        assert result.value is loaded
        assert detector.get_state(identity) is None
        assert loaded.draft["name"] == "mine"
        assert loaded.version == 3

    async def test_use_portal_reloads(
        self, detector, drafts, store, identity, loaded
    ):
        drafts.update_field(identity, "name", "mine")
        store.bump(displayName="other")
        await detector.check_for_conflict(identity)
        result = await detector.resolve_conflict(identity, "use-portal")
        assert result.success
        assert loaded.version == 4
        assert loaded.draft["displayName"] == "other"
        assert loaded.dirty_fields == set()
        assert detector.get_state(identity) is None

    async def test_use_portal_failure_keeps_conflict(
        self, detector, drafts, store, identity, loaded
    ):
        drafts.update_field(identity, "name", "mine")
        store.bump(displayName="other")
        await detector.check_for_conflict(identity)
        store.fail = True
        result = await detector.resolve_conflict(identity, Resolution.USE_PORTAL)
        assert not result.success
        assert detector.get_state(identity).has_conflict
        assert loaded.draft["name"] == "mine"

    async def test_unknown_resolution(self, detector, identity):
        with pytest.raises(ValueError):
            await detector.resolve_conflict(identity, "merge")
