"""
tests/test_cache.py — LocalCache Unit Tests
============================================

Covers the four cache primitives, subscriber notification counts,
event-log capping and subscriber fault isolation.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from conftest import make_event, make_profile, make_project

from axis.constants import EVENTS, PROFILES, PROJECTS
from axis.engine.cache import LocalCache


@pytest.fixture
def cache():
    return LocalCache()


class TestReplaceAll:
    def test_replaces_in_order(self, cache):
        a, b = make_project(title="A"), make_project(title="B")
        cache.replace_all(PROJECTS, [a, b])
        assert cache.get(PROJECTS) == [a, b]

        c = make_project(title="C")
        cache.replace_all(PROJECTS, [c])
        assert cache.get(PROJECTS) == [c]

    def test_notifies_once(self, cache):
        callback = MagicMock()
        cache.subscribe(PROJECTS, callback)
        items = [make_project(), make_project()]
        cache.replace_all(PROJECTS, items)
        callback.assert_called_once_with(PROJECTS, items)

    def test_events_capped(self):
        cache = LocalCache(event_log_limit=3)
        events = [make_event(message=str(i)) for i in range(5)]
        cache.replace_all(EVENTS, events)
        assert [e.message for e in cache.get(EVENTS)] == ["0", "1", "2"]

    def test_unknown_collection_rejected(self, cache):
        with pytest.raises(ValueError, match="Unknown collection"):
            cache.replace_all("proofs", [])


class TestPatchOne:
    def test_patches_single_entity(self, cache):
        profile = make_profile(trust_modifier=0)
        other = make_profile(id="jobber-2")
        cache.replace_all(PROFILES, [profile, other])

        patched = cache.patch_one(PROFILES, profile.id, {"trust_modifier": 5})

        assert patched.trust_modifier == 5
        assert cache.find(PROFILES, profile.id).trust_modifier == 5
        assert cache.find(PROFILES, "jobber-2") == other
        # The earlier snapshot is never mutated in place.
        assert profile.trust_modifier == 0

    def test_missing_entity_is_noop(self, cache):
        callback = MagicMock()
        cache.subscribe(PROFILES, callback)
        assert cache.patch_one(PROFILES, "ghost", {"trust_modifier": 1}) is None
        callback.assert_not_called()

    def test_notifies_once_for_multi_field_patch(self, cache):
        cache.replace_all(PROFILES, [make_profile()])
        callback = MagicMock()
        cache.subscribe(PROFILES, callback)
        cache.patch_one(PROFILES, "jobber-1", {"trust_modifier": 2, "followers": 9, "name": "X"})
        assert callback.call_count == 1


class TestRemoveAndInsert:
    def test_remove_one(self, cache):
        a, b = make_project(), make_project()
        cache.replace_all(PROJECTS, [a, b])
        assert cache.remove_one(PROJECTS, a.id) is True
        assert cache.get(PROJECTS) == [b]

    def test_remove_missing_returns_false(self, cache):
        callback = MagicMock()
        cache.subscribe(PROJECTS, callback)
        assert cache.remove_one(PROJECTS, "ghost") is False
        callback.assert_not_called()

    def test_insert_front(self, cache):
        old, new = make_project(title="old"), make_project(title="new")
        cache.replace_all(PROJECTS, [old])
        cache.insert_one(PROJECTS, new)
        assert [p.title for p in cache.get(PROJECTS)] == ["new", "old"]

    def test_insert_replaces_same_id(self, cache):
        project = make_project(title="v1")
        cache.replace_all(PROJECTS, [project])
        cache.insert_one(PROJECTS, make_project(id=project.id, title="v2"))
        assert [p.title for p in cache.get(PROJECTS)] == ["v2"]

    def test_insert_event_trims_to_cap(self):
        cache = LocalCache(event_log_limit=2)
        cache.replace_all(EVENTS, [make_event(message="a"), make_event(message="b")])
        cache.insert_one(EVENTS, make_event(message="new"))
        assert [e.message for e in cache.get(EVENTS)] == ["new", "a"]

    def test_clear_empties_everything(self, cache):
        cache.replace_all(PROJECTS, [make_project()])
        cache.replace_all(PROFILES, [make_profile()])
        cache.clear()
        assert cache.get(PROJECTS) == []
        assert cache.get(PROFILES) == []


class TestSubscriptions:
    def test_unsubscribe(self, cache):
        callback = MagicMock()
        unsubscribe = cache.subscribe(PROJECTS, callback)
        unsubscribe()
        cache.replace_all(PROJECTS, [make_project()])
        callback.assert_not_called()

    def test_only_matching_collection_notified(self, cache):
        callback = MagicMock()
        cache.subscribe(PROFILES, callback)
        cache.replace_all(PROJECTS, [make_project()])
        callback.assert_not_called()

    def test_failing_subscriber_isolated(self, cache):
        bad = MagicMock(side_effect=RuntimeError("boom"))
        good = MagicMock()
        cache.subscribe(PROJECTS, bad)
        cache.subscribe(PROJECTS, good)

        cache.replace_all(PROJECTS, [make_project()])

        good.assert_called_once()
        assert len(cache.get(PROJECTS)) == 1

    def test_subscriber_receives_copy(self, cache):
        received = []
        cache.subscribe(PROJECTS, lambda name, items: received.append(items))
        cache.replace_all(PROJECTS, [make_project()])
        received[0].clear()
        assert len(cache.get(PROJECTS)) == 1
