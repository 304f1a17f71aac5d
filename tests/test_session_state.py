"""
Tests for the session state container.
"""

import pytest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from session_state import Observable, ReplaySessionState


class TestObservable:
    """Tests for Observable."""

    def test_publish_notifies_on_change(self):
        obs = Observable("x", 0)
        seen = []
        obs.subscribe(seen.append)
        assert obs.publish(1)
        assert seen == [1]
        assert obs.value == 1

    def test_unchanged_value_not_published(self):
        obs = Observable("x", 3)
        seen = []
        obs.subscribe(seen.append)
        assert obs.publish(3) is False
        assert seen == []

    def test_unsubscribe(self):
        obs = Observable("x")
        seen = []
        unsubscribe = obs.subscribe(seen.append)
        assert len(obs) == 1
        unsubscribe()
        unsubscribe()
        assert len(obs) == 0
        obs.publish(5)
        assert seen == []

    def test_failing_subscriber_does_not_block_others(self):
        """A raising subscriber is logged; later subscribers still run."""
        obs = Observable("x")
        seen = []

        def broken(value):
            raise RuntimeError("boom")

        obs.subscribe(broken)
        obs.subscribe(seen.append)
        obs.publish(7)
        assert seen == [7]

    def test_subscriber_may_unsubscribe_itself(self):
        obs = Observable("x")
        seen = []
        holder = {}

        def once(value):
            seen.append(value)
            holder["unsubscribe"]()

        holder["unsubscribe"] = obs.subscribe(once)
        obs.publish(1)
        obs.publish(2)
        assert seen == [1]


class TestReplaySessionState:
    """Tests for ReplaySessionState."""

    def test_store_is_read_only(self):
        state = ReplaySessionState({"tickIntervalMs": 50})
        assert state.get("tickIntervalMs") == 50
        assert state.get("missing", "d") == "d"
        with pytest.raises(TypeError):
            state.store["tickIntervalMs"] = 10

    def test_store_is_a_copy(self):
        source = {"a": 1}
        state = ReplaySessionState(source)
        source["a"] = 2
        assert state.get("a") == 1

    def test_empty_store(self):
        assert dict(ReplaySessionState().store) == {}

    def test_index_publishing(self):
        state = ReplaySessionState()
        seen = []
        state.subscribe_index(seen.append)
        state.publish_index(3)
        state.publish_index(3)
        state.publish_index(None)
        assert seen == [3, None]
        assert state.current_index.value is None

    def test_viewport_publishing(self):
        state = ReplaySessionState()
        seen = []
        state.subscribe_viewport(seen.append)
        state.publish_viewport({"zoom": 5})
        assert seen == [{"zoom": 5}]
