"""
Tests for connection discovery.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from thoughtflow.connections import (
    ConnectionEngine,
    parse_ai_connections,
    rank_connections,
)
from thoughtflow.errors import ClassifierError, PersistenceError
from thoughtflow.models import Thought, ThoughtConnection

DAY1 = datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc)


def engine_for(db, client=None, **kwargs):
    return ConnectionEngine(db, db, client, tz=timezone.utc, **kwargs)


def connection(a, b, strength, kind="thematic"):
    return ThoughtConnection(source_id=a, target_id=b, connection_type=kind, strength=strength)


def test_fewer_than_two_thoughts(db):
    store = Mock()
    db.add_thought("alice", "only one", category="idea")

    result = ConnectionEngine(db, store, tz=timezone.utc).discover("alice")

    assert result == []
    store.replace_connections.assert_not_called()


def test_temporal_connection(db):
    a = db.add_thought("alice", "morning idea", category="idea", created_at=DAY1)
    b = db.add_thought("alice", "morning task", category="task",
                       created_at=DAY1 + timedelta(days=2, minutes=30))

    result = engine_for(db).discover("alice")

    assert len(result) == 1
    assert result[0].connection_type == "temporal"
    assert result[0].strength == 70
    assert result[0].pair == tuple(sorted((a.id, b.id)))
    assert result[0].suggested_actions[0].type == "schedule_follow_up"


def test_same_day_is_not_temporal(db):
    db.add_thought("alice", "first", category="idea", created_at=DAY1)
    db.add_thought("alice", "second", category="task", created_at=DAY1 + timedelta(minutes=10))

    assert engine_for(db).discover("alice") == []


def test_hour_difference_does_not_wrap_midnight(db):
    db.add_thought("alice", "late", category="idea", created_at=DAY1.replace(hour=23))
    db.add_thought("alice", "early", category="task",
                   created_at=DAY1.replace(hour=0) + timedelta(days=3))

    assert engine_for(db).discover("alice") == []


def test_project_connections_are_capped(db):
    for i in range(4):
        db.add_thought("alice", f"task {i}", category="task", created_at=DAY1 + timedelta(minutes=i))
    thoughts = db.get_recent_thoughts("alice")

    project = engine_for(db).project_connections(thoughts)

    assert len(project) == 5
    assert all(c.connection_type == "project_related" and c.strength == 65 for c in project)
    assert "task" in project[0].reasoning


def test_missing_category_groups_as_general(db):
    db.add_thought("alice", "one", created_at=DAY1)
    db.add_thought("alice", "two", created_at=DAY1 + timedelta(minutes=5))

    result = engine_for(db).discover("alice")

    assert [c.connection_type for c in result] == ["project_related"]
    assert "general" in result[0].reasoning


def test_ai_connections(db, fake_client):
    for i in range(3):
        db.add_thought("alice", f"thought {i}", category=f"cat{i}", created_at=DAY1 + timedelta(minutes=i))
    thoughts = db.get_recent_thoughts("alice")
    client = fake_client({"connections": [
        {"thoughtAIndex": 0, "thoughtBIndex": 2, "connectionType": "complementary", "strength": 85,
         "reasoning": "Work well together", "actionableInsights": ["Combine them"],
         "suggestedActions": [{"type": "merge_thoughts", "description": "Merge", "confidence": 75},
                              {"type": "dance", "description": "Ignored"}]},
        {"thoughtAIndex": 1, "thoughtBIndex": 1, "connectionType": "causal", "strength": 90},
        {"thoughtAIndex": 0, "thoughtBIndex": 7, "connectionType": "causal", "strength": 90},
        {"thoughtAIndex": 1, "thoughtBIndex": 2, "connectionType": "progression", "strength": 55},
        {"thoughtAIndex": "2", "thoughtBIndex": 1, "connectionType": "mystery", "strength": 0.8},
    ]})

    result = engine_for(db, client).discover("alice")

    assert [(c.connection_type, c.strength) for c in result] == [("contextual", 85), ("thematic", 80)]
    assert result[0].source_id == thoughts[0].id
    assert result[0].target_id == thoughts[2].id
    assert [a.type for a in result[0].suggested_actions] == ["merge_thoughts"]
    assert "thought 0" in client.calls[0]["user_prompt"]
    assert db.get_connections("alice") == result


def test_ai_type_mapping():
    thoughts = [
        Thought(id=str(i), user_id="u", content=str(i), created_at=DAY1) for i in range(2)
    ]
    raw = {"connections": [{"thoughtAIndex": 0, "thoughtBIndex": 1, "connectionType": "progression",
                            "strength": 70}]}

    assert parse_ai_connections(raw, thoughts)[0].connection_type == "causal"


def test_classifier_failure_keeps_heuristics(db, fake_client):
    db.add_thought("alice", "one", category="idea", created_at=DAY1)
    db.add_thought("alice", "two", category="idea", created_at=DAY1 + timedelta(minutes=1))
    client = fake_client(error=ClassifierError(ClassifierError.NETWORK, "down"))

    result = engine_for(db, client).discover("alice")

    assert [c.connection_type for c in result] == ["project_related"]


def test_ranking_dedupes_unordered_pairs():
    ranked = rank_connections([
        connection("a", "b", 70, "temporal"),
        connection("b", "a", 85, "thematic"),
        connection("a", "c", 59),
        connection("c", "d", 65),
    ])

    assert [(c.pair, c.strength) for c in ranked] == [(("a", "b"), 85), (("c", "d"), 65)]


def test_ranking_keeps_top_ten_in_order():
    candidates = [connection(f"s{i}", f"t{i}", 60 + i) for i in range(15)]

    ranked = rank_connections(candidates)

    assert len(ranked) == 10
    strengths = [c.strength for c in ranked]
    assert strengths == sorted(strengths, reverse=True)
    assert min(strengths) >= 60


def test_ranking_is_stable_on_ties():
    ranked = rank_connections([connection("a", "b", 70, "temporal"), connection("b", "a", 70)])
    assert ranked[0].connection_type == "temporal"


def test_store_failure_is_swallowed(db):
    store = Mock()
    store.replace_connections.side_effect = PersistenceError("readonly")
    db.add_thought("alice", "one", category="idea", created_at=DAY1)
    db.add_thought("alice", "two", category="idea", created_at=DAY1 + timedelta(minutes=1))

    result = ConnectionEngine(db, store, tz=timezone.utc).discover("alice")

    assert len(result) == 1


@pytest.mark.parametrize("window", [2, 30])
def test_window_limits_thoughts(db, window):
    for i in range(5):
        db.add_thought("alice", f"n{i}", category="note", created_at=DAY1 + timedelta(minutes=i))

    engine = engine_for(db, project_pair_cap=100)
    result = engine.discover("alice", window=window)

    expected_pairs = window * (window - 1) // 2 if window < 5 else 10
    assert len(result) == min(expected_pairs, 10)


def test_unexpected_client_error_keeps_heuristics(db, fake_client):
    db.add_thought("alice", "one", category="idea", created_at=DAY1)
    db.add_thought("alice", "two", category="idea", created_at=DAY1 + timedelta(minutes=1))
    client = fake_client(error=RuntimeError("invalid port"))

    result = engine_for(db, client).discover("alice")

    assert [c.connection_type for c in result] == ["project_related"]


def test_rediscovery_replaces_only_that_users_set(db):
    for user in ("alice", "bob"):
        db.add_thought(user, "one", category="idea", created_at=DAY1)
        db.add_thought(user, "two", category="idea", created_at=DAY1 + timedelta(minutes=1))
    engine = engine_for(db)
    bob_connections = engine.discover("bob")

    engine.discover("alice")
    db.add_thought("alice", "three", category="idea", created_at=DAY1 + timedelta(minutes=2))
    second = engine.discover("alice")

    assert len(second) == 3
    assert db.get_connections("alice") == second
    assert len({c.pair for c in db.get_connections("alice")}) == 3
    assert db.get_connections("bob") == bob_connections
