"""
Tests for the orchestrator: classification with fallback, batching,
context building and delegation.
"""

import logging
from datetime import timedelta, timezone

import pytest

from thoughtflow.errors import ClassifierError, ValidationError
from thoughtflow.llm import LLMClient
from thoughtflow.models import RecentThought, UserContext, utcnow
from thoughtflow.orchestrator import Orchestrator, build_prompt, format_recent_thoughts

SARAH = "Call Sarah tomorrow at 3pm to discuss Q4 budget"


@pytest.fixture
def make_orchestrator(db, config):
    created = []

    def factory(client=None, **overrides):
        for section, values in overrides.items():
            config[section].update(values)
        orch = Orchestrator(db, client, config, tz=timezone.utc)
        created.append(orch)
        return orch

    yield factory

    for orch in created:
        orch.close()


@pytest.fixture
def alice():
    return UserContext(user_id="alice")


class TestClassify:
    @pytest.mark.parametrize("content", ["", "   \n\t"])
    def test_empty_content_rejected(self, make_orchestrator, fake_client, alice, content):
        client = fake_client({"category": "task"})
        orch = make_orchestrator(client)

        with pytest.raises(ValidationError):
            orch.classify(content, alice)
        assert client.calls == []

    def test_healthy_classifier(self, make_orchestrator, fake_client, sarah_response, alice, db):
        orch = make_orchestrator(fake_client(sarah_response))

        analysis = orch.classify(SARAH, alice)

        assert analysis.source == "classifier"
        assert analysis.category == "task"
        assert analysis.priority == "high"
        assert analysis.entities.people == ["Sarah"]
        assert analysis.tags == ["sarah", "q4-budget", "call"]
        assert analysis.processing_time_ms >= 0

        assert orch.learner.flush(timeout=5)
        assert db.get_user_pattern("alice").total_thoughts == 1

    def test_prompts_sent_to_classifier(self, make_orchestrator, fake_client, sarah_response, alice):
        client = fake_client(sarah_response)
        orch = make_orchestrator(client)

        orch.classify(SARAH, alice)

        call = client.calls[0]
        assert SARAH in call["user_prompt"]
        assert "No recent thoughts (new user)" in call["developer_prompt"]
        assert call["temperature"] == 0.3
        assert call["max_tokens"] == 1500

    def test_classifier_error_falls_back(self, make_orchestrator, fake_client, alice):
        orch = make_orchestrator(fake_client(error=ClassifierError(ClassifierError.NETWORK, "down")))

        analysis = orch.classify(SARAH, alice)

        assert analysis.source == "fallback"
        assert analysis.confidence == 0.7
        assert analysis.category == "task"

    def test_unexpected_exception_falls_back(self, make_orchestrator, fake_client, alice):
        orch = make_orchestrator(fake_client(error=RuntimeError("bug in client")))

        assert orch.classify("Buy milk", alice).source == "fallback"

    def test_low_confidence_falls_back(self, make_orchestrator, fake_client, sarah_response, alice,
                                       caplog):
        sarah_response["confidence"] = 0.3
        orch = make_orchestrator(fake_client(sarah_response))

        with caplog.at_level(logging.INFO, logger="thoughtflow.orchestrator"):
            analysis = orch.classify(SARAH, alice)

        assert analysis.source == "fallback"
        assert "low_confidence: 0.30 below 0.50" in caplog.text

    def test_slow_classifier_falls_back(self, make_orchestrator, fake_client, sarah_response, alice):
        orch = make_orchestrator(
            fake_client(sarah_response, delay=0.5),
            classifier={"fallback_sla_seconds": 0.05},
        )

        analysis = orch.classify(SARAH, alice)

        assert analysis.source == "fallback"
        assert analysis.processing_time_ms < 500

    def test_no_client_uses_fallback(self, make_orchestrator, alice):
        orch = make_orchestrator()

        analysis = orch.classify("Read the article on CRDTs", alice)

        assert analysis.source == "fallback"
        assert analysis.category == "learning"


class TestPrompt:
    def test_prompt_is_deterministic(self):
        context = UserContext(
            user_id="alice",
            projects=["Q4 Planning"],
            frequent_tags=["budget"],
            vocabulary_preferences={"beta": 2, "alpha": 2, "gamma": 5},
            time_of_day="morning",
        )

        prompt = build_prompt(context)

        assert prompt == build_prompt(context.model_copy())
        assert "Vocabulary: gamma(5), alpha(2), beta(2)" in prompt
        assert "Known projects: Q4 Planning" in prompt
        assert "Location: Unknown" in prompt

    def test_recent_thoughts_are_truncated(self):
        recent = [
            RecentThought(content="x" * 100, category="idea", tags=["a", "b"]),
            RecentThought(content="short", category="task"),
            RecentThought(content="third", category="note"),
            RecentThought(content="fourth", category="note"),
        ]

        text = format_recent_thoughts(recent)

        assert text.splitlines() == [
            f'1. [idea] "{"x" * 60}..." #a #b',
            '2. [task] "short..."',
            '3. [note] "third..."',
        ]


class TestBatch:
    def test_batch_preserves_order_and_stores(self, make_orchestrator, db, alice):
        orch = make_orchestrator()
        thoughts = [db.add_thought("alice", f"Buy item {i}") for i in range(7)]
        thoughts.insert(3, db.add_thought("alice", "   "))

        results = orch.classify_batch(thoughts, alice)

        expected = [t.id for t in thoughts if t.content.strip()]
        assert [thought_id for thought_id, _ in results] == expected
        assert all(a.category == "task" for _, a in results)
        assert all(db.get_analysis(thought_id) is not None for thought_id in expected)

    def test_batch_calls_classifier_per_thought(self, make_orchestrator, fake_client, sarah_response,
                                                db, alice):
        client = fake_client(sarah_response)
        orch = make_orchestrator(client, batch={"size": 2})
        thoughts = [db.add_thought("alice", f"thought {i}") for i in range(5)]

        results = orch.classify_batch(thoughts, alice)

        assert len(results) == 5
        assert len(client.calls) == 5


class TestContext:
    def test_context_after_capture(self, make_orchestrator, fake_client, sarah_response, now):
        orch = make_orchestrator(fake_client(sarah_response))

        thought, analysis = orch.capture("alice", SARAH)
        assert orch.learner.flush(timeout=5)
        context = orch.build_user_context("alice", location="office", now=now)

        assert thought.category == "task"
        assert orch.db.get_analysis(thought.id) == analysis
        assert context.time_of_day == "morning"
        assert context.location == "office"
        assert context.recent_thoughts[0].content == SARAH
        assert context.recent_thoughts[0].tags == ["sarah", "q4-budget", "call"]
        assert context.projects == ["Q4 Planning"]
        assert context.frequent_tags[:3] == ["call", "q4-budget", "sarah"]
        assert context.vocabulary_preferences["sarah"] == 1

    def test_context_for_new_user(self, make_orchestrator, now):
        context = make_orchestrator().build_user_context("nobody", now=now)

        assert context.recent_thoughts == []
        assert context.vocabulary_preferences == {}


class TestMetrics:
    def test_metrics(self, make_orchestrator, fake_client, sarah_response, alice):
        orch = make_orchestrator(fake_client(sarah_response))
        orch.classify(SARAH, alice)
        orch.client = None
        orch.classify("Buy milk", alice)

        metrics = orch.metrics()

        assert metrics["total_processed"] == 2
        assert metrics["fallback_count"] == 1
        assert metrics["classifier_available"] is False
        assert metrics["average_processing_time_ms"] >= 0

    def test_fresh_metrics(self, make_orchestrator):
        metrics = make_orchestrator().metrics()

        assert metrics["total_processed"] == 0
        assert metrics["average_processing_time_ms"] == 0
        assert metrics["thoughts_per_minute"] == 0


class TestDelegation:
    def test_connections_insights_suggestions(self, make_orchestrator, db):
        orch = make_orchestrator()
        for i in range(3):
            db.add_thought("alice", f"task {i}", category="task",
                           created_at=utcnow() - timedelta(hours=i + 1))

        connections = orch.discover_connections("alice")
        report = orch.generate_insight_report("alice", "monthly")
        suggestions = orch.generate_suggestions("alice")

        assert len(connections) == 3
        assert db.get_connections("alice") == connections
        assert report.source == "local"
        assert suggestions == []


class TestClassifierOutage:
    def test_misconfigured_endpoint_degrades_every_operation(self, make_orchestrator, config, db,
                                                             alice):
        config["llm"].update({
            "provider": "openai",
            "openai_api_key": "test-key",
            "base_url": "https://api.openai.com:abc/v1",
        })
        orch = make_orchestrator(LLMClient(config))
        for i in range(3):
            db.add_thought("alice", f"task {i}", category="task",
                           created_at=utcnow() - timedelta(hours=i + 1))

        assert orch.classify("Buy milk", alice).source == "fallback"
        assert len(orch.discover_connections("alice")) == 3
        assert orch.generate_insight_report("alice", "weekly").source == "local"
        assert orch.generate_suggestions("alice") == []
