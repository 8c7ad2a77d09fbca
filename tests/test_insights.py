"""
Tests for insight report generation.
"""

import json
from datetime import timedelta, timezone

import pytest

from thoughtflow.errors import ClassifierError, ValidationError
from thoughtflow.insights import (
    InsightGenerator,
    format_report,
    peak_hours,
    period_range,
    report_to_json,
)
from thoughtflow.models import ThinkingPattern


def generator_for(db, client=None):
    return InsightGenerator(db, db, client, connections=db, patterns=db, tz=timezone.utc)


def seed(db, now):
    """Five thoughts in the past week: three at 9h, two at 14h."""
    specs = [
        ("Plan sprint", "task", 1, 9),
        ("Email Dana", "task", 2, 9),
        ("Idea for onboarding", "idea", 3, 9),
        ("Read about CRDTs", "learning", 4, 14),
        ("Write retro notes", "task", 5, 14),
    ]
    thoughts = []
    for content, category, days_ago, hour in specs:
        created = (now - timedelta(days=days_ago)).replace(hour=hour, minute=0)
        thoughts.append(db.add_thought("alice", content, category=category, created_at=created))
    db.complete_thought(thoughts[0].id)
    return thoughts


def test_empty_period_returns_canonical_empty_report(db, now):
    report = generator_for(db).generate("alice", "daily", now=now)

    assert report.source == "empty"
    assert report.insights == []
    assert report.recommendations == []
    assert report.patterns == []
    assert report.productivity.peak_hours == []
    assert report.productivity.completion_rate == 0
    assert report.productivity.organization_efficiency == 0
    assert report.period_end - report.period_start == timedelta(days=1)
    assert db.get_insight_reports("alice") == []


def test_local_report_without_classifier(db, now):
    seed(db, now)

    report = generator_for(db).generate("alice", "weekly", now=now)

    assert report.source == "local"
    assert report.productivity.peak_hours == ["9:00", "14:00"]
    assert report.productivity.focus_patterns == ["Morning focus", "Afternoon creativity"]
    assert report.productivity.completion_rate == 75
    assert report.productivity.thinking_velocity == 80
    assert report.productivity.creativity_score == 70
    assert report.productivity.organization_efficiency == 85
    assert report.insights[0].title == "Thinking themes"
    assert report.insights[0].supporting_data[0] == "task: 3"
    assert db.get_insight_reports("alice") == [report]


def test_classifier_report(db, now, fake_client):
    seed(db, now)
    db.add_thinking_pattern("alice", ThinkingPattern(
        type="temporal", name="Morning planner", description="Plans before 10am", strength=72,
    ))
    client = fake_client({
        "insights": [
            {"type": "productivity", "title": "Mornings matter", "description": "Most tasks start at 9",
             "supportingData": ["3 of 5 thoughts at 9:00"], "confidence": 88, "actionability": "HIGH"},
            {"type": "unknown", "description": "no title, dropped"},
        ],
        "recommendations": [
            {"title": "Protect mornings", "actions": ["Block 9-11"], "expectedImpact": "high",
             "difficulty": "trivial"},
        ],
        "productivity": {"peakHours": ["9-11 AM"], "completionRate": 150},
    })

    report = generator_for(db, client).generate("alice", "weekly", now=now)

    assert report.source == "classifier"
    assert [i.title for i in report.insights] == ["Mornings matter"]
    assert report.insights[0].actionability == "high"
    assert report.recommendations[0].difficulty == "medium"
    assert report.patterns[0].name == "Morning planner"
    assert report.productivity.peak_hours == ["9-11 AM"]
    assert report.productivity.completion_rate == 100
    assert report.productivity.thinking_velocity == 80

    request = client.calls[0]["user_prompt"]
    assert "THOUGHTS (5 total)" in request
    assert "Completed tasks: 1" in request
    assert "In progress: 4" in request
    assert "Morning planner" in request


def test_classifier_failure_falls_back_to_local(db, now, fake_client):
    seed(db, now)
    client = fake_client(error=ClassifierError(ClassifierError.TIMEOUT))

    report = generator_for(db, client).generate("alice", "monthly", now=now)

    assert report.source == "local"
    assert len(db.get_insight_reports("alice")) == 1


def test_excerpts_are_bounded(db, now, fake_client):
    for i in range(25):
        db.add_thought("alice", f"thought number {i}", created_at=now - timedelta(hours=i + 1))
    client = fake_client({})

    generator_for(db, client).generate("alice", "weekly", now=now)

    request = client.calls[0]["user_prompt"]
    assert request.count('- "thought number') == 20
    assert "... and more" in request


def test_unknown_period(db):
    with pytest.raises(ValidationError):
        generator_for(db).generate("alice", "yearly")
    with pytest.raises(ValidationError):
        period_range("hourly")


def test_report_is_frozen(db, now):
    seed(db, now)
    report = generator_for(db).generate("alice", "weekly", now=now)

    with pytest.raises(Exception):
        report.period = "daily"


def test_peak_hours_ties_go_to_earlier_hour(db, now):
    for hour in (15, 8, 11, 20):
        db.add_thought("alice", "x", created_at=now.replace(hour=hour) - timedelta(days=1))

    thoughts = db.get_recent_thoughts("alice")

    assert peak_hours(thoughts, timezone.utc) == ["8:00", "11:00", "15:00"]


def test_format_report(db, now):
    seed(db, now)
    report = generator_for(db).generate("alice", "weekly", now=now)

    text = format_report(report)

    assert text.startswith("# Thoughtflow Weekly Insights")
    assert "**Thinking themes**" in text
    assert "- Peak hours: 9:00, 14:00" in text
    assert "local statistics" in text


def test_format_empty_report(db, now):
    report = generator_for(db).generate("alice", "daily", now=now)
    assert "No thoughts captured" in format_report(report)


def test_unexpected_client_error_falls_back_to_local(db, now, fake_client):
    seed(db, now)
    client = fake_client(error=RuntimeError("invalid port"))

    report = generator_for(db, client).generate("alice", "weekly", now=now)

    assert report.source == "local"
    assert report.productivity.peak_hours == ["9:00", "14:00"]


def test_fractional_productivity_scores_are_percentages(db, now, fake_client):
    seed(db, now)
    client = fake_client({"productivity": {"completionRate": 0.8, "creativityScore": "65"}})

    report = generator_for(db, client).generate("alice", "weekly", now=now)

    assert report.productivity.completion_rate == 80
    assert report.productivity.creativity_score == 65
    assert report.productivity.organization_efficiency == 85


def test_report_to_json(db, now):
    seed(db, now)
    report = generator_for(db).generate("alice", "weekly", now=now)

    data = json.loads(report_to_json(report))

    assert data["period"] == "weekly"
    assert data["source"] == "local"
    assert data["productivity"]["peak_hours"] == ["9:00", "14:00"]
