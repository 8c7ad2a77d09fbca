"""
Insight reports for Thoughtflow.

Summarizes a period of thinking: what the user thought about, when they
think best, and what to do about it. Reports come from the classifier when
it is available and from local statistics when it is not.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta, tzinfo
from typing import Any

from thoughtflow.errors import ClassifierError, PersistenceError, ValidationError
from thoughtflow.llm import ClassifierClient
from thoughtflow.models import (
    DIFFICULTIES,
    INSIGHT_TYPES,
    LEVELS,
    PERIODS,
    ActionableRecommendation,
    InsightReport,
    PersonalInsight,
    ProductivityAnalysis,
    ThinkingPattern,
    Thought,
    ThoughtConnection,
    utcnow,
)
from thoughtflow.store import ConnectionStore, PatternStore, ReportStore, ThoughtSource
from thoughtflow.validator import (
    coerce_choice,
    coerce_dict_list,
    coerce_number,
    coerce_score,
    coerce_str,
    coerce_str_list,
    pick,
)

logger = logging.getLogger(__name__)

PERIOD_DAYS = {"daily": 1, "weekly": 7, "monthly": 30}

MAX_EXCERPTS = 20
MAX_PEAK_HOURS = 3
MAX_THEMES = 5
MAX_CONNECTIONS_IN_PROMPT = 5

LOCAL_FOCUS_PATTERNS = ["Morning focus", "Afternoon creativity"]
LOCAL_SCORES = {
    "completion_rate": 75,
    "thinking_velocity": 80,
    "creativity_score": 70,
    "organization_efficiency": 85,
}

INSIGHT_PROMPT = """You are a personal intelligence analyst that generates insights about thinking patterns and productivity. Analyze the user's thought data and provide valuable, actionable insights.

Respond with JSON only:
{
  "insights": [
    {
      "type": "pattern | productivity | creativity | focus | growth",
      "title": "Peak Productivity Hours",
      "description": "You are most productive between 9-11 AM",
      "supportingData": ["75% of tasks completed in morning"],
      "confidence": 0-100,
      "actionability": "high | medium | low"
    }
  ],
  "recommendations": [
    {
      "title": "Optimize Morning Routine",
      "description": "Focus your most important work during peak hours",
      "actions": ["Schedule deep work for 9 AM"],
      "expectedImpact": "high | medium | low",
      "difficulty": "easy | medium | hard"
    }
  ],
  "productivity": {
    "peakHours": ["9:00"],
    "focusPatterns": ["Deep work in morning"],
    "completionRate": 0-100,
    "thinkingVelocity": 0-100,
    "creativityScore": 0-100,
    "organizationEfficiency": 0-100
  }
}

Make insights specific, encouraging and actionable."""


def period_range(period: str, now: datetime | None = None) -> tuple[datetime, datetime]:
    """Half-open [start, end) window ending now."""
    if period not in PERIOD_DAYS:
        raise ValidationError(f"Unknown period '{period}'. Use one of: {', '.join(PERIODS)}")
    end = now or utcnow()
    return end - timedelta(days=PERIOD_DAYS[period]), end


def empty_report(user_id: str, period: str, start: datetime, end: datetime) -> InsightReport:
    return InsightReport(
        period=period,
        user_id=user_id,
        period_start=start,
        period_end=end,
        source="empty",
    )


def peak_hours(thoughts: list[Thought], tz: tzinfo | None = None) -> list[str]:
    """Busiest capture hours, ties going to the earlier hour."""
    counts = Counter(t.created_at.astimezone(tz).hour for t in thoughts)
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return [f"{hour}:00" for hour, _ in ranked[:MAX_PEAK_HOURS]]


def category_histogram(thoughts: list[Thought]) -> list[tuple[str, int]]:
    counts = Counter(t.category or "general" for t in thoughts)
    return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))


def completion_counts(thoughts: list[Thought]) -> tuple[int, int]:
    """(completed, in progress). Archived thoughts are neither."""
    completed = sum(1 for t in thoughts if t.is_completed)
    in_progress = sum(1 for t in thoughts if not t.is_completed and not t.is_archived)
    return completed, in_progress


def local_productivity(thoughts: list[Thought], tz: tzinfo | None = None) -> ProductivityAnalysis:
    return ProductivityAnalysis(
        peak_hours=peak_hours(thoughts, tz),
        focus_patterns=list(LOCAL_FOCUS_PATTERNS),
        **LOCAL_SCORES,
    )


def themes_insight(thoughts: list[Thought]) -> PersonalInsight:
    histogram = category_histogram(thoughts)[:MAX_THEMES]
    names = ", ".join(name for name, _ in histogram)
    return PersonalInsight(
        type="pattern",
        title="Thinking themes",
        description=f"Your thoughts this period centered on: {names}",
        supporting_data=[f"{name}: {count}" for name, count in histogram],
        confidence=70,
        actionability="medium",
    )


def build_insight_request(
    period: str,
    start: datetime,
    end: datetime,
    thoughts: list[Thought],
    patterns: list[ThinkingPattern],
    themes: list[str],
    connections: list[ThoughtConnection],
) -> str:
    completed, in_progress = completion_counts(thoughts)

    lines = [f"Generate a {period} intelligence report for this user:", ""]
    lines.append(f"THOUGHTS ({len(thoughts)} total):")
    for thought in thoughts[:MAX_EXCERPTS]:
        lines.append(
            f'- "{thought.content}" ({thought.category or "uncategorized"}) '
            f"[{thought.created_at.date().isoformat()}]"
        )
    if len(thoughts) > MAX_EXCERPTS:
        lines.append("... and more")

    lines.extend(["", "THINKING PATTERNS:"])
    for p in patterns:
        lines.append(f"- {p.name}: {p.description} (strength: {p.strength}%)")
    if not patterns:
        lines.append("- none recorded yet")

    lines.extend(["", f"LEARNED THEMES: {', '.join(themes) or 'none yet'}"])

    if connections:
        lines.extend(["", "CONNECTIONS:"])
        for conn in connections[:MAX_CONNECTIONS_IN_PROMPT]:
            lines.append(f"- {conn.connection_type} ({conn.strength}): {conn.reasoning}")

    lines.extend([
        "",
        "COMPLETION DATA:",
        f"- Total thoughts: {len(thoughts)}",
        f"- Completed tasks: {completed}",
        f"- In progress: {in_progress}",
        f"- Time range: {start.date().isoformat()} - {end.date().isoformat()}",
        "",
        "Provide insights about productivity and peak times, recurring themes, "
        "goal progress, the balance of creative and analytical thinking, "
        "and areas for improvement.",
    ])
    return "\n".join(lines)


def coerce_insights(value: Any) -> list[PersonalInsight]:
    insights = []
    for item in coerce_dict_list(value):
        title = coerce_str(item.get("title"))
        if not title:
            continue
        insights.append(PersonalInsight(
            type=coerce_choice(item.get("type"), INSIGHT_TYPES, "pattern"),
            title=title,
            description=coerce_str(item.get("description"), ""),
            supporting_data=coerce_str_list(pick(item, "supportingData", "supporting_data")),
            confidence=coerce_score(item.get("confidence"), 50),
            actionability=coerce_choice(item.get("actionability"), LEVELS, "medium"),
        ))
    return insights


def coerce_recommendations(value: Any) -> list[ActionableRecommendation]:
    recommendations = []
    for item in coerce_dict_list(value):
        title = coerce_str(item.get("title"))
        if not title:
            continue
        recommendations.append(ActionableRecommendation(
            title=title,
            description=coerce_str(item.get("description"), ""),
            actions=coerce_str_list(item.get("actions")),
            expected_impact=coerce_choice(
                pick(item, "expectedImpact", "expected_impact"), LEVELS, "medium"
            ),
            difficulty=coerce_choice(item.get("difficulty"), DIFFICULTIES, "medium"),
        ))
    return recommendations


def coerce_productivity(value: Any, local: ProductivityAnalysis) -> ProductivityAnalysis:
    """Classifier productivity block, with any missing field taken from local stats."""
    if not isinstance(value, dict):
        return local

    def score(*keys: str, default: float) -> float:
        raw = pick(value, *keys)
        return default if coerce_number(raw) is None else coerce_score(raw, 0)

    return ProductivityAnalysis(
        peak_hours=coerce_str_list(pick(value, "peakHours", "peak_hours")) or local.peak_hours,
        focus_patterns=(
            coerce_str_list(pick(value, "focusPatterns", "focus_patterns"))
            or local.focus_patterns
        ),
        completion_rate=score("completionRate", "completion_rate", default=local.completion_rate),
        thinking_velocity=score(
            "thinkingVelocity", "thinking_velocity", default=local.thinking_velocity
        ),
        creativity_score=score(
            "creativityScore", "creativity_score", default=local.creativity_score
        ),
        organization_efficiency=score(
            "organizationEfficiency", "organization_efficiency",
            default=local.organization_efficiency,
        ),
    )


class InsightGenerator:
    """Builds and stores periodic insight reports."""

    def __init__(
        self,
        source: ThoughtSource,
        store: ReportStore,
        client: ClassifierClient | None = None,
        connections: ConnectionStore | None = None,
        patterns: PatternStore | None = None,
        tz: tzinfo | None = None,
        temperature: float = 0.3,
        max_tokens: int = 3000,
    ):
        self.source = source
        self.store = store
        self.client = client
        self.connections = connections
        self.patterns = patterns
        self.tz = tz
        self.temperature = temperature
        self.max_tokens = max_tokens

    def generate(self, user_id: str, period: str, now: datetime | None = None) -> InsightReport:
        start, end = period_range(period, now)
        thoughts = self.source.get_thoughts_in_range(user_id, start, end)

        if not thoughts:
            logger.info("No thoughts for %s %s report", user_id, period)
            return empty_report(user_id, period, start, end)

        thinking_patterns = self._thinking_patterns(user_id)
        local = local_productivity(thoughts, self.tz)

        report = None
        if self.client is not None:
            request = build_insight_request(
                period, start, end, thoughts, thinking_patterns,
                self._learned_themes(user_id, thoughts),
                self._top_connections(user_id),
            )
            try:
                raw = self.client.complete_json(
                    INSIGHT_PROMPT,
                    request,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                )
                report = InsightReport(
                    period=period,
                    user_id=user_id,
                    period_start=start,
                    period_end=end,
                    insights=coerce_insights(raw.get("insights")),
                    recommendations=coerce_recommendations(raw.get("recommendations")),
                    patterns=thinking_patterns,
                    productivity=coerce_productivity(raw.get("productivity"), local),
                    source="classifier",
                )
            except ClassifierError as e:
                logger.warning("Insight generation fell back to local stats (%s): %s", e.kind, e)
            except Exception:
                logger.exception("Insight generation crashed, using local stats")

        if report is None:
            report = InsightReport(
                period=period,
                user_id=user_id,
                period_start=start,
                period_end=end,
                insights=[themes_insight(thoughts)],
                patterns=thinking_patterns,
                productivity=local,
                source="local",
            )

        try:
            self.store.insert_insight_report(report)
        except PersistenceError as e:
            logger.warning("Could not store %s report for %s: %s", period, user_id, e)

        logger.info(
            "Generated %s report for %s with %d insights", period, user_id, len(report.insights)
        )
        return report

    def _thinking_patterns(self, user_id: str) -> list[ThinkingPattern]:
        try:
            return self.store.get_thinking_patterns(user_id)
        except PersistenceError as e:
            logger.warning("Could not read thinking patterns for %s: %s", user_id, e)
            return []

    def _learned_themes(self, user_id: str, thoughts: list[Thought]) -> list[str]:
        themes = [name for name, _ in category_histogram(thoughts)[:MAX_THEMES]]
        if self.patterns is None:
            return themes
        try:
            pattern = self.patterns.get_user_pattern(user_id)
        except PersistenceError as e:
            logger.warning("Could not read user pattern for %s: %s", user_id, e)
            return themes
        if pattern:
            themes.extend(word for word, _ in pattern.top_vocabulary(MAX_THEMES))
        return themes

    def _top_connections(self, user_id: str) -> list[ThoughtConnection]:
        if self.connections is None:
            return []
        try:
            return self.connections.get_connections(user_id)[:MAX_CONNECTIONS_IN_PROMPT]
        except PersistenceError as e:
            logger.warning("Could not read connections for %s: %s", user_id, e)
            return []


def format_report(report: InsightReport) -> str:
    """Render a report as markdown."""
    title = f"# Thoughtflow {report.period.title()} Insights"
    lines = [
        f"{title} ({report.period_start.date().isoformat()} to {report.period_end.date().isoformat()})",
        "",
    ]

    if report.source == "empty":
        lines.append("No thoughts captured in this period.")
        return "\n".join(lines)

    if report.insights:
        lines.append("## Insights")
        for insight in report.insights:
            lines.append(f"- **{insight.title}** ({insight.type}, {insight.confidence}%)")
            if insight.description:
                lines.append(f"  {insight.description}")
        lines.append("")

    if report.recommendations:
        lines.append("## Recommendations")
        for rec in report.recommendations:
            lines.append(
                f"- **{rec.title}** (impact: {rec.expected_impact}, difficulty: {rec.difficulty})"
            )
            for action in rec.actions:
                lines.append(f"  - [ ] {action}")
        lines.append("")

    if report.patterns:
        lines.append("## Thinking Patterns")
        for pattern in report.patterns:
            lines.append(f"- {pattern.name}: {pattern.description} ({pattern.trend})")
        lines.append("")

    p = report.productivity
    lines.append("## Productivity")
    if p.peak_hours:
        lines.append(f"- Peak hours: {', '.join(p.peak_hours)}")
    if p.focus_patterns:
        lines.append(f"- Focus: {', '.join(p.focus_patterns)}")
    lines.append(f"- Completion rate: {p.completion_rate:g}")
    lines.append(f"- Thinking velocity: {p.thinking_velocity:g}")
    lines.append(f"- Creativity: {p.creativity_score:g}")
    lines.append(f"- Organization: {p.organization_efficiency:g}")

    if report.source == "local":
        lines.extend(["", "---", "Generated from local statistics (classifier unavailable)"])

    return "\n".join(lines)


def report_to_json(report: InsightReport) -> str:
    return report.model_dump_json(indent=2)
