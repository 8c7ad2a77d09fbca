"""
Predictive suggestions for Thoughtflow.

Proposes thoughts the user is likely to want to capture next, based on
their learned patterns, the last week of thoughts and the current moment.
"""

import json
import logging
import uuid
from datetime import datetime, timedelta, tzinfo
from typing import Any

from thoughtflow.errors import ClassifierError, PersistenceError
from thoughtflow.llm import ClassifierClient
from thoughtflow.models import (
    MAX_TAGS,
    PRIORITIES,
    SUGGESTION_TYPES,
    TRIGGER_TYPES,
    ContextTrigger,
    PredictiveSuggestion,
    Thought,
    utcnow,
)
from thoughtflow.store import PatternStore, SuggestionStore, ThoughtSource
from thoughtflow.validator import (
    coerce_choice,
    coerce_dict_list,
    coerce_score,
    coerce_str,
    coerce_str_list,
    pick,
)

logger = logging.getLogger(__name__)

LOOKBACK = timedelta(days=7)
SUGGESTION_TTL = timedelta(hours=24)
MIN_CONFIDENCE = 70
MAX_RECENT = 50

SUGGESTION_PROMPT = """You are an advanced cognitive intelligence system that predicts what thoughts a user might want to capture next. Analyze patterns, context and behavior to make proactive suggestions.

Respond with JSON only:
{
  "suggestions": [
    {
      "type": "task | idea | reminder | note | follow_up | project",
      "content": "Specific actionable thought suggestion",
      "reasoning": "Why this suggestion makes sense based on patterns",
      "confidence": 0-100,
      "priority": "urgent | high | medium | low",
      "contextTriggers": [
        {
          "type": "time_pattern | location | calendar_event | related_thought | project_context",
          "value": "Monday morning planning",
          "confidence": 0-100
        }
      ],
      "suggestedTags": ["work", "planning"]
    }
  ]
}

Generate 3-5 suggestions. Focus on following up incomplete thoughts, recurring themes, natural next steps and project progression. Only suggest things with more than 70% confidence."""


def time_of_day_label(hour: int) -> str:
    if hour < 6:
        return "late_night"
    if hour < 12:
        return "morning"
    if hour < 17:
        return "afternoon"
    if hour < 21:
        return "evening"
    return "night"


def current_context(now: datetime, tz: tzinfo | None = None) -> dict[str, Any]:
    local = now.astimezone(tz)
    day = local.strftime("%A")
    return {
        "day_of_week": day,
        "time_of_day": time_of_day_label(local.hour),
        "hour": local.hour,
        "is_weekend": day in ("Saturday", "Sunday"),
        "is_business_hours": 9 <= local.hour <= 17,
    }


def coerce_triggers(value: Any) -> list[ContextTrigger]:
    triggers = []
    for item in coerce_dict_list(value):
        trigger_type = coerce_choice(item.get("type"), TRIGGER_TYPES, "")
        trigger_value = coerce_str(item.get("value"))
        if not trigger_type or not trigger_value:
            continue
        triggers.append(ContextTrigger(
            type=trigger_type,
            value=trigger_value,
            confidence=coerce_score(item.get("confidence"), 50),
        ))
    return triggers


def parse_suggestions(
    raw: dict[str, Any], now: datetime, min_confidence: int = MIN_CONFIDENCE
) -> list[PredictiveSuggestion]:
    """Keep confident, well-formed suggestions; everything expires in a day."""
    suggestions = []
    for item in coerce_dict_list(raw.get("suggestions")):
        content = coerce_str(item.get("content"))
        confidence = coerce_score(item.get("confidence"), 0)
        if not content or confidence < min_confidence:
            continue

        suggestions.append(PredictiveSuggestion(
            id=f"pred_{uuid.uuid4().hex[:12]}",
            type=coerce_choice(item.get("type"), SUGGESTION_TYPES, "note"),
            content=content,
            reasoning=coerce_str(item.get("reasoning"), ""),
            confidence=confidence,
            priority=coerce_choice(item.get("priority"), PRIORITIES, "medium"),
            context_triggers=coerce_triggers(pick(item, "contextTriggers", "context_triggers")),
            suggested_tags=coerce_str_list(
                pick(item, "suggestedTags", "suggested_tags"), unique=True
            )[:MAX_TAGS],
            expires_at=now + SUGGESTION_TTL,
        ))
    return suggestions


class SuggestionEngine:
    """Generates and stores predictive suggestions."""

    def __init__(
        self,
        source: ThoughtSource,
        store: SuggestionStore,
        client: ClassifierClient | None = None,
        patterns: PatternStore | None = None,
        tz: tzinfo | None = None,
        temperature: float = 0.3,
        max_tokens: int = 2000,
    ):
        self.source = source
        self.store = store
        self.client = client
        self.patterns = patterns
        self.tz = tz
        self.temperature = temperature
        self.max_tokens = max_tokens

    def generate(self, user_id: str, now: datetime | None = None) -> list[PredictiveSuggestion]:
        now = now or utcnow()
        thoughts = self.source.get_thoughts_in_range(user_id, now - LOOKBACK, now)[:MAX_RECENT]
        if not thoughts:
            logger.info("No recent thoughts for %s, skipping suggestions", user_id)
            return []
        if self.client is None:
            return []

        try:
            raw = self.client.complete_json(
                SUGGESTION_PROMPT,
                self._build_request(user_id, thoughts, now),
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except ClassifierError as e:
            logger.warning("Suggestion generation failed (%s): %s", e.kind, e)
            return []
        except Exception:
            logger.exception("Suggestion generation crashed")
            return []

        suggestions = parse_suggestions(raw, now)

        try:
            self.store.insert_suggestions(user_id, suggestions)
        except PersistenceError as e:
            logger.warning("Could not store suggestions for %s: %s", user_id, e)

        logger.info("Generated %d suggestions for %s", len(suggestions), user_id)
        return suggestions

    def _build_request(self, user_id: str, thoughts: list[Thought], now: datetime) -> str:
        patterns: dict[str, Any] = {}
        if self.patterns is not None:
            try:
                pattern = self.patterns.get_user_pattern(user_id)
            except PersistenceError as e:
                logger.warning("Could not read user pattern for %s: %s", user_id, e)
                pattern = None
            if pattern:
                patterns = {
                    "top_vocabulary": dict(pattern.top_vocabulary()),
                    "category_preferences": pattern.category_preferences,
                    "total_thoughts": pattern.total_thoughts,
                }

        lines = ["Generate 3-5 predictive suggestions for this user based on their patterns:", ""]
        lines.append("USER PATTERNS:")
        lines.append(json.dumps(patterns, indent=2, sort_keys=True))
        lines.extend(["", "RECENT THOUGHTS (last 7 days):"])
        for thought in thoughts:
            status = " (done)" if thought.is_completed else ""
            lines.append(
                f"- {thought.content} ({thought.category or 'uncategorized'}) "
                f"[{thought.created_at.date().isoformat()}]{status}"
            )
        lines.extend(["", "CURRENT CONTEXT:"])
        lines.append(json.dumps(current_context(now, self.tz), indent=2))
        return "\n".join(lines)
