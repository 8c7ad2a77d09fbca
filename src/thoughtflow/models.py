"""
Data model for Thoughtflow.

Pydantic schemas for analyses, learned user patterns, connections,
insight reports and suggestions.
"""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Closed taxonomies
CATEGORIES = ("task", "idea", "note", "reminder", "meeting", "learning", "personal")
PRIORITIES = ("urgent", "high", "medium", "low")
RECURRENCES = ("once", "daily", "weekly", "monthly")
CONNECTION_TYPES = (
    "semantic", "temporal", "causal", "thematic", "project_related", "contextual",
)
CONNECTION_ACTION_TYPES = (
    "merge_thoughts", "create_project", "schedule_follow_up", "tag_relationship",
)
PERIODS = ("daily", "weekly", "monthly")
INSIGHT_TYPES = ("pattern", "productivity", "creativity", "focus", "growth")
PATTERN_TYPES = ("temporal", "thematic", "productivity", "creative", "focus", "emotional")
LEVELS = ("high", "medium", "low")
DIFFICULTIES = ("easy", "medium", "hard")
TRENDS = ("increasing", "stable", "decreasing")
SUGGESTION_TYPES = ("task", "idea", "reminder", "note", "follow_up", "project")
TRIGGER_TYPES = (
    "time_pattern", "location", "calendar_event", "related_thought", "project_context",
)

MAX_TAGS = 5

Category = Literal["task", "idea", "note", "reminder", "meeting", "learning", "personal"]
Priority = Literal["urgent", "high", "medium", "low"]
Recurrence = Literal["once", "daily", "weekly", "monthly"]
ConnectionType = Literal[
    "semantic", "temporal", "causal", "thematic", "project_related", "contextual"
]
ConnectionActionType = Literal[
    "merge_thoughts", "create_project", "schedule_follow_up", "tag_relationship"
]
Period = Literal["daily", "weekly", "monthly"]
Level = Literal["high", "medium", "low"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ==========================================
# Classification
# ==========================================


class Reminder(BaseModel):
    text: str
    date: str | None = None
    recurrence: Recurrence = "once"


class Entities(BaseModel):
    """Extracted entities. Each list holds unique values in first-seen order."""

    people: list[str] = Field(default_factory=list)
    places: list[str] = Field(default_factory=list)
    dates: list[str] = Field(default_factory=list)
    amounts: list[str] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    tools: list[str] = Field(default_factory=list)

    @field_validator("*")
    @classmethod
    def _unique(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))


class ThoughtAnalysis(BaseModel):
    """Canonical classification result for a single thought."""

    category: Category = Field(description="Primary category")
    folder: str = Field(default="General", description="Top-level folder")
    project: str | None = None
    subfolder: str | None = None

    title: str
    cleaned_text: str
    summary: str

    tags: list[str] = Field(default_factory=list, description="At most five unique tags")
    priority: Priority = "medium"

    action_items: list[str] = Field(default_factory=list)
    due_date: str | None = None
    reminders: list[Reminder] = Field(default_factory=list)

    entities: Entities = Field(default_factory=Entities)

    linked_thoughts: list[str] = Field(default_factory=list)
    suggested_actions: list[str] = Field(default_factory=list)
    confidence: float = Field(description="Classification confidence in [0, 1]")
    reasoning: str = ""

    processing_time_ms: int = 0
    source: Literal["classifier", "fallback"] = "classifier"

    @field_validator("tags")
    @classmethod
    def _limit_tags(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))[:MAX_TAGS]

    @field_validator("confidence")
    @classmethod
    def _clamp_confidence(cls, value: float) -> float:
        if value != value:  # NaN
            return 0.0
        return min(max(float(value), 0.0), 1.0)


class RecentThought(BaseModel):
    content: str
    category: str = "note"
    tags: list[str] = Field(default_factory=list)


class UserContext(BaseModel):
    """Personalization and situational context for a classification."""

    user_id: str
    recent_thoughts: list[RecentThought] = Field(default_factory=list)
    projects: list[str] = Field(default_factory=list)
    frequent_tags: list[str] = Field(default_factory=list)
    vocabulary_preferences: dict[str, int] = Field(default_factory=dict)
    time_of_day: str | None = None
    location: str | None = None
    browser_context: str | None = None

    @field_validator("recent_thoughts")
    @classmethod
    def _bound_recent(cls, value: list[RecentThought]) -> list[RecentThought]:
        # Most-recent-first; older entries add prompt cost without signal
        return value[:10]


# ==========================================
# Thought stream (owned by capture)
# ==========================================


class Thought(BaseModel):
    id: str
    user_id: str
    content: str
    category: str | None = None
    created_at: datetime
    is_completed: bool = False
    is_archived: bool = False


# ==========================================
# Learning
# ==========================================


class UserPattern(BaseModel):
    """Learned per-user preferences. One row per user."""

    user_id: str
    vocabulary_weights: dict[str, int] = Field(default_factory=dict)
    category_preferences: dict[str, str] = Field(default_factory=dict)
    accuracy_rate: float = 0.7
    total_thoughts: int = 0
    updated_at: datetime | None = None

    def top_vocabulary(self, limit: int = 10) -> list[tuple[str, int]]:
        """Highest-weighted words, ties broken alphabetically."""
        return sorted(self.vocabulary_weights.items(), key=lambda kv: (-kv[1], kv[0]))[:limit]


# ==========================================
# Connections
# ==========================================


class ConnectionAction(BaseModel):
    type: ConnectionActionType
    description: str
    confidence: int = Field(ge=0, le=100)


class ThoughtConnection(BaseModel):
    source_id: str
    target_id: str
    connection_type: ConnectionType
    strength: int = Field(ge=0, le=100)
    reasoning: str = ""
    actionable_insights: list[str] = Field(default_factory=list)
    suggested_actions: list[ConnectionAction] = Field(default_factory=list)

    @property
    def pair(self) -> tuple[str, str]:
        """Unordered pair key: A->B is the same connection as B->A."""
        return tuple(sorted((self.source_id, self.target_id)))  # type: ignore[return-value]


# ==========================================
# Insight reports
# ==========================================


class PersonalInsight(BaseModel):
    type: Literal["pattern", "productivity", "creativity", "focus", "growth"]
    title: str
    description: str
    supporting_data: list[Any] = Field(default_factory=list)
    confidence: int = Field(ge=0, le=100)
    actionability: Level = "medium"


class ActionableRecommendation(BaseModel):
    title: str
    description: str
    actions: list[str] = Field(default_factory=list)
    expected_impact: Level = "medium"
    difficulty: Literal["easy", "medium", "hard"] = "medium"


class ThinkingPattern(BaseModel):
    type: Literal["temporal", "thematic", "productivity", "creative", "focus", "emotional"]
    name: str
    description: str
    strength: int = Field(ge=0, le=100)
    frequency: str = "irregular"
    trend: Literal["increasing", "stable", "decreasing"] = "stable"


class ProductivityAnalysis(BaseModel):
    peak_hours: list[str] = Field(default_factory=list)
    focus_patterns: list[str] = Field(default_factory=list)
    completion_rate: float = 0
    thinking_velocity: float = 0
    creativity_score: float = 0
    organization_efficiency: float = 0


class InsightReport(BaseModel):
    """Periodic report. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    period: Period
    user_id: str
    period_start: datetime
    period_end: datetime
    insights: list[PersonalInsight] = Field(default_factory=list)
    recommendations: list[ActionableRecommendation] = Field(default_factory=list)
    patterns: list[ThinkingPattern] = Field(default_factory=list)
    productivity: ProductivityAnalysis = Field(default_factory=ProductivityAnalysis)
    generated_at: datetime = Field(default_factory=utcnow)
    source: Literal["classifier", "local", "empty"] = "classifier"


# ==========================================
# Predictive suggestions
# ==========================================


class ContextTrigger(BaseModel):
    type: Literal[
        "time_pattern", "location", "calendar_event", "related_thought", "project_context"
    ]
    value: str
    confidence: int = Field(ge=0, le=100)


class PredictiveSuggestion(BaseModel):
    id: str
    type: Literal["task", "idea", "reminder", "note", "follow_up", "project"]
    content: str
    reasoning: str = ""
    confidence: int = Field(ge=0, le=100)
    priority: Priority = "medium"
    context_triggers: list[ContextTrigger] = Field(default_factory=list)
    suggested_tags: list[str] = Field(default_factory=list)
    expires_at: datetime
