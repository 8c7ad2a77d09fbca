"""
Persistence contracts for Thoughtflow.

The pipeline only depends on these protocols. thoughtflow.db.Database is the
bundled SQLite implementation; any store raising PersistenceError on failure
can take its place.
"""

from datetime import datetime
from typing import Protocol

from thoughtflow.models import (
    InsightReport,
    PredictiveSuggestion,
    ThinkingPattern,
    Thought,
    ThoughtConnection,
    UserPattern,
)


class ThoughtSource(Protocol):
    """Read-only view of the thought stream owned by capture."""

    def get_recent_thoughts(self, user_id: str, limit: int = 30) -> list[Thought]:
        ...

    def get_thoughts_in_range(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[Thought]:
        ...


class PatternStore(Protocol):
    def get_user_pattern(self, user_id: str) -> UserPattern | None:
        ...

    def merge_user_pattern(
        self,
        user_id: str,
        vocabulary_delta: dict[str, int],
        category_updates: dict[str, str],
        confidence: float,
    ) -> UserPattern:
        ...


class ConnectionStore(Protocol):
    def replace_connections(self, user_id: str, connections: list[ThoughtConnection]) -> None:
        ...

    def get_connections(self, user_id: str) -> list[ThoughtConnection]:
        ...


class ReportStore(Protocol):
    def insert_insight_report(self, report: InsightReport) -> str:
        ...

    def get_thinking_patterns(self, user_id: str) -> list[ThinkingPattern]:
        ...


class SuggestionStore(Protocol):
    def insert_suggestions(self, user_id: str, suggestions: list[PredictiveSuggestion]) -> None:
        ...
