"""
Database module for Thoughtflow.

SQLite implementation of the persistence contracts in thoughtflow.store.
"""

import json
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from thoughtflow.config import get_db_path
from thoughtflow.errors import PersistenceError
from thoughtflow.models import (
    InsightReport,
    PredictiveSuggestion,
    ThinkingPattern,
    Thought,
    ThoughtAnalysis,
    ThoughtConnection,
    UserPattern,
)

# Schema version for migrations
SCHEMA_VERSION = 1

SCHEMA = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

-- Thought stream. Written by capture, read-only to the pipeline.
CREATE TABLE IF NOT EXISTS thoughts (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    content TEXT NOT NULL,
    category TEXT,
    created_at TEXT NOT NULL,               -- ISO 8601 UTC
    is_completed INTEGER DEFAULT 0,
    is_archived INTEGER DEFAULT 0
);

-- Derived analyses (one per thought, latest wins)
CREATE TABLE IF NOT EXISTS thought_analyses (
    thought_id TEXT PRIMARY KEY REFERENCES thoughts(id) ON DELETE CASCADE,
    user_id TEXT NOT NULL,
    category TEXT NOT NULL CHECK(category IN
        ('task', 'idea', 'note', 'reminder', 'meeting', 'learning', 'personal')),
    priority TEXT NOT NULL CHECK(priority IN ('urgent', 'high', 'medium', 'low')),
    confidence REAL NOT NULL,
    source TEXT NOT NULL,
    analysis TEXT NOT NULL,                 -- Full JSON
    created_at TEXT NOT NULL
);

-- Learned preferences, one row per user
CREATE TABLE IF NOT EXISTS user_patterns (
    user_id TEXT PRIMARY KEY,
    vocabulary_weights TEXT NOT NULL DEFAULT '{}',
    category_preferences TEXT NOT NULL DEFAULT '{}',
    accuracy_rate REAL NOT NULL DEFAULT 0.7,
    total_thoughts INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL
);

-- Discovered connections, replaced wholesale per discovery run
CREATE TABLE IF NOT EXISTS thought_connections (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    source_id TEXT NOT NULL,
    target_id TEXT NOT NULL,
    connection_type TEXT NOT NULL CHECK(connection_type IN
        ('semantic', 'temporal', 'causal', 'thematic', 'project_related', 'contextual')),
    strength INTEGER NOT NULL CHECK(strength >= 0 AND strength <= 100),
    reasoning TEXT NOT NULL,
    actionable_insights TEXT NOT NULL DEFAULT '[]',
    suggested_actions TEXT NOT NULL DEFAULT '[]',
    discovered_at TEXT NOT NULL
);

-- Insight reports, append-only
CREATE TABLE IF NOT EXISTS insight_reports (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    period TEXT NOT NULL CHECK(period IN ('daily', 'weekly', 'monthly')),
    period_start TEXT NOT NULL,
    period_end TEXT NOT NULL,
    source TEXT NOT NULL,
    report TEXT NOT NULL,                   -- Full JSON
    generated_at TEXT NOT NULL
);

-- Longer-lived thinking patterns consumed by reports
CREATE TABLE IF NOT EXISTS thinking_patterns (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    pattern_type TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT NOT NULL,
    strength INTEGER NOT NULL,
    frequency TEXT NOT NULL DEFAULT 'irregular',
    trend TEXT NOT NULL DEFAULT 'stable',
    is_active INTEGER DEFAULT 1
);

-- Predictive suggestions
CREATE TABLE IF NOT EXISTS predictive_suggestions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    suggestion TEXT NOT NULL,               -- Full JSON
    confidence INTEGER NOT NULL,
    expires_at TEXT NOT NULL,
    created_at TEXT NOT NULL
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_thoughts_user_created ON thoughts(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_connections_user ON thought_connections(user_id);
CREATE INDEX IF NOT EXISTS idx_reports_user ON insight_reports(user_id, generated_at);
CREATE INDEX IF NOT EXISTS idx_patterns_user ON thinking_patterns(user_id);
CREATE INDEX IF NOT EXISTS idx_suggestions_user ON predictive_suggestions(user_id, expires_at);
"""


def to_utc_iso(value: datetime) -> str:
    """Normalize to a UTC ISO string so text comparison orders correctly."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def row_to_thought(row: sqlite3.Row) -> Thought:
    return Thought(
        id=row["id"],
        user_id=row["user_id"],
        content=row["content"],
        category=row["category"],
        created_at=from_iso(row["created_at"]),
        is_completed=bool(row["is_completed"]),
        is_archived=bool(row["is_archived"]),
    )


class Database:
    """SQLite database wrapper for Thoughtflow."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or get_db_path()
        self._ensure_db()

    def _ensure_db(self) -> None:
        """Ensure database exists and schema is current."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(SCHEMA)
            # Set schema version
            conn.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,)
            )

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections. sqlite errors become PersistenceError."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=10.0)
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ==========================================
    # Thought stream
    # ==========================================

    def add_thought(
        self,
        user_id: str,
        content: str,
        category: str | None = None,
        created_at: datetime | None = None,
        thought_id: str | None = None,
        is_completed: bool = False,
        is_archived: bool = False,
    ) -> Thought:
        """Record a captured thought. Returns the stored Thought."""
        thought = Thought(
            id=thought_id or uuid.uuid4().hex,
            user_id=user_id,
            content=content,
            category=category,
            created_at=created_at or datetime.now(timezone.utc),
            is_completed=is_completed,
            is_archived=is_archived,
        )

        with self._connect() as conn:
            conn.execute("""
                INSERT INTO thoughts (
                    id, user_id, content, category, created_at, is_completed, is_archived
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                thought.id,
                thought.user_id,
                thought.content,
                thought.category,
                to_utc_iso(thought.created_at),
                int(thought.is_completed),
                int(thought.is_archived),
            ))

        return thought

    def get_thought(self, thought_id: str) -> Thought | None:
        """Get a single thought by ID."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM thoughts WHERE id = ?", (thought_id,)
            ).fetchone()
            if row:
                return row_to_thought(row)
        return None

    def get_recent_thoughts(self, user_id: str, limit: int = 30) -> list[Thought]:
        """Most recent thoughts first."""
        with self._connect() as conn:
            rows = conn.execute("""
                SELECT * FROM thoughts
                WHERE user_id = ?
                ORDER BY created_at DESC
                LIMIT ?
            """, (user_id, limit)).fetchall()
            return [row_to_thought(row) for row in rows]

    def get_thoughts_in_range(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[Thought]:
        """Thoughts with start <= created_at < end, most recent first."""
        with self._connect() as conn:
            rows = conn.execute("""
                SELECT * FROM thoughts
                WHERE user_id = ? AND created_at >= ? AND created_at < ?
                ORDER BY created_at DESC
            """, (user_id, to_utc_iso(start), to_utc_iso(end))).fetchall()
            return [row_to_thought(row) for row in rows]

    def complete_thought(self, thought_id: str) -> bool:
        """Mark a thought as completed. Returns True if successful."""
        with self._connect() as conn:
            cursor = conn.execute("""
                UPDATE thoughts SET is_completed = 1
                WHERE id = ? AND is_completed = 0
            """, (thought_id,))
            return cursor.rowcount > 0

    # ==========================================
    # Analyses
    # ==========================================

    def save_analysis(self, user_id: str, thought_id: str, analysis: ThoughtAnalysis) -> None:
        """Store the derived analysis for a thought, replacing any earlier one."""
        now = datetime.now(timezone.utc).isoformat()

        with self._connect() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO thought_analyses (
                    thought_id, user_id, category, priority, confidence,
                    source, analysis, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                thought_id,
                user_id,
                analysis.category,
                analysis.priority,
                analysis.confidence,
                analysis.source,
                analysis.model_dump_json(),
                now,
            ))

    def get_analysis(self, thought_id: str) -> ThoughtAnalysis | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT analysis FROM thought_analyses WHERE thought_id = ?", (thought_id,)
            ).fetchone()
            if row:
                return ThoughtAnalysis.model_validate_json(row["analysis"])
        return None

    # ==========================================
    # User patterns
    # ==========================================

    def get_user_pattern(self, user_id: str) -> UserPattern | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM user_patterns WHERE user_id = ?", (user_id,)
            ).fetchone()
            if row:
                return UserPattern(
                    user_id=row["user_id"],
                    vocabulary_weights=json.loads(row["vocabulary_weights"]),
                    category_preferences=json.loads(row["category_preferences"]),
                    accuracy_rate=row["accuracy_rate"],
                    total_thoughts=row["total_thoughts"],
                    updated_at=from_iso(row["updated_at"]),
                )
        return None

    def merge_user_pattern(
        self,
        user_id: str,
        vocabulary_delta: dict[str, int],
        category_updates: dict[str, str],
        confidence: float,
    ) -> UserPattern:
        """
        Fold one classification into the user's pattern row.

        Vocabulary counts add, tag->category mappings overwrite, and
        total_thoughts increments. Runs in a single write transaction.
        """
        now = datetime.now(timezone.utc)

        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT * FROM user_patterns WHERE user_id = ?", (user_id,)
            ).fetchone()

            if row:
                vocabulary = json.loads(row["vocabulary_weights"])
                preferences = json.loads(row["category_preferences"])
                accuracy = row["accuracy_rate"]
                total = row["total_thoughts"]
            else:
                vocabulary, preferences, accuracy, total = {}, {}, UserPattern.model_fields[
                    "accuracy_rate"
                ].default, 0

            for word, count in vocabulary_delta.items():
                vocabulary[word] = vocabulary.get(word, 0) + count
            preferences.update(category_updates)
            accuracy = (accuracy * total + confidence) / (total + 1)
            total += 1

            conn.execute("""
                INSERT OR REPLACE INTO user_patterns (
                    user_id, vocabulary_weights, category_preferences,
                    accuracy_rate, total_thoughts, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?)
            """, (
                user_id,
                json.dumps(vocabulary, sort_keys=True),
                json.dumps(preferences, sort_keys=True),
                accuracy,
                total,
                now.isoformat(),
            ))

        return UserPattern(
            user_id=user_id,
            vocabulary_weights=vocabulary,
            category_preferences=preferences,
            accuracy_rate=accuracy,
            total_thoughts=total,
            updated_at=now,
        )

    # ==========================================
    # Connections
    # ==========================================

    def replace_connections(self, user_id: str, connections: list[ThoughtConnection]) -> None:
        """Replace the user's persisted connections with a new set."""
        now = datetime.now(timezone.utc).isoformat()

        with self._connect() as conn:
            conn.execute("DELETE FROM thought_connections WHERE user_id = ?", (user_id,))
            conn.executemany("""
                INSERT INTO thought_connections (
                    user_id, source_id, target_id, connection_type, strength,
                    reasoning, actionable_insights, suggested_actions, discovered_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, [
                (
                    user_id,
                    c.source_id,
                    c.target_id,
                    c.connection_type,
                    c.strength,
                    c.reasoning,
                    json.dumps(c.actionable_insights),
                    json.dumps([a.model_dump() for a in c.suggested_actions]),
                    now,
                )
                for c in connections
            ])

    def get_connections(self, user_id: str) -> list[ThoughtConnection]:
        """Persisted connections, strongest first."""
        with self._connect() as conn:
            rows = conn.execute("""
                SELECT * FROM thought_connections
                WHERE user_id = ?
                ORDER BY strength DESC, id ASC
            """, (user_id,)).fetchall()
            return [
                ThoughtConnection(
                    source_id=row["source_id"],
                    target_id=row["target_id"],
                    connection_type=row["connection_type"],
                    strength=row["strength"],
                    reasoning=row["reasoning"],
                    actionable_insights=json.loads(row["actionable_insights"]),
                    suggested_actions=json.loads(row["suggested_actions"]),
                )
                for row in rows
            ]

    # ==========================================
    # Reports and patterns
    # ==========================================

    def insert_insight_report(self, report: InsightReport) -> str:
        """Append a report. Reports are never updated. Returns report ID."""
        report_id = uuid.uuid4().hex

        with self._connect() as conn:
            conn.execute("""
                INSERT INTO insight_reports (
                    id, user_id, period, period_start, period_end,
                    source, report, generated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                report_id,
                report.user_id,
                report.period,
                to_utc_iso(report.period_start),
                to_utc_iso(report.period_end),
                report.source,
                report.model_dump_json(),
                to_utc_iso(report.generated_at),
            ))

        return report_id

    def get_insight_reports(self, user_id: str, limit: int = 10) -> list[InsightReport]:
        with self._connect() as conn:
            rows = conn.execute("""
                SELECT report FROM insight_reports
                WHERE user_id = ?
                ORDER BY generated_at DESC
                LIMIT ?
            """, (user_id, limit)).fetchall()
            return [InsightReport.model_validate_json(row["report"]) for row in rows]

    def add_thinking_pattern(self, user_id: str, pattern: ThinkingPattern) -> None:
        with self._connect() as conn:
            conn.execute("""
                INSERT INTO thinking_patterns (
                    user_id, pattern_type, name, description, strength, frequency, trend
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                user_id,
                pattern.type,
                pattern.name,
                pattern.description,
                pattern.strength,
                pattern.frequency,
                pattern.trend,
            ))

    def get_thinking_patterns(self, user_id: str) -> list[ThinkingPattern]:
        """Active patterns, strongest first."""
        with self._connect() as conn:
            rows = conn.execute("""
                SELECT * FROM thinking_patterns
                WHERE user_id = ? AND is_active = 1
                ORDER BY strength DESC
            """, (user_id,)).fetchall()
            return [
                ThinkingPattern(
                    type=row["pattern_type"],
                    name=row["name"],
                    description=row["description"],
                    strength=row["strength"],
                    frequency=row["frequency"],
                    trend=row["trend"],
                )
                for row in rows
            ]

    # ==========================================
    # Suggestions
    # ==========================================

    def insert_suggestions(self, user_id: str, suggestions: list[PredictiveSuggestion]) -> None:
        now = datetime.now(timezone.utc).isoformat()

        with self._connect() as conn:
            conn.executemany("""
                INSERT OR REPLACE INTO predictive_suggestions (
                    id, user_id, suggestion, confidence, expires_at, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
            """, [
                (s.id, user_id, s.model_dump_json(), s.confidence, to_utc_iso(s.expires_at), now)
                for s in suggestions
            ])

    def get_active_suggestions(
        self, user_id: str, now: datetime | None = None, limit: int = 5
    ) -> list[PredictiveSuggestion]:
        """Unexpired suggestions, most confident first."""
        now = now or datetime.now(timezone.utc)
        with self._connect() as conn:
            rows = conn.execute("""
                SELECT suggestion FROM predictive_suggestions
                WHERE user_id = ? AND expires_at > ?
                ORDER BY confidence DESC
                LIMIT ?
            """, (user_id, to_utc_iso(now), limit)).fetchall()
            return [PredictiveSuggestion.model_validate_json(row["suggestion"]) for row in rows]

    # ==========================================
    # Stats
    # ==========================================

    def get_stats(self, user_id: str | None = None) -> dict[str, Any]:
        """Get database statistics, optionally for one user."""
        where = "WHERE user_id = ?" if user_id else ""
        params: tuple[Any, ...] = (user_id,) if user_id else ()

        with self._connect() as conn:
            total = conn.execute(
                f"SELECT COUNT(*) FROM thoughts {where}", params
            ).fetchone()[0]
            analyzed = conn.execute(
                f"SELECT COUNT(*) FROM thought_analyses {where}", params
            ).fetchone()[0]
            by_category = dict(conn.execute(f"""
                SELECT category, COUNT(*) FROM thought_analyses {where} GROUP BY category
            """, params).fetchall())
            fallbacks = conn.execute(
                f"SELECT COUNT(*) FROM thought_analyses "
                f"{where + ' AND' if where else 'WHERE'} source = 'fallback'",
                params,
            ).fetchone()[0]
            connections = conn.execute(
                f"SELECT COUNT(*) FROM thought_connections {where}", params
            ).fetchone()[0]
            reports = conn.execute(
                f"SELECT COUNT(*) FROM insight_reports {where}", params
            ).fetchone()[0]

            return {
                "total_thoughts": total,
                "analyzed": analyzed,
                "by_category": by_category,
                "fallback_analyses": fallbacks,
                "connections": connections,
                "insight_reports": reports,
            }
