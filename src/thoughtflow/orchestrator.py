"""
Orchestrator for Thoughtflow.

Public entry point of the pipeline. Classifies thoughts through the LLM with
a keyword fallback, feeds the learner, and fronts connection discovery,
insight reports and suggestions.
"""

import logging
import threading
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime, tzinfo
from typing import Any, Iterable

from thoughtflow.config import load_config
from thoughtflow.connections import ConnectionEngine
from thoughtflow.db import Database
from thoughtflow.errors import ClassifierError, PersistenceError, ValidationError
from thoughtflow.fallback import FallbackClassifier
from thoughtflow.insights import InsightGenerator
from thoughtflow.learning import PatternLearner
from thoughtflow.llm import ClassifierClient, create_client
from thoughtflow.models import (
    InsightReport,
    PredictiveSuggestion,
    RecentThought,
    Thought,
    ThoughtAnalysis,
    ThoughtConnection,
    UserContext,
    utcnow,
)
from thoughtflow.suggestions import SuggestionEngine, time_of_day_label
from thoughtflow.validator import ResultValidator

logger = logging.getLogger(__name__)

MAX_PROMPT_VOCABULARY = 10
MAX_PROMPT_RECENT = 3
RECENT_EXCERPT_CHARS = 60
CONTEXT_VOCABULARY = 50


CLASSIFIER_PROMPT = """You are the classifier for Thoughtflow, a personal thought capture system.
Organize each thought so well that the user never needs to move, edit or recategorize it.

## Categories (choose exactly ONE)
- task: actionable items, todos, deadlines, things to do
- idea: creative thoughts, concepts, inspiration, innovations
- note: information, observations, documentation, references
- reminder: time-based items, appointments, follow-ups
- meeting: meeting notes, discussions, decisions, team sync
- learning: education, tutorials, study notes, research
- personal: private thoughts, family matters, non-work items

## Priority
- urgent: critical, ASAP, today, immediately, deadline today
- high: important, this week, significant impact
- medium: normal priority, no rush
- low: nice to have, someday, when free

## Organization
- Known projects: {projects}
- Use a Folder > Project > Subfolder hierarchy, e.g. "Work/Project Alpha/Frontend"
- Extract 3-5 specific, searchable tags
- User's frequent tags: {frequent_tags}

## Extraction
- Entities: people, places, dates, amounts, topics, tools
- Action items: specific statements starting with a verb, keeping deadlines
- Reminders: what to remember, date if stated, recurrence once|daily|weekly|monthly

## Recent thoughts
{recent_thoughts}

## Personalization
Time of day: {time_of_day}
Location: {location}
Browser: {browser_context}
Vocabulary: {vocabulary}

## Output
Return ONLY valid JSON matching this schema:
```json
{{
  "category": "task|idea|note|reminder|meeting|learning|personal",
  "folder": "folder name",
  "project": "project name or null",
  "subfolder": "subfolder or null",
  "title": "3-6 word title",
  "cleanedText": "cleaned and formatted text",
  "summary": "one sentence summary",
  "tags": ["tag1", "tag2", "tag3"],
  "priority": "urgent|high|medium|low",
  "actionItems": ["specific action"],
  "dueDate": "YYYY-MM-DD or null",
  "reminders": [{{"text": "what to remember", "date": "YYYY-MM-DD or null", "type": "once|daily|weekly|monthly"}}],
  "entities": {{
    "people": [], "places": [], "dates": [], "amounts": [], "topics": [], "tools": []
  }},
  "linkedThoughts": ["related topic"],
  "suggestedActions": ["next step"],
  "confidence": 0.0-1.0,
  "reasoning": "brief explanation of the categorization"
}}
```

## Example
Input: "Call Sarah tomorrow at 3pm to discuss Q4 budget"
Output: category "task", priority "high", people ["Sarah"], dates ["tomorrow", "3pm"],
actionItems ["Call Sarah at 3pm tomorrow"], tags ["sarah", "q4-budget", "call"]."""


def format_recent_thoughts(recent: list[RecentThought]) -> str:
    if not recent:
        return "No recent thoughts (new user)"
    lines = []
    for i, thought in enumerate(recent[:MAX_PROMPT_RECENT], 1):
        tags = " ".join(f"#{tag}" for tag in thought.tags)
        line = f'{i}. [{thought.category}] "{thought.content[:RECENT_EXCERPT_CHARS]}..."'
        lines.append(f"{line} {tags}" if tags else line)
    return "\n".join(lines)


def format_vocabulary(vocabulary: dict[str, int]) -> str:
    if not vocabulary:
        return "Learning user vocabulary..."
    ranked = sorted(vocabulary.items(), key=lambda kv: (-kv[1], kv[0]))
    return ", ".join(f"{word}({count})" for word, count in ranked[:MAX_PROMPT_VOCABULARY])


def build_prompt(context: UserContext) -> str:
    """Developer prompt for one classification. Same context, same prompt."""
    return CLASSIFIER_PROMPT.format(
        projects=", ".join(context.projects) or "None yet",
        frequent_tags=", ".join(context.frequent_tags) or "Learn from usage",
        recent_thoughts=format_recent_thoughts(context.recent_thoughts),
        time_of_day=context.time_of_day or "Unknown",
        location=context.location or "Unknown",
        browser_context=context.browser_context or "Unknown",
        vocabulary=format_vocabulary(context.vocabulary_preferences),
    )


def build_user_prompt(content: str) -> str:
    return f'Analyze this thought:\n\n"{content}"'


class Orchestrator:
    """Coordinates classification, learning and the derived analyses."""

    def __init__(
        self,
        db: Database,
        client: ClassifierClient | None = None,
        config: dict[str, Any] | None = None,
        fallback: FallbackClassifier | None = None,
        validator: ResultValidator | None = None,
        learner: PatternLearner | None = None,
        tz: tzinfo | None = None,
    ):
        self.config = config or load_config()
        self.db = db
        self.client = client
        self.fallback = fallback or FallbackClassifier()
        self.validator = validator or ResultValidator()
        self.tz = tz

        llm_config = self.config.get("llm", {})
        classifier_config = self.config.get("classifier", {})
        learning_config = self.config.get("learning", {})
        connection_config = self.config.get("connections", {})
        batch_config = self.config.get("batch", {})

        self.temperature = float(llm_config.get("temperature", 0.3))
        self.max_tokens = int(llm_config.get("max_tokens", 1500))
        self.confidence_threshold = float(classifier_config.get("confidence_threshold", 0.5))
        self.fallback_sla = float(classifier_config.get("fallback_sla_seconds", 12.0))
        self.window = int(connection_config.get("window", 30))
        self.batch_size = max(1, int(batch_config.get("size", 5)))
        self.batch_delay = float(batch_config.get("delay_seconds", 1.0))

        self.learner = learner or PatternLearner(
            db,
            max_attempts=int(learning_config.get("max_attempts", 3)),
            retry_delay=float(learning_config.get("retry_delay_seconds", 0.5)),
        )
        self.connections = ConnectionEngine(
            db,
            db,
            client,
            min_strength=int(connection_config.get("min_strength", 60)),
            max_connections=int(connection_config.get("max_connections", 10)),
            project_pair_cap=int(connection_config.get("project_pair_cap", 5)),
            tz=tz,
            temperature=self.temperature,
        )
        self.insights = InsightGenerator(
            db, db, client, connections=db, patterns=db, tz=tz, temperature=self.temperature
        )
        self.suggestions = SuggestionEngine(
            db, db, client, patterns=db, tz=tz, temperature=self.temperature
        )

        # Classifier calls run here so the SLA can be enforced from the caller
        self._executor = ThreadPoolExecutor(
            max_workers=self.batch_size, thread_name_prefix="thoughtflow-classifier"
        )
        self._metrics_lock = threading.Lock()
        self._total_processed = 0
        self._total_processing_ms = 0
        self._fallback_count = 0

    # ==========================================
    # Classification
    # ==========================================

    def classify(self, content: str, user_context: UserContext) -> ThoughtAnalysis:
        """
        Classify one thought.

        Always returns a complete analysis: when the classifier fails, runs
        past the SLA, or answers below the confidence threshold, the keyword
        fallback answers instead. Empty content raises ValidationError.
        """
        if not content or not content.strip():
            raise ValidationError("Thought content must not be empty")

        start_time = time.monotonic()

        analysis = self._classify_with_client(content, user_context)
        if analysis is None:
            analysis = self.fallback.classify(content)

        processing_time = int((time.monotonic() - start_time) * 1000)
        analysis = analysis.model_copy(update={"processing_time_ms": processing_time})
        self._record(analysis, processing_time)

        self.learner.submit(user_context.user_id, content, analysis)

        logger.info(
            "Thought classified as %s in %dms (confidence: %.2f, source: %s)",
            analysis.category, processing_time, analysis.confidence, analysis.source,
        )
        return analysis

    def _classify_with_client(
        self, content: str, user_context: UserContext
    ) -> ThoughtAnalysis | None:
        """Classifier answer, or None when the fallback should take over."""
        if self.client is None:
            return None

        future = self._executor.submit(
            self.client.complete_json,
            build_prompt(user_context),
            build_user_prompt(content),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        try:
            raw = future.result(timeout=self.fallback_sla)
            analysis = self.validator.validate(raw, content)
            if analysis.confidence < self.confidence_threshold:
                raise ClassifierError(
                    ClassifierError.LOW_CONFIDENCE,
                    f"{analysis.confidence:.2f} below {self.confidence_threshold:.2f}",
                )
        except FutureTimeout:
            logger.warning("Classifier exceeded %.1fs, using fallback", self.fallback_sla)
            return None
        except ClassifierError as e:
            if e.is_transport_failure:
                logger.warning("Classifier unavailable, using fallback: %s", e)
            else:
                logger.info("Classifier answer unusable, using fallback: %s", e)
            return None
        except Exception:
            # Never lose a thought to a misbehaving client
            logger.exception("Classifier crashed, using fallback")
            return None

        return analysis

    def _record(self, analysis: ThoughtAnalysis, processing_time: int) -> None:
        with self._metrics_lock:
            self._total_processed += 1
            self._total_processing_ms += processing_time
            if analysis.source == "fallback":
                self._fallback_count += 1

    def classify_batch(
        self, thoughts: Iterable[Thought], user_context: UserContext
    ) -> list[tuple[str, ThoughtAnalysis]]:
        """
        Classify thoughts in concurrent groups, pausing between groups.

        Each analysis is stored against its thought. Thoughts with empty
        content are skipped.
        """
        pending = [t for t in thoughts if t.content.strip()]
        results: list[tuple[str, ThoughtAnalysis]] = []

        with ThreadPoolExecutor(max_workers=self.batch_size) as pool:
            for offset in range(0, len(pending), self.batch_size):
                group = pending[offset:offset + self.batch_size]
                analyses = list(pool.map(lambda t: self.classify(t.content, user_context), group))

                for thought, analysis in zip(group, analyses):
                    try:
                        self.db.save_analysis(user_context.user_id, thought.id, analysis)
                    except PersistenceError as e:
                        logger.warning("Could not store analysis for %s: %s", thought.id, e)
                    results.append((thought.id, analysis))

                if offset + self.batch_size < len(pending):
                    time.sleep(self.batch_delay)

        return results

    def capture(self, user_id: str, content: str) -> tuple[Thought, ThoughtAnalysis]:
        """Classify a new thought and store it with its analysis."""
        analysis = self.classify(content, self.build_user_context(user_id))
        thought = self.db.add_thought(user_id, content.strip(), category=analysis.category)
        try:
            self.db.save_analysis(user_id, thought.id, analysis)
        except PersistenceError as e:
            logger.warning("Could not store analysis for %s: %s", thought.id, e)
        return thought, analysis

    def build_user_context(
        self,
        user_id: str,
        location: str | None = None,
        browser_context: str | None = None,
        now: datetime | None = None,
    ) -> UserContext:
        """Assemble personalization from stored thoughts and learned patterns."""
        now = now or utcnow()
        context = UserContext(
            user_id=user_id,
            time_of_day=time_of_day_label(now.astimezone(self.tz).hour),
            location=location,
            browser_context=browser_context,
        )

        try:
            recent = self.db.get_recent_thoughts(user_id, limit=10)
            analyses = [self.db.get_analysis(t.id) for t in recent]
            pattern = self.db.get_user_pattern(user_id)
        except PersistenceError as e:
            logger.warning("Could not load context for %s: %s", user_id, e)
            return context

        recent_thoughts = []
        tag_counts: Counter[str] = Counter()
        projects: list[str] = []
        for thought, analysis in zip(recent, analyses):
            tags = analysis.tags if analysis else []
            tag_counts.update(tags)
            if analysis and analysis.project and analysis.project not in projects:
                projects.append(analysis.project)
            recent_thoughts.append(RecentThought(
                content=thought.content,
                category=thought.category or (analysis.category if analysis else "note"),
                tags=tags,
            ))

        frequent_tags = [tag for tag, _ in sorted(tag_counts.items(), key=lambda kv: (-kv[1], kv[0]))]
        vocabulary: dict[str, int] = {}
        if pattern:
            for tag in sorted(pattern.category_preferences):
                if tag not in frequent_tags:
                    frequent_tags.append(tag)
            vocabulary = dict(pattern.top_vocabulary(CONTEXT_VOCABULARY))

        return context.model_copy(update={
            "recent_thoughts": recent_thoughts,
            "projects": projects,
            "frequent_tags": frequent_tags[:10],
            "vocabulary_preferences": vocabulary,
        })

    # ==========================================
    # Derived analyses
    # ==========================================

    def discover_connections(self, user_id: str, window: int | None = None) -> list[ThoughtConnection]:
        return self.connections.discover(user_id, window or self.window)

    def generate_insight_report(self, user_id: str, period: str) -> InsightReport:
        return self.insights.generate(user_id, period)

    def generate_suggestions(self, user_id: str) -> list[PredictiveSuggestion]:
        return self.suggestions.generate(user_id)

    # ==========================================
    # Lifecycle
    # ==========================================

    def metrics(self) -> dict[str, Any]:
        """Counters for this orchestrator instance."""
        with self._metrics_lock:
            total = self._total_processed
            elapsed = self._total_processing_ms
            fallbacks = self._fallback_count

        return {
            "total_processed": total,
            "fallback_count": fallbacks,
            "average_processing_time_ms": round(elapsed / total) if total else 0,
            "thoughts_per_minute": round(total / (elapsed / 1000) * 60) if elapsed else 0,
            "pending_learning_updates": self.learner.pending,
            "classifier_available": self.client is not None,
        }

    def close(self, timeout: float | None = 5.0) -> None:
        """Deliver queued learning updates and release worker threads."""
        self.learner.flush(timeout)
        self.learner.close(timeout)
        self._executor.shutdown(wait=False)


def create_orchestrator(
    config: dict[str, Any] | None = None, db: Database | None = None
) -> Orchestrator:
    """Build an Orchestrator from configuration, with the classifier if a key is set."""
    config = config or load_config()
    return Orchestrator(db or Database(), create_client(config), config)
