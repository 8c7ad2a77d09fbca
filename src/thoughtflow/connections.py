"""
Connection discovery for Thoughtflow.

Finds relationships across a window of a user's recent thoughts using
cheap local heuristics plus one structured classifier request, then keeps
the strongest distinct pairs.
"""

import logging
from datetime import timedelta, tzinfo
from itertools import combinations
from typing import Any

from thoughtflow.errors import ClassifierError, PersistenceError
from thoughtflow.llm import ClassifierClient
from thoughtflow.models import (
    CONNECTION_ACTION_TYPES,
    ConnectionAction,
    Thought,
    ThoughtConnection,
)
from thoughtflow.store import ConnectionStore, ThoughtSource
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

TEMPORAL_STRENGTH = 70
PROJECT_STRENGTH = 65
MIN_TEMPORAL_GAP = timedelta(hours=24)

# Relationship vocabulary the classifier is asked for, mapped onto stored types
AI_CONNECTION_TYPES = {
    "thematic": "thematic",
    "causal": "causal",
    "complementary": "contextual",
    "progression": "causal",
    "semantic": "semantic",
    "temporal": "temporal",
    "project_related": "project_related",
    "project": "project_related",
    "contextual": "contextual",
}

CONNECTION_PROMPT = """You are an expert at finding hidden connections and relationships between thoughts. Analyze the numbered thoughts and discover meaningful relationships.

Respond with JSON only:
{
  "connections": [
    {
      "thoughtAIndex": 0,
      "thoughtBIndex": 3,
      "connectionType": "thematic | causal | complementary | progression",
      "strength": 0-100,
      "reasoning": "Why these thoughts are related",
      "actionableInsights": ["Short, concrete insight"],
      "suggestedActions": [
        {
          "type": "merge_thoughts | create_project | schedule_follow_up | tag_relationship",
          "description": "What the user could do",
          "confidence": 0-100
        }
      ]
    }
  ]
}

Connection types:
- thematic: similar topics or themes
- causal: one thought leads to another
- complementary: ideas that work well together
- progression: the evolution of an idea over time

Only return connections with strength above 60. Focus on actionable insights."""


def thought_label(thought: Thought) -> str:
    return thought.category or "uncategorized"


def build_connection_request(thoughts: list[Thought]) -> str:
    lines = ["Find meaningful connections between these thoughts:", ""]
    for index, thought in enumerate(thoughts):
        lines.append(
            f'{index}. "{thought.content}" ({thought_label(thought)}) '
            f"[{thought.created_at.date().isoformat()}]"
        )
    return "\n".join(lines)


def coerce_actions(value: Any) -> list[ConnectionAction]:
    actions = []
    for item in coerce_dict_list(value):
        action_type = coerce_choice(item.get("type"), CONNECTION_ACTION_TYPES, "")
        description = coerce_str(item.get("description"))
        if not action_type or not description:
            continue
        actions.append(ConnectionAction(
            type=action_type,
            description=description,
            confidence=coerce_score(item.get("confidence"), 50),
        ))
    return actions


def coerce_index(value: Any, size: int) -> int | None:
    number = coerce_number(value)
    if number is None or number != int(number):
        return None
    index = int(number)
    return index if 0 <= index < size else None


def parse_ai_connections(raw: dict[str, Any], thoughts: list[Thought]) -> list[ThoughtConnection]:
    """Turn the classifier's index-based answer into connections between thought IDs."""
    connections = []
    for item in coerce_dict_list(raw.get("connections")):
        a = coerce_index(pick(item, "thoughtAIndex", "thought_a_index"), len(thoughts))
        b = coerce_index(pick(item, "thoughtBIndex", "thought_b_index"), len(thoughts))
        if a is None or b is None or a == b:
            continue

        raw_type = coerce_choice(
            pick(item, "connectionType", "connection_type"), AI_CONNECTION_TYPES, "thematic"
        )
        connections.append(ThoughtConnection(
            source_id=thoughts[a].id,
            target_id=thoughts[b].id,
            connection_type=AI_CONNECTION_TYPES[raw_type],
            strength=coerce_score(item.get("strength"), 0),
            reasoning=coerce_str(item.get("reasoning"), ""),
            actionable_insights=coerce_str_list(
                pick(item, "actionableInsights", "actionable_insights")
            ),
            suggested_actions=coerce_actions(pick(item, "suggestedActions", "suggested_actions")),
        ))
    return connections


def rank_connections(
    connections: list[ThoughtConnection],
    min_strength: int = 60,
    limit: int = 10,
) -> list[ThoughtConnection]:
    """
    Strongest distinct pairs first.

    A->B and B->A count as one pair; the stronger survives, and on a tie the
    one found first does.
    """
    strong = [c for c in connections if c.strength >= min_strength]
    strong.sort(key=lambda c: c.strength, reverse=True)

    seen: set[tuple[str, str]] = set()
    ranked = []
    for connection in strong:
        if connection.pair in seen:
            continue
        seen.add(connection.pair)
        ranked.append(connection)
    return ranked[:limit]


class ConnectionEngine:
    """Discovers and persists relationships between recent thoughts."""

    def __init__(
        self,
        source: ThoughtSource,
        store: ConnectionStore,
        client: ClassifierClient | None = None,
        min_strength: int = 60,
        max_connections: int = 10,
        project_pair_cap: int = 5,
        tz: tzinfo | None = None,
        temperature: float = 0.3,
        max_tokens: int = 2000,
    ):
        self.source = source
        self.store = store
        self.client = client
        self.min_strength = min_strength
        self.max_connections = max_connections
        self.project_pair_cap = project_pair_cap
        # None means the machine's local zone
        self.tz = tz
        self.temperature = temperature
        self.max_tokens = max_tokens

    def discover(self, user_id: str, window: int = 30) -> list[ThoughtConnection]:
        """Find, rank and persist connections across the user's latest thoughts."""
        thoughts = self.source.get_recent_thoughts(user_id, limit=window)
        if len(thoughts) < 2:
            logger.info("Not enough thoughts for connection analysis (%d)", len(thoughts))
            return []

        candidates: list[ThoughtConnection] = []
        candidates.extend(self.semantic_connections(thoughts))
        candidates.extend(self.temporal_connections(thoughts))
        candidates.extend(self.project_connections(thoughts))
        candidates.extend(self.ai_connections(thoughts))

        ranked = rank_connections(candidates, self.min_strength, self.max_connections)

        try:
            self.store.replace_connections(user_id, ranked)
        except PersistenceError as e:
            logger.warning("Could not store connections for %s: %s", user_id, e)

        logger.info("Discovered %d connections for %s", len(ranked), user_id)
        return ranked

    def semantic_connections(self, thoughts: list[Thought]) -> list[ThoughtConnection]:
        """Embedding similarity. Not implemented; no vector index is shipped."""
        return []

    def temporal_connections(self, thoughts: list[Thought]) -> list[ThoughtConnection]:
        """Thoughts captured at about the same hour on different days."""
        connections = []
        for a, b in combinations(thoughts, 2):
            local_a = a.created_at.astimezone(self.tz)
            local_b = b.created_at.astimezone(self.tz)
            if abs(local_a.hour - local_b.hour) > 1:
                continue
            if abs(local_a - local_b) <= MIN_TEMPORAL_GAP:
                continue

            connections.append(ThoughtConnection(
                source_id=a.id,
                target_id=b.id,
                connection_type="temporal",
                strength=TEMPORAL_STRENGTH,
                reasoning=(
                    f"Both thoughts were captured at similar times "
                    f"({local_a.hour}:00 and {local_b.hour}:00)"
                ),
                actionable_insights=["Consider if this timing represents a regular thinking pattern"],
                suggested_actions=[ConnectionAction(
                    type="schedule_follow_up",
                    description="Set a recurring reminder for this time period",
                    confidence=65,
                )],
            ))
        return connections

    def project_connections(self, thoughts: list[Thought]) -> list[ThoughtConnection]:
        """Pairs sharing a category, capped overall."""
        groups: dict[str, list[Thought]] = {}
        for thought in thoughts:
            groups.setdefault(thought.category or "general", []).append(thought)

        connections = []
        for category, members in groups.items():
            for a, b in combinations(members, 2):
                if len(connections) >= self.project_pair_cap:
                    return connections
                connections.append(ThoughtConnection(
                    source_id=a.id,
                    target_id=b.id,
                    connection_type="project_related",
                    strength=PROJECT_STRENGTH,
                    reasoning=f"Both thoughts belong to the same category: {category}",
                    actionable_insights=["Consider grouping these thoughts into a project"],
                    suggested_actions=[ConnectionAction(
                        type="create_project",
                        description=f"Create a project for {category} thoughts",
                        confidence=70,
                    )],
                ))
        return connections

    def ai_connections(self, thoughts: list[Thought]) -> list[ThoughtConnection]:
        """One classifier request over the whole window. Failure yields nothing."""
        if self.client is None:
            return []

        try:
            raw = self.client.complete_json(
                CONNECTION_PROMPT,
                build_connection_request(thoughts),
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except ClassifierError as e:
            logger.warning("AI connection analysis failed (%s): %s", e.kind, e)
            return []
        except Exception:
            logger.exception("AI connection analysis crashed")
            return []

        return parse_ai_connections(raw, thoughts)
