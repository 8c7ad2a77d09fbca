"""
Result validation for Thoughtflow.

The classifier is an unreliable data source, not a typed API. Everything it
returns is coerced field by field into the canonical schema here, and
validate() never raises.
"""

import logging
import math
from typing import Any, Iterable

from pydantic import ValidationError as SchemaError

from thoughtflow.fallback import fallback_title
from thoughtflow.models import (
    CATEGORIES,
    MAX_TAGS,
    PRIORITIES,
    RECURRENCES,
    Entities,
    Reminder,
    ThoughtAnalysis,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.85
ENTITY_KINDS = ("people", "places", "dates", "amounts", "topics", "tools")


# ==========================================
# Generic coercion helpers
# ==========================================


def pick(raw: dict[str, Any], *keys: str) -> Any:
    """First present, non-None value among camelCase/snake_case aliases."""
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def coerce_str(value: Any, default: str | None = None) -> str | None:
    if isinstance(value, str):
        value = value.strip()
        return value or default
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


def coerce_str_list(value: Any, unique: bool = False) -> list[str]:
    """Keep string-like items of a list; a bare string becomes a one-item list."""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    items = [s for s in (coerce_str(v) for v in value) if s]
    if unique:
        items = list(dict.fromkeys(items))
    return items


def coerce_choice(value: Any, choices: Iterable[str], default: str) -> str:
    """Case-insensitive enum match. Plural forms ("Tasks") are accepted."""
    if not isinstance(value, str):
        return default
    candidate = value.strip().lower().replace("-", "_").replace(" ", "_")
    choices = tuple(choices)
    if candidate in choices:
        return candidate
    if candidate.endswith("s") and candidate[:-1] in choices:
        return candidate[:-1]
    return default


def coerce_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().rstrip("%"))
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def coerce_unit(value: Any, default: float) -> float:
    """Number clamped to [0, 1]."""
    number = coerce_number(value)
    if number is None:
        number = default
    return min(max(number, 0.0), 1.0)


def coerce_score(value: Any, default: int) -> int:
    """Integer score clamped to [0, 100]. Fractions in [0, 1] are scaled up."""
    number = coerce_number(value)
    if number is None:
        return default
    if 0 < number < 1:
        number *= 100
    return int(round(min(max(number, 0.0), 100.0)))


def coerce_dict_list(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


# ==========================================
# ThoughtAnalysis
# ==========================================


def coerce_reminders(value: Any) -> list[Reminder]:
    if not isinstance(value, list):
        return []

    reminders = []
    for item in value:
        if isinstance(item, str) and item.strip():
            reminders.append(Reminder(text=item.strip()))
        elif isinstance(item, dict):
            text = coerce_str(item.get("text"))
            if not text:
                continue
            reminders.append(Reminder(
                text=text,
                date=coerce_str(item.get("date")),
                recurrence=coerce_choice(
                    pick(item, "recurrence", "type"), RECURRENCES, "once"
                ),
            ))
    return reminders


def coerce_entities(value: Any) -> Entities:
    if not isinstance(value, dict):
        return Entities()
    return Entities(**{
        kind: coerce_str_list(value.get(kind), unique=True) for kind in ENTITY_KINDS
    })


def validate(raw: Any, original_content: str) -> ThoughtAnalysis:
    """
    Coerce raw classifier output into a ThoughtAnalysis.

    Unknown category -> note, unknown priority -> medium, tags cut to five,
    missing confidence -> 0.85, then clamped to [0, 1].
    """
    if not isinstance(raw, dict):
        logger.debug("Classifier returned %s instead of an object", type(raw).__name__)
        raw = {}

    content = original_content.strip()

    try:
        return ThoughtAnalysis(
            category=coerce_choice(raw.get("category"), CATEGORIES, "note"),
            folder=coerce_str(raw.get("folder"), "General"),
            project=coerce_str(raw.get("project")),
            subfolder=coerce_str(pick(raw, "subfolder", "subFolder", "sub_folder")),
            title=coerce_str(raw.get("title")) or fallback_title(content),
            cleaned_text=coerce_str(pick(raw, "cleanedText", "cleaned_text")) or content,
            summary=coerce_str(raw.get("summary")) or content[:100],
            tags=coerce_str_list(raw.get("tags"), unique=True)[:MAX_TAGS],
            priority=coerce_choice(raw.get("priority"), PRIORITIES, "medium"),
            action_items=coerce_str_list(pick(raw, "actionItems", "action_items")),
            due_date=coerce_str(pick(raw, "dueDate", "due_date")),
            reminders=coerce_reminders(raw.get("reminders")),
            entities=coerce_entities(raw.get("entities")),
            linked_thoughts=coerce_str_list(pick(raw, "linkedThoughts", "linked_thoughts")),
            suggested_actions=coerce_str_list(
                pick(raw, "suggestedActions", "suggested_actions")
            ),
            confidence=coerce_unit(raw.get("confidence"), DEFAULT_CONFIDENCE),
            reasoning=coerce_str(raw.get("reasoning"), "No reasoning provided"),
            source="classifier",
        )
    except SchemaError as e:
        # Every field above is pre-coerced; reaching here means a schema bug
        logger.error("Coerced classifier output still failed schema: %s", e)
        return ThoughtAnalysis(
            category="note",
            title=fallback_title(content) or "Untitled",
            cleaned_text=content,
            summary=content[:100],
            confidence=0.0,
            reasoning=f"Classifier output could not be coerced: {e.error_count()} errors",
            source="classifier",
        )


class ResultValidator:
    """Object wrapper so validation can be injected like other collaborators."""

    def validate(self, raw: Any, original_content: str) -> ThoughtAnalysis:
        return validate(raw, original_content)
