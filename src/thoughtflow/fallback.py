"""
Keyword fallback classifier for Thoughtflow.

Used when the LLM is unavailable or unsure. Pure: no I/O, no clock,
no randomness. The same text always yields the same analysis.
"""

import re

from thoughtflow.models import Entities, Reminder, ThoughtAnalysis

FALLBACK_CONFIDENCE = 0.7

# Checked in this order; first match wins.
CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("task", (
        "todo", "task", "need to", "have to", "must", "should",
        "remember to", "don't forget", "action item", "deadline",
        "due", "complete", "finish", "call", "email", "buy",
        "send", "create", "update", "fix", "resolve",
    )),
    ("idea", (
        "idea", "concept", "what if", "maybe", "could", "might",
        "inspiration", "brainstorm", "creative",
        "innovation", "solution", "approach", "strategy",
    )),
    ("reminder", (
        "remind", "remember", "tomorrow", "next week", "next month",
        "appointment", "due date", "follow up",
        "check back", "revisit", "later", "schedule",
    )),
    ("learning", (
        "learn", "study", "tutorial", "course", "research", "read",
        "book", "article", "documentation", "guide", "how to",
        "understand", "practice", "skill", "knowledge",
    )),
    ("meeting", (
        "meeting", "standup", "discussion", "presentation",
        "demo", "review", "sync", "catch up", "one on one",
        "team", "client", "interview",
    )),
)

FOLDERS = {
    "task": "Tasks",
    "idea": "Ideas",
    "reminder": "Reminders",
    "learning": "Learning",
    "meeting": "Meetings",
    "note": "General",
}

SUBFOLDER_RULES: dict[str, tuple[tuple[tuple[str, ...], str], ...]] = {
    "task": (
        (("work", "project"), "Work"),
        (("personal", "home"), "Personal"),
        (("health", "doctor"), "Health"),
        (("shopping", "buy"), "Shopping"),
    ),
    "idea": (
        (("app", "software", "code"), "Technology"),
        (("business", "startup"), "Business"),
        (("creative", "design"), "Creative"),
    ),
    "learning": (
        (("programming", "code", "development"), "Programming"),
        (("business", "management"), "Business"),
        (("design", "ui", "ux"), "Design"),
    ),
}

URGENT_KEYWORDS = ("urgent", "asap", "critical", "immediately")
HIGH_KEYWORDS = ("important", "high priority")
LOW_KEYWORDS = ("low priority", "when i have time", "someday", "nice to have")

TAG_VOCABULARY = (
    "work", "personal", "project", "meeting", "call", "email",
    "buy", "read", "write", "learn", "study", "health", "idea",
    "reminder", "task", "important", "urgent",
)
MAX_FALLBACK_TAGS = 3

ACTION_VERBS = ("call", "email", "buy", "send", "create", "update", "fix", "complete")
MAX_ACTION_ITEMS = 3

RELATIVE_TIME_WORDS = (
    "today", "tonight", "tomorrow", "next week", "next month", "later", "soon",
    "every day", "daily", "every week", "weekly", "every month", "monthly",
)
RECURRENCE_WORDS = (
    (("every day", "daily"), "daily"),
    (("every week", "weekly"), "weekly"),
    (("every month", "monthly"), "monthly"),
)
MAX_REMINDERS = 2

PLACE_WORDS = ("office", "home", "store", "restaurant", "hospital", "school", "library")
DATE_WORDS = (
    "today", "tomorrow", "yesterday", "monday", "tuesday", "wednesday",
    "thursday", "friday", "saturday", "sunday",
)
TOPIC_WORDS = ("project", "meeting", "presentation", "report", "email", "call", "task", "idea")
TOOL_WORDS = (
    "github", "gitlab", "figma", "notion", "slack", "jira", "trello",
    "excel", "docker", "python", "react", "zoom",
)

# Capitalized words that start sentences far more often than they name people
NOT_NAMES = frozenset(
    {"the", "this", "that", "these", "those", "what", "when", "where", "why", "how",
     "and", "but", "for", "with", "also", "need", "remember", "don't", "maybe",
     "just", "please", "check", "look", "think", "met", "meet", "ask", "tell"}
    | {kw for _, keywords in CATEGORY_KEYWORDS for kw in keywords if " " not in kw}
    | set(ACTION_VERBS)
    | set(DATE_WORDS)
    | set(PLACE_WORDS)
    | set(TAG_VOCABULARY)
    | set(TOOL_WORDS)
    | {"january", "february", "march", "april", "may", "june", "july",
       "august", "september", "october", "november", "december"}
)

NAME_RE = re.compile(r"^[A-Z][a-z]+$")
AMOUNT_RE = re.compile(r"\$\d[\d,]*(?:\.\d+)?[kKmM]?\b|\b\d+(?:\.\d+)?\s?(?:hours?|minutes?|mins?)\b")
SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
PUNCT_RE = re.compile(r"[^\w']")

_KEYWORD_PATTERNS: dict[str, re.Pattern[str]] = {}


def contains_keyword(text: str, keyword: str) -> bool:
    """Word-boundary match of a keyword or phrase in lowercase text."""
    pattern = _KEYWORD_PATTERNS.get(keyword)
    if pattern is None:
        pattern = re.compile(r"\b" + re.escape(keyword) + r"\b")
        _KEYWORD_PATTERNS[keyword] = pattern
    return pattern.search(text) is not None


def first_match(text: str, keywords: tuple[str, ...]) -> str | None:
    for keyword in keywords:
        if contains_keyword(text, keyword):
            return keyword
    return None


def detect_category(lower: str) -> tuple[str, str | None]:
    """Return (category, matched keyword) using the fixed priority order."""
    for category, keywords in CATEGORY_KEYWORDS:
        matched = first_match(lower, keywords)
        if matched:
            return category, matched
    return "note", None


def detect_subfolder(category: str, lower: str) -> str | None:
    for keywords, subfolder in SUBFOLDER_RULES.get(category, ()):
        if first_match(lower, keywords):
            return subfolder
    return None


def detect_priority(lower: str) -> str:
    if first_match(lower, URGENT_KEYWORDS):
        return "urgent"
    if first_match(lower, HIGH_KEYWORDS):
        return "high"
    if first_match(lower, LOW_KEYWORDS):
        return "low"
    return "medium"


def split_sentences(content: str) -> list[str]:
    return [s.strip() for s in SENTENCE_SPLIT_RE.split(content) if s.strip()]


def extract_tags(content: str) -> list[str]:
    words = {PUNCT_RE.sub("", w.lower()) for w in content.split()}
    return [tag for tag in TAG_VOCABULARY if tag in words][:MAX_FALLBACK_TAGS]


def extract_action_items(content: str) -> list[str]:
    items = [
        sentence for sentence in split_sentences(content)
        if first_match(sentence.lower(), ACTION_VERBS)
    ]
    return items[:MAX_ACTION_ITEMS]


def extract_reminders(content: str) -> list[Reminder]:
    reminders = []
    for sentence in split_sentences(content):
        lower = sentence.lower()
        if not first_match(lower, RELATIVE_TIME_WORDS):
            continue
        recurrence = "once"
        for words, value in RECURRENCE_WORDS:
            if first_match(lower, words):
                recurrence = value
                break
        reminders.append(Reminder(text=sentence, recurrence=recurrence))
    return reminders[:MAX_REMINDERS]


def extract_people(content: str) -> list[str]:
    """Capitalized standalone words that are not known vocabulary."""
    people = []
    for raw in content.split():
        word = raw.strip(".,!?;:\"()[]")
        if word.endswith("'s"):
            word = word[:-2]
        if len(word) > 2 and NAME_RE.match(word) and word.lower() not in NOT_NAMES:
            people.append(word)
    return list(dict.fromkeys(people))[:3]


def extract_entities(content: str) -> Entities:
    lower = content.lower()
    return Entities(
        people=extract_people(content),
        places=[w for w in PLACE_WORDS if contains_keyword(lower, w)][:2],
        dates=[w for w in DATE_WORDS if contains_keyword(lower, w)][:2],
        amounts=AMOUNT_RE.findall(content)[:3],
        topics=[w for w in TOPIC_WORDS if contains_keyword(lower, w)][:3],
        tools=[w for w in TOOL_WORDS if contains_keyword(lower, w)][:3],
    )


def fallback_title(content: str) -> str:
    """First six words, capped at 50 characters."""
    words = " ".join(content.split()[:6])
    return words[:50] + "..." if len(words) > 50 else words


def classify(content: str) -> ThoughtAnalysis:
    """Classify text with fixed keyword rules. Confidence is always 0.7."""
    cleaned = " ".join(content.split())
    lower = cleaned.lower()

    category, matched = detect_category(lower)

    if matched:
        reasoning = f"Keyword fallback: '{matched}' matched category {category}"
    else:
        reasoning = "Keyword fallback: no category keywords matched, filed as note"

    return ThoughtAnalysis(
        category=category,
        folder=FOLDERS[category],
        subfolder=detect_subfolder(category, lower),
        title=fallback_title(cleaned),
        cleaned_text=cleaned,
        summary=cleaned[:100],
        tags=extract_tags(cleaned),
        priority=detect_priority(lower),
        action_items=extract_action_items(cleaned),
        reminders=extract_reminders(cleaned),
        entities=extract_entities(cleaned),
        confidence=FALLBACK_CONFIDENCE,
        reasoning=reasoning,
        processing_time_ms=0,
        source="fallback",
    )


class FallbackClassifier:
    """Object wrapper so the fallback can be injected like other collaborators."""

    confidence = FALLBACK_CONFIDENCE

    def classify(self, content: str) -> ThoughtAnalysis:
        return classify(content)
