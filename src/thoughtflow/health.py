"""
Health check module for Thoughtflow.

Reports system status across all components.
"""

from typing import Any

from thoughtflow.config import get_config_path, get_db_path, load_config
from thoughtflow.db import Database
from thoughtflow.errors import PersistenceError
from thoughtflow.llm import has_api_key


def check_config() -> tuple[str, str]:
    """Check for a config file. Defaults are fine without one."""
    config_path = get_config_path()
    if not config_path.exists():
        return "-", "Using defaults"

    try:
        load_config()
        return "✓", f"OK ({config_path})"
    except Exception as e:
        return "✗", f"Error: {e}"


def check_database(db: Database | None = None) -> tuple[str, str]:
    """Check database status."""
    if db is None:
        if not get_db_path().exists():
            return "✗", "Not found"
        db = Database()

    try:
        stats = db.get_stats()
        return "✓", f"OK ({stats['total_thoughts']} thoughts, {stats['analyzed']} analyzed)"
    except PersistenceError as e:
        return "✗", f"Error: {e}"


def check_classifier(config: dict[str, Any] | None = None) -> tuple[str, str]:
    """Check classifier (API) status."""
    config = config or load_config()
    provider = config.get("llm", {}).get("provider", "openai")
    name = "Anthropic" if provider == "anthropic" else "OpenAI"

    if not has_api_key(config):
        return "!", "No API key (keyword fallback only)"
    return "✓", f"OK ({name})"


def check_fallback_rate(db: Database | None = None) -> tuple[str, str]:
    """Share of stored analyses that came from the keyword fallback."""
    try:
        db = db or Database()
        stats = db.get_stats()
    except PersistenceError:
        return "-", "N/A"

    analyzed = stats["analyzed"]
    if analyzed == 0:
        return "-", "No analyses yet"

    rate = stats["fallback_analyses"] / analyzed
    message = f"{rate:.0%} of {analyzed} analyses"
    if rate > 0.5:
        return "!", message
    return "✓", message


def run_health_check(
    db: Database | None = None, config: dict[str, Any] | None = None
) -> dict[str, tuple[str, str]]:
    """Run all health checks."""
    return {
        "Config": check_config(),
        "Database": check_database(db),
        "Classifier": check_classifier(config),
        "Fallback Rate": check_fallback_rate(db),
    }


def format_health_report(checks: dict[str, tuple[str, str]]) -> str:
    """Format health check results."""
    lines = ["Thoughtflow Health Check", "-" * 40]

    for name, (status, message) in checks.items():
        lines.append(f"{status} {name}: {message}")

    return "\n".join(lines)
