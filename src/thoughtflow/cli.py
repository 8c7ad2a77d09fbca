"""
CLI for Thoughtflow.

Minimal CLI using stdlib for fast startup.
Subcommands are imported lazily to avoid startup overhead.

Usage:
    thoughtflow "your thought here"      # Classify and store (primary interface)
    thoughtflow insights weekly          # Periodic report
    thoughtflow --help                   # Show help
"""

import sys

DEFAULT_USER = "local"


def print_help() -> None:
    """Print help message."""
    print("""thoughtflow - cognitive pipeline for captured thoughts

Usage:
    thoughtflow "your thought here"     Classify and store a thought

Commands:
    thoughtflow add <text>              Classify and store a thought
    thoughtflow classify <text>         Classify without storing (--json for raw)
    thoughtflow done <id>               Mark a thought as completed
    thoughtflow connections             Discover connections between recent thoughts
    thoughtflow insights [period]       Insight report: daily, weekly (default), monthly
    thoughtflow suggest                 Predict what you might capture next
    thoughtflow pattern                 Show learned vocabulary and preferences
    thoughtflow stats                   Show database statistics
    thoughtflow health                  Check configuration and components

Options:
    --user, -u <id>                     Act as this user (default from config)
    --verbose                           Log pipeline activity to stderr
    --help, -h                          Show this help
    --version, -v                       Show version

Examples:
    thoughtflow "Call Sarah tomorrow at 3pm to discuss Q4 budget"
    thoughtflow classify --json "What if notes linked themselves?"
    thoughtflow insights monthly --user alice

Without an API key every thought is classified by the keyword fallback.""")


def print_version() -> None:
    """Print version."""
    from thoughtflow import __version__
    print(f"thoughtflow {__version__}")


def split_options(args: list[str]) -> tuple[str | None, bool, bool, list[str]]:
    """Pull --user, --verbose and --json out of args. Returns (user, verbose, json, rest)."""
    user = None
    verbose = False
    as_json = False
    rest = []

    i = 0
    while i < len(args):
        arg = args[i]
        if arg in ("--user", "-u") and i + 1 < len(args):
            user = args[i + 1]
            i += 2
        elif arg == "--verbose":
            verbose = True
            i += 1
        elif arg == "--json":
            as_json = True
            i += 1
        else:
            rest.append(arg)
            i += 1

    return user, verbose, as_json, rest


def resolve_user(user: str | None) -> str:
    if user:
        return user
    from thoughtflow.config import load_config
    return load_config().get("thoughtflow", {}).get("default_user", DEFAULT_USER)


def format_analysis(analysis) -> str:
    lines = [
        f"{analysis.category} / {analysis.priority}  {analysis.title}",
        f"  folder: {analysis.folder}" + (f"/{analysis.subfolder}" if analysis.subfolder else ""),
        f"  confidence: {analysis.confidence:.2f} ({analysis.source}, {analysis.processing_time_ms}ms)",
    ]
    if analysis.tags:
        lines.append("  tags: " + " ".join(f"#{t}" for t in analysis.tags))
    for item in analysis.action_items:
        lines.append(f"  - [ ] {item}")
    for reminder in analysis.reminders:
        lines.append(f"  reminder ({reminder.recurrence}): {reminder.text}")
    if analysis.entities.people:
        lines.append(f"  people: {', '.join(analysis.entities.people)}")
    return "\n".join(lines)


def cmd_add(user_id: str, args: list[str]) -> int:
    """Classify a thought and store it with its analysis."""
    from thoughtflow.config import ensure_dirs
    from thoughtflow.errors import ThoughtflowError
    from thoughtflow.orchestrator import create_orchestrator

    text = " ".join(args)
    if not text.strip():
        print("Error: Empty thought", file=sys.stderr)
        return 1

    ensure_dirs()
    try:
        orchestrator = create_orchestrator()
    except ThoughtflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        thought, analysis = orchestrator.capture(user_id, text)
    except ThoughtflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        orchestrator.close()

    print(thought.id)
    print(format_analysis(analysis))
    return 0


def cmd_classify(user_id: str, args: list[str], as_json: bool) -> int:
    """Classify without storing the thought."""
    from thoughtflow.errors import ThoughtflowError
    from thoughtflow.orchestrator import create_orchestrator

    text = " ".join(args)
    if not text.strip():
        print("Usage: thoughtflow classify <text>", file=sys.stderr)
        return 1

    try:
        orchestrator = create_orchestrator()
    except ThoughtflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        analysis = orchestrator.classify(text, orchestrator.build_user_context(user_id))
    except ThoughtflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        orchestrator.close()

    if as_json:
        print(analysis.model_dump_json(indent=2))
    else:
        print(format_analysis(analysis))
    return 0


def cmd_done(args: list[str]) -> int:
    """Mark a thought as completed."""
    from thoughtflow.db import Database
    from thoughtflow.errors import ThoughtflowError

    if not args:
        print("Usage: thoughtflow done <id>", file=sys.stderr)
        return 1

    thought_id = args[0]

    try:
        db = Database()
        if db.complete_thought(thought_id):
            print(f"Completed: {thought_id}")
            return 0
        print(f"Not found or already completed: {thought_id}", file=sys.stderr)
        return 1
    except ThoughtflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_connections(user_id: str) -> int:
    """Discover and list connections."""
    from thoughtflow.errors import ThoughtflowError
    from thoughtflow.orchestrator import create_orchestrator

    try:
        orchestrator = create_orchestrator()
        try:
            connections = orchestrator.discover_connections(user_id)
        finally:
            orchestrator.close()
    except ThoughtflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not connections:
        print("No connections found. Capture a few more thoughts first.")
        return 0

    print(f"Connections ({len(connections)})")
    print("-" * 40)
    for conn in connections:
        print(f"{conn.strength:>3}  {conn.connection_type:16} {conn.source_id} <-> {conn.target_id}")
        if conn.reasoning:
            print(f"     {conn.reasoning}")
    return 0


def cmd_insights(user_id: str, args: list[str], as_json: bool) -> int:
    """Generate an insight report."""
    from thoughtflow.errors import ThoughtflowError
    from thoughtflow.insights import format_report, report_to_json
    from thoughtflow.orchestrator import create_orchestrator

    period = args[0] if args else "weekly"

    try:
        orchestrator = create_orchestrator()
        try:
            report = orchestrator.generate_insight_report(user_id, period)
        finally:
            orchestrator.close()
    except ThoughtflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(report_to_json(report) if as_json else format_report(report))
    return 0


def cmd_suggest(user_id: str) -> int:
    """Show predictive suggestions."""
    from thoughtflow.errors import ThoughtflowError
    from thoughtflow.orchestrator import create_orchestrator

    try:
        orchestrator = create_orchestrator()
        try:
            suggestions = orchestrator.generate_suggestions(user_id)
        finally:
            orchestrator.close()
    except ThoughtflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not suggestions:
        print("No suggestions right now.")
        return 0

    for s in suggestions:
        print(f"[{s.type}] {s.content} ({s.confidence}%, {s.priority})")
        if s.reasoning:
            print(f"    {s.reasoning}")
    return 0


def cmd_pattern(user_id: str) -> int:
    """Show what has been learned about a user."""
    from thoughtflow.db import Database
    from thoughtflow.errors import ThoughtflowError

    try:
        pattern = Database().get_user_pattern(user_id)
    except ThoughtflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if pattern is None:
        print(f"Nothing learned yet for {user_id}.")
        return 0

    print(f"Pattern for {user_id}")
    print("-" * 30)
    print(f"Thoughts learned from: {pattern.total_thoughts}")
    print(f"Average confidence: {pattern.accuracy_rate:.2f}")
    print("\nTop vocabulary:")
    for word, count in pattern.top_vocabulary():
        print(f"  {word}: {count}")
    if pattern.category_preferences:
        print("\nTag preferences:")
        for tag, category in sorted(pattern.category_preferences.items()):
            print(f"  #{tag} -> {category}")
    return 0


def cmd_stats(user_id: str) -> int:
    """Show database statistics."""
    from thoughtflow.db import Database
    from thoughtflow.errors import ThoughtflowError

    try:
        db = Database()
        stats = db.get_stats(user_id)

        print(f"Thoughtflow Statistics ({user_id})")
        print("-" * 30)
        print(f"Total thoughts: {stats['total_thoughts']}")
        print(f"Analyzed: {stats['analyzed']} ({stats['fallback_analyses']} by fallback)")
        print("\nBy category:")
        for category, count in stats.get("by_category", {}).items():
            print(f"  {category}: {count}")
        print(f"\nConnections: {stats['connections']}")
        print(f"Insight reports: {stats['insight_reports']}")

        return 0
    except ThoughtflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_health() -> int:
    """Run health checks."""
    from thoughtflow.health import format_health_report, run_health_check

    checks = run_health_check()
    print(format_health_report(checks))
    return 1 if any(status == "✗" for status, _ in checks.values()) else 0


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point.

    Optimized for minimal startup time.
    """
    args = sys.argv[1:] if argv is None else argv
    user, verbose, as_json, args = split_options(args)

    if verbose:
        from thoughtflow.config import configure_logging
        configure_logging("DEBUG")

    # No args - check for piped input
    if not args:
        if not sys.stdin.isatty():
            text = sys.stdin.read().strip()
            if text:
                return cmd_add(resolve_user(user), [text])
        print_help()
        return 0

    first_arg = args[0]

    if first_arg in ("--help", "-h", "help"):
        print_help()
        return 0

    if first_arg in ("--version", "-v", "version"):
        print_version()
        return 0

    # Subcommands (lazy import to keep startup fast)
    if first_arg == "add":
        return cmd_add(resolve_user(user), args[1:])

    if first_arg == "classify":
        return cmd_classify(resolve_user(user), args[1:], as_json)

    if first_arg == "done":
        return cmd_done(args[1:])

    if first_arg == "connections":
        return cmd_connections(resolve_user(user))

    if first_arg == "insights":
        return cmd_insights(resolve_user(user), args[1:], as_json)

    if first_arg == "suggest":
        return cmd_suggest(resolve_user(user))

    if first_arg == "pattern":
        return cmd_pattern(resolve_user(user))

    if first_arg == "stats":
        return cmd_stats(resolve_user(user))

    if first_arg == "health":
        return cmd_health()

    # Everything else is a thought
    # Join all args (allows: thoughtflow Remember to email Sarah)
    return cmd_add(resolve_user(user), args)


if __name__ == "__main__":
    sys.exit(main())
