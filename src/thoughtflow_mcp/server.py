"""
MCP Server for Thoughtflow.

Exposes the thoughtflow pipeline as tools for MCP clients.
"""

import asyncio
import json
import logging
import threading

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from thoughtflow.config import configure_logging, ensure_dirs, load_config
from thoughtflow.errors import ThoughtflowError
from thoughtflow.insights import format_report
from thoughtflow.models import PERIODS
from thoughtflow.orchestrator import Orchestrator, create_orchestrator

logger = logging.getLogger(__name__)

# Create MCP server
server = Server("thoughtflow")

_orchestrator: Orchestrator | None = None
_orchestrator_lock = threading.Lock()

USER_PROPERTY = {
    "type": "string",
    "description": "User ID (default: configured default user)",
}


def get_orchestrator() -> Orchestrator:
    """Shared orchestrator, created on first use."""
    global _orchestrator
    with _orchestrator_lock:
        if _orchestrator is None:
            ensure_dirs()
            _orchestrator = create_orchestrator()
        return _orchestrator


def resolve_user(args: dict) -> str:
    user = (args.get("user_id") or "").strip()
    if user:
        return user
    return load_config().get("thoughtflow", {}).get("default_user", "local")


def text(message: str) -> list[TextContent]:
    return [TextContent(type="text", text=message)]


def classify_for_user(orchestrator: Orchestrator, thought: str, user_id: str):
    return orchestrator.classify(thought, orchestrator.build_user_context(user_id))


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="thoughtflow_classify",
            description="Classify a thought without storing it. Returns category, priority, tags, entities, action items and reminders as JSON.",
            inputSchema={
                "type": "object",
                "properties": {
                    "thought": {
                        "type": "string",
                        "description": "The thought to classify",
                    },
                    "user_id": USER_PROPERTY,
                },
                "required": ["thought"],
            },
        ),
        Tool(
            name="thoughtflow_add",
            description="Capture a thought: classify it, store it and learn from it. Use this to save ideas, tasks, notes, or anything worth remembering.",
            inputSchema={
                "type": "object",
                "properties": {
                    "thought": {
                        "type": "string",
                        "description": "The thought to capture",
                    },
                    "user_id": USER_PROPERTY,
                },
                "required": ["thought"],
            },
        ),
        Tool(
            name="thoughtflow_connections",
            description="Discover relationships between the user's recent thoughts.",
            inputSchema={
                "type": "object",
                "properties": {
                    "user_id": USER_PROPERTY,
                },
            },
        ),
        Tool(
            name="thoughtflow_insights",
            description="Generate an insight report on thinking patterns and productivity for a period.",
            inputSchema={
                "type": "object",
                "properties": {
                    "period": {
                        "type": "string",
                        "description": "Report period (default: weekly)",
                        "enum": list(PERIODS),
                        "default": "weekly",
                    },
                    "user_id": USER_PROPERTY,
                },
            },
        ),
        Tool(
            name="thoughtflow_suggestions",
            description="Predict thoughts the user is likely to want to capture next.",
            inputSchema={
                "type": "object",
                "properties": {
                    "user_id": USER_PROPERTY,
                },
            },
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    try:
        if name == "thoughtflow_classify":
            return await tool_classify(arguments)
        elif name == "thoughtflow_add":
            return await tool_add(arguments)
        elif name == "thoughtflow_connections":
            return await tool_connections(arguments)
        elif name == "thoughtflow_insights":
            return await tool_insights(arguments)
        elif name == "thoughtflow_suggestions":
            return await tool_suggestions(arguments)
        else:
            return text(f"Unknown tool: {name}")
    except ThoughtflowError as e:
        return text(f"Error: {e}")


async def tool_classify(args: dict) -> list[TextContent]:
    """Classify a thought."""
    thought = (args.get("thought") or "").strip()
    if not thought:
        return text("Error: Empty thought")

    orchestrator = await asyncio.to_thread(get_orchestrator)
    # Context reads and the LLM call both block; keep the event loop free
    analysis = await asyncio.to_thread(
        classify_for_user, orchestrator, thought, resolve_user(args)
    )
    return text(analysis.model_dump_json(indent=2))


async def tool_add(args: dict) -> list[TextContent]:
    """Capture a thought."""
    thought = (args.get("thought") or "").strip()
    if not thought:
        return text("Error: Empty thought")

    orchestrator = await asyncio.to_thread(get_orchestrator)
    stored, analysis = await asyncio.to_thread(orchestrator.capture, resolve_user(args), thought)
    return text(
        f"Captured: {stored.id}\n"
        f"{analysis.category} / {analysis.priority}: {analysis.title} "
        f"(confidence {analysis.confidence:.2f}, {analysis.source})"
    )


async def tool_connections(args: dict) -> list[TextContent]:
    """Discover connections."""
    orchestrator = await asyncio.to_thread(get_orchestrator)
    connections = await asyncio.to_thread(orchestrator.discover_connections, resolve_user(args))

    if not connections:
        return text("No connections found.")

    payload = [c.model_dump(mode="json") for c in connections]
    return text(json.dumps(payload, indent=2))


async def tool_insights(args: dict) -> list[TextContent]:
    """Generate an insight report."""
    period = args.get("period") or "weekly"

    orchestrator = await asyncio.to_thread(get_orchestrator)
    report = await asyncio.to_thread(
        orchestrator.generate_insight_report, resolve_user(args), period
    )
    return text(format_report(report))


async def tool_suggestions(args: dict) -> list[TextContent]:
    """Generate predictive suggestions."""
    orchestrator = await asyncio.to_thread(get_orchestrator)
    suggestions = await asyncio.to_thread(orchestrator.generate_suggestions, resolve_user(args))

    if not suggestions:
        return text("No suggestions right now.")

    lines = ["Suggested next thoughts:", ""]
    for s in suggestions:
        lines.append(f"- [{s.type}] {s.content} ({s.confidence}%)")
        if s.reasoning:
            lines.append(f"  {s.reasoning}")
    return text("\n".join(lines))


async def main():
    """Run the MCP server."""
    configure_logging()
    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        if _orchestrator is not None:
            _orchestrator.close()


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
