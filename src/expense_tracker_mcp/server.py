"""MCP Server for the personal expense tracker."""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any

from mcp.server import Server
from mcp.types import Resource, TextContent, Tool

from .analytics import generate_insights
from .auth import AuthenticationError, login_user, register_user
from .database import COLLECTIONS, Database, StoreError
from .queries import (
    categories_for_user,
    category_breakdown,
    category_options,
    get_user,
    summarize,
    transaction_rows,
    transactions_for_user,
)
from .seed import seed_categories, seed_demo_data
from .transactions import add_transaction, delete_transaction


logger = logging.getLogger(__name__)

# Initialize MCP server
server = Server("expense-tracker-mcp")

# Global state
_db: Database | None = None


def get_db() -> Database:
    """Get or create database instance."""
    global _db
    if _db is None:
        db_path = os.environ.get("EXPENSE_TRACKER_DB")
        if not db_path:
            # Default to user's cache directory
            cache_dir = Path.home() / ".cache" / "expense-tracker-mcp"
            cache_dir.mkdir(parents=True, exist_ok=True)
            db_path = cache_dir / "expense_tracker.db"

        db = Database(db_path)
        db.init_schema()
        _db = db
    return _db


def init_for_testing(db: Database) -> None:
    """Initialize server with a test database.

    Args:
        db: Database instance to use (schema already initialized).
    """
    global _db
    _db = db


# Tools that act on behalf of a logged-in user
USER_TOOLS = {
    "list_categories",
    "add_transaction",
    "delete_transaction",
    "list_transactions",
    "get_summary",
    "get_category_breakdown",
    "get_insights",
    "get_dashboard",
    "seed_demo_data",
}

USER_ID_SCHEMA = {
    "type": "integer",
    "description": "ID of the logged-in user (returned by register/login)",
}


# ============================================================================
# Tools
# ============================================================================

@server.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="register",
            description="Create an account. New accounts get the default income/expense categories.",
            inputSchema={
                "type": "object",
                "properties": {
                    "email": {"type": "string", "description": "Email address (must be unique)"},
                    "password": {"type": "string", "description": "Password"},
                },
                "required": ["email", "password"],
            },
        ),
        Tool(
            name="login",
            description="Log in with email and password. Returns the user id to pass to other tools.",
            inputSchema={
                "type": "object",
                "properties": {
                    "email": {"type": "string", "description": "Email address"},
                    "password": {"type": "string", "description": "Password"},
                },
                "required": ["email", "password"],
            },
        ),
        Tool(
            name="list_categories",
            description="List the user's categories as picker options, e.g. 'Food (expense)'.",
            inputSchema={
                "type": "object",
                "properties": {"user_id": USER_ID_SCHEMA},
                "required": ["user_id"],
            },
        ),
        Tool(
            name="add_transaction",
            description="Record an income or expense. Future dates and non-positive amounts are rejected.",
            inputSchema={
                "type": "object",
                "properties": {
                    "user_id": USER_ID_SCHEMA,
                    "type": {
                        "type": "string",
                        "enum": ["income", "expense"],
                        "description": "Transaction type",
                    },
                    "amount": {"type": "number", "description": "Positive amount"},
                    "date": {"type": "string", "description": "Date in 'YYYY-MM-DD' format"},
                    "category_id": {
                        "type": "integer",
                        "description": "Category id of matching type (see list_categories)",
                    },
                    "note": {"type": "string", "description": "Optional note"},
                },
                "required": ["user_id", "type", "amount", "date", "category_id"],
            },
        ),
        Tool(
            name="delete_transaction",
            description="Delete a transaction by id. Deleting an unknown id is not an error.",
            inputSchema={
                "type": "object",
                "properties": {
                    "user_id": USER_ID_SCHEMA,
                    "transaction_id": {"type": "integer", "description": "Transaction id"},
                },
                "required": ["user_id", "transaction_id"],
            },
        ),
        Tool(
            name="list_transactions",
            description="List recent transactions, newest first, with category names and signed amounts.",
            inputSchema={
                "type": "object",
                "properties": {
                    "user_id": USER_ID_SCHEMA,
                    "limit": {
                        "type": "integer",
                        "description": "Maximum results",
                        "default": 10,
                    },
                },
                "required": ["user_id"],
            },
        ),
        Tool(
            name="get_summary",
            description="Total income, expenses and balance. Answers: 'How much have I spent?', 'What is my balance?'",
            inputSchema={
                "type": "object",
                "properties": {"user_id": USER_ID_SCHEMA},
                "required": ["user_id"],
            },
        ),
        Tool(
            name="get_category_breakdown",
            description="Top expense categories by total spent. Answers: 'Where does my money go?'",
            inputSchema={
                "type": "object",
                "properties": {
                    "user_id": USER_ID_SCHEMA,
                    "top_n": {
                        "type": "integer",
                        "description": "Number of top categories to return",
                        "default": 5,
                    },
                },
                "required": ["user_id"],
            },
        ),
        Tool(
            name="get_insights",
            description="Up to 5 short insights: cash-flow warnings, month-over-month trend, category spikes.",
            inputSchema={
                "type": "object",
                "properties": {"user_id": USER_ID_SCHEMA},
                "required": ["user_id"],
            },
        ),
        Tool(
            name="get_dashboard",
            description="Everything the dashboard shows. Seeds demo data first if the user has no transactions.",
            inputSchema={
                "type": "object",
                "properties": {"user_id": USER_ID_SCHEMA},
                "required": ["user_id"],
            },
        ),
        Tool(
            name="seed_demo_data",
            description="Fill an empty account with about three months of sample transactions.",
            inputSchema={
                "type": "object",
                "properties": {"user_id": USER_ID_SCHEMA},
                "required": ["user_id"],
            },
        ),
    ]


def load_dashboard(db: Database, user_id: int) -> dict[str, Any]:
    """Seed an empty account, then read everything the dashboard needs.

    Seeding completes before the read, so a fresh account never shows
    an empty dashboard.
    """
    user = get_user(db, user_id)
    seeded = seed_demo_data(db, user_id)

    transactions = transactions_for_user(db, user_id)
    categories = categories_for_user(db, user_id)

    return {
        "user": {"id": user["id"], "email": user["email"]},
        "seeded_transactions": seeded,
        "summary": summarize(transactions),
        "transactions": transaction_rows(transactions, categories),
        "category_breakdown": category_breakdown(transactions, categories),
        "categories": category_options(categories),
        "insights": generate_insights(transactions, categories),
    }


def dispatch_tool(db: Database, name: str, arguments: dict[str, Any]) -> Any:
    """Run a tool against the store. Blocking; called from a worker thread."""
    if name == "register":
        user = register_user(db, arguments.get("email", ""), arguments.get("password", ""))
        seed_categories(db, user["id"])
        return user

    elif name == "login":
        return login_user(db, arguments.get("email", ""), arguments.get("password", ""))

    if name not in USER_TOOLS:
        raise ValueError(f"Unknown tool: {name}")

    user_id = arguments.get("user_id")
    get_user(db, user_id)

    if name == "list_categories":
        return category_options(categories_for_user(db, user_id))

    elif name == "add_transaction":
        return add_transaction(
            db,
            user_id=user_id,
            category_id=arguments.get("category_id"),
            tx_type=arguments.get("type"),
            amount=arguments.get("amount"),
            tx_date=arguments.get("date"),
            note=arguments.get("note"),
        )

    elif name == "delete_transaction":
        deleted = delete_transaction(db, arguments.get("transaction_id"), user_id=user_id)
        return {"transaction_id": arguments.get("transaction_id"), "deleted": deleted}

    elif name == "list_transactions":
        return transaction_rows(
            transactions_for_user(db, user_id),
            categories_for_user(db, user_id),
            limit=arguments.get("limit", 10),
        )

    elif name == "get_summary":
        return summarize(transactions_for_user(db, user_id))

    elif name == "get_category_breakdown":
        return category_breakdown(
            transactions_for_user(db, user_id),
            categories_for_user(db, user_id),
            top_n=arguments.get("top_n", 5),
        )

    elif name == "get_insights":
        return generate_insights(
            transactions_for_user(db, user_id),
            categories_for_user(db, user_id),
        )

    elif name == "get_dashboard":
        return load_dashboard(db, user_id)

    else:  # seed_demo_data
        return {"user_id": user_id, "seeded_transactions": seed_demo_data(db, user_id)}


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Handle tool calls."""
    db = get_db()

    try:
        result = await asyncio.to_thread(dispatch_tool, db, name, arguments or {})
    except (StoreError, AuthenticationError) as e:
        logger.info("Tool %s rejected: %s", name, e)
        result = {"error": str(e)}

    return [TextContent(type="text", text=json.dumps(result, ensure_ascii=False, indent=2))]


# ============================================================================
# Resources
# ============================================================================

@server.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    return [
        Resource(
            uri="expense-tracker://status",
            name="Store Status",
            description="Schema version and record counts per collection",
            mimeType="application/json",
        ),
    ]


def get_status_resource(db: Database) -> dict[str, Any]:
    """Schema version and per-collection record counts."""
    return {
        "db_path": db.db_path,
        "schema_version": db.schema_version(),
        "counts": {name: db.count_table(name) for name in COLLECTIONS},
    }


@server.read_resource()
async def read_resource(uri: str) -> str:
    """Read resource content."""
    db = get_db()

    if str(uri).rstrip("/") == "expense-tracker://status":
        result = await asyncio.to_thread(get_status_resource, db)
    else:
        raise ValueError(f"Unknown resource: {uri}")

    return json.dumps(result, ensure_ascii=False, indent=2)


# ============================================================================
# Main
# ============================================================================

def main() -> None:
    """Run the MCP server."""
    from mcp.server.stdio import stdio_server

    # stdout carries the protocol
    logging.basicConfig(
        level=os.environ.get("EXPENSE_TRACKER_LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    async def run():
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())

    asyncio.run(run())


if __name__ == "__main__":
    main()
