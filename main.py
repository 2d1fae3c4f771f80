#!/usr/bin/env python3
# ============================================================
# SQLChat - Natural Language to SQL Chat Assistant
# main.py — Application Entry Point
# ============================================================
#
# Usage:
#   python main.py                  → Start the HTTP server + chat widget
#   python main.py chat             → Chat from the terminal
#   python main.py inspect          → Print the schema snapshot
#   python main.py version          → Show version info
#
# Prerequisites:
#   1. OPENAI_API_KEY set (or LLM_PROVIDER=ollama with `ollama serve`)
#   2. SQLITE_PATH pointing at the database file (created if missing)
#   3. .env file configured (optional)
# ============================================================

import sys
import os
import click
from loguru import logger

# Add project root to path
sys.path.insert(0, os.path.dirname(__file__))

from utils.logger import setup_logger
from config import app_config, database_config, llm_config, server_config


@click.group(invoke_without_command=True)
@click.pass_context
def cli(ctx):
    """SQLChat: talk to a SQLite database in plain language."""
    if ctx.invoked_subcommand is None:
        run_server(server_config.host, server_config.port)


@cli.command()
@click.option("--host", default=None, help="Interface to bind (default from HOST).")
@click.option("--port", default=None, type=int, help="Port to listen on (default from PORT).")
def serve(host, port):
    """Serve the chat API and the browser widget."""
    run_server(host or server_config.host, port or server_config.port)


@cli.command()
@click.option("--db", "db_path", default=None, help="SQLite file (default from SQLITE_PATH).")
def chat(db_path):
    """Chat with the database from the terminal."""
    setup_logger(console_level="CRITICAL")

    from simple_cli import SimpleCLI
    SimpleCLI(db_path).run()


@cli.command()
@click.option("--db", "db_path", default=None, help="SQLite file (default from SQLITE_PATH).")
def inspect(db_path):
    """Print the schema snapshot handed to the translator."""
    setup_logger(level="WARNING")

    from core.sqlite_manager import SQLiteManager, StoreUnavailable
    db = SQLiteManager(db_path or database_config.path)
    try:
        db.connect()
        schema = db.load_schema()
    except StoreUnavailable as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)
    finally:
        db.disconnect()

    click.echo(f"\nSchema of {db.path}:\n")
    click.echo(schema or "(no tables)")


@cli.command()
def version():
    """Display version and configuration info."""
    click.echo(
        f"{app_config.name} v{app_config.version}\n"
        f"  Database : {database_config.path}\n"
        f"  LLM      : {llm_config.provider} / {llm_config.model}\n"
        f"  Server   : http://{server_config.host}:{server_config.port}"
    )


# ── Launch Functions ──────────────────────────────────────────

def run_server(host: str, port: int):
    import uvicorn
    from api.server import create_app

    setup_logger()
    logger.info(f"Server is running on http://{host}:{port}")
    # log_config=None keeps the loguru interception installed by setup_logger
    uvicorn.run(create_app(), host=host, port=port, log_config=None)


# ── Entry Point ───────────────────────────────────────────────

if __name__ == "__main__":
    cli()
