# ============================================================
# SQLChat - Natural Language to SQL Chat Assistant
# simple_cli.py — Terminal Chat over the Same Pipeline
# ============================================================
#
# Same agent as the HTTP endpoint, driven from a prompt_toolkit
# session. Generated SQL and result rows are shown alongside the
# summary so the pipeline can be inspected turn by turn.
# ============================================================

import os
import asyncio
from typing import Optional
from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.formatted_text import HTML
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich import box

from core.agent import SQLChatAgent, ChatResult, ReplyStatus
from core.llm import LLMClient
from core.sqlite_manager import SQLiteManager, QueryResult, StoreUnavailable
from utils.helpers import format_duration
from config import app_config, database_config, llm_config

HELP_TEXT = """
Ask anything about your data in plain language, e.g.
  • "show me all users"
  • "how many orders were placed last week?"
  • "add a product called Widget priced at 9.99"

Commands:
  /schema   Show the schema snapshot used for translation
  /refresh  Reload the schema from the database
  /clear    Forget the conversation so far
  /exit     Quit
""".strip()

MAX_DISPLAY_ROWS = 50


class SimpleCLI:
    """Interactive chat loop in the terminal."""

    def __init__(self, db_path: Optional[str] = None):
        self.console = Console()
        self.db = SQLiteManager(db_path or database_config.path)
        self.agent: Optional[SQLChatAgent] = None
        self._running: bool = True

        history_file = os.path.expanduser("~/.sqlchat_history")
        self.session = PromptSession(
            history=FileHistory(history_file),
            auto_suggest=AutoSuggestFromHistory(),
        )

    def run(self):
        asyncio.run(self._run())

    async def _run(self):
        self._print_banner()
        if not await self._initialize():
            return

        while self._running:
            try:
                user_input = await self.session.prompt_async(
                    HTML("<ansigreen><b>sqlchat</b></ansigreen><ansicyan> ▶ </ansicyan>")
                )
            except KeyboardInterrupt:
                self.console.print("[dim]Use /exit to quit[/dim]")
                continue
            except EOFError:
                break

            user_input = user_input.strip()
            if not user_input:
                continue
            if user_input.startswith("/"):
                await self._handle_command(user_input)
            else:
                await self._handle_chat(user_input)

        self._shutdown()

    async def _initialize(self) -> bool:
        self.console.print(f"[dim]Opening SQLite database {self.db.path}...[/dim]")
        try:
            self.db.connect()
            self.agent = SQLChatAgent(self.db, LLMClient())
            await self.agent.start()
        except StoreUnavailable as e:
            self.console.print(f"[red]Database unavailable: {e}[/red]")
            return False
        except Exception as e:
            self.console.print(f"[red]LLM configuration error: {e}[/red]")
            return False

        self.console.print(f"[green]✓ Agent ready[/green] [dim](model: {llm_config.model})[/dim]")
        self.console.print("[dim]Type [bold]/help[/bold] for commands, or start asking.[/dim]\n")
        return True

    async def _handle_chat(self, user_input: str):
        self.console.print("[dim]Thinking...[/dim]")
        try:
            result = await self.agent.handle_message(user_input)
        except Exception as e:
            self.console.print(f"[red]Agent error: {e}[/red]")
            return

        if result.sql:
            self.console.print(f"[dim]Generated SQL ({result.query_type.value}):[/dim]")
            self.console.print(Text(result.sql, style="bold #79c0ff"))

        if result.result is not None:
            self._print_result(result.result)

        self.console.print(self._reply_panel(result))
        self.console.print()

    def _reply_panel(self, result: ChatResult) -> Panel:
        if result.status is ReplyStatus.EXECUTION_ERROR:
            return Panel(Text(result.reply), title="[bold red]SQLChat[/bold red]", border_style="red")
        return Panel(Text(result.reply), title="[bold green]SQLChat[/bold green]", border_style="green")

    def _print_result(self, result: QueryResult):
        timing = format_duration(result.execution_ms)
        if not result.success:
            error_text = Text()
            error_text.append("ERROR", style="bold red")
            error_text.append(f" ({result.error.code}): {result.error.message}", style="red")
            self.console.print(error_text)
            return

        if not result.query_type.is_read:
            row_word = "row" if result.changes == 1 else "rows"
            self.console.print(f"[green]Query OK, {result.changes} {row_word} affected[/green] [dim]({timing})[/dim]")
            return

        if not result.rows:
            self.console.print(f"[dim]Empty set ({timing})[/dim]")
            return

        table = Table(box=box.SIMPLE_HEAVY, header_style="bold cyan", border_style="dim white")
        columns = list(result.rows[0].keys())
        for column in columns:
            table.add_column(str(column))
        for row in result.rows[:MAX_DISPLAY_ROWS]:
            table.add_row(*[
                Text("NULL", style="dim italic yellow") if row.get(c) is None else Text(str(row.get(c)))
                for c in columns
            ])
        self.console.print(table)

        row_word = "row" if len(result.rows) == 1 else "rows"
        shown = f", showing {MAX_DISPLAY_ROWS}" if len(result.rows) > MAX_DISPLAY_ROWS else ""
        self.console.print(f"[dim]{len(result.rows)} {row_word} in set{shown} ({timing})[/dim]")

    async def _handle_command(self, command: str):
        cmd = command.strip().split(maxsplit=1)[0].lower()

        if cmd in ("/exit", "/quit"):
            self._running = False

        elif cmd == "/help":
            self.console.print(HELP_TEXT)

        elif cmd == "/schema":
            if self.agent.schema:
                self.console.print(self.agent.schema, markup=False)
            else:
                self.console.print("[dim]No tables yet[/dim]")

        elif cmd == "/refresh":
            session = self.agent.sessions.get()
            if await self.agent.refresh_schema(session):
                self.console.print("[green]Schema refreshed[/green]")
            else:
                self.console.print("[yellow]Schema refresh failed, keeping previous snapshot[/yellow]")

        elif cmd == "/clear":
            session = self.agent.sessions.get()
            session.translation.clear()
            session.summarization.clear()
            self.console.print("[dim]Conversation cleared[/dim]")

        else:
            self.console.print(f"[yellow]Unknown command: {command}. Type /help[/yellow]")

    def _print_banner(self):
        self.console.print(
            f"[bold #58a6ff]{app_config.name}[/bold #58a6ff] [bold]v{app_config.version}[/bold]\n"
            f"[dim]Natural language ↔ SQLite[/dim]\n"
        )

    def _shutdown(self):
        self.console.print("\n[dim]Shutting down...[/dim]")
        self.db.disconnect()
        self.console.print("[green]Goodbye![/green]")
