# ============================================================
# SQLChat - Natural Language to SQL Chat Assistant
# core/agent.py — Intent → SQL → Execution → Summary Pipeline
# ============================================================
#
# Per message:
#   1. Intent classifier decides whether the message is a database request
#   2. Translator turns it into SQL (translation context + live schema)
#   3. Sanitizer strips code fences, classifier picks read/write path
#   4. Executor runs it against SQLite
#   5. Successful writes reload the schema into the translation prompt
#   6. Summarizer explains the outcome (or the error) in plain language
# ============================================================

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional, List, Dict
from loguru import logger

from config import app_config
from core.history import ChatSession, SessionStore
from core.llm import LLMClient
from core.sqlite_manager import SQLiteManager, QueryResult, ExecutionError, StoreUnavailable
from utils.helpers import QueryType, sanitize_sql, classify_query, format_rows, truncate_string


# ════════════════════════════════════════════════════════════
# ENUMS & DATACLASSES
# ════════════════════════════════════════════════════════════

class Intent(Enum):
    """Whether a message should reach the database at all."""
    DATABASE_QUERY = "DATABASE_QUERY"
    NOT_DATABASE_QUERY = "NOT_DATABASE_QUERY"


class ReplyStatus(Enum):
    OK = "ok"
    NOT_DATABASE_QUERY = "not_database_query"
    EXECUTION_ERROR = "execution_error"


@dataclass
class ChatResult:
    """Outcome of one pass through the pipeline."""
    reply: str
    status: ReplyStatus = ReplyStatus.OK
    sql: Optional[str] = None
    query_type: Optional[QueryType] = None
    result: Optional[QueryResult] = None
    summary_failed: bool = False

    @property
    def error(self) -> Optional[ExecutionError]:
        return self.result.error if self.result else None


# ════════════════════════════════════════════════════════════
# SYSTEM PROMPTS
# ════════════════════════════════════════════════════════════

NOT_DATABASE_REPLY = "This is not a database query. Please ask a question about the database."

INTENT_PROMPT = """You decide whether a user message is a request that should be answered by querying or changing a SQL database.
Reply with exactly one label and nothing else:
DATABASE_QUERY: the message asks to read, add, change, remove or restructure data.
NOT_DATABASE_QUERY: anything else (greetings, jokes, general chat, unrelated questions)."""

INTENT_EXAMPLES: List[Dict[str, str]] = [
    {"role": "user", "content": "Show me all orders placed in the last 7 days"},
    {"role": "assistant", "content": Intent.DATABASE_QUERY.value},
    {"role": "user", "content": "Hi there, how are you doing today?"},
    {"role": "assistant", "content": Intent.NOT_DATABASE_QUERY.value},
]

TRANSLATOR_PROMPT = """You translate natural-language requests into SQLite SQL.

Database schema:
{schema}

Rules:
- Output ONLY the SQL statement. No explanations, no comments, no prose.
- Produce exactly one statement.
- Use only the tables and columns listed in the schema, unless the user asks to create them.
- Use SQLite syntax."""

SUMMARIZER_PROMPT = """You explain the results of SQL statements to a non-technical user.
Each message gives you the SQL that was run and either its result or the error it raised.
- For results: describe what was found or changed in plain language. Mention concrete values when there are only a few rows.
- For errors: apologise briefly, explain what went wrong in simple terms and suggest how the request could be rephrased.
Never show raw SQL unless the user asks for it. Keep the answer short."""

SUMMARY_FALLBACK_REPLY = "Sorry, I couldn't run that request against the database: {message}"

NO_SCHEMA_TEXT = "(the database has no tables yet)"


def build_translator_prompt(schema: str) -> str:
    return TRANSLATOR_PROMPT.format(schema=schema or NO_SCHEMA_TEXT)


def render_outcome(sql: str, result: QueryResult) -> str:
    """User turn for the summarizer: the statement plus a textual outcome."""
    if result.error is not None:
        outcome = f"Error: {result.error.message}"
    elif result.query_type.is_read:
        outcome = f"Result: {format_rows(result.rows)}"
    else:
        outcome = f"Result: {result.changes} row(s) changed"
    return f"SQL: {sql}\n{outcome}"


# ════════════════════════════════════════════════════════════
# AGENT
# ════════════════════════════════════════════════════════════

class SQLChatAgent:
    """
    Coordinates the language model and the SQLite store for chat turns.

    Holds the process-wide schema snapshot and a SessionStore of
    conversational contexts; everything else is per call.
    """

    def __init__(
            self,
            db: SQLiteManager,
            llm: LLMClient,
            sessions: Optional[SessionStore] = None,
            max_history_pairs: Optional[int] = None,
    ):
        self.db = db
        self.llm = llm
        pairs = max_history_pairs if max_history_pairs is not None else app_config.max_history_pairs
        self.sessions = sessions or SessionStore(
            default_session_id=app_config.default_session_id,
            max_pairs=pairs,
        )
        self.sessions.on_create(self._init_session)
        self._schema: Optional[str] = None

    # ════════════════════════════════════════════════════════
    # SCHEMA
    # ════════════════════════════════════════════════════════

    @property
    def schema(self) -> Optional[str]:
        return self._schema

    async def start(self) -> None:
        """Load the schema once. StoreUnavailable here is fatal for the caller."""
        self.use_schema(await asyncio.to_thread(self.db.load_schema))
        logger.info("SQLChatAgent ready")

    def use_schema(self, schema: str) -> None:
        """Install a schema snapshot and rewrite every translation instruction."""
        self._schema = schema
        prompt = build_translator_prompt(schema)
        for session in self.sessions.all():
            session.translation.set_system_prompt(prompt)

    def _init_session(self, session: ChatSession) -> None:
        session.translation.set_system_prompt(build_translator_prompt(self._schema or ""))
        session.summarization.set_system_prompt(SUMMARIZER_PROMPT)

    async def refresh_schema(self, session: ChatSession) -> bool:
        """
        Reload the schema after a write and rewrite the translation
        instruction of ``session`` (and every other open session).
        On failure the last snapshot stays in place.
        """
        try:
            schema = await asyncio.to_thread(self.db.load_schema)
        except StoreUnavailable as e:
            logger.warning(f"[{session.session_id}] Schema refresh failed, keeping last snapshot: {e}")
            return False

        self.use_schema(schema)
        logger.info(f"[{session.session_id}] Schema refreshed after write")
        return True

    # ════════════════════════════════════════════════════════
    # PIPELINE STAGES
    # ════════════════════════════════════════════════════════

    async def classify_intent(self, message: str) -> Intent:
        messages = [{"role": "system", "content": INTENT_PROMPT}]
        messages.extend(INTENT_EXAMPLES)
        messages.append({"role": "user", "content": message})

        label = (await self.llm.complete(messages)).strip()
        try:
            return Intent(label)
        except ValueError:
            # Anything other than the two labels takes the database path.
            logger.warning(f"Unexpected intent label {truncate_string(label)!r}, treating as {Intent.DATABASE_QUERY.value}")
            return Intent.DATABASE_QUERY

    async def translate(self, message: str, session: ChatSession) -> str:
        history = session.translation
        reply = await self.llm.complete(history.build_messages(message))
        history.append_exchange(message, reply)
        return reply

    async def summarize(self, sql: str, result: QueryResult, session: ChatSession) -> str:
        history = session.summarization
        content = render_outcome(sql, result)
        reply = await self.llm.complete(history.build_messages(content))
        history.append_exchange(content, reply)
        return reply

    async def execute(self, sql: str, query_type: QueryType) -> QueryResult:
        if query_type.is_read:
            return await asyncio.to_thread(self.db.query, sql)
        return await asyncio.to_thread(self.db.run, sql)

    # ════════════════════════════════════════════════════════
    # MAIN ENTRY POINT
    # ════════════════════════════════════════════════════════

    async def handle_message(self, message: str, session_id: Optional[str] = None) -> ChatResult:
        """
        Run one chat turn. LLM failures propagate; SQL failures come back
        as a ChatResult with status EXECUTION_ERROR.
        """
        session = self.sessions.get(session_id)

        intent = await self.classify_intent(message)
        logger.debug(f"Intent classified: {intent.value} for input: {truncate_string(message)!r}")
        if intent is Intent.NOT_DATABASE_QUERY:
            return ChatResult(reply=NOT_DATABASE_REPLY, status=ReplyStatus.NOT_DATABASE_QUERY)

        raw_sql = await self.translate(message, session)
        sql = sanitize_sql(raw_sql)
        query_type = classify_query(sql)
        logger.info(f"[{session.session_id}] {query_type.value}: {truncate_string(sql, 200)}")

        result = await self.execute(sql, query_type)

        if not result.success:
            try:
                reply = await self.summarize(sql, result, session)
                summary_failed = False
            except Exception as e:
                logger.error(f"Error summary failed: {e}")
                reply = SUMMARY_FALLBACK_REPLY.format(message=result.error.message)
                summary_failed = True
            return ChatResult(
                reply=reply,
                status=ReplyStatus.EXECUTION_ERROR,
                sql=sql,
                query_type=query_type,
                result=result,
                summary_failed=summary_failed,
            )

        if not query_type.is_read:
            await self.refresh_schema(session)

        reply = await self.summarize(sql, result, session)
        return ChatResult(
            reply=reply,
            sql=sql,
            query_type=query_type,
            result=result,
        )
