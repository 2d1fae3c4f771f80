"""
Pipeline tests for SQLChatAgent.

The language model is replaced by ScriptedLLM (see conftest.py); the
database is a real SQLite file seeded with a ``users`` table.
"""

from unittest.mock import patch

import pytest

from core.agent import (
    Intent,
    NOT_DATABASE_REPLY,
    ReplyStatus,
    SQLChatAgent,
    build_translator_prompt,
    render_outcome,
)
from core.sqlite_manager import StoreUnavailable
from utils.helpers import QueryType


# =============================================================================
# Intent classification
# =============================================================================

@pytest.mark.asyncio
class TestClassifyIntent:

    async def test_prompt_has_instruction_examples_and_message(self, agent, llm):
        await agent.classify_intent("Show me last month's orders")
        messages = llm.calls["intent"][0]
        assert [m["role"] for m in messages] == ["system", "user", "assistant", "user", "assistant", "user"]
        assert messages[2]["content"] == "DATABASE_QUERY"
        assert messages[4]["content"] == "NOT_DATABASE_QUERY"
        assert messages[-1]["content"] == "Show me last month's orders"

    async def test_labels_are_trimmed(self, agent, llm):
        llm.intent = "  NOT_DATABASE_QUERY\n"
        assert await agent.classify_intent("hi") is Intent.NOT_DATABASE_QUERY

    async def test_unexpected_label_defaults_to_database_query(self, agent, llm):
        llm.intent = "Sure! This looks like a database question."
        assert await agent.classify_intent("list users") is Intent.DATABASE_QUERY

    async def test_llm_failure_propagates(self, agent, llm):
        llm.fail_on.add("intent")
        with pytest.raises(RuntimeError):
            await agent.classify_intent("list users")


# =============================================================================
# Example scenarios
# =============================================================================

@pytest.mark.asyncio
class TestHandleMessage:

    async def test_not_database_query_short_circuits(self, agent, llm, db):
        llm.intent = "NOT_DATABASE_QUERY"
        with patch.object(db, "query", wraps=db.query) as query, patch.object(db, "run", wraps=db.run) as run:
            result = await agent.handle_message("Tell me a joke")

        assert result.status is ReplyStatus.NOT_DATABASE_QUERY
        assert result.reply == NOT_DATABASE_REPLY
        assert llm.calls["translate"] == []
        assert llm.calls["summarize"] == []
        assert query.call_count == 0
        assert run.call_count == 0

    async def test_select_with_fenced_output(self, agent, llm, db):
        llm.sql = ["```sql\nSELECT * FROM users;\n```"]
        llm.summary = "There is one user, Alice."
        with patch.object(db, "load_schema", wraps=db.load_schema) as load_schema:
            result = await agent.handle_message("Show me all users")

        assert result.status is ReplyStatus.OK
        assert result.reply == "There is one user, Alice."
        assert result.sql == "SELECT * FROM users;"
        assert result.query_type is QueryType.SELECT
        assert result.result.rows == [{"id": 1, "name": "Alice"}]
        assert load_schema.call_count == 0

        summary_turn = llm.calls["summarize"][0][-1]["content"]
        assert summary_turn == 'SQL: SELECT * FROM users;\nResult: [{"id": 1, "name": "Alice"}]'

    async def test_ddl_reloads_schema_once_and_rewrites_prompt(self, agent, llm, db):
        llm.sql = ["DROP TABLE users;"]
        session = agent.sessions.get()
        assert "Table: users" in session.translation.system_prompt

        with patch.object(db, "load_schema", wraps=db.load_schema) as load_schema:
            result = await agent.handle_message("Delete the users table")

        assert result.status is ReplyStatus.OK
        assert result.query_type is QueryType.DDL
        assert result.result.changes == 0
        assert load_schema.call_count == 1
        assert "Table: users" not in session.translation.system_prompt
        assert session.translation.system_prompt == build_translator_prompt("")
        assert llm.calls["summarize"][0][-1]["content"].endswith("Result: 0 row(s) changed")

    async def test_write_makes_new_table_visible_to_next_translation(self, agent, llm):
        llm.sql = ["CREATE TABLE orders (id INTEGER PRIMARY KEY, total REAL)", "SELECT * FROM orders"]
        await agent.handle_message("Create an orders table")
        await agent.handle_message("Show orders")

        second_prompt = llm.calls["translate"][1][0]["content"]
        assert "Table: orders" in second_prompt
        assert "Table: orders" in agent.schema

    async def test_insert_reports_changes(self, agent, llm, db):
        llm.sql = ["INSERT INTO users (name) VALUES ('Bob')"]
        result = await agent.handle_message("Add Bob")

        assert result.query_type is QueryType.INSERT
        assert result.result.changes == 1
        assert db.query("SELECT name FROM users ORDER BY id").rows == [{"name": "Alice"}, {"name": "Bob"}]

    @pytest.mark.parametrize("sql,query_type,changes", [
        ("INSERT INTO users (name) VALUES ('Bob')", QueryType.INSERT, 1),
        ("UPDATE users SET name = 'Alicia' WHERE id = 1", QueryType.UPDATE, 1),
        ("DELETE FROM users WHERE id = 1", QueryType.DELETE, 1),
        ("CREATE TABLE orders (id INTEGER PRIMARY KEY)", QueryType.DDL, 0),
        ("PRAGMA user_version = 3", QueryType.UNKNOWN, 0),
    ])
    async def test_every_successful_write_reloads_schema_once(self, agent, llm, db, sql, query_type, changes):
        llm.sql = [sql]
        with patch.object(db, "load_schema", wraps=db.load_schema) as load_schema:
            result = await agent.handle_message("Change something")

        assert result.status is ReplyStatus.OK
        assert result.query_type is query_type
        assert result.result.changes == changes
        assert load_schema.call_count == 1

    async def test_unknown_statement_takes_write_path(self, agent, llm, db):
        llm.sql = ["PRAGMA user_version = 3"]
        with patch.object(db, "run", wraps=db.run) as run:
            result = await agent.handle_message("Bump the schema version")
        assert result.query_type is QueryType.UNKNOWN
        assert run.call_count == 1

    async def test_execution_error_is_summarized_without_reload(self, agent, llm, db):
        llm.sql = ["INSERT INTO users (nickname) VALUES ('x')"]
        llm.summary = "Sorry, the users table has no nickname column."
        with patch.object(db, "load_schema", wraps=db.load_schema) as load_schema:
            result = await agent.handle_message("Add a row with a nonexistent column")

        assert result.status is ReplyStatus.EXECUTION_ERROR
        assert result.reply == "Sorry, the users table has no nickname column."
        assert result.error.sql == "INSERT INTO users (nickname) VALUES ('x')"
        assert "nickname" in result.error.message
        assert result.error.code
        assert load_schema.call_count == 0
        assert llm.calls["summarize"][0][-1]["content"].startswith("SQL: INSERT INTO users (nickname)")
        assert "Error: " in llm.calls["summarize"][0][-1]["content"]

    async def test_error_summary_failure_falls_back_to_raw_error(self, agent, llm):
        llm.sql = ["SELECT * FROM missing"]
        llm.fail_on.add("summarize")
        result = await agent.handle_message("Show the missing table")

        assert result.status is ReplyStatus.EXECUTION_ERROR
        assert result.summary_failed
        assert "no such table: missing" in result.reply

    async def test_success_summary_failure_propagates(self, agent, llm):
        llm.sql = ["SELECT * FROM users"]
        llm.fail_on.add("summarize")
        with pytest.raises(RuntimeError):
            await agent.handle_message("Show users")

    async def test_translator_failure_propagates_without_touching_history(self, agent, llm):
        llm.fail_on.add("translate")
        with pytest.raises(RuntimeError):
            await agent.handle_message("Show users")
        assert len(agent.sessions.get().translation) == 1


# =============================================================================
# Conversational context
# =============================================================================

@pytest.mark.asyncio
class TestHistory:

    async def test_each_round_adds_one_pair_to_each_context(self, agent, llm):
        llm.sql = ["SELECT * FROM users"]
        await agent.handle_message("Show users")
        session = agent.sessions.get()
        assert [m["role"] for m in session.translation.messages] == ["system", "user", "assistant"]
        assert session.translation.messages[1]["content"] == "Show users"
        assert session.translation.messages[2]["content"] == "SELECT * FROM users"
        assert [m["role"] for m in session.summarization.messages] == ["system", "user", "assistant"]

    async def test_translation_context_is_bounded(self, agent, llm):
        llm.sql = [f"SELECT {i}" for i in range(5)]
        for i in range(5):
            await agent.handle_message(f"question {i}")

        last_prompt = llm.calls["translate"][-1]
        # pinned + 2 pairs (max_history_pairs=2) + new user turn
        assert len(last_prompt) == 1 + 2 * 2 + 1
        assert [m["content"] for m in last_prompt[1:]] == [
            "question 2", "SELECT 2", "question 3", "SELECT 3", "question 4",
        ]

    async def test_summarization_context_is_independent(self, agent, llm):
        llm.sql = ["SELECT * FROM users"]
        await agent.handle_message("Show users")
        session = agent.sessions.get()
        assert session.translation.messages[1]["content"] != session.summarization.messages[1]["content"]

    async def test_sessions_do_not_share_history(self, agent, llm):
        llm.sql = ["SELECT 1", "SELECT 2"]
        await agent.handle_message("first", session_id="a")
        await agent.handle_message("second", session_id="b")
        assert len(agent.sessions.get("a").translation) == 3
        assert len(agent.sessions.get("b").translation) == 3
        assert llm.calls["translate"][1][1]["content"] == "second"


# =============================================================================
# Schema management
# =============================================================================

@pytest.mark.asyncio
class TestSchema:

    async def test_start_fails_when_store_is_unavailable(self, db, llm):
        db._connection.close()
        agent = SQLChatAgent(db, llm)
        with pytest.raises(StoreUnavailable):
            await agent.start()

    async def test_refresh_failure_keeps_last_snapshot(self, agent, llm, db):
        before = agent.schema
        session = agent.sessions.get()
        prompt_before = session.translation.system_prompt
        with patch.object(db, "load_schema", side_effect=StoreUnavailable("gone")):
            assert await agent.refresh_schema(session) is False
        assert agent.schema == before
        assert session.translation.system_prompt == prompt_before

    async def test_refresh_updates_every_session(self, agent, db):
        first, second = agent.sessions.get("a"), agent.sessions.get("b")
        db.run("CREATE TABLE extra (id INTEGER)")
        assert await agent.refresh_schema(first) is True
        assert "Table: extra" in first.translation.system_prompt
        assert "Table: extra" in second.translation.system_prompt

    async def test_new_session_gets_current_schema(self, agent):
        session = agent.sessions.get("late")
        assert session.translation.system_prompt == build_translator_prompt(agent.schema)

    async def test_use_schema_rewrites_open_sessions(self, agent):
        session = agent.sessions.get("a")
        agent.use_schema("Table: t\nSchema: CREATE TABLE t (x)")
        assert agent.schema == "Table: t\nSchema: CREATE TABLE t (x)"
        assert "CREATE TABLE t (x)" in session.translation.system_prompt


def test_render_outcome_for_write(db):
    result = db.run("INSERT INTO users (name) VALUES ('Bob')")
    assert render_outcome("INSERT ...", result) == "SQL: INSERT ...\nResult: 1 row(s) changed"
