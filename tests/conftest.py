"""Shared fixtures: a seeded SQLite file, a scripted language model and a ready agent."""

from typing import Dict, List

import pytest

from core.agent import SQLChatAgent, INTENT_PROMPT, SUMMARIZER_PROMPT
from core.sqlite_manager import SQLiteManager


class ScriptedLLM:
    """
    Stand-in for LLMClient. Recognises the pipeline stage from the system
    prompt, records every call and replies from a script.
    """

    def __init__(self, intent: str = "DATABASE_QUERY", sql: List[str] = None, summary: str = "Here is what I found."):
        self.intent = intent
        self.sql = list(sql or [])
        self.summary = summary
        self.fail_on = set()
        self.calls: Dict[str, List[List[Dict[str, str]]]] = {"intent": [], "translate": [], "summarize": []}

    @staticmethod
    def stage_of(messages) -> str:
        system = messages[0]["content"]
        if system == INTENT_PROMPT:
            return "intent"
        if system == SUMMARIZER_PROMPT:
            return "summarize"
        return "translate"

    async def complete(self, messages):
        stage = self.stage_of(messages)
        self.calls[stage].append(messages)
        if stage in self.fail_on:
            raise RuntimeError(f"{stage} call failed")
        if stage == "intent":
            return self.intent
        if stage == "translate":
            return self.sql.pop(0)
        return self.summary


@pytest.fixture
def db(tmp_path):
    manager = SQLiteManager(str(tmp_path / "test.db"))
    manager.connect()
    manager.run("CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT NOT NULL)")
    manager.run("INSERT INTO users (name) VALUES ('Alice')")
    yield manager
    manager.disconnect()


@pytest.fixture
def llm():
    return ScriptedLLM()


@pytest.fixture
def agent(db, llm):
    chat_agent = SQLChatAgent(db, llm, max_history_pairs=2)
    chat_agent.use_schema(db.load_schema())
    return chat_agent
