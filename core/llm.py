# ============================================================
# SQLChat - Natural Language to SQL Chat Assistant
# core/llm.py — LangChain Chat Model Adapter
# ============================================================
#
# The pipeline only needs one capability from the language model:
# "given an ordered conversation, produce the next assistant utterance".
# LLMClient provides exactly that on top of any LangChain chat model.
# ============================================================

import re
from typing import Dict, List, Optional
from loguru import logger

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from config import llm_config, LLMConfig

_THINK_BLOCK_RE = re.compile(r"<think>[\s\S]*?</think>", re.IGNORECASE)
_THINK_OPEN_RE = re.compile(r"<think>[\s\S]*$", re.IGNORECASE)


def build_chat_model(config: Optional[LLMConfig] = None) -> BaseChatModel:
    """Instantiate the chat model selected by ``config.provider``."""
    config = config or llm_config
    provider = config.provider.lower()

    if provider == "openai":
        from langchain_openai import ChatOpenAI

        kwargs = {
            "model": config.model,
            "temperature": config.temperature,
            "timeout": config.timeout,
            "api_key": config.api_key or None,
        }
        if config.base_url:
            kwargs["base_url"] = config.base_url
        return ChatOpenAI(**kwargs)

    if provider == "ollama":
        from langchain_community.chat_models import ChatOllama

        return ChatOllama(
            base_url=config.base_url or "http://localhost:11434",
            model=config.model,
            temperature=config.temperature,
            timeout=config.timeout,
        )

    raise ValueError(f"Unsupported LLM provider: {config.provider!r}")


def to_langchain_messages(messages: List[Dict[str, str]]) -> List[BaseMessage]:
    converted: List[BaseMessage] = []
    for msg in messages:
        role = msg["role"]
        content = msg["content"]
        if role == "system":
            converted.append(SystemMessage(content=content))
        elif role in ("user", "human"):
            converted.append(HumanMessage(content=content))
        elif role == "assistant":
            converted.append(AIMessage(content=content))
        else:
            raise ValueError(f"Unknown message role: {role!r}")
    return converted


def strip_reasoning(text: str) -> str:
    """Remove <think>...</think> blocks emitted by reasoning models."""
    text = _THINK_BLOCK_RE.sub("", text)
    text = _THINK_OPEN_RE.sub("", text)
    return text.strip()


class LLMClient:
    """Async completion over role-tagged messages."""

    def __init__(self, model: Optional[BaseChatModel] = None, config: Optional[LLMConfig] = None):
        self.config = config or llm_config
        self._model = model or build_chat_model(self.config)
        logger.info(f"LLMClient initialized with model: {getattr(self._model, 'model_name', None) or self.config.model}")

    async def complete(self, messages: List[Dict[str, str]]) -> str:
        """Return the assistant's next utterance. Errors propagate to the caller."""
        response = await self._model.ainvoke(to_langchain_messages(messages))
        content = response.content if isinstance(response.content, str) else str(response.content)
        return strip_reasoning(content)
