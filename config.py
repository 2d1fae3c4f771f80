# ============================================================
# SQLChat - Natural Language to SQL Chat Assistant
# config.py — Central Configuration Management
# ============================================================

import os
from pathlib import Path
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from dotenv import load_dotenv

# Load .env file
BASE_DIR = Path(__file__).parent
load_dotenv(BASE_DIR / ".env")


class LLMConfig(BaseSettings):
    """Language model configuration (OpenAI by default, Ollama optional)."""
    model_config = SettingsConfigDict(env_prefix="LLM_", extra="ignore")

    provider: str = Field(default="openai")
    api_key: str = Field(default="", validation_alias="OPENAI_API_KEY")
    model: str = Field(default="gpt-3.5-turbo")
    base_url: Optional[str] = Field(default=None)
    temperature: float = Field(default=0.0)
    timeout: int = Field(default=60)


class DatabaseConfig(BaseSettings):
    """SQLite store configuration."""
    model_config = SettingsConfigDict(env_prefix="SQLITE_", extra="ignore")

    path: str = Field(default="chat.db")
    timeout: float = Field(default=5.0)


class ServerConfig(BaseSettings):
    """HTTP server configuration."""
    model_config = SettingsConfigDict(extra="ignore")

    host: str = Field(default="127.0.0.1", validation_alias="HOST")
    port: int = Field(default=3001, validation_alias="PORT")
    cors_origins: List[str] = Field(default=["*"], validation_alias="CORS_ORIGINS")
    static_dir: str = Field(default=str(BASE_DIR / "static"), validation_alias="STATIC_DIR")


class AppConfig(BaseSettings):
    """Application-level configuration."""
    model_config = SettingsConfigDict(env_prefix="APP_", extra="ignore")

    name: str = Field(default="SQLChat")
    version: str = Field(default="1.0.0")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str = Field(default="logs/sqlchat.log", validation_alias="LOG_FILE")
    max_history_pairs: int = Field(default=10, validation_alias="MAX_HISTORY_PAIRS")
    default_session_id: str = Field(default="default")


# ── Singleton Config Instances ────────────────────────────────
llm_config = LLMConfig()
database_config = DatabaseConfig()
server_config = ServerConfig()
app_config = AppConfig()

# ── Ensure log directory exists ───────────────────────────────
os.makedirs(BASE_DIR / "logs", exist_ok=True)
