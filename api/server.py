# ============================================================
# SQLChat - Natural Language to SQL Chat Assistant
# api/server.py — FastAPI Chat Endpoint & Static Widget
# ============================================================
#
#   POST /api/chat   {"message": "..."}  →  {"reply": "..."}
#   GET  /health
#   GET  /           chat widget (static/)
# ============================================================

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from loguru import logger
from pydantic import BaseModel

from config import app_config, server_config, database_config
from core.agent import SQLChatAgent, ReplyStatus
from core.llm import LLMClient
from core.sqlite_manager import SQLiteManager, StoreUnavailable
from utils.logger import setup_logger

NO_MESSAGE_ERROR = "No message provided in request body"
EXECUTION_ERROR = "Error executing SQL query"
SERVER_ERROR = "Failed to process chat message"


class ChatRequest(BaseModel):
    message: Optional[str] = None
    session_id: Optional[str] = None


def build_agent() -> SQLChatAgent:
    db = SQLiteManager(database_config.path)
    db.connect()
    return SQLChatAgent(db, LLMClient())


@asynccontextmanager
async def lifespan(app: FastAPI):
    owns_agent = getattr(app.state, "agent", None) is None
    if owns_agent:
        setup_logger()
        logger.info(f"Starting {app_config.name} v{app_config.version}")
        agent = build_agent()
        # No traffic without a schema: StoreUnavailable aborts startup.
        await agent.start()
        app.state.agent = agent
    yield
    if owns_agent:
        app.state.agent.db.disconnect()
        app.state.agent = None


def create_app(agent: Optional[SQLChatAgent] = None, static_dir: Optional[str] = None) -> FastAPI:
    """
    Build the application. Passing a ready ``agent`` skips the
    startup wiring (used by tests and the CLI).
    """
    app = FastAPI(title=app_config.name, version=app_config.version, lifespan=lifespan)
    app.state.agent = agent

    app.add_middleware(
        CORSMiddleware,
        allow_origins=server_config.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Rejected malformed request on {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": NO_MESSAGE_ERROR})

    @app.get("/health")
    async def health(request: Request):
        agent: SQLChatAgent = request.app.state.agent
        try:
            tables = await asyncio.to_thread(agent.db.list_tables)
        except StoreUnavailable as e:
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "unavailable", "error": str(e)},
            )
        return {"status": "ok", "tables": len(tables), "sessions": len(agent.sessions)}

    @app.post("/api/chat")
    async def chat(body: ChatRequest, request: Request):
        message = (body.message or "").strip()
        if not message:
            return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": NO_MESSAGE_ERROR})

        agent: SQLChatAgent = request.app.state.agent
        try:
            result = await agent.handle_message(message, session_id=body.session_id)
        except Exception:
            logger.exception("Error processing chat message")
            return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": SERVER_ERROR})

        if result.status is ReplyStatus.EXECUTION_ERROR:
            error = result.error
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={
                    "error": EXECUTION_ERROR,
                    "details": error.message,
                    "code": error.code,
                    "sql": error.sql,
                    "reply": result.reply,
                },
            )
        return {"reply": result.reply}

    static_path = Path(static_dir or server_config.static_dir)
    if static_path.is_dir():
        app.mount("/", StaticFiles(directory=static_path, html=True), name="static")
    else:
        logger.warning(f"Static directory not found, widget disabled: {static_path}")

    return app
