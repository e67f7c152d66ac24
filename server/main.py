"""FastAPI WebSocket server for the Cardy card game."""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from config import config
from handlers import ConnectionContext, dispatch_message, send_error
from logging_config import connection_id_var, setup_logging
from routers.health import router as health_router, set_health_dependencies
from services.connections import ConnectionManager
from session import GameSession
from stores.game_store import close_game_store, get_game_store

# Configure logging based on environment
setup_logging(
    level=config.LOG_LEVEL,
    environment=config.ENVIRONMENT,
)
logger = logging.getLogger(__name__)


# =============================================================================
# Services (initialized in lifespan)
# =============================================================================

connections = ConnectionManager()
_session: Optional[GameSession] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for async service initialization."""
    global _session

    store = await get_game_store(
        backend=config.STORE_BACKEND,
        redis_url=config.REDIS_URL,
        game_ttl_hours=config.GAME_TTL_HOURS,
    )
    _session = GameSession(store, config)
    set_health_dependencies(game_store=store, connections=connections)

    logger.info(f"Cardy server started (environment={config.ENVIRONMENT}, store={config.STORE_BACKEND})")

    yield

    logger.info("Shutdown initiated...")
    await connections.close_all()
    await close_game_store()
    _session = None
    logger.info("Shutdown complete")


app = FastAPI(
    title="Cardy Card Game",
    debug=config.DEBUG,
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(health_router)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()

    connection_id = str(uuid.uuid4())
    connection_id_var.set(connection_id)
    connections.connect(connection_id, websocket)
    logger.debug(f"WebSocket connected as {connection_id}")

    ctx = ConnectionContext(websocket=websocket, connection_id=connection_id)

    # Shared dependencies passed to every handler
    handler_deps = dict(
        session=_session,
        connections=connections,
    )

    try:
        while True:
            try:
                data = await websocket.receive_json()
            except ValueError:
                await send_error(ctx, "Messages must be JSON objects.")
                continue
            await dispatch_message(data, ctx, **handler_deps)
    except WebSocketDisconnect:
        logger.debug(f"WebSocket {connection_id} disconnected (user={ctx.username}, game={ctx.game_code})")
    finally:
        connections.disconnect(connection_id)


def run():
    """Run the server using uvicorn."""
    import uvicorn

    logger.info(f"Starting Cardy server on {config.HOST}:{config.PORT}")
    logger.info(f"Debug mode: {config.DEBUG}")

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
