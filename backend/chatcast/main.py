"""chatcast application.

This is the main entry point for the chatcast service: a real-time chat
broadcaster where connected participants exchange messages and presence
events over WebSockets, with recent history replayed to newcomers.

Modules:
    - chat: connection registry, history, broadcasting and WebSocket endpoint
    - config: YAML-backed settings
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from chatcast import __version__
from chatcast.chat.manager import manager
from chatcast.chat.router import router as chat_router
from chatcast.chat.sweeper import LivenessSweeper
from chatcast.config import get_config

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# uvicorn's access log duplicates the request logging middleware below.
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in chatcast.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    manager.configure(config.chat)

    sweeper = LivenessSweeper(manager, interval=config.chat.sweep_interval_seconds)
    sweeper.start()
    app.state.sweeper = sweeper

    logger.info(
        f"Chat server ready on http://{config.server.host}:{config.server.port} "
        f"(WebSocket at ws://{config.server.host}:{config.server.port}/)"
    )

    yield  # Application runs here

    # Shutdown
    await sweeper.stop()
    manager.reset()
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="chatcast",
    description="Real-time chat broadcaster with presence events and bounded history",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.allowed_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every HTTP request as `METHOD path`."""
    logger.info(f"{request.method} {request.url.path}")
    return await call_next(request)


# Register routers
app.include_router(chat_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}
