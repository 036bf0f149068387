import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from error_streamer.api.health import router as health_router
from error_streamer.api.logs import router as logs_router
from error_streamer.api.stream import router as stream_router
from error_streamer.api.websocket import router as websocket_router
from error_streamer.config import settings
from error_streamer.dependencies import stream_controller
from error_streamer.errors import ConfigValidationError, StreamerError
from error_streamer.services.db_init import init_database
from error_streamer.services.pocketbase import PocketbaseError, pocketbase

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    logger.info("Backend starting...")

    # Check Pocketbase connection
    try:
        health = await pocketbase.health_check()
        logger.info("Pocketbase connected: %s", (health or {}).get("message", "OK"))
        await init_database()
    except PocketbaseError as e:
        logger.error(
            "Pocketbase connection failed: %s (events will not be persisted)", e.message
        )

    provider = await stream_controller.refresh_provider()
    if provider:
        logger.info("Active provider: %s (%s)", provider["type"], provider["modelName"])

    logger.info("Backend started")

    yield

    # Shutdown
    logger.info("Backend shutting down...")
    await stream_controller.shutdown()
    await pocketbase.close()


app = FastAPI(title="Error Log Streamer Backend", lifespan=lifespan)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ConfigValidationError)
async def validation_error_handler(request: Request, exc: ConfigValidationError):
    return JSONResponse(status_code=400, content={"success": False, "error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"] if part not in ("body", "query", "path"))
        problems.append(f"{field}: {err['msg']}" if field else err["msg"])
    return JSONResponse(status_code=400, content={"success": False, "error": "; ".join(problems)})


@app.exception_handler(StreamerError)
async def streamer_error_handler(request: Request, exc: StreamerError):
    logger.error("Request %s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=500, content={"success": False, "error": exc.message})


# Include routers
app.include_router(health_router)
app.include_router(stream_router)
app.include_router(logs_router)
app.include_router(websocket_router)
