from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from contextlib import asynccontextmanager
from api import sessions, jobs
from config.app_config import app_config
from constants import ServerConfig
from services.cleanup_scheduler import CleanupScheduler
from services.session_registry import session_registry
from services.task_tracker import task_tracker
from utils.error_handlers import request_validation_response
from utils.ffmpeg_helper import detect_tools, resolve_binary
from utils.logging_utils import configure_logging
import logging
import sys

# Configure logging with rotating file handler
LOG_FILE = configure_logging(app_config.log_dir)

logger = logging.getLogger(__name__)
logger.info(f"Logging initialized: {LOG_FILE}")

# Scratch directory must exist before the static mount is created
app_config.upload_dir.mkdir(parents=True, exist_ok=True)
session_registry.timeout = app_config.session_timeout

cleanup_scheduler = CleanupScheduler(
    session_registry,
    tracker=task_tracker,
    interval=app_config.cleanup_interval,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown"""
    logger.info("Starting background services...")
    logger.info(f"Scratch directory: {app_config.upload_dir}")

    tools = detect_tools(
        resolve_binary('ffmpeg', app_config.ffmpeg_path),
        resolve_binary('ffprobe', app_config.ffprobe_path),
    )
    for name, info in tools.items():
        if info['available']:
            logger.info(f"✅ {name}: {info['path']}")
        else:
            logger.warning(f"⚠️ {name} not found")

    cleanup_scheduler.start()

    yield

    # Shutdown
    logger.info("Shutting down background services...")
    await cleanup_scheduler.stop()
    logger.info("Application shutdown complete")


app = FastAPI(
    title="InstantCut Media Server",
    description="Upload, download, trim and frame extraction for the InstantCut editor",
    version="1.0.0",
    lifespan=lifespan
)

# Configure CORS - allow all origins, the editor may be served from anywhere
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_upload_headers(request: Request, call_next):
    """Let pages on other origins embed scratch files (video, frames)."""
    response = await call_next(request)
    if request.url.path.startswith(ServerConfig.UPLOADS_PREFIX + "/"):
        response.headers["Cross-Origin-Resource-Policy"] = "cross-origin"
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET, HEAD, OPTIONS"
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies get the same 400 error shape as service validation."""
    return request_validation_response(exc)


# Include API routers
app.include_router(sessions.router, prefix=ServerConfig.API_PREFIX, tags=["sessions"])
app.include_router(jobs.router, prefix=ServerConfig.API_PREFIX, tags=["jobs"])


@app.get("/api/health")
def health_check():
    """Health check endpoint, including which external tools are usable"""
    return {
        "status": "ok",
        "service": "InstantCut Media Server",
        "version": "1.0.0",
        "tools": detect_tools(
            resolve_binary('ffmpeg', app_config.ffmpeg_path),
            resolve_binary('ffprobe', app_config.ffprobe_path),
        ),
        "cleanup": cleanup_scheduler.get_status(),
    }


# Serve uploads, trims and extracted frames
app.mount(
    ServerConfig.UPLOADS_PREFIX,
    StaticFiles(directory=str(app_config.upload_dir)),
    name="uploads",
)


if __name__ == "__main__":
    import uvicorn
    import socket

    # Check if port is available
    def is_port_in_use(port: int) -> bool:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            try:
                s.bind((app_config.host, port))
                return False
            except OSError:
                return True

    if is_port_in_use(app_config.port):
        logger.error(f"❌ Port {app_config.port} is already in use!")
        logger.error(f"   Another instance of the media server may be running.")
        logger.error(f"   To fix: Run 'lsof -ti:{app_config.port} | xargs kill -9'")
        sys.exit(1)

    logger.info(f"🚀 Media server running at http://{app_config.host}:{app_config.port}")
    uvicorn.run(app, host=app_config.host, port=app_config.port)
