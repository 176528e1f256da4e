"""
FastAPI entry point - OPC DA <-> InfluxDB gateway

Responsibilities:
    1. create the FastAPI application
    2. configure logging (console + daily rotating file)
    3. optionally resume the bridge from the stored configuration
    4. stop the bridge on shutdown
"""

from contextlib import asynccontextmanager
import logging
import logging.handlers
import sys

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import get_settings
from gateway import __version__
from gateway.routers import bridge, config, health
from gateway.services.supervisor import get_supervisor

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


# 1. logging (daily rotation, 30 days kept)
def setup_logging():
    settings = get_settings()
    log_dir = settings.resolve_path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if settings.debug else logging.INFO)
    root_logger.handlers.clear()

    # console only shows WARNING and above
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    root_logger.addHandler(console_handler)

    file_handler = logging.handlers.TimedRotatingFileHandler(
        filename=str(log_dir / "gateway.log"),
        when='midnight',
        interval=1,
        backupCount=30,
        encoding='utf-8',
        delay=False
    )
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    file_handler.suffix = "%Y-%m-%d"
    root_logger.addHandler(file_handler)

    logging.info(f"[LOG] directory: {log_dir}")


setup_logging()

logger = logging.getLogger(__name__)
settings = get_settings()


# ------------------------------------------------------------
# Application lifespan
# ------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting OPC gateway...")
    supervisor = get_supervisor()

    if settings.autostart_bridge:
        stored = supervisor.storage.load()
        if stored is None:
            logger.info("[STARTUP] autostart enabled but no stored configuration")
        else:
            ok, status = await supervisor.start(stored)
            logger.info(f"[STARTUP] bridge autostart: {status}")

    yield

    logger.info("[SHUTDOWN] stopping bridge...")
    await supervisor.stop()
    logger.info("[SHUTDOWN] all resources released")


# ------------------------------------------------------------
# Application factory
# ------------------------------------------------------------
def create_app() -> FastAPI:
    app = FastAPI(
        title="OPC Gateway",
        description="OPC DA <-> InfluxDB bridge",
        version=__version__,
        lifespan=lifespan
    )

    # LAN deployment, any origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(config.router)
    app.include_router(bridge.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.server_host, port=settings.server_port)
