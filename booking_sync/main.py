import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .config import FRONTEND_URL
from .domain.ghl_sync import cron_router, webhooks_router
from .domain.ghl_sync import router as ghl_sync_router
from .firestore import init_firebase

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        init_firebase()
    except Exception as e:
        logger.error(f"Failed to initialize Firebase Admin: {e}")
    yield
    logger.info("Application shutting down...")


def create_app() -> FastAPI:
    app = FastAPI(title="Studio Booking Sync API", version="1.0.0", lifespan=lifespan)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
            raise

    # CORS Configuration
    allowed_origins = os.getenv("ALLOWED_ORIGINS", f"{FRONTEND_URL},http://localhost:3000").split(",")
    logger.info(f"CORS allowed origins: {allowed_origins}")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Routes
    app.include_router(ghl_sync_router)
    app.include_router(cron_router)
    app.include_router(webhooks_router)

    @app.get("/")
    def root():
        return {"message": "Studio Booking Sync API is running"}

    @app.get("/health")
    def health():
        return {"status": "healthy"}

    return app


app = create_app()
