import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from library_app.api.api import api_router
from library_app.config import settings
from library_app.database import engine, Base
from library_app.exceptions import (
    LibraryError,
    library_error_handler,
    request_validation_error_handler,
    unhandled_error_handler,
)
from library_app.images import get_image_storage
from library_app.rate_limiter import limiter

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create tables on startup
    Base.metadata.create_all(bind=engine)
    get_image_storage().ensure_directory()
    logger.info("Library Management API started")
    yield
    engine.dispose()

app = FastAPI(
    title="Library Management API",
    description="Catalog of authors and books with a rental ledger",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(LibraryError, library_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_error_handler)
app.add_exception_handler(Exception, unhandled_error_handler)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api")

# Uploaded covers, referenced from books as "/images/<file>"
app.mount(
    settings.IMAGES_URL_PREFIX,
    StaticFiles(directory=settings.IMAGES_DIR, check_dir=False),
    name="images",
)

@app.get("/")
async def root():
    return {
        "message": "Library Management API",
        "api": "/api",
        "documentation": {
            "swagger": "/docs",
            "redoc": "/redoc"
        }
    }

@app.get("/health")
async def health_check():
    """
    Simple health check
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return {"status": "unhealthy", "database": "unavailable"}

if __name__ == "__main__":
    uvicorn.run(
        "library_app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
