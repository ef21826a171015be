"""
promptdiff - Main FastAPI Application
Fetches published CLI releases from npm, extracts their embedded prompts and
serves line-level diffs between versions
"""

from contextlib import asynccontextmanager
from pathlib import Path
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.responses import FileResponse, JSONResponse
import logging

from promptdiff.core.config import settings
from promptdiff.api.routes import versions, compare
from promptdiff.api.exception_handlers import setup_exception_handlers
from promptdiff.services.comparator import close_comparator

# Configure logging - reduce noise, keep only important messages
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence noisy loggers
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

# Static files directory (browser UI)
STATIC_DIR = Path(__file__).parent.parent / "static"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events"""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION} for {settings.PACKAGE_NAME}...")
    logger.info(f"Registry: {settings.NPM_REGISTRY_URL}")
    if settings.EXTRACTION_CACHE_SIZE > 0:
        logger.info(f"Extraction cache bounded to {settings.EXTRACTION_CACHE_SIZE} versions")

    yield

    logger.info("Shutting down...")
    await close_comparator()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Setup centralized exception handlers
setup_exception_handlers(app)

# Include routers
app.include_router(versions.router, prefix="/api/versions", tags=["Versions"])
app.include_router(compare.router, prefix="/api/compare", tags=["Compare"])


@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


@app.get("/api/info")
async def api_info():
    """API information"""
    return settings.get_info()


# ============ Static File Serving ============
# Serve the browser UI if the static directory exists

if STATIC_DIR.exists():
    if (STATIC_DIR / "assets").exists():
        app.mount("/assets", StaticFiles(directory=STATIC_DIR / "assets"), name="assets")

    @app.get("/{full_path:path}")
    async def serve_ui(request: Request, full_path: str):
        """Serve the UI - index.html for every non-API route"""
        if full_path.startswith(("api/", "docs", "redoc", "openapi")):
            return JSONResponse({"detail": "Not found"}, status_code=404)

        # Only files inside STATIC_DIR
        file_path = (STATIC_DIR / full_path).resolve()
        if full_path and file_path.is_file() and STATIC_DIR.resolve() in file_path.parents:
            return FileResponse(file_path)

        return FileResponse(STATIC_DIR / "index.html")
else:
    logger.warning(f"Static directory not found: {STATIC_DIR}")
    logger.warning("The browser UI will not be served; the JSON API is still available under /api")


def main():
    import uvicorn
    uvicorn.run(
        "promptdiff.main:app",
        host=settings.BACKEND_HOST,
        port=settings.BACKEND_PORT,
        reload=settings.DEBUG
    )


if __name__ == "__main__":
    main()
