"""
Campus Desk: Laundry and Lost-and-Found Workflows

FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from campusdesk.api import laundry_router, lost_items_router, views_router
from campusdesk.config import get_settings

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management."""
    logger.info(f"Starting {settings.app_name}")
    yield
    logger.info(f"Shutting down {settings.app_name}")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="""
    Live workflow and claim arbitration for campus laundry and lost-and-found.

    ## Features

    - **Laundry workflow**: pending → in-process → ready → delivered
    - **Lost and found**: available → claimed → returned, or back to available on rejection
    - **Claim arbitration**: concurrent claims on one item, exactly one wins
    - **Role scopes**: requesters see their own requests, handlers and auditors see everything

    ## Identity

    Every call carries `X-Actor-Id` and `X-Actor-Role` (requester, handler, auditor)
    headers set by the identity provider.
    """,
    version="1.0.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(laundry_router)
app.include_router(lost_items_router)
app.include_router(views_router)


@app.get("/", tags=["root"])
async def root():
    """Root endpoint with system info."""
    return {
        "system": settings.app_name,
        "version": "1.0.0",
        "status": "operational",
        "docs": "/docs"
    }


@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("campusdesk.main:app", host="0.0.0.0", port=8000, reload=True)
