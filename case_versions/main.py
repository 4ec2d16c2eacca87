from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
from dotenv import load_dotenv

from case_versions.core.config import settings
from case_versions.core import database
from case_versions.core.notifications import notification_queue
from case_versions.core.retention_sweeper import RetentionSweeper
from case_versions.routers import versions

load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(levelname)s - %(name)s - %(message)s',
    handlers=[logging.StreamHandler()]
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"🚀 Starting Case Study Versions API ({settings.environment})")
    await notification_queue.start()
    sweeper = None
    if database.AsyncSessionLocal is not None:
        sweeper = RetentionSweeper(database.AsyncSessionLocal)
        await sweeper.start()
    yield
    if sweeper is not None:
        await sweeper.stop()
    await notification_queue.stop()


app = FastAPI(
    title="Case Study Versions API",
    description="Version history, comparison, revert and retention for case studies",
    version="1.0.0",
    redirect_slashes=False,
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.environment == "development" else [settings.frontend_url],
    allow_credentials=False if settings.environment == "development" else True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get("/health")
async def health_check():
    return JSONResponse(content={
        "status": "healthy",
        "service": "Case Study Versions API",
        "version": "1.0.0",
        "notifications": notification_queue.get_stats()
    })

# Include routers
app.include_router(versions.router, prefix="/api/case-studies", tags=["Versions"])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
