from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from dealdrop.core.config import settings
from dealdrop.core.database import connect_to_mongo, close_mongo_connection, get_database
from dealdrop.api.routes import audit, deals, merchants, regions, users
from dealdrop.services.deal_lifecycle import DealLifecycle
from dealdrop.services.deal_store import DealStore
from dealdrop.services.recurrence_scheduler import RecurrenceScheduler

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Backend API for DealDrop - time-boxed local deals with geo discovery and recurring reposts",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Startup and shutdown events
@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    logger.info("Starting up DealDrop backend...")
    await connect_to_mongo()

    app.state.recurrence_scheduler = None
    if settings.RECURRENCE_SCHEDULER_ENABLED:
        store = DealStore(get_database())
        scheduler = RecurrenceScheduler(store, DealLifecycle(store))
        await scheduler.start()
        app.state.recurrence_scheduler = scheduler

    logger.info("DealDrop backend started successfully")


@app.on_event("shutdown")
async def shutdown_event():
    """Clean up services on shutdown."""
    logger.info("Shutting down DealDrop backend...")
    scheduler = getattr(app.state, "recurrence_scheduler", None)
    if scheduler is not None:
        await scheduler.stop()
    await close_mongo_connection()
    logger.info("DealDrop backend shut down successfully")


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    scheduler = getattr(app.state, "recurrence_scheduler", None)
    return {
        "status": "healthy",
        "service": "dealdrop-backend",
        "version": "1.0.0",
        "recurrence_scheduler": bool(scheduler and scheduler.running)
    }


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.PROJECT_NAME,
        "version": "1.0.0",
        "description": "DealDrop Backend API",
        "docs": "/docs",
        "health": "/health"
    }


# Include routers
app.include_router(deals.router, prefix=f"{settings.API_V1_PREFIX}/deals", tags=["Deals"])
app.include_router(merchants.router, prefix=f"{settings.API_V1_PREFIX}/merchants", tags=["Merchants"])
app.include_router(users.router, prefix=settings.API_V1_PREFIX, tags=["Claims & Saved Deals"])
app.include_router(regions.router, prefix=settings.API_V1_PREFIX, tags=["Regions"])
app.include_router(audit.router, prefix=f"{settings.API_V1_PREFIX}/audit", tags=["Audit"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
