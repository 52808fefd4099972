from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import sys

from parking_engine.config import settings
from parking_engine.database import SessionLocal, init_db
from parking_engine.tickets import router as tickets_router
from parking_engine.reservations import router as reservations_router
from parking_engine.reservations.sweeper import ExpirySweeper
from parking_engine.pricing import router as pricing_router
from parking_engine.slots import router as slots_router
from parking_engine.admin import router as admin_router

def setup_logging():
    """Setup application logging configuration"""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    return logging.getLogger(__name__)

logger = setup_logging()

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()

    sweeper = ExpirySweeper(session_factory=SessionLocal)
    if settings.RECONCILE_ON_STARTUP:
        counts = sweeper.run_once()
        logger.info("Startup reconciliation: %s", counts)
    if settings.SWEEPER_ENABLED:
        sweeper.start()

    app.state.sweeper = sweeper
    yield

    sweeper.stop()

# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Multi-Level Car Park API",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(
    tickets_router,
    prefix=f"{settings.API_V1_STR}/parking",
    tags=["Check-in & Check-out"]
)

app.include_router(
    reservations_router,
    prefix=f"{settings.API_V1_STR}/reservations",
    tags=["Reservations"]
)

app.include_router(
    pricing_router,
    prefix=f"{settings.API_V1_STR}/pricing",
    tags=["Pricing"]
)

app.include_router(
    slots_router,
    prefix=f"{settings.API_V1_STR}/slots",
    tags=["Slots"]
)

app.include_router(
    admin_router,
    prefix=f"{settings.API_V1_STR}/admin",
    tags=["Admin"]
)

@app.get("/")
def root():
    """Root endpoint"""
    return {
        "message": "Multi-Level Car Park API",
        "version": "1.0.0",
        "docs": "/docs"
    }

@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "environment": settings.ENVIRONMENT}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
