from fastapi import FastAPI
from contextlib import asynccontextmanager
import logging

from api.src.db.database import init_db
from api.src.routes import health_router, runs_router

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Stageline API")
    init_db()
    yield
    logger.info("Shutting down Stageline API")

app = FastAPI(
    title="Stageline",
    description="Pipeline run history and status",
    version="0.1.0",
    lifespan=lifespan
)

app.include_router(health_router)
app.include_router(runs_router, prefix="/api")

@app.get("/")
async def root():
    return {
        "name": "Stageline",
        "version": "0.1.0",
        "docs": "/docs"
    }
