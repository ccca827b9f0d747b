import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import create_tables, async_session
from app.seed import seed_data
from app.routers.configurations import router as configurations_router
from app.routers.parking import router as parking_router
from app.routers.vehicles import router as vehicles_router
from app.utils.exceptions import register_exception_handlers

logging.basicConfig(level=settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()
    async with async_session() as session:
        await seed_data(session)
    yield


app = FastAPI(
    title="Parking Billing API",
    description="Parking sessions, fees and payments for a parking facility",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(parking_router, prefix="/api/v1")
app.include_router(vehicles_router, prefix="/api/v1")
app.include_router(configurations_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    return {"status": "success", "data": {"service": "parking-billing-api", "version": "0.1.0"}, "message": None}
