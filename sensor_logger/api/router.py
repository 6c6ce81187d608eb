from fastapi import APIRouter

from sensor_logger.api.routes import sensors, weather

api_router = APIRouter(prefix="/api")
api_router.include_router(sensors.router, tags=["sensors"])
api_router.include_router(weather.router, tags=["weather"])
