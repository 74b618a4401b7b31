from fastapi import APIRouter

from factoring.api.routes import factor, health

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(factor.router)
