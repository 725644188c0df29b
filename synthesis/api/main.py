from fastapi import APIRouter

from synthesis.api.routes import quota, synthesis, utils

api_router = APIRouter()
api_router.include_router(utils.router, tags=["utils"])
api_router.include_router(synthesis.router, prefix="/synthesis", tags=["synthesis"])
api_router.include_router(quota.router, prefix="/quota", tags=["quota"])
