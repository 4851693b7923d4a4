from fastapi import APIRouter

from nexusflow.routers.health import health_router
from nexusflow.routers.notifications import notifications_router

main_router = APIRouter()

main_router.include_router(health_router, prefix="/health", tags=["Health Checks"])
main_router.include_router(
    notifications_router, prefix="/notifications", tags=["Notifications"]
)
