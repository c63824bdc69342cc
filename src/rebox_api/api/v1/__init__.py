from fastapi import APIRouter

from .endpoints import admin_rewards, health, notifications, observability, rewards

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(rewards.router)
router.include_router(admin_rewards.router)
router.include_router(notifications.router)
router.include_router(observability.router)
