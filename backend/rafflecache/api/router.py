from fastapi import APIRouter

from rafflecache.api.routes import activity, cache_admin, health, leaderboard, polling, stats

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(activity.router, prefix="/activity", tags=["activity"])
api_router.include_router(leaderboard.router, prefix="/leaderboard", tags=["leaderboard"])
api_router.include_router(stats.router, prefix="/stats", tags=["stats"])
api_router.include_router(cache_admin.router, prefix="/cache", tags=["cache"])
api_router.include_router(polling.router, prefix="/polling", tags=["polling"])
